"""
MongoDB access helpers.

`connect(settings)` opens the connection at startup when DATABASE_URL and
DATABASE_NAME are configured; `db` stays None otherwise. Route handlers get
the handle through `get_db` so tests can swap in another database with
`app.dependency_overrides`.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from errors import DatabaseUnavailable

logger = logging.getLogger(__name__)

USERS = "user"
PRODUCTS = "product"
BUY_INTERESTS = "buyinterest"
ORDERS = "order"
IMAGES = "image"

client = None
db = None


def connect(settings) -> None:
    global client, db
    if not settings.database_configured:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
        return
    client = MongoClient(settings.database_url)
    db = client[settings.database_name]
    logger.info("Connected to MongoDB database %s", settings.database_name)


def disconnect() -> None:
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def get_db():
    if db is None:
        raise DatabaseUnavailable()
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if not value:
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)
    stamp = now_utc()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Dict = None, limit: int = None,
                  sort=None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: `_id` -> `id`, ObjectIds -> str, datetimes -> ISO."""
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        doc[k] = _serialize_value(v)
    return doc


def _serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.isoformat()
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [_serialize_value(i) for i in v]
    return v


def ensure_indexes(database) -> None:
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[PRODUCTS].create_index([("createdAt", DESCENDING)])
    database[PRODUCTS].create_index([("owner", ASCENDING), ("createdAt", DESCENDING)])
    database[BUY_INTERESTS].create_index([("product", ASCENDING), ("buyer", ASCENDING)], unique=True)
    database[ORDERS].create_index([("buyer", ASCENDING), ("orderDate", DESCENDING)])
    database[ORDERS].create_index([("seller", ASCENDING), ("orderDate", DESCENDING)])
    database[IMAGES].create_index([("filename", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")
