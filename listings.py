"""
Product listings and the one-way sold transition.

A product starts active (isSold false, soldTo null) and can be marked sold
exactly once, by its owner, naming the buyer. The update is conditional on
isSold still being false so two concurrent requests cannot both succeed.
"""
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from database import (
    IMAGES,
    PRODUCTS,
    USERS,
    create_document,
    get_documents,
    now_utc,
    serialize_doc,
    to_object_id,
)
from errors import Conflict, Forbidden, NotFound, SelfDealing, ValidationError
from images import ImageStore
from schemas import Product, ProductCreateBody

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]
OWNER_FIELDS = ("name", "email")


def public_profiles(db, user_ids: Iterable, fields=OWNER_FIELDS) -> Dict:
    """Map user ObjectId -> {id, <fields>} for the given ids."""
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    projection = {f: 1 for f in fields}
    profiles = {}
    for user in db[USERS].find({"_id": {"$in": ids}}, projection):
        profile = {"id": str(user["_id"])}
        profile.update({f: user.get(f) for f in fields})
        profiles[user["_id"]] = profile
    return profiles


def _with_owners(db, products: List[dict]) -> List[dict]:
    owners = public_profiles(db, (p.get("owner") for p in products))
    out = []
    for p in products:
        owner = owners.get(p.get("owner"))
        item = serialize_doc(p)
        item["owner"] = owner if owner else item.get("owner")
        out.append(item)
    return out


def create_product(db, owner_id: str, fields: dict, images: Optional[ImageStore] = None) -> dict:
    owner = to_object_id(owner_id)
    if owner is None:
        raise ValidationError("Invalid owner")

    image_url = fields.get("imageUrl") or fields.get("image_url")
    upload_name = ImageStore.filename_from_url(image_url) if images else None
    if upload_name and not images.exists(upload_name):
        raise ValidationError("Uploaded image not found")

    try:
        body = ProductCreateBody(**fields)
        product = Product(owner=owner, **body.model_dump())
    except PydanticValidationError as e:
        err = e.errors()[0]
        where = ".".join(str(p) for p in err.get("loc", ()))
        raise ValidationError(f"{where}: {err['msg']}" if where else err["msg"])

    try:
        product_id = create_document(db, PRODUCTS, product)
    except PyMongoError:
        if upload_name:
            logger.warning("Product insert failed, removing orphaned upload %s", upload_name)
            images.delete(upload_name)
            db[IMAGES].delete_one({"filename": upload_name})
        raise

    logger.info("Product %s created by %s", product_id, owner_id)
    return serialize_doc(db[PRODUCTS].find_one({"_id": to_object_id(product_id)}))


def list_products(db, category: Optional[str] = None) -> List[dict]:
    query = {}
    if category:
        query["category"] = category
    products = get_documents(db, PRODUCTS, query, sort=NEWEST_FIRST)
    return _with_owners(db, products)


def list_products_by_owner(db, owner_id: str) -> List[dict]:
    owner = to_object_id(owner_id)
    if owner is None:
        return []
    products = get_documents(db, PRODUCTS, {"owner": owner}, sort=NEWEST_FIRST)
    return _with_owners(db, products)


def find_product(db, product_id) -> Optional[dict]:
    oid = to_object_id(product_id)
    if oid is None:
        return None
    return db[PRODUCTS].find_one({"_id": oid})


def get_product(db, product_id: str) -> dict:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    return _with_owners(db, [product])[0]


def mark_sold(db, product_id: str, requester_id: str, buyer_id: str) -> dict:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    if str(product["owner"]) != str(requester_id):
        raise Forbidden("Only the owner can mark this product as sold")
    if not buyer_id:
        raise ValidationError("buyerId is required")

    buyer = to_object_id(buyer_id)
    if buyer is None or db[USERS].find_one({"_id": buyer}, {"_id": 1}) is None:
        raise NotFound("Buyer not found")
    if buyer == product["owner"]:
        raise SelfDealing("You cannot sell a product to yourself")
    if product.get("isSold"):
        raise Conflict("Product is already sold")

    updated = db[PRODUCTS].find_one_and_update(
        {"_id": product["_id"], "owner": product["owner"], "isSold": False},
        {"$set": {"isSold": True, "soldTo": buyer, "updatedAt": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise Conflict("Product is already sold")

    logger.info("Product %s marked sold to %s", product_id, buyer_id)
    return _with_owners(db, [updated])[0]
