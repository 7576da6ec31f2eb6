"""
Buy interests: a buyer tells a seller they want a listing.

At most one interest exists per (product, buyer) pair; the unique index on
the collection backs the pre-check.
"""
import logging
from typing import List

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from database import BUY_INTERESTS, PRODUCTS, create_document, serialize_doc, to_object_id
from errors import Conflict, NotFound, SelfDealing
from listings import find_product, public_profiles
from schemas import BuyInterest

logger = logging.getLogger(__name__)

DUPLICATE_INTEREST = "You have already expressed interest in this product"


def express_interest(db, buyer_id: str, product_id: str, payment_method: str) -> dict:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")

    buyer = to_object_id(buyer_id)
    if buyer == product["owner"]:
        raise SelfDealing("Cannot express interest in your own product")

    if db[BUY_INTERESTS].find_one({"product": product["_id"], "buyer": buyer}, {"_id": 1}):
        raise Conflict(DUPLICATE_INTEREST)

    interest = BuyInterest(product=product["_id"], buyer=buyer, payment_method=payment_method)
    try:
        interest_id = create_document(db, BUY_INTERESTS, interest)
    except DuplicateKeyError:
        raise Conflict(DUPLICATE_INTEREST)

    logger.info("Buyer %s expressed interest in product %s (%s)", buyer_id, product_id, payment_method)
    return serialize_doc(db[BUY_INTERESTS].find_one({"_id": to_object_id(interest_id)}))


def list_interests_for_seller(db, seller_id: str) -> List[dict]:
    seller = to_object_id(seller_id)
    if seller is None:
        return []

    products = {
        p["_id"]: p
        for p in db[PRODUCTS].find({"owner": seller}, {"title": 1, "imageUrl": 1})
    }
    if not products:
        return []

    interests = list(
        db[BUY_INTERESTS]
        .find({"product": {"$in": list(products)}})
        .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
    )
    buyers = public_profiles(db, (i["buyer"] for i in interests), fields=("name", "email", "phone"))

    out = []
    for interest in interests:
        product = products[interest["product"]]
        item = serialize_doc(interest)
        item["product"] = {
            "id": str(product["_id"]),
            "title": product.get("title"),
            "imageUrl": product.get("imageUrl"),
        }
        item["buyer"] = buyers.get(interest["buyer"], item["buyer"])
        out.append(item)
    return out
