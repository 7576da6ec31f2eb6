"""
Order records.

An order copies the buyer's contact details at creation time and the seller
from the product owner at that moment; later profile edits do not touch it.
"""
import logging
from typing import List, Optional

from pymongo import DESCENDING

from database import (
    ORDERS,
    PRODUCTS,
    USERS,
    create_document,
    get_documents,
    now_utc,
    serialize_doc,
    to_object_id,
)
from errors import NotFound, SelfDealing, ValidationError
from listings import find_product, public_profiles
from schemas import ContactInfo, Order

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("name", "email", "phone")
LATEST_FIRST = [("orderDate", DESCENDING), ("_id", DESCENDING)]


def create_order(db, buyer_id: str, product_id: str, payment_method: str,
                 transaction_id: Optional[str] = None) -> dict:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")

    buyer_oid = to_object_id(buyer_id)
    if buyer_oid == product["owner"]:
        raise SelfDealing("You cannot purchase your own listed item.")

    buyer = db[USERS].find_one({"_id": buyer_oid}) if buyer_oid else None
    if not buyer:
        raise NotFound("Buyer not found")

    transaction_id = (transaction_id or "").strip() or None
    if payment_method == "UPI":
        if not transaction_id:
            raise ValidationError("transactionId is required for UPI payments")
    else:
        transaction_id = None

    order = Order(
        product=product["_id"],
        buyer=buyer_oid,
        seller=product["owner"],
        payment_method=payment_method,
        transaction_id=transaction_id,
        buyer_contact_info=ContactInfo(**{f: buyer.get(f) or "" for f in CONTACT_FIELDS}),
        order_date=now_utc(),
    )
    order_id = create_document(db, ORDERS, order)
    logger.info("Order %s created: product %s, buyer %s, %s", order_id, product_id, buyer_id, payment_method)
    return serialize_doc(db[ORDERS].find_one({"_id": to_object_id(order_id)}))


def _populate(db, orders: List[dict], party: str) -> List[dict]:
    """Attach the full product and the `party` ("buyer" or "seller") contact fields."""
    product_ids = list({o["product"] for o in orders})
    products = {p["_id"]: p for p in db[PRODUCTS].find({"_id": {"$in": product_ids}})} if product_ids else {}
    parties = public_profiles(db, (o[party] for o in orders), fields=CONTACT_FIELDS)

    out = []
    for o in orders:
        item = serialize_doc(o)
        product = products.get(o["product"])
        item["product"] = serialize_doc(product) if product else None
        item[party] = parties.get(o[party], item[party])
        out.append(item)
    return out


def list_purchases(db, buyer_id: str) -> List[dict]:
    buyer = to_object_id(buyer_id)
    if buyer is None:
        return []
    orders = get_documents(db, ORDERS, {"buyer": buyer}, sort=LATEST_FIRST)
    return _populate(db, orders, "seller")


def list_sales(db, seller_id: str) -> List[dict]:
    seller = to_object_id(seller_id)
    if seller is None:
        return []
    orders = get_documents(db, ORDERS, {"seller": seller}, sort=LATEST_FIRST)
    return _populate(db, orders, "buyer")
