"""
Database Schemas for the Marketplace API

Each document model maps to one MongoDB collection (user, product,
buyinterest, order). Python attributes are snake_case; stored keys and JSON
bodies use the camelCase aliases the mobile client sends.
"""
from datetime import datetime
from typing import Annotated, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Password = Annotated[str, Field(min_length=1)]
PaymentMethod = Literal["UPI", "Cash on Delivery"]
OrderStatus = Literal["Pending", "Confirmed", "Shipped", "Delivered", "Cancelled"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


# ----------------------- Documents -----------------------
class User(CamelModel):
    email: EmailStr
    password_hash: str = Field(..., description="PBKDF2 hash, never returned")
    name: NonEmptyStr
    phone: NonEmptyStr


class Product(CamelModel):
    owner: ObjectId
    title: NonEmptyStr
    price: int = Field(..., gt=0)
    description: NonEmptyStr
    category: NonEmptyStr
    image_url: NonEmptyStr
    upi_id: NonEmptyStr
    is_sold: bool = False
    sold_to: Optional[ObjectId] = None


class BuyInterest(CamelModel):
    product: ObjectId
    buyer: ObjectId
    payment_method: PaymentMethod


class ContactInfo(CamelModel):
    name: str
    email: str
    phone: str


class Order(CamelModel):
    product: ObjectId
    buyer: ObjectId
    seller: ObjectId
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    buyer_contact_info: ContactInfo
    status: OrderStatus = "Pending"
    order_date: datetime


# ----------------------- Request bodies -----------------------
class SignupBody(CamelModel):
    email: EmailStr
    password: Password
    name: NonEmptyStr
    phone: NonEmptyStr


class LoginBody(CamelModel):
    email: NonEmptyStr
    password: Password


class ProductCreateBody(CamelModel):
    title: NonEmptyStr
    price: int = Field(..., gt=0)
    description: NonEmptyStr
    category: NonEmptyStr
    upi_id: NonEmptyStr
    image_url: NonEmptyStr


class MarkSoldBody(CamelModel):
    buyer_id: NonEmptyStr


class BuyInterestCreateBody(CamelModel):
    product_id: NonEmptyStr
    payment_method: PaymentMethod


class OrderCreateBody(CamelModel):
    product_id: NonEmptyStr
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
