"""
Database Schemas and request bodies for the Tailoring Shop

Stored models map to MongoDB collections named after the lowercased class
name (User -> "user", Product -> "product"). Embedded models (cart lines,
order lines, measurements, delivery address) are owned by their parent
document and copied, never referenced.

Request bodies are deliberately loose on formats; validation.py checks them
and reports every problem at once.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PaymentMethod = Literal["COD", "Card", "UPI"]
OrderStatus = Literal["placed", "confirmed", "processing", "shipped", "delivered", "cancelled"]

PAYMENT_METHODS = ("COD", "Card", "UPI")


# ----------------------- Stored documents -----------------------
class User(BaseModel):
    username: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone: str
    alternate_phone: Optional[str] = None
    state: str
    district: str
    mandal: str
    pincode: str
    address1: str
    address2: Optional[str] = None
    last_login: Optional[datetime] = None


class Product(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    category: str
    subcategory: str
    image: Optional[str] = None
    in_stock: bool = True
    discount: float = Field(0, ge=0, le=100)
    rating: float = Field(4.0, ge=0, le=5)
    tags: List[str] = []
    is_active: bool = True
    delivery_days: str = "4-5 DAYS"


class CartEntry(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    added_at: Optional[datetime] = None


class Measurements(BaseModel):
    chest: Optional[str] = None
    waist: Optional[str] = None
    shoulder: Optional[str] = None
    arm_length: Optional[str] = None
    neck_size: Optional[str] = None
    bicep: Optional[str] = None
    wrist: Optional[str] = None
    shirt_length: Optional[str] = None
    pant_waist: Optional[str] = None
    pant_length: Optional[str] = None
    thigh: Optional[str] = None
    knee: Optional[str] = None
    ankle: Optional[str] = None
    rise: Optional[str] = None


class DeliveryAddress(BaseModel):
    name: str = ""
    phone: str = ""
    pincode: str = ""
    address: str = ""


class OrderLine(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    line_total: float
    measurements: Optional[Measurements] = None


class Order(BaseModel):
    user_id: str
    order_number: str
    items: List[OrderLine]
    delivery_address: DeliveryAddress
    payment_method: PaymentMethod = "COD"
    subtotal: float
    delivery_charge: float
    total_amount: float
    status: OrderStatus = "placed"
    estimated_delivery: datetime


class PasswordReset(BaseModel):
    email: str
    token: str


# ----------------------- Request bodies -----------------------
class RegisterBody(BaseModel):
    username: str
    email: str
    password: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    alternate_phone: Optional[str] = None
    state: str = ""
    district: str = ""
    mandal: str = ""
    pincode: str = ""
    address1: str = ""
    address2: Optional[str] = None


class LoginBody(BaseModel):
    username: str
    password: str


class ForgotPasswordBody(BaseModel):
    email: str


class ResetPasswordBody(BaseModel):
    token: str
    new_password: str


class ProfileUpdateBody(BaseModel):
    """Only profile and address fields; credentials are never accepted here."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    mandal: Optional[str] = None
    pincode: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None


class CartAddBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartUpdateBody(BaseModel):
    product_id: str
    quantity: int


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = 1
    measurements: Optional[Measurements] = None


class OrderCreateBody(BaseModel):
    # price / total fields a client may send are not part of this model and are dropped
    items: List[OrderItemIn] = []
    delivery_address: DeliveryAddress = DeliveryAddress()
    payment_method: str = "COD"
