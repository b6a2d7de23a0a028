"""
Database Schemas

Pydantic models for the marketplace collections. For each entity there is
a create payload (``XxxCreate``) and an update DTO (``XxxUpdate``) that
lists only the fields a PATCH may touch. Update DTOs reject unknown fields.

Collection names are plural snake_case: User -> "users",
CartItem -> "cart_items", CommentReply -> "comment_replies".
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, Enum):
    USER = "USER"
    SELLER = "SELLER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class Permission(str, Enum):
    MANAGE_USERS = "MANAGE_USERS"
    MANAGE_PRODUCTS = "MANAGE_PRODUCTS"
    MANAGE_CATEGORIES = "MANAGE_CATEGORIES"
    MANAGE_ORDERS = "MANAGE_ORDERS"
    MANAGE_INVOICES = "MANAGE_INVOICES"
    MANAGE_STORES = "MANAGE_STORES"
    MANAGE_SELLERS = "MANAGE_SELLERS"
    MANAGE_MANAGERS = "MANAGE_MANAGERS"
    MODERATE_FEEDBACK = "MODERATE_FEEDBACK"


class CartStatus(str, Enum):
    ACTIVE = "active"
    CHECKING_OUT = "checking_out"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Schema(BaseModel):
    # enums are stored as their plain string values
    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class UpdateModel(Schema):
    model_config = ConfigDict(extra="forbid")


# ---------- Users ----------
class UserCreate(Schema):
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, description="Phone number")
    address: Optional[str] = Field(None, description="Street address")
    status: str = Field("active")


class UserUpdate(UpdateModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None


# ---------- Stores ----------
class StoreCreate(Schema):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: str = Field("active")


class StoreUpdate(UpdateModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None


# ---------- Categories ----------
class CategoryCreate(Schema):
    name: str = Field(..., min_length=1, description="Category display name")
    image: Optional[str] = Field(None, description="Image URL")
    topic: Optional[str] = None
    status: str = Field("active")


class CategoryUpdate(UpdateModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    topic: Optional[str] = None
    status: Optional[str] = None


# ---------- Products ----------
class ProductCreate(Schema):
    name: str = Field(..., min_length=1, description="Product name")
    image: Optional[str] = Field(None, description="Image URL")
    status: str = Field("active")
    standard_price: float = Field(..., ge=0, description="List price")
    offer_price: Optional[float] = Field(None, ge=0, description="Discounted price, used for cart snapshots when set")
    description: Optional[str] = None
    quantity: int = Field(0, ge=0, description="Units in stock")
    store_id: str = Field(..., description="Owning store id")


class ProductUpdate(UpdateModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    status: Optional[str] = None
    standard_price: Optional[float] = Field(None, ge=0)
    offer_price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)


# ---------- Carts ----------
class CartCreate(Schema):
    user_id: str


class CartUpdate(UpdateModel):
    """Status belongs to checkout, so no cart field is writable here."""


class CartItemCreate(Schema):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartItemUpdate(UpdateModel):
    quantity: int = Field(..., ge=1)


class CheckoutRequest(Schema):
    payment_info: str = Field("cod", description="Payment method reference")
    country: Optional[str] = None
    city: Optional[str] = None
    street_address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


# ---------- Orders ----------
class OrderItem(Schema):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class OrderCreate(Schema):
    order_number: Optional[str] = Field(None, description="Generated when omitted")
    status: OrderStatus = OrderStatus.PENDING
    order_date: Optional[datetime] = None
    cart_id: str
    user_id: str
    payment_info: str = Field("cod")
    country: Optional[str] = None
    city: Optional[str] = None
    street_address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    items: List[OrderItem] = Field(default_factory=list)


class OrderUpdate(UpdateModel):
    status: Optional[OrderStatus] = None
    payment_info: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    street_address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class OrderStatusUpdate(Schema):
    status: OrderStatus


# ---------- Invoices ----------
class InvoiceCreate(Schema):
    order_id: Optional[str] = Field(None, description="Source order; takes precedence over cart_id")
    cart_id: Optional[str] = None
    seller_id: Optional[str] = None
    payment_method: str = Field("cod")


class InvoiceUpdate(UpdateModel):
    seller_id: Optional[str] = None
    payment_method: Optional[str] = None


class PaymentStatusUpdate(Schema):
    status: PaymentStatus


# ---------- Sellers ----------
class SellerCreate(Schema):
    user_id: str
    store_id: str
    status: str = Field("active")


class SellerUpdate(UpdateModel):
    store_id: Optional[str] = None
    status: Optional[str] = None


class StatusUpdate(Schema):
    status: str = Field(..., min_length=1)


# ---------- Managers ----------
class ManagerCreate(Schema):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    address: Optional[str] = None
    permissions: List[Permission] = Field(default_factory=list)


class ManagerUpdate(UpdateModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class PasswordChange(Schema):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ManagerStatusUpdate(Schema):
    is_active: bool


class PermissionsUpdate(Schema):
    permissions: List[Permission]


# ---------- Comments / Reviews ----------
class FeedbackCreate(Schema):
    rating: int = Field(..., ge=1, le=5)
    content: Optional[str] = None
    user_id: str
    product_id: str
    status: str = Field("active")


class FeedbackUpdate(UpdateModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    content: Optional[str] = None
    status: Optional[str] = None


class ReplyCreate(Schema):
    content: str = Field(..., min_length=1)
    user_id: str
    status: str = Field("active")


class CommentReplyCreate(ReplyCreate):
    comment_id: str


class ReviewReplyCreate(ReplyCreate):
    review_id: str


class ReplyUpdate(UpdateModel):
    content: Optional[str] = Field(None, min_length=1)
    status: Optional[str] = None
