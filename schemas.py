"""
Database Schemas for the Storefront API

Each Pydantic model maps to a MongoDB collection. Documents are stored whole
and replaced whole; ``to_document`` / ``from_document`` convert between a
model and its stored form (``id`` <-> ``_id``, enums stored by value).

Collections:
- users
- products
- categories
- carts
- wishlists
- orders
- reviews
- notifications
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class Document(BaseModel):
    """Base for every stored entity. Values are immutable; change with model_copy."""

    model_config = ConfigDict(frozen=True)

    id: str = Field("", description="Document id (stored as _id)")

    def to_document(self) -> Dict[str, Any]:
        doc = _plain(self.model_dump())
        doc["_id"] = doc.pop("id")
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


# ---------- Catalogue ----------

class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    description: str = ""
    image_url: str = ""
    parent_category_id: Optional[str] = None
    is_active: bool = True


class Product(Document):
    """
    Products collection schema
    Collection name: "products"
    """
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Price in USD")
    original_price: float = Field(0.0, ge=0, description="Price before discount")
    discount_percentage: int = Field(0, ge=0, le=100)
    images: List[str] = Field(default_factory=list, description="Ordered image URLs")
    category: Category = Field(default_factory=Category)
    brand: str = ""
    rating: float = Field(0.0, ge=0, le=5, description="Average rating")
    review_count: int = Field(0, ge=0)
    in_stock: bool = True
    stock_quantity: int = Field(0, ge=0)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict, description="Key specifications")
    return_policy: str = ""
    shipping_info: str = ""
    is_featured: bool = False
    is_flash_sale: bool = False
    flash_sale_end_time: Optional[UtcDatetime] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def has_discount(self) -> bool:
        return self.discount_percentage > 0 and self.original_price > self.price

    @computed_field
    @property
    def is_on_sale(self) -> bool:
        return self.has_discount or self.is_flash_sale


# ---------- Cart & Wishlist ----------

class CartItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    product: Product
    quantity: int = Field(1, ge=1)
    selected_size: str = ""
    selected_color: str = ""
    added_at: UtcDatetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def total_price(self) -> float:
        return self.product.price * self.quantity

    @property
    def identity(self):
        return (self.product.id, self.selected_size, self.selected_color)


class Cart(Document):
    """
    Carts collection schema, one document per user (id == user_id)
    Collection name: "carts"
    """
    user_id: str = ""
    items: List[CartItem] = Field(default_factory=list)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field
    @property
    def subtotal(self) -> float:
        return sum(item.total_price for item in self.items)

    @computed_field
    @property
    def is_empty(self) -> bool:
        return not self.items


class WishlistItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    product: Product
    added_at: UtcDatetime = Field(default_factory=utcnow)


class Wishlist(Document):
    """
    Wishlists collection schema, one document per user (id == user_id)
    Collection name: "wishlists"
    """
    user_id: str = ""
    items: List[WishlistItem] = Field(default_factory=list)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def is_empty(self) -> bool:
        return not self.items


# ---------- Orders ----------

class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    REFUNDED = "REFUNDED"


class PaymentType(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PAYPAL = "PAYPAL"
    GOOGLE_PAY = "GOOGLE_PAY"
    APPLE_PAY = "APPLE_PAY"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    is_default: bool = False


class PaymentMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: PaymentType = PaymentType.CREDIT_CARD
    card_number: str = Field("", description="Only the last four digits are kept")
    card_holder_name: str = ""
    expiry_month: int = Field(0, ge=0, le=12)
    expiry_year: int = Field(0, ge=0)
    is_default: bool = False

    @field_validator("card_number")
    @classmethod
    def mask_card_number(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit())
        if not digits:
            return ""
        return f"**** {digits[-4:]}"


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    product: Product
    quantity: int = Field(1, ge=1)
    selected_size: str = ""
    selected_color: str = ""
    price: float = Field(..., ge=0, description="Unit price frozen at purchase time")

    @computed_field
    @property
    def total_price(self) -> float:
        return self.price * self.quantity


class Order(Document):
    """
    Orders collection schema
    Collection name: "orders"
    """
    user_id: str
    items: List[OrderItem]
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: Address = Field(default_factory=Address)
    billing_address: Address = Field(default_factory=Address)
    payment_method: PaymentMethod = Field(default_factory=PaymentMethod)
    subtotal: float = 0.0
    shipping_cost: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    coupon_code: str = ""
    tracking_number: str = ""
    estimated_delivery: Optional[UtcDatetime] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class TrackingStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    title: str
    description: str
    timestamp: Optional[datetime] = None
    is_completed: bool
    is_active: bool


class OrderTracking(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    status: OrderStatus
    steps: List[TrackingStep]
    is_terminal: bool = False
    banner: str = ""


class CheckoutTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: float
    shipping: float
    tax: float
    discount: float
    total: float
    coupon_code: str = ""


# ---------- Reviews ----------

class Review(Document):
    """
    Reviews collection schema, append-only
    Collection name: "reviews"
    """
    product_id: str
    user_id: str
    user_name: str = ""
    user_avatar_url: str = ""
    rating: float = Field(..., ge=0, le=5)
    title: str = ""
    comment: str = ""
    images: List[str] = Field(default_factory=list)
    is_verified_purchase: bool = False
    helpful_count: int = Field(0, ge=0)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class ReviewSummary(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    distribution: Dict[int, int] = Field(default_factory=dict, description="Star bucket -> count")


# ---------- Users ----------

class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class UserPreferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_dark_mode: bool = False
    language: str = "en"
    notifications_enabled: bool = True
    email_notifications: bool = True
    push_notifications: bool = True


class User(Document):
    """
    Users collection schema
    Collection name: "users"
    """
    email: EmailStr = Field(..., description="Email address")
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    password_hash: str = Field("", description="Password hash")
    phone_number: str = ""
    profile_image_url: str = ""
    address: Optional[Address] = None
    is_email_verified: bool = False
    role: UserRole = UserRole.USER
    is_active: bool = True
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    def public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"password_hash"})


# ---------- Notifications ----------

class NotificationType(str, Enum):
    GENERAL = "GENERAL"
    ORDER_UPDATE = "ORDER_UPDATE"
    PROMOTION = "PROMOTION"
    FLASH_SALE = "FLASH_SALE"
    PRODUCT_BACK_IN_STOCK = "PRODUCT_BACK_IN_STOCK"
    PRICE_DROP = "PRICE_DROP"
    REVIEW_REMINDER = "REVIEW_REMINDER"
    DELIVERY_UPDATE = "DELIVERY_UPDATE"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    ACCOUNT_SECURITY = "ACCOUNT_SECURITY"
    NEW_FEATURE = "NEW_FEATURE"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"


class Notification(Document):
    """
    Notifications collection schema
    Collection name: "notifications"
    """
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.GENERAL
    is_read: bool = False
    action_data: Dict[str, str] = Field(default_factory=dict, description="e.g. {'type': 'OPEN_ORDER', 'orderId': ...}")
    image_url: str = ""
    created_at: UtcDatetime = Field(default_factory=utcnow)
    expires_at: Optional[UtcDatetime] = Field(None, description="None means no expiration")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at
