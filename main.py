import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field

from database import ORDERS, PRODUCTS, USERS, DocumentStore, db
from results import Err, ErrorKind, StateHolder
from schemas import Address, OrderStatus, PaymentMethod, User, UserPreferences
from seed import seed_catalogue
from services import (
    CartService,
    CheckoutService,
    NotificationService,
    OrderService,
    ProductService,
    ReviewService,
    UserService,
    WishlistService,
)

# Config
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def configure_logging(level: str = LOG_LEVEL) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
    )


configure_logging()
logger = structlog.get_logger(__name__)

# App init
app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

seed_state = StateHolder("seed")

HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.REMOTE_FAILURE: 502,
}


def unwrap(result):
    """Return the value of an Ok, or raise the Err as an HTTP error with its message untouched."""
    if isinstance(result, Err):
        raise HTTPException(status_code=HTTP_STATUS[result.kind], detail=result.message)
    return result.value


# Dependencies
def get_store() -> DocumentStore:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return DocumentStore(db)


def get_notifications(store: DocumentStore = Depends(get_store)) -> NotificationService:
    return NotificationService(store)


def get_carts(store: DocumentStore = Depends(get_store)) -> CartService:
    return CartService(store)


def get_orders(store: DocumentStore = Depends(get_store), notifications=Depends(get_notifications)) -> OrderService:
    return OrderService(store, notifications)


def get_checkout(
    store: DocumentStore = Depends(get_store),
    carts: CartService = Depends(get_carts),
    notifications: NotificationService = Depends(get_notifications),
) -> CheckoutService:
    return CheckoutService(store, carts, notifications)


# Auth helpers
def create_token(user: User):
    payload = {
        "sub": user.id,
        "email": user.email,
        "is_admin": user.is_admin,
        "exp": datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def get_current_user(authorization: Optional[str] = Header(None), store: DocumentStore = Depends(get_store)) -> User:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    token = authorization.replace("Bearer ", "").strip()
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    found = UserService(store).get(payload.get("sub", ""))
    if isinstance(found, Err):
        if found.kind == ErrorKind.NOT_FOUND:
            raise HTTPException(status_code=401, detail="Invalid token user")
        unwrap(found)
    user = found.value
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account disabled")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


# Request models
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AddCartItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: str = ""
    color: str = ""


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., description="0 or less removes the item")
    size: Optional[str] = None
    color: Optional[str] = None


class WishlistAddRequest(BaseModel):
    product_id: str


class MoveToCartRequest(BaseModel):
    quantity: int = Field(1, ge=1)
    size: str = ""
    color: str = ""


class QuoteRequest(BaseModel):
    coupon_code: str = ""


class PlaceOrderRequest(BaseModel):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: PaymentMethod
    coupon_code: str = ""


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None


class ReviewRequest(BaseModel):
    rating: float = Field(..., ge=1, le=5)
    title: str = ""
    comment: str = ""
    images: List[str] = []


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone_number: Optional[str] = None
    profile_image_url: Optional[str] = None
    address: Optional[Address] = None
    preferences: Optional[UserPreferences] = None


class SeedRequest(BaseModel):
    force: bool = False


# Routes
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response
    response["database"] = "✅ Available"
    response["database_name"] = db.name
    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# Auth
@app.post("/api/auth/signup")
def signup(req: SignupRequest, store: DocumentStore = Depends(get_store)):
    user = unwrap(UserService(store).register(req.name, req.email, pwd_context.hash(req.password)))
    return {"token": create_token(user), "user": user.public()}


@app.post("/api/auth/login")
def login(req: LoginRequest, store: DocumentStore = Depends(get_store)):
    found = UserService(store).find_by_email(req.email)
    if isinstance(found, Err) and found.kind != ErrorKind.NOT_FOUND:
        unwrap(found)
    if isinstance(found, Err) or not pwd_context.verify(req.password, found.value.password_hash or ""):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    return {"token": create_token(found.value), "user": found.value.public()}


# Products
@app.get("/api/categories")
def list_categories(store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).categories())


@app.get("/api/products")
def list_products(category: Optional[str] = None, search: Optional[str] = None, store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).list_products(category=category, query=search))


@app.get("/api/products/featured")
def featured_products(store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).featured())


@app.get("/api/products/flash-sale")
def flash_sale_products(store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).flash_sale())


@app.get("/api/products/search")
def search_products(q: str = "", store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).search(q))


@app.get("/api/products/filter")
def filter_products(
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    brand: Optional[str] = None,
    min_rating: Optional[float] = None,
    sort_by: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    return unwrap(
        ProductService(store).filter_products(
            category_id=category,
            min_price=min_price,
            max_price=max_price,
            brand=brand,
            min_rating=min_rating,
            sort_by=sort_by,
        )
    )


@app.get("/api/products/{product_id}")
def get_product(product_id: str, store: DocumentStore = Depends(get_store)):
    return unwrap(ProductService(store).get(product_id))


# Reviews
@app.get("/api/products/{product_id}/reviews")
def list_reviews(product_id: str, store: DocumentStore = Depends(get_store)):
    reviews, summary = unwrap(ReviewService(store).list_reviews(product_id))
    return {"reviews": reviews, "summary": summary}


@app.post("/api/products/{product_id}/reviews", status_code=201)
def submit_review(
    product_id: str, req: ReviewRequest, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)
):
    return unwrap(ReviewService(store).submit(user, product_id, req.rating, req.comment, req.title, req.images))


# Cart
@app.get("/api/cart")
def get_cart(user: User = Depends(get_current_user), carts: CartService = Depends(get_carts)):
    return unwrap(carts.get_cart(user.id))


@app.post("/api/cart/items")
def add_to_cart(req: AddCartItemRequest, user: User = Depends(get_current_user), carts: CartService = Depends(get_carts)):
    return unwrap(carts.add_item(user.id, req.product_id, req.quantity, req.size, req.color))


@app.patch("/api/cart/items/{item_id}")
def update_cart_item(
    item_id: str, req: UpdateCartItemRequest, user: User = Depends(get_current_user), carts: CartService = Depends(get_carts)
):
    return unwrap(carts.update_item(user.id, item_id, req.quantity, req.size, req.color))


@app.delete("/api/cart/items/{item_id}")
def remove_cart_item(item_id: str, user: User = Depends(get_current_user), carts: CartService = Depends(get_carts)):
    return unwrap(carts.remove_item(user.id, item_id))


@app.delete("/api/cart")
def clear_cart(user: User = Depends(get_current_user), carts: CartService = Depends(get_carts)):
    return unwrap(carts.clear(user.id))


# Wishlist
@app.get("/api/wishlist")
def get_wishlist(user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return unwrap(WishlistService(store).get_wishlist(user.id))


@app.post("/api/wishlist/items")
def add_to_wishlist(req: WishlistAddRequest, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return unwrap(WishlistService(store).add_item(user.id, req.product_id))


@app.delete("/api/wishlist/items/{item_id}")
def remove_from_wishlist(item_id: str, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return unwrap(WishlistService(store).remove_item(user.id, item_id))


@app.post("/api/wishlist/items/{item_id}/move-to-cart")
def move_to_cart(
    item_id: str,
    req: MoveToCartRequest,
    user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    carts: CartService = Depends(get_carts),
):
    return unwrap(WishlistService(store).move_to_cart(user.id, item_id, carts, req.quantity, req.size, req.color))


@app.get("/api/wishlist/contains/{product_id}")
def wishlist_contains(product_id: str, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return {"product_id": product_id, "in_wishlist": unwrap(WishlistService(store).contains(user.id, product_id))}


@app.delete("/api/wishlist")
def clear_wishlist(user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    return unwrap(WishlistService(store).clear(user.id))


# Checkout
@app.post("/api/checkout/quote")
def checkout_quote(req: QuoteRequest, user: User = Depends(get_current_user), checkout: CheckoutService = Depends(get_checkout)):
    return unwrap(checkout.quote(user.id, req.coupon_code))


@app.post("/api/checkout/place-order", status_code=201)
def place_order(req: PlaceOrderRequest, user: User = Depends(get_current_user), checkout: CheckoutService = Depends(get_checkout)):
    return unwrap(
        checkout.place_order(user.id, req.shipping_address, req.payment_method, req.coupon_code, req.billing_address)
    )


# Orders
@app.get("/api/orders")
def list_orders(user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    return unwrap(orders.list_orders(user.id))


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    return unwrap(orders.get_order(user.id, order_id))


@app.get("/api/orders/{order_id}/tracking")
def track_order(order_id: str, user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    return unwrap(orders.tracking(user.id, order_id))


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    return unwrap(orders.cancel(user.id, order_id))


# Notifications
@app.get("/api/notifications")
def list_notifications(user: User = Depends(get_current_user), notifications=Depends(get_notifications)):
    items, unread = unwrap(notifications.list_notifications(user.id))
    return {"notifications": items, "unread_count": unread}


@app.post("/api/notifications/read-all")
def mark_all_notifications_read(user: User = Depends(get_current_user), notifications=Depends(get_notifications)):
    return {"updated": unwrap(notifications.mark_all_read(user.id))}


@app.post("/api/notifications/{notification_id}/read")
def mark_notification_read(notification_id: str, user: User = Depends(get_current_user), notifications=Depends(get_notifications)):
    unwrap(notifications.mark_read(user.id, notification_id))
    return {"updated": True}


@app.delete("/api/notifications/{notification_id}")
def delete_notification(notification_id: str, user: User = Depends(get_current_user), notifications=Depends(get_notifications)):
    unwrap(notifications.delete(user.id, notification_id))
    return {"deleted": True}


@app.delete("/api/notifications")
def clear_notifications(user: User = Depends(get_current_user), notifications=Depends(get_notifications)):
    return {"deleted": unwrap(notifications.clear(user.id))}


# Profile
@app.get("/api/profile")
def get_profile(user: User = Depends(get_current_user)):
    return user.public()


@app.patch("/api/profile")
def update_profile(req: ProfileUpdateRequest, user: User = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    updates = req.model_dump(exclude_none=True)
    return unwrap(UserService(store).update_profile(user.id, updates)).public()


# Admin
@app.post("/api/admin/orders/{order_id}/status")
def update_order_status(order_id: str, req: StatusUpdateRequest, admin=Depends(require_admin), orders: OrderService = Depends(get_orders)):
    return unwrap(orders.update_status(order_id, req.status, req.tracking_number))


@app.get("/api/admin/stats")
def admin_stats(admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return {
        "users": unwrap(store.count(USERS)),
        "orders": unwrap(store.count(ORDERS)),
        "products": unwrap(store.count(PRODUCTS)),
    }


@app.get("/api/admin/seed")
def seed_status(admin=Depends(require_admin)):
    return seed_state.state.as_dict()


@app.post("/api/admin/seed")
def run_seed(req: SeedRequest, admin=Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return seed_state.run(lambda: seed_catalogue(store, force=req.force)).as_dict()


# Seed demo catalogue on startup
@app.on_event("startup")
def seed_products_if_empty():
    if db is None:
        return
    state = seed_state.run(lambda: seed_catalogue(DocumentStore(db)))
    logger.info("startup.seed", phase=state.phase.value, message=state.message)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
