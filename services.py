"""
Read-modify-write services.

Each user action is one read from the store, one pure function from
``commerce`` and one write back. Results are ``Ok``/``Err``; nothing here
raises for an expected failure. The clock and id factory are injected.
"""
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

import commerce
from database import CARTS, CATEGORIES, NOTIFICATIONS, ORDERS, PRODUCTS, REVIEWS, USERS, WISHLISTS, DocumentStore
from results import Err, ErrorKind, Ok, Result, already_exists, invalid_input, not_found
from schemas import (
    Address,
    Cart,
    CartItem,
    Category,
    CheckoutTotals,
    Notification,
    NotificationType,
    Order,
    OrderItem,
    OrderStatus,
    OrderTracking,
    PaymentMethod,
    Product,
    Review,
    ReviewSummary,
    User,
    Wishlist,
    WishlistItem,
    utcnow,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

SORTS: Dict[str, List[Tuple[str, int]]] = {
    "price_low_to_high": [("price", 1)],
    "price_high_to_low": [("price", -1)],
    "rating_high_to_low": [("rating", -1)],
    "newest_first": [("created_at", -1)],
    "popularity": [("review_count", -1)],
}


def _parse(result: Result, model) -> Result:
    if isinstance(result, Err):
        return result
    return Ok(model.from_document(result.value))


def _parse_many(result: Result, model) -> Result:
    if isinstance(result, Err):
        return result
    return Ok([model.from_document(doc) for doc in result.value])


def _renamed(result: Result, message: str) -> Result:
    # Store-level NOT_FOUND carries collection/id; callers want a user-facing message
    if isinstance(result, Err) and result.kind == ErrorKind.NOT_FOUND:
        return not_found(message)
    return result


# ---------- Products ----------

class ProductService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def get(self, product_id: str) -> Result[Product]:
        return _renamed(_parse(self.store.get(PRODUCTS, product_id), Product), "Product not found")

    def list_products(self, category: Optional[str] = None, query: Optional[str] = None, limit: int = 100):
        filt: Dict[str, Any] = {}
        if category and category.lower() != "all":
            filt["category.id"] = category
        if query:
            filt.update(self._search_filter(query))
        return _parse_many(self.store.find(PRODUCTS, filt, limit=limit), Product)

    def featured(self):
        return _parse_many(self.store.find(PRODUCTS, {"is_featured": True}), Product)

    def flash_sale(self):
        found = _parse_many(self.store.find(PRODUCTS, {"is_flash_sale": True}), Product)
        if isinstance(found, Err):
            return found
        now = self.clock()
        return Ok([p for p in found.value if p.flash_sale_end_time is not None and p.flash_sale_end_time > now])

    def search(self, query: str):
        if not query.strip():
            return Ok([])
        return _parse_many(self.store.find(PRODUCTS, self._search_filter(query)), Product)

    def filter_products(
        self,
        category_id: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        brand: Optional[str] = None,
        min_rating: Optional[float] = None,
        sort_by: Optional[str] = None,
    ):
        if sort_by and sort_by not in SORTS:
            return invalid_input(f"Unknown sort: {sort_by}")
        if min_price is not None and max_price is not None and min_price > max_price:
            return invalid_input("min_price must not exceed max_price")

        filt: Dict[str, Any] = {}
        if category_id:
            filt["category.id"] = category_id
        if brand:
            filt["brand"] = {"$regex": f"^{re.escape(brand)}$", "$options": "i"}
        if min_price is not None or max_price is not None:
            price_q = {}
            if min_price is not None:
                price_q["$gte"] = min_price
            if max_price is not None:
                price_q["$lte"] = max_price
            filt["price"] = price_q
        if min_rating is not None:
            filt["rating"] = {"$gte": min_rating}
        return _parse_many(self.store.find(PRODUCTS, filt, sort=SORTS.get(sort_by)), Product)

    def categories(self) -> Result[List[Category]]:
        found = self.store.find(CATEGORIES, {"is_active": True})
        if isinstance(found, Err):
            return found
        # categories are keyed by their slug
        return Ok([Category(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k not in ("_id", "id")}) for doc in found.value])

    @staticmethod
    def _search_filter(query: str) -> Dict[str, Any]:
        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        return {
            "$or": [
                {"name": pattern},
                {"description": pattern},
                {"brand": pattern},
                {"category.name": pattern},
            ]
        }


# ---------- Cart ----------

class CartService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow, new_id=commerce.new_object_id):
        self.store = store
        self.clock = clock
        self.new_id = new_id
        self.products = ProductService(store, clock)

    def get_cart(self, user_id: str) -> Result[Cart]:
        result = self.store.get(CARTS, user_id)
        if isinstance(result, Err):
            if result.kind == ErrorKind.NOT_FOUND:
                return Ok(commerce.empty_cart(user_id, self.clock()))
            return result
        return Ok(Cart.from_document(result.value))

    def add_item(self, user_id: str, product_id: str, quantity: int = 1, size: str = "", color: str = "") -> Result[Cart]:
        product = self.products.get(product_id)
        if isinstance(product, Err):
            return product
        product = product.value
        invalid = _check_variant(product, size, color)
        if invalid:
            return invalid
        if not product.in_stock:
            return invalid_input("Product is out of stock")

        cart = self.get_cart(user_id)
        if isinstance(cart, Err):
            return cart

        now = self.clock()
        item = CartItem(product=product, quantity=quantity, selected_size=size, selected_color=color, added_at=now)
        merged = commerce.add_cart_item(cart.value, item, now, self.new_id)
        if isinstance(merged, Err):
            return merged
        logger.info("cart.item_added", user_id=user_id, product_id=product_id, quantity=quantity)
        return self._save(merged.value)

    def update_item(
        self, user_id: str, item_id: str, quantity: int, size: Optional[str] = None, color: Optional[str] = None
    ) -> Result[Cart]:
        cart = self.get_cart(user_id)
        if isinstance(cart, Err):
            return cart
        cart = cart.value
        existing = next((item for item in cart.items if item.id == item_id), None)
        if existing is None:
            return not_found("Cart item not found")

        changes: Dict[str, Any] = {"quantity": quantity}
        if size is not None:
            changes["selected_size"] = size
        if color is not None:
            changes["selected_color"] = color
        invalid = _check_variant(existing.product, changes.get("selected_size", ""), changes.get("selected_color", ""))
        if invalid:
            return invalid

        updated = commerce.update_cart_item(cart, existing.model_copy(update=changes), self.clock())
        if isinstance(updated, Err):
            return updated
        logger.info("cart.item_updated", user_id=user_id, item_id=item_id, quantity=quantity)
        return self._save(updated.value)

    def remove_item(self, user_id: str, item_id: str) -> Result[Cart]:
        cart = self.get_cart(user_id)
        if isinstance(cart, Err):
            return cart
        updated = commerce.remove_cart_item(cart.value, item_id, self.clock())
        if isinstance(updated, Err):
            return updated
        logger.info("cart.item_removed", user_id=user_id, item_id=item_id)
        return self._save(updated.value)

    def clear(self, user_id: str) -> Result[Cart]:
        logger.info("cart.cleared", user_id=user_id)
        return self._save(commerce.clear_cart(user_id, self.clock()))

    def _save(self, cart: Cart) -> Result[Cart]:
        written = self.store.put(CARTS, cart.id, cart.to_document())
        if isinstance(written, Err):
            return written
        return Ok(cart)


def _check_variant(product: Product, size: str, color: str) -> Optional[Err]:
    if size and product.sizes and size not in product.sizes:
        return invalid_input(f"Size {size} is not available")
    if color and product.colors and color not in product.colors:
        return invalid_input(f"Color {color} is not available")
    return None


# ---------- Wishlist ----------

class WishlistService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow, new_id=commerce.new_object_id):
        self.store = store
        self.clock = clock
        self.new_id = new_id
        self.products = ProductService(store, clock)

    def get_wishlist(self, user_id: str) -> Result[Wishlist]:
        result = self.store.get(WISHLISTS, user_id)
        if isinstance(result, Err):
            if result.kind == ErrorKind.NOT_FOUND:
                return Ok(commerce.empty_wishlist(user_id, self.clock()))
            return result
        return Ok(Wishlist.from_document(result.value))

    def add_item(self, user_id: str, product_id: str) -> Result[Wishlist]:
        product = self.products.get(product_id)
        if isinstance(product, Err):
            return product
        wishlist = self.get_wishlist(user_id)
        if isinstance(wishlist, Err):
            return wishlist

        now = self.clock()
        added = commerce.add_wishlist_item(wishlist.value, WishlistItem(product=product.value, added_at=now), now, self.new_id)
        if isinstance(added, Err):
            return added
        logger.info("wishlist.item_added", user_id=user_id, product_id=product_id)
        return self._save(added.value)

    def remove_item(self, user_id: str, item_id: str) -> Result[Wishlist]:
        wishlist = self.get_wishlist(user_id)
        if isinstance(wishlist, Err):
            return wishlist
        updated = commerce.remove_wishlist_item(wishlist.value, item_id, self.clock())
        if isinstance(updated, Err):
            return updated
        logger.info("wishlist.item_removed", user_id=user_id, item_id=item_id)
        return self._save(updated.value)

    def contains(self, user_id: str, product_id: str) -> Result[bool]:
        wishlist = self.get_wishlist(user_id)
        if isinstance(wishlist, Err):
            return wishlist
        return Ok(commerce.wishlist_contains(wishlist.value, product_id))

    def clear(self, user_id: str) -> Result[Wishlist]:
        return self._save(commerce.clear_wishlist(user_id, self.clock()))

    def move_to_cart(
        self, user_id: str, item_id: str, carts: CartService, quantity: int = 1, size: str = "", color: str = ""
    ) -> Result[Cart]:
        wishlist = self.get_wishlist(user_id)
        if isinstance(wishlist, Err):
            return wishlist
        item = next((i for i in wishlist.value.items if i.id == item_id), None)
        if item is None:
            return not_found("Wishlist item not found")

        cart = carts.add_item(user_id, item.product.id, quantity, size, color)
        if isinstance(cart, Err):
            return cart
        removed = self.remove_item(user_id, item_id)
        if isinstance(removed, Err):
            return removed
        return cart

    def _save(self, wishlist: Wishlist) -> Result[Wishlist]:
        written = self.store.put(WISHLISTS, wishlist.id, wishlist.to_document())
        if isinstance(written, Err):
            return written
        return Ok(wishlist)


# ---------- Notifications ----------

class NotificationService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow, new_id=commerce.new_object_id):
        self.store = store
        self.clock = clock
        self.new_id = new_id

    def list_notifications(self, user_id: str) -> Result[Tuple[List[Notification], int]]:
        found = _parse_many(self.store.find(NOTIFICATIONS, {"user_id": user_id}), Notification)
        if isinstance(found, Err):
            return found
        now = self.clock()
        visible = sorted(
            (n for n in found.value if not n.is_expired(now)),
            key=lambda n: n.created_at,
            reverse=True,
        )
        unread = sum(1 for n in visible if not n.is_read)
        return Ok((visible, unread))

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.GENERAL,
        action_data: Optional[Dict[str, str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Result[Notification]:
        notification = Notification(
            id=self.new_id(),
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            action_data=action_data or {},
            created_at=self.clock(),
            expires_at=expires_at,
        )
        added = self.store.add(NOTIFICATIONS, notification.to_document())
        if isinstance(added, Err):
            return added
        return Ok(notification)

    def mark_read(self, user_id: str, notification_id: str) -> Result[str]:
        owned = self._owned(user_id, notification_id)
        if isinstance(owned, Err):
            return owned
        return self.store.patch(NOTIFICATIONS, notification_id, {"is_read": True})

    def mark_all_read(self, user_id: str) -> Result[int]:
        return self.store.update_many(NOTIFICATIONS, {"user_id": user_id, "is_read": False}, {"is_read": True})

    def delete(self, user_id: str, notification_id: str) -> Result[str]:
        owned = self._owned(user_id, notification_id)
        if isinstance(owned, Err):
            return owned
        return self.store.delete(NOTIFICATIONS, notification_id)

    def clear(self, user_id: str) -> Result[int]:
        return self.store.delete_many(NOTIFICATIONS, {"user_id": user_id})

    def _owned(self, user_id: str, notification_id: str) -> Result[Notification]:
        found = _renamed(_parse(self.store.get(NOTIFICATIONS, notification_id), Notification), "Notification not found")
        if isinstance(found, Err):
            return found
        if found.value.user_id != user_id:
            return not_found("Notification not found")
        return found


# ---------- Checkout & Orders ----------

class CheckoutService:
    def __init__(
        self,
        store: DocumentStore,
        carts: CartService,
        notifications: NotificationService,
        clock: Clock = utcnow,
        new_id=commerce.new_object_id,
    ):
        self.store = store
        self.carts = carts
        self.notifications = notifications
        self.clock = clock
        self.new_id = new_id

    def quote(self, user_id: str, coupon_code: str = "") -> Result[CheckoutTotals]:
        cart = self.carts.get_cart(user_id)
        if isinstance(cart, Err):
            return cart
        return commerce.calculate_totals(cart.value.subtotal, coupon_code)

    def place_order(
        self,
        user_id: str,
        shipping_address: Address,
        payment_method: PaymentMethod,
        coupon_code: str = "",
        billing_address: Optional[Address] = None,
    ) -> Result[Order]:
        cart = self.carts.get_cart(user_id)
        if isinstance(cart, Err):
            return cart
        cart = cart.value
        if cart.is_empty:
            return invalid_input("Cart is empty")

        totals = commerce.calculate_totals(cart.subtotal, coupon_code)
        if isinstance(totals, Err):
            return totals
        totals = totals.value

        now = self.clock()
        order = Order(
            id=self.new_id(),
            user_id=user_id,
            items=[
                OrderItem(
                    id=self.new_id(),
                    product=item.product,
                    quantity=item.quantity,
                    selected_size=item.selected_size,
                    selected_color=item.selected_color,
                    price=item.product.price,
                )
                for item in cart.items
            ],
            status=OrderStatus.PENDING,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            payment_method=payment_method,
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            coupon_code=totals.coupon_code,
            created_at=now,
            updated_at=now,
        )
        added = self.store.add(ORDERS, order.to_document())
        if isinstance(added, Err):
            return added
        logger.info("order.placed", user_id=user_id, order_id=order.id, total=order.total)

        # The order stands even if the follow-ups fail; the user sees the order id.
        cleared = self.carts.clear(user_id)
        if isinstance(cleared, Err):
            logger.warning("order.cart_not_cleared", user_id=user_id, order_id=order.id, error=cleared.message)
        notified = self.notifications.notify(
            user_id,
            "Order placed",
            f"Your order #{order.id} has been placed. Total: ${order.total:.2f}",
            NotificationType.PAYMENT_CONFIRMATION,
            {"type": "OPEN_ORDER", "orderId": order.id},
        )
        if isinstance(notified, Err):
            logger.warning("order.notify_failed", user_id=user_id, order_id=order.id, error=notified.message)
        return Ok(order)


class OrderService:
    def __init__(self, store: DocumentStore, notifications: NotificationService, clock: Clock = utcnow):
        self.store = store
        self.notifications = notifications
        self.clock = clock

    def list_orders(self, user_id: str) -> Result[List[Order]]:
        return _parse_many(self.store.find(ORDERS, {"user_id": user_id}, sort=[("created_at", -1)]), Order)

    def get_order(self, user_id: str, order_id: str) -> Result[Order]:
        order = self._load(order_id)
        if isinstance(order, Err):
            return order
        if order.value.user_id != user_id:
            return not_found("Order not found")
        return order

    def tracking(self, user_id: str, order_id: str) -> Result[OrderTracking]:
        order = self.get_order(user_id, order_id)
        if isinstance(order, Err):
            return order
        return Ok(commerce.build_tracking(order.value))

    def cancel(self, user_id: str, order_id: str) -> Result[Order]:
        order = self.get_order(user_id, order_id)
        if isinstance(order, Err):
            return order
        rank = commerce.status_rank(order.value.status)
        if rank is None or rank >= commerce.status_rank(OrderStatus.SHIPPED):
            return invalid_input("Order can no longer be cancelled")
        logger.info("order.cancelled", user_id=user_id, order_id=order_id)
        return self._set_status(order.value, OrderStatus.CANCELLED)

    def update_status(self, order_id: str, status: OrderStatus, tracking_number: Optional[str] = None) -> Result[Order]:
        order = self._load(order_id)
        if isinstance(order, Err):
            return order
        updated = self._set_status(order.value, status, tracking_number)
        if isinstance(updated, Err):
            return updated
        logger.info("order.status_updated", order_id=order_id, status=status.value)

        title = status.value.replace("_", " ").title()
        notified = self.notifications.notify(
            order.value.user_id,
            f"Order {title}",
            f"Your order #{order_id} is now {title.lower()}.",
            NotificationType.ORDER_UPDATE,
            {"type": "OPEN_ORDER", "orderId": order_id},
        )
        if isinstance(notified, Err):
            logger.warning("order.notify_failed", order_id=order_id, error=notified.message)
        return updated

    def _load(self, order_id: str) -> Result[Order]:
        return _renamed(_parse(self.store.get(ORDERS, order_id), Order), "Order not found")

    def _set_status(self, order: Order, status: OrderStatus, tracking_number: Optional[str] = None) -> Result[Order]:
        updates: Dict[str, Any] = {"status": status.value, "updated_at": self.clock()}
        if tracking_number is not None:
            updates["tracking_number"] = tracking_number
        patched = self.store.patch(ORDERS, order.id, updates)
        if isinstance(patched, Err):
            return patched
        updates["status"] = status
        return Ok(order.model_copy(update=updates))


# ---------- Reviews ----------

def summarize_reviews(reviews: List[Review]) -> ReviewSummary:
    if not reviews:
        return ReviewSummary(distribution={star: 0 for star in range(1, 6)})
    distribution = {star: 0 for star in range(1, 6)}
    for review in reviews:
        bucket = min(5, max(1, int(review.rating + 0.5)))
        distribution[bucket] += 1
    average = sum(r.rating for r in reviews) / len(reviews)
    return ReviewSummary(average_rating=round(average, 2), total_reviews=len(reviews), distribution=distribution)


class ReviewService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow, new_id=commerce.new_object_id):
        self.store = store
        self.clock = clock
        self.new_id = new_id
        self.products = ProductService(store, clock)

    def list_reviews(self, product_id: str) -> Result[Tuple[List[Review], ReviewSummary]]:
        found = _parse_many(self.store.find(REVIEWS, {"product_id": product_id}, sort=[("created_at", -1)]), Review)
        if isinstance(found, Err):
            return found
        return Ok((found.value, summarize_reviews(found.value)))

    def submit(
        self,
        user: User,
        product_id: str,
        rating: float,
        comment: str = "",
        title: str = "",
        images: Optional[List[str]] = None,
    ) -> Result[Review]:
        if not 1 <= rating <= 5:
            return invalid_input("Rating must be between 1 and 5")
        product = self.products.get(product_id)
        if isinstance(product, Err):
            return product

        delivered = self.store.count(
            ORDERS,
            {"user_id": user.id, "status": OrderStatus.DELIVERED.value, "items.product.id": product_id},
        )
        if isinstance(delivered, Err):
            return delivered

        now = self.clock()
        review = Review(
            id=self.new_id(),
            product_id=product_id,
            user_id=user.id,
            user_name=user.name,
            user_avatar_url=user.profile_image_url,
            rating=rating,
            title=title,
            comment=comment,
            images=images or [],
            is_verified_purchase=delivered.value > 0,
            created_at=now,
            updated_at=now,
        )
        added = self.store.add(REVIEWS, review.to_document())
        if isinstance(added, Err):
            return added
        logger.info("review.submitted", user_id=user.id, product_id=product_id, rating=rating)
        return Ok(review)


# ---------- Users ----------

class UserService:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow, new_id=commerce.new_object_id):
        self.store = store
        self.clock = clock
        self.new_id = new_id

    def register(self, name: str, email: str, password_hash: str) -> Result[User]:
        email = email.strip().lower()
        existing = self.find_by_email(email)
        if isinstance(existing, Err) and existing.kind != ErrorKind.NOT_FOUND:
            return existing
        if isinstance(existing, Ok):
            return already_exists("Email already exists.")

        now = self.clock()
        user = User(id=self.new_id(), name=name, email=email, password_hash=password_hash, created_at=now, updated_at=now)
        added = self.store.add(USERS, user.to_document())
        if isinstance(added, Err):
            return added
        logger.info("user.registered", user_id=user.id)
        return Ok(user)

    def find_by_email(self, email: str) -> Result[User]:
        found = self.store.find(USERS, {"email": email.strip().lower()}, limit=1)
        if isinstance(found, Err):
            return found
        if not found.value:
            return not_found("User not found.")
        return Ok(User.from_document(found.value[0]))

    def get(self, user_id: str) -> Result[User]:
        return _renamed(_parse(self.store.get(USERS, user_id), User), "User not found.")

    def update_profile(self, user_id: str, updates: Dict[str, Any]) -> Result[User]:
        if not updates:
            return invalid_input("No updates provided")
        fields = dict(updates)
        fields["updated_at"] = self.clock()
        patched = _renamed(self.store.patch(USERS, user_id, fields), "User not found.")
        if isinstance(patched, Err):
            return patched
        logger.info("user.profile_updated", user_id=user_id, fields=sorted(updates))
        return self.get(user_id)
