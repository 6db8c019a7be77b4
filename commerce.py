"""
Cart and wishlist aggregation, order tracking timeline and checkout totals.

Everything here is a pure function of its arguments: the caller supplies the
current time and, where a new line item is created, the id factory. Nothing
here reads or writes the document store.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from bson import ObjectId

from results import Ok, Result, already_exists, invalid_input, not_found
from schemas import (
    Cart,
    CartItem,
    CheckoutTotals,
    Order,
    OrderStatus,
    OrderTracking,
    TrackingStep,
    Wishlist,
    WishlistItem,
)

IdFactory = Callable[[], str]

FREE_SHIPPING_THRESHOLD = 50.00
FLAT_SHIPPING_RATE = 5.99
TAX_RATE = 0.08
COUPONS: Dict[str, float] = {"SAVE10": 0.10}


def new_object_id() -> str:
    return str(ObjectId())


# ---------- Cart ----------

def empty_cart(user_id: str, now: datetime) -> Cart:
    return Cart(id=user_id, user_id=user_id, items=[], updated_at=now)


def add_cart_item(cart: Cart, new_item: CartItem, now: datetime, new_id: IdFactory = new_object_id) -> Result[Cart]:
    """Merge ``new_item`` into ``cart``.

    Items are deduplicated on (product id, size, color); a match has its
    quantity increased by the new quantity, otherwise the item is appended
    under a fresh id. Stock is not checked here.
    """
    if new_item.quantity < 1:
        return invalid_input("Quantity must be at least 1")

    items = list(cart.items)
    for index, existing in enumerate(items):
        if existing.identity == new_item.identity:
            items[index] = existing.model_copy(update={"quantity": existing.quantity + new_item.quantity})
            break
    else:
        items.append(new_item.model_copy(update={"id": new_id()}))

    return Ok(cart.model_copy(update={"items": items, "updated_at": now}))


def update_cart_item(cart: Cart, updated_item: CartItem, now: datetime) -> Result[Cart]:
    """Replace the item with ``updated_item.id``; quantity <= 0 removes it.

    The original ``added_at`` is kept. If the new size/color collides with
    another line the two are folded into that line.
    """
    index = _index_of(cart.items, updated_item.id)
    if index is None:
        return not_found("Cart item not found")

    items = list(cart.items)
    if updated_item.quantity <= 0:
        del items[index]
        return Ok(cart.model_copy(update={"items": items, "updated_at": now}))

    replacement = updated_item.model_copy(update={"added_at": items[index].added_at})
    for other_index, other in enumerate(items):
        if other_index != index and other.identity == replacement.identity:
            items[other_index] = other.model_copy(update={"quantity": other.quantity + replacement.quantity})
            del items[index]
            break
    else:
        items[index] = replacement

    return Ok(cart.model_copy(update={"items": items, "updated_at": now}))


def remove_cart_item(cart: Cart, item_id: str, now: datetime) -> Result[Cart]:
    items = [item for item in cart.items if item.id != item_id]
    if len(items) == len(cart.items):
        return not_found("Cart item not found")
    return Ok(cart.model_copy(update={"items": items, "updated_at": now}))


def clear_cart(user_id: str, now: datetime) -> Cart:
    return empty_cart(user_id, now)


# ---------- Wishlist ----------

def empty_wishlist(user_id: str, now: datetime) -> Wishlist:
    return Wishlist(id=user_id, user_id=user_id, items=[], updated_at=now)


def wishlist_contains(wishlist: Wishlist, product_id: str) -> bool:
    return any(item.product.id == product_id for item in wishlist.items)


def add_wishlist_item(
    wishlist: Wishlist, new_item: WishlistItem, now: datetime, new_id: IdFactory = new_object_id
) -> Result[Wishlist]:
    # set membership on product id, never a counter
    if wishlist_contains(wishlist, new_item.product.id):
        return already_exists("Item already in wishlist")
    items = list(wishlist.items) + [new_item.model_copy(update={"id": new_id()})]
    return Ok(wishlist.model_copy(update={"items": items, "updated_at": now}))


def remove_wishlist_item(wishlist: Wishlist, item_id: str, now: datetime) -> Result[Wishlist]:
    items = [item for item in wishlist.items if item.id != item_id]
    if len(items) == len(wishlist.items):
        return not_found("Wishlist item not found")
    return Ok(wishlist.model_copy(update={"items": items, "updated_at": now}))


def clear_wishlist(user_id: str, now: datetime) -> Wishlist:
    return empty_wishlist(user_id, now)


def _index_of(items, item_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return None


# ---------- Order tracking ----------

TIMELINE = [
    (OrderStatus.PENDING, "Order Placed", "Your order has been placed successfully"),
    (OrderStatus.CONFIRMED, "Order Confirmed", "Your order has been confirmed and is being prepared"),
    (OrderStatus.PROCESSING, "Processing", "Your order is being processed and packed"),
    (OrderStatus.SHIPPED, "Shipped", "Your order has been shipped"),
    (OrderStatus.OUT_FOR_DELIVERY, "Out for Delivery", "Your order is out for delivery"),
    (OrderStatus.DELIVERED, "Delivered", "Your order has been delivered successfully"),
]

# Rank covers the happy path only; terminal exception states have none.
STATUS_RANK: Dict[OrderStatus, int] = {status: rank for rank, (status, _, _) in enumerate(TIMELINE)}

TERMINAL_BANNERS: Dict[OrderStatus, str] = {
    OrderStatus.CANCELLED: "This order has been cancelled",
    OrderStatus.RETURNED: "This order has been returned",
    OrderStatus.REFUNDED: "This order has been refunded",
}


def status_rank(status: OrderStatus) -> Optional[int]:
    return STATUS_RANK.get(status)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_BANNERS


def build_timeline(order: Order) -> List[TrackingStep]:
    """Fixed six-step timeline for ``order``.

    A step is completed when its rank is at or below the order's rank and
    active when equal. A terminal order keeps only "Order Placed" completed
    and has no active step.
    """
    current = status_rank(order.status)
    steps = []
    for rank, (status, title, description) in enumerate(TIMELINE):
        if current is None:
            completed = rank == 0
            active = False
        else:
            completed = rank <= current
            active = rank == current
        if not completed:
            timestamp = None
        elif rank == 0:
            timestamp = order.created_at
        else:
            timestamp = order.updated_at
        steps.append(
            TrackingStep(
                status=status,
                title=title,
                description=description,
                timestamp=timestamp,
                is_completed=completed,
                is_active=active,
            )
        )
    return steps


def build_tracking(order: Order) -> OrderTracking:
    return OrderTracking(
        order_id=order.id,
        status=order.status,
        steps=build_timeline(order),
        is_terminal=is_terminal(order.status),
        banner=TERMINAL_BANNERS.get(order.status, ""),
    )


# ---------- Checkout totals ----------

def calculate_totals(subtotal: float, coupon_code: str = "") -> Result[CheckoutTotals]:
    """Shipping, tax, discount and total for a cart subtotal.

    Free shipping above 50.00, otherwise a flat 5.99; 8% tax; coupons are
    matched exactly against ``COUPONS``. The total is not floored at zero.
    """
    code = coupon_code.strip()
    if code and code not in COUPONS:
        return invalid_input("Invalid coupon code")

    # a float sum of line prices can land a hair above the threshold
    subtotal = round(subtotal, 2)

    shipping = 0.0 if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_RATE
    tax = subtotal * TAX_RATE
    discount = subtotal * COUPONS[code] if code else 0.0
    total = subtotal + shipping + tax - discount
    return Ok(
        CheckoutTotals(
            subtotal=round(subtotal, 2),
            shipping=round(shipping, 2),
            tax=round(tax, 2),
            discount=round(discount, 2),
            total=round(total, 2),
            coupon_code=code,
        )
    )
