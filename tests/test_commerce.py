from datetime import timedelta

import pytest

import commerce
from conftest import make_product
from results import Err, ErrorKind, Ok
from schemas import CartItem, Order, OrderStatus, WishlistItem

HAPPY_PATH = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def cart_item(product, quantity=1, size="M", color="Black", **kwargs):
    return CartItem(product=product, quantity=quantity, selected_size=size, selected_color=color, **kwargs)


# ---------- Cart ----------

def test_same_variant_merges_into_one_line(clock, ids):
    product = make_product("a", price=12.5)
    cart = commerce.empty_cart("u1", clock())

    cart = commerce.add_cart_item(cart, cart_item(product, 1), clock(), ids).value
    cart = commerce.add_cart_item(cart, cart_item(product, 2), clock(), ids).value

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.total_items == 3
    assert cart.subtotal == pytest.approx(3 * 12.5)


def test_different_variants_stay_separate(clock, ids):
    product = make_product("a")
    cart = commerce.empty_cart("u1", clock())
    cart = commerce.add_cart_item(cart, cart_item(product, size="M"), clock(), ids).value
    cart = commerce.add_cart_item(cart, cart_item(product, size="L"), clock(), ids).value
    cart = commerce.add_cart_item(cart, cart_item(product, size="L", color="Red"), clock(), ids).value

    assert [item.id for item in cart.items] == ["id_1", "id_2", "id_3"]
    assert cart.total_items == 3


def test_add_stamps_updated_at_and_keeps_input_unchanged(clock, ids):
    cart = commerce.empty_cart("u1", clock())
    later = clock.advance(minutes=5)

    updated = commerce.add_cart_item(cart, cart_item(make_product()), later, ids).value

    assert updated.updated_at == later
    assert cart.items == []


def test_add_rejects_non_positive_quantity(clock, ids):
    cart = commerce.empty_cart("u1", clock())
    item = cart_item(make_product()).model_copy(update={"quantity": 0})

    result = commerce.add_cart_item(cart, item, clock(), ids)

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.INVALID_INPUT


def test_update_keeps_original_added_at(clock, ids):
    added = clock()
    cart = commerce.add_cart_item(commerce.empty_cart("u1", added), cart_item(make_product()), added, ids).value
    existing = cart.items[0]

    later = clock.advance(hours=1)
    replacement = existing.model_copy(update={"quantity": 4, "added_at": later})
    cart = commerce.update_cart_item(cart, replacement, later).value

    assert cart.items[0].quantity == 4
    assert cart.items[0].added_at == added
    assert cart.updated_at == later


@pytest.mark.parametrize("quantity", [0, -2])
def test_update_with_non_positive_quantity_removes_item(clock, ids, quantity):
    cart = commerce.add_cart_item(commerce.empty_cart("u1", clock()), cart_item(make_product()), clock(), ids).value

    cart = commerce.update_cart_item(cart, cart.items[0].model_copy(update={"quantity": quantity}), clock()).value

    assert cart.is_empty


def test_update_missing_item_is_not_found(clock):
    cart = commerce.empty_cart("u1", clock())
    ghost = cart_item(make_product(), id="nope")

    result = commerce.update_cart_item(cart, ghost, clock())

    assert result == Err(ErrorKind.NOT_FOUND, "Cart item not found")


def test_update_into_existing_variant_folds_lines(clock, ids):
    product = make_product("a")
    cart = commerce.empty_cart("u1", clock())
    cart = commerce.add_cart_item(cart, cart_item(product, 1, size="M"), clock(), ids).value
    cart = commerce.add_cart_item(cart, cart_item(product, 2, size="L"), clock(), ids).value

    moved = cart.items[0].model_copy(update={"selected_size": "L"})
    cart = commerce.update_cart_item(cart, moved, clock()).value

    assert len(cart.items) == 1
    assert cart.items[0].selected_size == "L"
    assert cart.items[0].quantity == 3


def test_remove_missing_item_leaves_cart_unchanged(clock, ids):
    cart = commerce.add_cart_item(commerce.empty_cart("u1", clock()), cart_item(make_product()), clock(), ids).value

    result = commerce.remove_cart_item(cart, "missing", clock())

    assert result.kind == ErrorKind.NOT_FOUND
    assert len(cart.items) == 1


def test_remove_and_clear(clock, ids):
    cart = commerce.empty_cart("u1", clock())
    cart = commerce.add_cart_item(cart, cart_item(make_product("a")), clock(), ids).value
    cart = commerce.add_cart_item(cart, cart_item(make_product("b")), clock(), ids).value

    cart = commerce.remove_cart_item(cart, "id_1", clock()).value
    assert [item.product.id for item in cart.items] == ["b"]

    cleared = commerce.clear_cart("u1", clock())
    assert cleared.id == "u1"
    assert cleared.is_empty


# ---------- Wishlist ----------

def test_wishlist_is_a_set_of_products(clock, ids):
    product = make_product("a")
    wishlist = commerce.empty_wishlist("u1", clock())

    wishlist = commerce.add_wishlist_item(wishlist, WishlistItem(product=product), clock(), ids).value
    second = commerce.add_wishlist_item(wishlist, WishlistItem(product=product), clock(), ids)

    assert second == Err(ErrorKind.ALREADY_EXISTS, "Item already in wishlist")
    assert len(wishlist.items) == 1
    assert commerce.wishlist_contains(wishlist, "a")
    assert not commerce.wishlist_contains(wishlist, "b")


def test_wishlist_remove(clock, ids):
    wishlist = commerce.empty_wishlist("u1", clock())
    wishlist = commerce.add_wishlist_item(wishlist, WishlistItem(product=make_product("a")), clock(), ids).value

    assert commerce.remove_wishlist_item(wishlist, "nope", clock()).kind == ErrorKind.NOT_FOUND
    assert commerce.remove_wishlist_item(wishlist, "id_1", clock()).value.is_empty


# ---------- Timeline ----------

def order_with(status, clock):
    created = clock()
    return Order(
        id="o1",
        user_id="u1",
        items=[],
        status=status,
        created_at=created,
        updated_at=created + timedelta(days=2),
    )


@pytest.mark.parametrize("status", HAPPY_PATH)
def test_timeline_is_monotonic_with_one_active_step(clock, status):
    steps = commerce.build_timeline(order_with(status, clock))
    current = HAPPY_PATH.index(status)

    assert [s.status for s in steps] == HAPPY_PATH
    assert [s.is_completed for s in steps] == [i <= current for i in range(len(HAPPY_PATH))]
    assert [s.status for s in steps if s.is_active] == [status]


def test_timeline_timestamps(clock):
    order = order_with(OrderStatus.PROCESSING, clock)
    steps = commerce.build_timeline(order)

    assert steps[0].timestamp == order.created_at
    assert steps[1].timestamp == order.updated_at
    assert steps[2].timestamp == order.updated_at
    assert steps[3].timestamp is None


@pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.RETURNED, OrderStatus.REFUNDED])
def test_terminal_orders_do_not_render_as_delivered(clock, status):
    order = order_with(status, clock)
    tracking = commerce.build_tracking(order)

    assert [s.is_completed for s in tracking.steps] == [True, False, False, False, False, False]
    assert not any(s.is_active for s in tracking.steps)
    assert tracking.is_terminal
    assert tracking.banner


def test_happy_path_tracking_has_no_banner(clock):
    tracking = commerce.build_tracking(order_with(OrderStatus.SHIPPED, clock))
    assert not tracking.is_terminal
    assert tracking.banner == ""


# ---------- Totals ----------

def test_totals_below_free_shipping_threshold():
    totals = commerce.calculate_totals(40.00, "").value

    assert totals.shipping == 5.99
    assert totals.tax == 3.20
    assert totals.discount == 0
    assert totals.total == 49.19


def test_totals_with_coupon_and_free_shipping():
    totals = commerce.calculate_totals(60.00, "SAVE10").value

    assert totals.shipping == 0
    assert totals.tax == 4.80
    assert totals.discount == 6.00
    assert totals.total == 58.80
    assert totals.coupon_code == "SAVE10"


def test_exactly_fifty_still_pays_shipping():
    assert commerce.calculate_totals(50.00).value.shipping == 5.99


def test_cart_summing_to_fifty_still_pays_shipping(clock, ids):
    cart = commerce.empty_cart("u1", clock())
    for product_id, price in [("a", 31.10), ("b", 16.16), ("c", 2.74)]:
        cart = commerce.add_cart_item(cart, cart_item(make_product(product_id, price=price)), clock(), ids).value

    totals = commerce.calculate_totals(cart.subtotal).value

    assert totals.subtotal == 50.00
    assert totals.shipping == 5.99
    assert totals.tax == 4.00
    assert totals.total == 59.99


@pytest.mark.parametrize("code", ["save10", "BOGUS", "SAVE 10"])
def test_unknown_coupon_is_invalid(code):
    result = commerce.calculate_totals(60.00, code)
    assert result == Err(ErrorKind.INVALID_INPUT, "Invalid coupon code")


def test_totals_are_deterministic():
    assert commerce.calculate_totals(123.45, "SAVE10") == commerce.calculate_totals(123.45, "SAVE10")
    assert isinstance(commerce.calculate_totals(0.0), Ok)
