from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

import commerce
from conftest import make_product
from schemas import Cart, CartItem, Notification, Order, OrderItem, OrderStatus, PaymentMethod, Product


def test_cart_document_round_trip(clock, ids):
    cart = commerce.empty_cart("u1", clock())
    for product_id, size in [("a", "M"), ("b", "L"), ("a", "L")]:
        item = CartItem(product=make_product(product_id, price=9.99), quantity=2, selected_size=size)
        cart = commerce.add_cart_item(cart, item, clock(), ids).value

    doc = cart.to_document()
    restored = Cart.from_document(doc)

    assert doc["_id"] == "u1"
    assert "id" not in doc
    assert restored == cart
    assert [i.id for i in restored.items] == [i.id for i in cart.items]
    assert restored.subtotal == cart.subtotal
    assert restored.total_items == 6


def test_order_document_stores_status_by_value(clock):
    product = make_product("a", price=20.0)
    order = Order(
        id="o1",
        user_id="u1",
        items=[OrderItem(id="i1", product=product, quantity=2, price=18.0)],
        status=OrderStatus.SHIPPED,
        created_at=clock(),
        updated_at=clock(),
    )

    doc = order.to_document()

    assert doc["status"] == "SHIPPED"
    assert doc["items"][0]["product"]["id"] == "a"
    restored = Order.from_document(doc)
    assert restored.status is OrderStatus.SHIPPED
    assert restored.items[0].total_price == 36.0


def test_naive_datetimes_read_back_as_utc():
    doc = make_product("a").to_document()
    doc["created_at"] = datetime(2026, 1, 1, 9, 30)

    product = Product.from_document(doc)

    assert product.created_at.tzinfo is not None
    assert product.created_at.utcoffset() == timedelta(0)


def test_discount_flags():
    assert make_product(price=80, original_price=100, discount_percentage=20).has_discount
    assert not make_product(price=100, original_price=100, discount_percentage=20).has_discount
    assert make_product(is_flash_sale=True).is_on_sale


def test_card_number_is_masked():
    method = PaymentMethod(card_number="4111 1111 1111 1234")
    assert method.card_number == "**** 1234"
    assert PaymentMethod(card_number=method.card_number).card_number == "**** 1234"


def test_cart_item_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        CartItem(product=make_product(), quantity=0)


def test_notification_expiry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    forever = Notification(user_id="u1", title="t", message="m")
    stale = Notification(user_id="u1", title="t", message="m", expires_at=now - timedelta(minutes=1))

    assert not forever.is_expired(now)
    assert stale.is_expired(now)
