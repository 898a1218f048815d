"""Tests for data models"""

import pytest

from storefront_client.errors import ApiError, ErrorKind, TransportError
from storefront_client.models.cart import Cart, CartItem, CartSnapshot
from storefront_client.models.checkout import Address, GatewayCallback, PaymentSession
from storefront_client.models.session import Session, SessionSnapshot, SessionState, UserProfile


class TestCartItem:

    def test_populated_product(self):
        item = CartItem.from_dict({
            "_id": "i-1",
            "product": {"_id": "p-1", "name": "Cotton Tee", "price": 1200, "images": [{"url": "https://img.test/1.jpg"}]},
            "quantity": 2,
            "priceAtTimeOfAddition": 999
        })

        assert item.product_id == "p-1"
        assert item.name == "Cotton Tee"
        assert item.unit_price == 999
        assert item.image == "https://img.test/1.jpg"
        assert item.subtotal == 1998

    def test_bare_product_id_falls_back_to_fields(self):
        item = CartItem.from_dict({"_id": "i-1", "product": "p-1", "quantity": 1, "priceAtTimeOfAddition": 10})

        assert item.product_id == "p-1"
        assert item.name is None

    def test_product_price_when_snapshot_missing(self):
        item = CartItem.from_dict({"_id": "i-1", "product": {"_id": "p-1", "price": 450}, "quantity": 1})

        assert item.unit_price == 450

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(ValueError):
            CartItem(id="i-1", product_id="p-1", quantity=quantity, unit_price=10)

    def test_missing_price(self):
        with pytest.raises(ValueError):
            CartItem.from_dict({"_id": "i-1", "product": "p-1", "quantity": 1})


class TestCart:

    def test_totals_are_rounded(self):
        cart = Cart(items=(CartItem(id="i-1", product_id="p-1", quantity=3, unit_price=0.1),), shipping_fee=50)

        assert cart.subtotal == 0.3
        assert cart.total == 50.3
        assert cart.item_count == 3

    def test_empty_cart(self):
        cart = Cart.from_api({"items": [], "total": 0}, shipping_fee=50)

        assert cart.is_empty()
        assert cart.subtotal == 0
        assert cart.server_total == 0

    def test_from_api_rejects_non_object(self):
        with pytest.raises(ValueError):
            Cart.from_api(["not", "a", "cart"])

    def test_snapshot_of_unloaded_cart(self):
        snapshot = CartSnapshot.of(None)

        assert snapshot.loaded is False
        assert snapshot.items == ()


class TestSession:

    def test_profile_accepts_either_id_key(self):
        assert UserProfile.from_dict({"_id": "u-1", "name": "A"}).id == "u-1"
        assert UserProfile.from_dict({"id": 7, "name": "B"}).id == "7"

    def test_profile_round_trip_keeps_extra_fields(self):
        profile = UserProfile.from_dict({"_id": "u-1", "name": "A", "avatar": "https://img.test/a.png"})

        assert profile.to_dict()["avatar"] == "https://img.test/a.png"

    def test_profile_without_id(self):
        with pytest.raises(ValueError):
            UserProfile.from_dict({"name": "A"})

    def test_session_needs_both_halves(self):
        with pytest.raises(ValueError):
            Session(token="", user=UserProfile(id="u-1", name="A"))
        with pytest.raises(ValueError):
            Session(token="tok", user=None)

    def test_snapshot_authenticated(self):
        user = UserProfile(id="u-1", name="A")

        assert SessionSnapshot(SessionState.AUTHENTICATED, user).authenticated
        assert not SessionSnapshot(SessionState.ANONYMOUS).authenticated


class TestPayment:

    def test_payment_session_is_single_use(self):
        session = PaymentSession(gateway_order_id="order_1", amount=4050, currency="INR")

        session.consume()
        with pytest.raises(ValueError):
            session.consume()

    def test_minor_amount(self):
        assert PaymentSession(gateway_order_id="o", amount=4050.5, currency="INR").minor_amount == 405050
        assert PaymentSession(gateway_order_id="o", amount=4050, currency="INR",
                              gateway_amount=405000).minor_amount == 405000

    def test_attempt_ids_are_unique(self):
        first = PaymentSession(gateway_order_id="o", amount=1, currency="INR")
        second = PaymentSession(gateway_order_id="o", amount=1, currency="INR")

        assert first.attempt_id != second.attempt_id
        assert first.created_at.tzinfo is not None

    def test_gateway_callback_requires_all_fields(self):
        with pytest.raises(ValueError):
            GatewayCallback.from_dict({"razorpay_order_id": "o", "razorpay_payment_id": "p"})

        callback = GatewayCallback.from_dict({
            "razorpay_order_id": "o", "razorpay_payment_id": "p", "razorpay_signature": "s"
        })
        assert callback.to_payload()["razorpay_signature"] == "s"


class TestErrors:

    def test_transport_error(self):
        error = TransportError("/cart", "timed out")

        assert error.kind == ErrorKind.TRANSPORT
        assert error.to_dict() == {
            "kind": "transport",
            "message": "Transport error for /cart: timed out",
            "data": {"endpoint": "/cart"}
        }

    def test_api_error_message(self):
        error = ApiError("/cart/add", 409, "Out of stock")

        assert str(error) == "HTTP 409 for /cart/add: Out of stock"
        assert error.data["status_code"] == 409


class TestAddress:

    def test_payload_omits_empty_optional_lines(self):
        address = Address(id="a-1", full_name="A", phone="1", pincode="2", state="S", city="C",
                          address_line1="L1", address_line2="L2")

        payload = address.to_payload()
        assert payload["addressLine2"] == "L2"
        assert "landmark" not in payload

    def test_from_dict_requires_id(self):
        with pytest.raises(ValueError):
            Address.from_dict({"fullName": "A"})
