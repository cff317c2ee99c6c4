from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import line, paid_session_event, signature_header, signed
from lanka_basket.data.models import AddressModel, CartItemModel, OrderModel, ProductModel
from lanka_basket.domain.errors import AuthenticationError


@pytest.fixture
def session_metadata(checkout, shop, payment_client):
    checkout.create_payment_session(
        shop.customer.id, [line(shop.tea, 2), line(shop.oil, 1)], shop.address.id, "13.98", "13.98"
    )
    return payment_client.calls[-1]["metadata"]


def _deliver(checkout, event):
    payload, header = signed(event)
    return checkout.handle_payment_webhook(payload, header)


def test_paid_session_creates_card_order(checkout, shop, db_session, session_metadata, notifier):
    result = _deliver(checkout, paid_session_event(session_metadata, amount_total=1398))

    order = db_session.query(OrderModel).one()
    assert result == {"received": True, "order_id": order.order_id, "duplicate": False}
    assert order.user_id == shop.customer.id
    assert order.payment_status == "completed"
    assert order.payment_method == "CARD"
    assert order.status == "pending"
    assert order.payment_id == "pi_test_1"
    assert order.checkout_session_id == "cs_test_1"
    assert order.webhook_event_id == "evt_1"
    assert order.total == Decimal("13.98")
    assert [(i.product_id, i.quantity) for i in order.items] == [(shop.tea.id, 2), (shop.oil.id, 1)]
    assert notifier.sent == [(shop.customer.id, order.order_id, "CARD")]


def test_same_event_twice_creates_one_order(checkout, db_session, session_metadata):
    event = paid_session_event(session_metadata)
    first = _deliver(checkout, event)
    second = _deliver(checkout, event)

    assert first["order_id"] is not None
    assert second["duplicate"] is True
    assert second["order_id"] is None
    assert db_session.query(OrderModel).count() == 1


def test_two_deliveries_with_same_session_id_create_one_order(checkout, db_session, session_metadata):
    _deliver(checkout, paid_session_event(session_metadata, event_id="evt_1"))
    _deliver(
        checkout,
        {**paid_session_event(session_metadata, event_id="evt_2"), "type": "checkout.session.async_payment_succeeded"},
    )
    assert db_session.query(OrderModel).count() == 1


def test_concurrent_duplicate_is_stopped_by_unique_session_id(
    checkout, db_session, session_metadata, monkeypatch
):
    _deliver(checkout, paid_session_event(session_metadata, event_id="evt_1"))

    # druga dostawa nie widzi jeszcze pierwszego zamowienia przy pierwszym sprawdzeniu
    lookup = checkout.orders.get_by_session_id
    calls = []

    def stale_first_lookup(session_id):
        calls.append(session_id)
        return None if len(calls) == 1 else lookup(session_id)

    monkeypatch.setattr(checkout.orders, "get_by_session_id", stale_first_lookup)
    result = _deliver(checkout, paid_session_event(session_metadata, event_id="evt_2"))

    assert result["duplicate"] is True
    assert db_session.query(OrderModel).count() == 1


def test_integrity_error_without_existing_order_is_raised_for_redelivery(
    checkout, shop, db_session, session_metadata, monkeypatch
):
    def broken_remove(user_id, product_ids):
        raise IntegrityError("DELETE FROM cart_items", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(checkout.cart, "remove_products", broken_remove)

    with pytest.raises(IntegrityError):
        _deliver(checkout, paid_session_event(session_metadata))

    assert db_session.query(OrderModel).count() == 0
    assert db_session.get(ProductModel, shop.tea.id).stock == 10


def test_product_unpublished_after_payment_still_gets_order(checkout, shop, db_session, session_metadata):
    db_session.get(ProductModel, shop.tea.id).publish = False
    db_session.commit()

    result = _deliver(checkout, paid_session_event(session_metadata))

    assert result["order_id"] is not None
    order = db_session.query(OrderModel).one()
    tea = next(i for i in order.items if i.product_id == shop.tea.id)
    assert tea.name == "Ceylon Tea"
    assert tea.unit_price == Decimal("5.99")
    assert order.total == Decimal("13.98")


def test_address_disabled_after_payment_still_gets_order(checkout, shop, db_session, session_metadata):
    db_session.get(AddressModel, shop.address.id).status = False
    db_session.commit()

    result = _deliver(checkout, paid_session_event(session_metadata))

    assert result["order_id"] is not None
    assert db_session.query(OrderModel).one().delivery_address["address_line"] == "12 Galle Road"


def test_paid_session_with_foreign_address_creates_nothing(checkout, shop, db_session, session_metadata):
    metadata = {**session_metadata, "addressId": str(shop.foreign_address.id)}

    assert _deliver(checkout, paid_session_event(metadata))["order_id"] is None
    assert db_session.query(OrderModel).count() == 0


def test_session_locked_by_other_delivery_is_duplicate(checkout, db_session, session_metadata, lock_service):
    lock_service.locks["cs_test_1"] = "evt_in_flight"

    result = _deliver(checkout, paid_session_event(session_metadata))

    assert result["duplicate"] is True
    assert db_session.query(OrderModel).count() == 0
    assert lock_service.locks == {"cs_test_1": "evt_in_flight"}


def test_lock_is_released_after_processing(checkout, session_metadata, lock_service):
    _deliver(checkout, paid_session_event(session_metadata))
    assert lock_service.locks == {}


def test_redis_outage_falls_back_to_storage_dedup(checkout, db_session, session_metadata, lock_service):
    lock_service.unavailable = True
    event = paid_session_event(session_metadata)

    assert _deliver(checkout, event)["order_id"] is not None
    assert _deliver(checkout, event)["duplicate"] is True
    assert db_session.query(OrderModel).count() == 1


def test_invalid_signature_is_rejected_before_touching_orders(checkout, session_metadata):
    checkout.orders = Mock()
    checkout.products = Mock()
    payload, header = signed(paid_session_event(session_metadata), secret="whsec_attacker")

    with pytest.raises(AuthenticationError):
        checkout.handle_payment_webhook(payload, header)

    assert checkout.orders.method_calls == []
    assert checkout.products.method_calls == []


def test_unknown_event_type_is_acknowledged_and_ignored(checkout, db_session, session_metadata):
    event = {**paid_session_event(session_metadata), "type": "customer.created"}
    assert _deliver(checkout, event) == {"received": True, "order_id": None, "duplicate": False}
    assert db_session.query(OrderModel).count() == 0


@pytest.mark.parametrize(
    "event_type, payment_status",
    [
        ("checkout.session.completed", "unpaid"),
        ("checkout.session.async_payment_failed", "unpaid"),
    ],
)
def test_unpaid_sessions_create_nothing(checkout, db_session, session_metadata, event_type, payment_status):
    event = paid_session_event(session_metadata, payment_status=payment_status)
    event["type"] = event_type
    assert _deliver(checkout, event)["order_id"] is None
    assert db_session.query(OrderModel).count() == 0


def test_async_payment_success_creates_order(checkout, db_session, session_metadata):
    event = paid_session_event(session_metadata, payment_status="paid")
    event["type"] = "checkout.session.async_payment_succeeded"
    assert _deliver(checkout, event)["order_id"] is not None
    assert db_session.query(OrderModel).one().payment_status == "completed"


def test_malformed_payload_with_valid_signature_is_acknowledged(checkout, db_session):
    payload = b"not json at all"

    result = checkout.handle_payment_webhook(payload, signature_header(payload, "whsec_test"))
    assert result["received"] is True
    assert db_session.query(OrderModel).count() == 0


def test_incomplete_metadata_is_acknowledged_without_order(checkout, db_session, session_metadata):
    metadata = {k: v for k, v in session_metadata.items() if k != "items"}
    assert _deliver(checkout, paid_session_event(metadata))["order_id"] is None
    assert db_session.query(OrderModel).count() == 0


def test_card_order_keeps_charged_price_and_clears_cart(checkout, shop, db_session, session_metadata):
    # cena zmieniona po utworzeniu sesji
    db_session.get(ProductModel, shop.tea.id).price = Decimal("7.00")
    db_session.commit()

    _deliver(checkout, paid_session_event(session_metadata))

    db_session.expire_all()
    order = db_session.query(OrderModel).one()
    assert order.items[0].unit_price == Decimal("5.99")
    assert order.total == Decimal("13.98")
    assert db_session.get(ProductModel, shop.tea.id).stock == 8
    remaining = db_session.query(CartItemModel).filter_by(user_id=shop.customer.id).all()
    assert [c.product_id for c in remaining] == [shop.rice.id]


def test_paid_order_is_created_even_when_stock_ran_out(checkout, shop, db_session, session_metadata):
    db_session.get(ProductModel, shop.oil.id).stock = 0
    db_session.commit()

    result = _deliver(checkout, paid_session_event(session_metadata))

    db_session.expire_all()
    assert result["order_id"] is not None
    assert db_session.get(ProductModel, shop.oil.id).stock == 0


def test_paid_totals_are_frozen(checkout, db_session, session_metadata):
    _deliver(checkout, paid_session_event(session_metadata))
    order = db_session.query(OrderModel).one()

    with pytest.raises(ValueError):
        order.total = Decimal("1.00")
    with pytest.raises(ValueError):
        order.sub_total = Decimal("1.00")

