"""Tests for admin order transitions, shipments and review requests."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from storefront.db.models import (
    FulfillmentStatus, Order, OrderStatus, PaymentStatus, Shipment, ShipmentStatus, now_utc,
)
from storefront.errors import IllegalTransitionError, OrderNotFoundError, ReviewRequestError
from storefront.services import fulfillment, orders, reviews
from storefront.services.cart import Cart
from storefront.services.catalog import cart_product


@pytest.fixture
def order(db, make_product, shipping_form):
    p = make_product(title="Kettle", in_stock=10)
    cart = Cart().add(cart_product(db, p.id), 1)
    return orders.commit_order(db, "ada@example.com", cart.lines, shipping_form)


def shipment_count(db, order_id):
    return db.scalar(select(func.count(Shipment.id)).where(Shipment.order_id == order_id))


class TestFulfil:
    def test_fulfil_creates_one_shipment(self, db, order, dispatcher, outbox, transport):
        updated = fulfillment.transition(
            db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED,
            tracking_number="1Z999", carrier="UPS", dispatcher=dispatcher,
        )
        assert updated.fulfillment_status == FulfillmentStatus.FULFILLED
        assert updated.shipped_at is not None
        assert shipment_count(db, order.id) == 1
        assert updated.shipment.status == ShipmentStatus.SHIPPED
        assert updated.shipment.tracking_number == "1Z999"

        outbox.join()
        assert transport.subjects() == [f"Your order has shipped - #{order.order_number}"]
        assert "1Z999" in transport.sent[0]["html"]

    def test_second_fulfil_updates_same_shipment(self, db, order):
        fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED, tracking_number="A1")
        updated = fulfillment.transition(
            db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED, tracking_number="B2", carrier="DHL"
        )
        assert shipment_count(db, order.id) == 1
        assert updated.shipment.tracking_number == "B2"
        assert updated.shipment.carrier == "DHL"

    def test_tracking_without_fulfil_creates_pending_shipment(self, db, order):
        eta = now_utc() + timedelta(days=3)
        updated = fulfillment.transition(db, order.id, carrier="An Post", estimated_delivery=eta)
        assert updated.fulfillment_status == FulfillmentStatus.UNFULFILLED
        assert updated.shipment.status == ShipmentStatus.PENDING
        assert updated.shipped_at is None

    def test_fulfil_cancelled_order_rejected(self, db, order):
        fulfillment.transition(db, order.id, status=OrderStatus.CANCELLED)
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED)
        assert shipment_count(db, order.id) == 0

    def test_unfulfil_rejected(self, db, order):
        fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED)
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.UNFULFILLED)


class TestStatusTransitions:
    def test_happy_path(self, db, order):
        for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
            fulfillment.transition(db, order.id, status=status)
        fulfillment.transition(
            db, order.id, status=OrderStatus.SHIPPED, fulfillment_status=FulfillmentStatus.FULFILLED
        )
        updated = fulfillment.transition(db, order.id, status=OrderStatus.DELIVERED)
        assert updated.status == OrderStatus.DELIVERED
        assert updated.shipment.status == ShipmentStatus.DELIVERED

    def test_delivered_before_fulfilled_rejected(self, db, order):
        for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
            fulfillment.transition(db, order.id, status=status)
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(db, order.id, status=OrderStatus.SHIPPED)

    def test_skipping_states_rejected(self, db, order):
        with pytest.raises(IllegalTransitionError) as exc:
            fulfillment.transition(db, order.id, status=OrderStatus.DELIVERED)
        assert exc.value.current == "PENDING"
        assert exc.value.target == "DELIVERED"

    def test_terminal_states_stay_put(self, db, order):
        fulfillment.transition(db, order.id, status=OrderStatus.REFUNDED)
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(db, order.id, status=OrderStatus.CONFIRMED)

    def test_same_status_is_noop(self, db, order):
        before = db.get(Order, order.id).updated_at
        updated = fulfillment.transition(db, order.id, status=OrderStatus.PENDING)
        assert updated.status == OrderStatus.PENDING
        assert updated.updated_at == before

    def test_payment_status_transitions(self, db, order):
        updated = fulfillment.transition(db, order.id, payment_status=PaymentStatus.COMPLETED)
        assert updated.payment_status == PaymentStatus.COMPLETED
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(db, order.id, payment_status=PaymentStatus.FAILED)

    def test_rejected_request_writes_nothing(self, db, order):
        # status is legal, payment status is not; neither may be applied
        fulfillment.transition(db, order.id, payment_status=PaymentStatus.FAILED)
        with pytest.raises(IllegalTransitionError):
            fulfillment.transition(
                db, order.id, status=OrderStatus.CONFIRMED, payment_status=PaymentStatus.COMPLETED
            )
        db.expire_all()
        fresh = db.get(Order, order.id)
        assert fresh.status == OrderStatus.PENDING
        assert fresh.payment_status == PaymentStatus.FAILED

    def test_missing_order(self, db):
        with pytest.raises(OrderNotFoundError):
            fulfillment.transition(db, 4040, status=OrderStatus.CONFIRMED)

    def test_no_shipping_email_for_plain_status_change(self, db, order, dispatcher, outbox, transport):
        fulfillment.transition(db, order.id, status=OrderStatus.CONFIRMED, dispatcher=dispatcher)
        outbox.join()
        assert transport.sent == []


class TestReviews:
    def test_unfulfilled_order_rejected(self, db, order, dispatcher):
        with pytest.raises(ReviewRequestError):
            reviews.request_review(db, order.id, dispatcher)

    def test_review_request_sent(self, db, order, dispatcher, outbox, transport):
        fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED)
        assert reviews.request_review(db, order.id, dispatcher) is True
        outbox.join()
        assert transport.sent[0]["to"] == "ada@example.com"
        assert "Kettle" in transport.sent[0]["html"]

    def test_eligible_window(self, db, order):
        fulfillment.transition(db, order.id, fulfillment_status=FulfillmentStatus.FULFILLED)
        assert [o.id for o in reviews.review_eligible(db)] == [order.id]
        later = now_utc() + timedelta(days=31)
        assert reviews.review_eligible(db, now=later) == []

    def test_unfulfilled_not_eligible(self, db, order):
        assert reviews.review_eligible(db, now=now_utc()) == []
