"""Admin-driven order transitions.

Each status field moves only along the edges listed below. A request is checked
in full before anything is written, so a rejected request leaves the order
exactly as it was.
"""

from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.db.models import (
    FulfillmentStatus, Order, OrderStatus, PaymentStatus, Shipment, ShipmentStatus, now_utc,
)
from storefront.errors import CommitError, IllegalTransitionError, StorefrontError
from storefront.notifications import NotificationKind
from storefront.services.orders import get_order

logger = structlog.get_logger(__name__)

_CLOSING = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED} | _CLOSING,
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING} | _CLOSING,
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED} | _CLOSING,
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED} | _CLOSING,
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.FAILED: set(),
}

# FULFILLED -> FULFILLED refreshes the shipment
_FULFILLMENT_TRANSITIONS: dict[FulfillmentStatus, set[FulfillmentStatus]] = {
    FulfillmentStatus.UNFULFILLED: {FulfillmentStatus.FULFILLED},
    FulfillmentStatus.FULFILLED: {FulfillmentStatus.FULFILLED},
}

_NEEDS_FULFILLMENT = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}


def _check_edge(field: str, table: dict, current, target) -> None:
    if target is None or target == current:
        return
    if target not in table[current]:
        raise IllegalTransitionError(field, current.value, target.value)


def validate_transition(
    order: Order,
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    fulfillment_status: FulfillmentStatus | None = None,
) -> None:
    _check_edge("status", _ORDER_TRANSITIONS, order.status, status)
    _check_edge("payment_status", _PAYMENT_TRANSITIONS, order.payment_status, payment_status)
    _check_edge("fulfillment_status", _FULFILLMENT_TRANSITIONS, order.fulfillment_status, fulfillment_status)

    next_status = status or order.status
    next_fulfillment = fulfillment_status or order.fulfillment_status
    if status in _NEEDS_FULFILLMENT and status != order.status and next_fulfillment != FulfillmentStatus.FULFILLED:
        raise IllegalTransitionError("status", order.status.value, status.value, "order is not fulfilled")
    if fulfillment_status == FulfillmentStatus.FULFILLED and next_status in _CLOSING:
        raise IllegalTransitionError(
            "fulfillment_status",
            order.fulfillment_status.value,
            fulfillment_status.value,
            f"order is {next_status.value.lower()}",
        )


def _upsert_shipment(order: Order, status: ShipmentStatus, tracking_number, carrier, estimated_delivery) -> Shipment:
    shipment = order.shipment
    if shipment is None:
        shipment = Shipment(status=status)
        order.shipment = shipment
    elif shipment.status == ShipmentStatus.PENDING:
        shipment.status = status
    if tracking_number is not None:
        shipment.tracking_number = tracking_number
    if carrier is not None:
        shipment.carrier = carrier
    if estimated_delivery is not None:
        shipment.estimated_delivery = estimated_delivery
    return shipment


def shipping_notification_data(order: Order) -> dict:
    addr = order.shipping_address or {}
    shipment = order.shipment
    est = shipment.estimated_delivery if shipment else None
    return {
        "order_number": order.order_number,
        "customer_name": f"{addr.get('first_name', '')} {addr.get('last_name', '')}".strip(),
        "tracking_number": shipment.tracking_number if shipment else None,
        "carrier": shipment.carrier if shipment else None,
        "estimated_delivery": est.isoformat() if est else None,
        "shipping_address": addr,
    }


def transition(
    db: Session,
    order_id: int,
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    fulfillment_status: FulfillmentStatus | None = None,
    tracking_number: str | None = None,
    carrier: str | None = None,
    estimated_delivery: datetime | None = None,
    dispatcher=None,
) -> Order:
    order = get_order(db, order_id)
    log = logger.bind(order_id=order.id, order_number=order.order_number)
    try:
        validate_transition(order, status, payment_status, fulfillment_status)
    except IllegalTransitionError as exc:
        log.warning("Illegal transition rejected", error=str(exc))
        raise

    now = now_utc()
    fulfilling = fulfillment_status == FulfillmentStatus.FULFILLED
    has_tracking = any(v is not None for v in (tracking_number, carrier, estimated_delivery))
    changed = False
    try:
        if status is not None and status != order.status:
            order.status = status
            changed = True
        if payment_status is not None and payment_status != order.payment_status:
            order.payment_status = payment_status
            changed = True
        if fulfilling:
            order.fulfillment_status = FulfillmentStatus.FULFILLED
            order.shipped_at = now
            shipment = _upsert_shipment(order, ShipmentStatus.SHIPPED, tracking_number, carrier, estimated_delivery)
            shipment.shipped_at = now
            changed = True
        elif has_tracking:
            _upsert_shipment(order, ShipmentStatus.PENDING, tracking_number, carrier, estimated_delivery)
            changed = True
        if status == OrderStatus.DELIVERED and order.shipment is not None:
            order.shipment.status = ShipmentStatus.DELIVERED
        if changed:
            order.updated_at = now
        db.commit()
    except StorefrontError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        log.error("Order transition failed", error=str(exc))
        raise CommitError("Order could not be updated") from exc

    db.refresh(order)
    log.info(
        "Order transitioned",
        status=order.status.value,
        payment_status=order.payment_status.value,
        fulfillment_status=order.fulfillment_status.value,
    )

    if fulfilling and dispatcher is not None:
        dispatcher.send(NotificationKind.SHIPPING_NOTIFICATION, order.customer_email, shipping_notification_data(order))
    return order
