from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from storefront.db.models import FulfillmentStatus, Order, now_utc
from storefront.errors import ReviewRequestError
from storefront.notifications import NotificationKind
from storefront.services.orders import get_order

logger = structlog.get_logger(__name__)

REVIEW_WINDOW_DAYS = 30


def review_request_data(order: Order) -> dict:
    addr = order.shipping_address or {}
    return {
        "order_number": order.order_number,
        "customer_name": f"{addr.get('first_name', '')} {addr.get('last_name', '')}".strip(),
        "items": [{"name": it.product_name_snapshot} for it in order.items],
    }


def request_review(db: Session, order_id: int, dispatcher) -> bool:
    """Ask the customer of a fulfilled order to review what they bought."""
    order = get_order(db, order_id)
    if order.fulfillment_status != FulfillmentStatus.FULFILLED:
        raise ReviewRequestError("Can only request reviews for fulfilled orders")
    queued = dispatcher.send(NotificationKind.REVIEW_REQUEST, order.customer_email, review_request_data(order))
    logger.info("Review request", order_number=order.order_number, queued=queued)
    return queued


def review_eligible(db: Session, days: int = REVIEW_WINDOW_DAYS, now: datetime | None = None) -> list[Order]:
    since = (now or now_utc()) - timedelta(days=days)
    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.fulfillment_status == FulfillmentStatus.FULFILLED, Order.shipped_at >= since)
        .order_by(Order.shipped_at.desc())
    )
    return list(db.execute(stmt).scalars())
