"""Order commit and order reads.

``commit_order`` is the one place an order comes into existence. The header,
the line snapshots, the payment row and the inventory decrements are written
in a single transaction; if any of them fails the session is rolled back and
nothing is visible. Notifications go out only after the commit succeeded.
"""

import math
import secrets
import string
import time
from typing import Iterable

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from storefront.core.config import settings
from storefront.db.models import (
    FulfillmentStatus, Inventory, Order, OrderItem, OrderStatus, Payment, PaymentStatus, Product,
)
from storefront.errors import (
    CommitError, InsufficientInventoryError, OrderNotFoundError, PaymentAlreadyUsedError, PaymentInvalidError,
    PaymentMismatchError, PaymentNotCompletedError, ProductUnavailableError, StorefrontError,
)
from storefront.services.cart import CartLine
from storefront.services.payment import PaymentVerification, VerificationOutcome

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def unique_order_number(db: Session) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number()
        taken = db.execute(select(Order.id).where(Order.order_number == candidate)).first()
        if taken is None:
            return candidate
    raise CommitError("Could not allocate an order number")


def decrement_inventory(db: Session, product_id: int, qty: int) -> None:
    """Take ``qty`` units in one guarded statement; no row means not enough stock."""
    stmt = (
        update(Inventory)
        .where(Inventory.product_id == product_id, Inventory.in_stock >= qty)
        .values(in_stock=Inventory.in_stock - qty)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        raise InsufficientInventoryError(product_id, qty)


def _snapshot_products(db: Session, lines: list[CartLine]) -> dict[int, Product]:
    ids = [ln.product_id for ln in lines]
    products = {p.id: p for p in db.execute(select(Product).where(Product.id.in_(ids))).scalars()}
    for pid in ids:
        p = products.get(pid)
        if p is None or not p.active:
            raise ProductUnavailableError(pid)
    return products


def _shipping_address(form) -> dict:
    return {
        "first_name": form.first_name,
        "last_name": form.last_name,
        "address": form.address,
        "city": form.city,
        "state": form.state,
        "postal_code": form.postal_code,
        "country": form.country,
    }


def _check_verification(verification: PaymentVerification | None) -> None:
    if verification is None or verification.ok:
        return
    if verification.outcome is VerificationOutcome.NOT_COMPLETED:
        raise PaymentNotCompletedError(verification.intent_ref, verification.detail)
    raise PaymentInvalidError(verification.intent_ref, verification.detail)


def reference_used(db: Session, intent_ref: str) -> bool:
    return db.execute(select(Payment.id).where(Payment.processor_reference == intent_ref)).first() is not None


def _check_settlement(verification: PaymentVerification, total_cents: int, currency: str) -> None:
    """A settled amount, when the gateway reports one, must cover exactly this order."""
    if verification.amount_cents is None:
        return
    paid_currency = (verification.currency or currency).upper()
    if verification.amount_cents != total_cents or paid_currency != currency.upper():
        raise PaymentMismatchError(
            verification.intent_ref,
            f"{verification.amount_cents} {paid_currency}",
            f"{total_cents} {currency.upper()}",
        )


def _is_reference_conflict(exc: IntegrityError) -> bool:
    return "processor_reference" in str(exc.orig)


def commit_order(
    db: Session,
    user_email: str,
    lines: Iterable[CartLine],
    form,
    verification: PaymentVerification | None = None,
    dispatcher=None,
) -> Order:
    lines = list(lines)
    if not lines:
        raise CommitError("Order has no lines")
    _check_verification(verification)
    paid = verification is not None

    try:
        if paid and reference_used(db, verification.intent_ref):
            raise PaymentAlreadyUsedError(verification.intent_ref)
        products = _snapshot_products(db, lines)
        order = Order(
            order_number=unique_order_number(db),
            user_email=user_email,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.COMPLETED if paid else PaymentStatus.PENDING,
            fulfillment_status=FulfillmentStatus.UNFULFILLED,
            currency=settings.CURRENCY,
            customer_email=form.email,
            customer_phone=form.phone,
            shipping_address=_shipping_address(form),
        )
        subtotal = 0
        for ln in lines:
            p = products[ln.product_id]
            line_total = p.price_cents * ln.quantity
            subtotal += line_total
            order.items.append(
                OrderItem(
                    product_id=p.id,
                    product_name_snapshot=p.title,
                    sku_snapshot=p.sku,
                    quantity=ln.quantity,
                    unit_price_cents=p.price_cents,
                    line_total_cents=line_total,
                )
            )
        order.subtotal_cents = subtotal
        order.tax_cents = 0
        order.shipping_cents = 0
        order.discount_cents = 0
        order.total_cents = subtotal
        if paid:
            _check_settlement(verification, order.total_cents, order.currency)
        db.add(order)
        db.flush()

        if paid:
            db.add(
                Payment(
                    order_id=order.id,
                    status=PaymentStatus.COMPLETED,
                    method=verification.method,
                    amount_cents=(
                        verification.amount_cents if verification.amount_cents is not None else order.total_cents
                    ),
                    currency=(verification.currency or order.currency).upper(),
                    processor_reference=verification.intent_ref,
                )
            )

        # fixed lock order across concurrent commits
        for ln in sorted(lines, key=lambda x: x.product_id):
            if products[ln.product_id].track_inventory:
                decrement_inventory(db, ln.product_id, ln.quantity)

        db.commit()
    except StorefrontError as exc:
        db.rollback()
        logger.warning("Order commit rolled back", user=user_email, error=str(exc))
        raise
    except IntegrityError as exc:
        db.rollback()
        if paid and _is_reference_conflict(exc):
            # a concurrent commit claimed the same intent after the lookup above
            logger.warning("Payment intent reused", user=user_email, intent_ref=verification.intent_ref)
            raise PaymentAlreadyUsedError(verification.intent_ref) from exc
        logger.error("Order commit failed", user=user_email, error=str(exc))
        raise CommitError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Order commit failed", user=user_email, error=str(exc))
        raise CommitError() from exc

    db.refresh(order)
    logger.info(
        "Order committed",
        order_id=order.id,
        order_number=order.order_number,
        total_cents=order.total_cents,
        lines=len(lines),
    )

    if dispatcher is not None:
        try:
            dispatcher.order_placed(order_notification_payload(order))
        except Exception as exc:
            logger.error("Order notifications not queued", order_number=order.order_number, error=str(exc))
    return order


def order_notification_payload(order: Order) -> dict:
    addr = order.shipping_address or {}
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": f"{addr.get('first_name', '')} {addr.get('last_name', '')}".strip(),
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "items": [
            {
                "name": it.product_name_snapshot,
                "sku": it.sku_snapshot,
                "quantity": it.quantity,
                "unit_price_cents": it.unit_price_cents,
                "line_total_cents": it.line_total_cents,
            }
            for it in order.items
        ],
        "subtotal_cents": order.subtotal_cents,
        "tax_cents": order.tax_cents,
        "shipping_cents": order.shipping_cents,
        "discount_cents": order.discount_cents,
        "total_cents": order.total_cents,
        "currency": order.currency,
        "shipping_address": addr,
    }


def _with_children(stmt):
    return stmt.options(
        selectinload(Order.items), selectinload(Order.payment), selectinload(Order.shipment)
    )


def list_orders_for_user(db: Session, user_email: str) -> list[Order]:
    stmt = _with_children(select(Order).where(Order.user_email == user_email)).order_by(
        Order.created_at.desc(), Order.id.desc()
    )
    return list(db.execute(stmt).scalars())


def get_order(db: Session, order_id: int) -> Order:
    order = db.execute(_with_children(select(Order).where(Order.id == order_id))).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def get_order_for(db: Session, order_id: int, identity: dict) -> Order:
    """Admins see any order; customers only their own (others look missing)."""
    order = get_order(db, order_id)
    if identity.get("role") != "admin" and order.user_email != identity.get("sub"):
        raise OrderNotFoundError(order_id)
    return order


def admin_list_orders(
    db: Session,
    page: int = 1,
    limit: int = 20,
    q: str | None = None,
    status: OrderStatus | None = None,
) -> tuple[list[Order], dict]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    conditions = []
    if q:
        pattern = f"%{q.lower()}%"
        conditions.append(
            or_(func.lower(Order.order_number).like(pattern), func.lower(Order.customer_email).like(pattern))
        )
    if status:
        conditions.append(Order.status == status)

    total = db.execute(select(func.count(Order.id)).where(*conditions)).scalar_one()
    stmt = (
        _with_children(select(Order).where(*conditions))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = list(db.execute(stmt).scalars())
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return orders, pagination
