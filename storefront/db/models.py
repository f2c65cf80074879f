
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, ForeignKey, BigInteger, JSON,
    Enum as SAEnum, CheckConstraint, UniqueConstraint, event, inspect,
)
from datetime import datetime, timezone
from enum import Enum
from storefront.db.session import Base
from storefront.errors import ImmutableRecordError

def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class FulfillmentStatus(str, Enum):
    UNFULFILLED = "UNFULFILLED"
    FULFILLED = "FULFILLED"

class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"

class Product(Base):
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(240), nullable=False)
    slug: Mapped[str] = mapped_column(String(240), unique=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, default='')
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default='USD')
    image_url: Mapped[str] = mapped_column(String(1024), default='')
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)
    inventory = relationship('Inventory', back_populates='product', uselist=False, cascade='all, delete-orphan')

class Inventory(Base):
    __tablename__ = 'inventory'
    __table_args__ = (CheckConstraint("in_stock >= 0", name="ck_inventory_in_stock_nonnegative"),)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'), primary_key=True)
    in_stock: Mapped[int] = mapped_column(Integer, default=0)
    reorder_level: Mapped[int] = mapped_column(Integer, default=10)
    product = relationship('Product', back_populates='inventory')

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    user_email: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus), default=OrderStatus.PENDING)
    payment_status: Mapped[PaymentStatus] = mapped_column(SAEnum(PaymentStatus), default=PaymentStatus.PENDING)
    fulfillment_status: Mapped[FulfillmentStatus] = mapped_column(
        SAEnum(FulfillmentStatus), default=FulfillmentStatus.UNFULFILLED
    )
    subtotal_cents: Mapped[int] = mapped_column(BigInteger)
    tax_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    shipping_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    discount_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    customer_email: Mapped[str] = mapped_column(String(255))
    customer_phone: Mapped[str] = mapped_column(String(40), default="")
    shipping_address: Mapped[dict] = mapped_column(JSON, default=dict)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payment = relationship("Payment", back_populates="order", uselist=False, cascade="all, delete-orphan")
    shipment = relationship("Shipment", back_populates="order", uselist=False, cascade="all, delete-orphan")

# Fields an admin transition may write; everything else on the header is frozen at commit.
ORDER_MUTABLE_FIELDS = {"status", "payment_status", "fulfillment_status", "shipped_at", "updated_at"}

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[int] = mapped_column(Integer)
    product_name_snapshot: Mapped[str] = mapped_column(String(240))
    sku_snapshot: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger)
    line_total_cents: Mapped[int] = mapped_column(BigInteger)

    order = relationship("Order", back_populates="items")

class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("processor_reference", name="uq_payments_processor_reference"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    status: Mapped[PaymentStatus] = mapped_column(SAEnum(PaymentStatus), default=PaymentStatus.COMPLETED)
    method: Mapped[str] = mapped_column(String(32))
    amount_cents: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    processor_reference: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    order = relationship("Order", back_populates="payment")

class Shipment(Base):
    __tablename__ = "shipments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    status: Mapped[ShipmentStatus] = mapped_column(SAEnum(ShipmentStatus), default=ShipmentStatus.PENDING)
    carrier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    estimated_delivery: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)

    order = relationship("Order", back_populates="shipment")

class SiteSetting(Base):
    __tablename__ = "site_settings"
    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)


def _changed_fields(target) -> list[str]:
    state = inspect(target)
    return [a.key for a in state.attrs if a.history.has_changes()]

@event.listens_for(Order, "before_update")
def _freeze_order_header(mapper, connection, target):
    frozen = [f for f in _changed_fields(target) if f not in ORDER_MUTABLE_FIELDS and f in mapper.columns]
    if frozen:
        raise ImmutableRecordError("orders", frozen)

@event.listens_for(OrderItem, "before_update")
def _freeze_order_item(mapper, connection, target):
    changed = [f for f in _changed_fields(target) if f in mapper.columns]
    if changed:
        raise ImmutableRecordError("order_items", changed)
