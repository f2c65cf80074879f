from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from storefront.db.models import OrderStatus, PaymentStatus, FulfillmentStatus, ShipmentStatus

class ShippingForm(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=10, max_length=40)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=5)
    country: str = Field(min_length=1)

# --- cart ---
class CartItemAdd(BaseModel):
    product_id: int
    qty: int = Field(default=1, ge=1)

class CartItemUpdate(BaseModel):
    qty: int

class CartLineRead(BaseModel):
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    available_inventory: int
    image: str = ""
    slug: str = ""
    line_total_cents: int

class CartRead(BaseModel):
    lines: List[CartLineRead] = []
    total_cents: int = 0
    item_count: int = 0

# --- payments ---
class CreateIntent(BaseModel):
    amount_cents: Optional[int] = None
    currency: Optional[str] = None

class IntentResponse(BaseModel):
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    currency: str
    demo_mode: bool

# --- orders ---
class CheckoutRequest(BaseModel):
    shipping: ShippingForm
    payment_intent_id: str = Field(min_length=1)

class CheckoutResponse(BaseModel):
    order_id: int
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    total_cents: int
    currency: str

class OrderItemRead(BaseModel):
    product_id: int
    product_name_snapshot: str
    sku_snapshot: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    class Config: from_attributes = True

class PaymentRead(BaseModel):
    status: PaymentStatus
    method: str
    amount_cents: int
    currency: str
    processor_reference: str
    class Config: from_attributes = True

class ShipmentRead(BaseModel):
    status: ShipmentStatus
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: int
    order_number: str
    user_email: str
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int
    currency: str
    customer_email: str
    customer_phone: str
    shipping_address: dict
    shipped_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead] = []
    payment: Optional[PaymentRead] = None
    shipment: Optional[ShipmentRead] = None
    class Config: from_attributes = True

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

class OrderPage(BaseModel):
    orders: List[OrderRead]
    pagination: Pagination

class OrderTransition(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    fulfillment_status: Optional[FulfillmentStatus] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None

# --- catalog / stock ---
class ProductCreate(BaseModel):
    title: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    sku: str = Field(min_length=1)
    description: Optional[str] = ''
    price_cents: int = Field(ge=0)
    currency: str = 'USD'
    image_url: Optional[str] = ''
    active: bool = True
    track_inventory: bool = True
    in_stock: int = Field(default=0, ge=0)
    reorder_level: int = Field(default=10, ge=0)

class ProductRead(BaseModel):
    id: int
    title: str
    slug: str
    sku: str
    description: Optional[str] = ''
    price_cents: int
    currency: str
    image_url: Optional[str] = ''
    active: bool
    track_inventory: bool
    in_stock: int
    reorder_level: int

class RestockItem(BaseModel):
    product_id: int
    qty: int = Field(ge=1)

class RestockRequest(BaseModel):
    items: List[RestockItem]

class LowStockProduct(BaseModel):
    id: int
    name: str
    sku: str
    in_stock: int
    reorder_level: int

class LowStockScan(BaseModel):
    products: List[LowStockProduct]
    count: int

class LowStockAlert(BaseModel):
    alerted: bool
    message: str
    products: List[LowStockProduct]

# --- notifications ---
class MailSettings(BaseModel):
    transportType: Optional[str] = None
    smtpHost: Optional[str] = None
    smtpPort: Optional[str] = None
    smtpUser: Optional[str] = None
    smtpPassword: Optional[str] = None
    fromEmail: Optional[str] = None
    fromName: Optional[str] = None
    mailApiUrl: Optional[str] = None
    mailApiKey: Optional[str] = None
    adminNotificationEmail: Optional[str] = None

class TestEmail(BaseModel):
    to: EmailStr
