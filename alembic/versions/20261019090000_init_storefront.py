from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019090000"
down_revision = None

ORDER_STATUS = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED", "REFUNDED")
PAYMENT_STATUS = ("PENDING", "COMPLETED", "FAILED")
FULFILLMENT_STATUS = ("UNFULFILLED", "FULFILLED")
SHIPMENT_STATUS = ("PENDING", "SHIPPED", "DELIVERED")

UTC_NOW = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=240), nullable=False),
        sa.Column('slug', sa.String(length=240), nullable=False, unique=True),
        sa.Column('sku', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True, server_default=''),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('image_url', sa.String(length=1024), nullable=True, server_default=''),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('track_inventory', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
    )
    op.create_table(
        'inventory',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('in_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='10'),
        sa.CheckConstraint('in_stock >= 0', name='ck_inventory_in_stock_nonnegative'),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=40), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum(*ORDER_STATUS, name='orderstatus'), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUS, name='paymentstatus'), nullable=False, server_default='PENDING'),
        sa.Column('fulfillment_status', sa.Enum(*FULFILLMENT_STATUS, name='fulfillmentstatus'), nullable=False, server_default='UNFULFILLED'),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('tax_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('shipping_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('shipping_address', sa.JSON(), nullable=False),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_email', 'orders', ['user_email'])
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name_snapshot', sa.String(length=240), nullable=False),
        sa.Column('sku_snapshot', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('line_total_cents', sa.BigInteger(), nullable=False),
    )
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('status', postgresql.ENUM(*PAYMENT_STATUS, name='paymentstatus', create_type=False), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('processor_reference', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.UniqueConstraint('processor_reference', name='uq_payments_processor_reference'),
    )
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('status', sa.Enum(*SHIPMENT_STATUS, name='shipmentstatus'), nullable=False, server_default='PENDING'),
        sa.Column('carrier', sa.String(length=64), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('estimated_delivery', sa.DateTime(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
    )
    op.create_table(
        'site_settings',
        sa.Column('key', sa.String(length=64), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=UTC_NOW),
    )

def downgrade():
    op.drop_table('site_settings')
    op.drop_table('shipments')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_index('ix_orders_user_email', table_name='orders')
    op.drop_index('ix_orders_order_number', table_name='orders')
    op.drop_table('orders')
    op.drop_table('inventory')
    op.drop_table('products')
    for name in ('shipmentstatus', 'fulfillmentstatus', 'paymentstatus', 'orderstatus'):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
