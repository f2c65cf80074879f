from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.db.models import Inventory, Product
from storefront.errors import ProductUnavailableError


def product_view(p: Product) -> dict:
    inv = p.inventory
    return {
        "id": p.id,
        "title": p.title,
        "slug": p.slug,
        "sku": p.sku,
        "description": p.description,
        "price_cents": p.price_cents,
        "currency": p.currency,
        "image_url": p.image_url,
        "active": p.active,
        "track_inventory": p.track_inventory,
        "in_stock": inv.in_stock if inv else 0,
        "reorder_level": inv.reorder_level if inv else 0,
    }


def create_product(db: Session, values: dict) -> Product:
    values = dict(values)
    in_stock = values.pop("in_stock", 0)
    reorder_level = values.pop("reorder_level", 10)
    obj = Product(**values)
    db.add(obj)
    db.add(Inventory(product=obj, in_stock=in_stock, reorder_level=reorder_level))
    db.commit()
    db.refresh(obj)
    return obj


def sku_taken(db: Session, sku: str, slug: str) -> bool:
    stmt = select(Product.id).where((Product.sku == sku) | (Product.slug == slug))
    return db.execute(stmt).first() is not None


def cart_product(db: Session, product_id: int) -> dict:
    """Live product fields a cart line is built from."""
    p = db.get(Product, product_id)
    if p is None or not p.active:
        raise ProductUnavailableError(product_id)
    inv = p.inventory
    return {
        "product_id": p.id,
        "name": p.title,
        "unit_price_cents": p.price_cents,
        "available_inventory": inv.in_stock if inv else 0,
        "image": p.image_url or "",
        "slug": p.slug,
    }


def restock(db: Session, items: list[tuple[int, int]]) -> None:
    for product_id, qty in items:
        if db.get(Product, product_id) is None:
            raise ProductUnavailableError(product_id)
        res = db.execute(
            update(Inventory)
            .where(Inventory.product_id == product_id)
            .values(in_stock=Inventory.in_stock + qty)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            db.add(Inventory(product_id=product_id, in_stock=qty))
    db.commit()
