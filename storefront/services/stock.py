"""Low-stock scan and the admin alert built on it.

A product is low when it tracks inventory and sits at or below its reorder
level, or when it has nothing left at all.
"""

import threading

import structlog
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from storefront.db.models import Inventory, Product
from storefront.db.session import SessionLocal
from storefront.notifications import NotificationKind

logger = structlog.get_logger(__name__)


def scan(db: Session) -> list[dict]:
    stmt = (
        select(Product, Inventory)
        .join(Inventory, Inventory.product_id == Product.id)
        .where(
            Product.active.is_(True),
            or_(
                (Product.track_inventory.is_(True)) & (Inventory.in_stock <= Inventory.reorder_level),
                Inventory.in_stock == 0,
            ),
        )
        .order_by(Inventory.in_stock.asc(), Product.id.asc())
    )
    products = [
        {
            "id": p.id,
            "name": p.title,
            "sku": p.sku,
            "in_stock": inv.in_stock,
            "reorder_level": inv.reorder_level,
        }
        for p, inv in db.execute(stmt).all()
    ]
    logger.info("Stock scan complete", low_stock=len(products))
    return products


def alert(db: Session, dispatcher) -> tuple[bool, list[dict]]:
    """One aggregated e-mail to the admin address; nothing when stock is fine."""
    products = scan(db)
    if not products:
        return False, products
    queued = dispatcher.send(NotificationKind.LOW_STOCK_ALERT, None, {"products": products})
    return queued, products


class StockMonitor:
    """Runs ``alert`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, dispatcher, session_factory=SessionLocal):
        self.interval = interval
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _run(self):
        while not self._stop.wait(self.interval):
            db = self.session_factory()
            try:
                alert(db, self.dispatcher)
            except Exception as exc:
                logger.error("Periodic stock scan failed", error=str(exc))
            finally:
                db.close()

    def start(self):
        if self.interval <= 0 or (self._thread and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="stock-monitor")
        self._thread.start()
        logger.info("Stock monitor started", interval=self.interval)

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
