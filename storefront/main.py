from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
import structlog

from storefront.version import VERSION
from storefront.api import cart, catalog, notifications, orders, payments
from storefront.core.config import settings
from storefront.core.logging import configure_logging
from storefront.kafka import consumer as notification_consumer
from storefront.notifications.dispatcher import get_dispatcher, get_mailer, shutdown_dispatcher
from storefront.services.stock import StockMonitor

logger = structlog.get_logger(__name__)

instrumentator = Instrumentator()

app = FastAPI(title="Storefront Service", version=VERSION)

instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

_stock_monitor: StockMonitor | None = None

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION, "demo_mode": settings.demo_mode}

@app.on_event("startup")
async def startup_event():
    global _stock_monitor
    configure_logging()
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("Route registered", methods=sorted(route.methods), path=route.path)

    dispatcher = get_dispatcher()
    if settings.NOTIFY_BACKEND == "kafka":
        notification_consumer.start(get_mailer())
    _stock_monitor = StockMonitor(settings.STOCK_SCAN_INTERVAL_SECONDS, dispatcher)
    _stock_monitor.start()
    logger.info("Storefront started", notify_backend=settings.NOTIFY_BACKEND, demo_mode=settings.demo_mode)

@app.on_event("shutdown")
async def shutdown_event():
    if _stock_monitor is not None:
        _stock_monitor.stop()
    if settings.NOTIFY_BACKEND == "kafka":
        notification_consumer.stop()
    shutdown_dispatcher()

app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(payments.router, prefix="/payment", tags=["payments"])
app.include_router(orders.router, prefix="/order", tags=["orders"])
app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
