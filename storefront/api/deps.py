from storefront.db.session import get_db  # noqa: F401
from storefront.notifications.dispatcher import NotificationDispatcher, get_dispatcher as _get_dispatcher
from storefront.services.payment import PaymentGateway, PaymentVerifier, get_gateway as _get_gateway, get_verifier as _get_verifier
from storefront.store.cart_store import CartStore

_cart_store: CartStore | None = None

def get_cart_store() -> CartStore:
    global _cart_store
    if _cart_store is None:
        _cart_store = CartStore()
    return _cart_store

def get_gateway() -> PaymentGateway:
    return _get_gateway()

def get_verifier() -> PaymentVerifier:
    return _get_verifier()

def get_dispatcher() -> NotificationDispatcher:
    return _get_dispatcher()
