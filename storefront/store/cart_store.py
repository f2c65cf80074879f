
import json
from redis import Redis
import structlog
from storefront.core.config import settings
from storefront.services.cart import Cart

logger = structlog.get_logger(__name__)

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def cart_key(email: str) -> str:
    return f"cart:{email}"

class CartStore:
    """Whole-cart snapshots in Redis, one key per user.

    Last write wins; concurrent sessions of the same user are not merged.
    """

    def __init__(self, client: Redis | None = None):
        self.client = client or get_client()

    def load(self, email: str) -> Cart:
        raw = self.client.get(cart_key(email))
        if not raw:
            return Cart()
        try:
            return Cart.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable cart snapshot", user=email, error=str(exc))
            return Cart()

    def save(self, email: str, cart: Cart) -> Cart:
        if cart.is_empty:
            self.client.delete(cart_key(email))
        else:
            self.client.set(cart_key(email), json.dumps(cart.to_dict()))
        return cart

    def clear(self, email: str) -> Cart:
        self.client.delete(cart_key(email))
        return Cart()
