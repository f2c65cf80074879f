import structlog
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.db.models import Order
from storefront.errors import CheckoutValidationError, EmptyCartError
from storefront.services.orders import commit_order
from storefront.services.payment import PaymentGateway, PaymentIntent, PaymentVerifier
from storefront.store.cart_store import CartStore

logger = structlog.get_logger(__name__)


class CheckoutCoordinator:
    """Cart -> payment intent -> verified commit -> cleared cart.

    A failure at any step leaves the stored cart exactly as it was so the
    customer can retry.
    """

    def __init__(
        self,
        db: Session,
        cart_store: CartStore,
        verifier: PaymentVerifier,
        gateway: PaymentGateway,
        dispatcher=None,
    ):
        self.db = db
        self.cart_store = cart_store
        self.verifier = verifier
        self.gateway = gateway
        self.dispatcher = dispatcher

    def start_payment(self, email: str, amount_cents: int | None = None, currency: str | None = None) -> PaymentIntent:
        if amount_cents is None:
            cart = self.cart_store.load(email)
            if cart.is_empty:
                raise EmptyCartError()
            amount_cents = cart.total_cents
        if amount_cents < settings.MIN_CHARGE_CENTS:
            raise CheckoutValidationError(f"Amount must be at least {settings.MIN_CHARGE_CENTS} cents")
        intent = self.gateway.create_intent(amount_cents, (currency or settings.CURRENCY).upper())
        logger.info("Payment intent created", user=email, intent_ref=intent.ref, amount_cents=amount_cents)
        return intent

    def place_order(self, email: str, form, intent_ref: str) -> Order:
        cart = self.cart_store.load(email)
        if cart.is_empty:
            raise EmptyCartError()
        verification = self.verifier.require(intent_ref)
        order = commit_order(self.db, email, cart.lines, form, verification, self.dispatcher)
        self.cart_store.clear(email)
        return order

    def checkout(self, email: str, form) -> Order:
        """Both steps at once, for callers that settle the intent themselves."""
        intent = self.start_payment(email)
        return self.place_order(email, form, intent.ref)
