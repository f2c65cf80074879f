"""Payment intents and their verification.

The verifier never trusts a reference on its own: outside demo mode every
reference is looked up at the gateway and only a ``succeeded`` intent counts.
``NotCompleted`` and ``Invalid`` both block checkout; they are kept apart only
so the logs say which one happened.
"""

import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import httpx
import structlog

from storefront.core.config import settings
from storefront.errors import PaymentGatewayError, PaymentInvalidError, PaymentNotCompletedError

logger = structlog.get_logger(__name__)

DEMO_INTENT_PATTERN = re.compile(r"^pi_demo_[0-9a-f]{24}$")


class VerificationOutcome(str, Enum):
    VERIFIED = "VERIFIED"
    NOT_COMPLETED = "NOT_COMPLETED"
    INVALID = "INVALID"


@dataclass(frozen=True)
class PaymentIntent:
    ref: str
    client_secret: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class IntentState:
    ref: str
    status: str
    amount_cents: int | None = None
    currency: str | None = None


@dataclass(frozen=True)
class PaymentVerification:
    intent_ref: str
    outcome: VerificationOutcome
    method: str
    amount_cents: int | None = None
    currency: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is VerificationOutcome.VERIFIED


class PaymentGateway(ABC):
    method = "UNKNOWN"

    @abstractmethod
    def create_intent(self, amount_cents: int, currency: str) -> PaymentIntent:
        ...

    @abstractmethod
    def retrieve_intent(self, ref: str) -> IntentState:
        """Return the settlement state; raise on lookup failure."""
        ...


class DemoGateway(PaymentGateway):
    method = "DEMO"

    def create_intent(self, amount_cents: int, currency: str) -> PaymentIntent:
        ref = f"pi_demo_{secrets.token_hex(12)}"
        return PaymentIntent(ref=ref, client_secret=f"{ref}_secret_demo", amount_cents=amount_cents, currency=currency)

    def retrieve_intent(self, ref: str) -> IntentState:
        if not DEMO_INTENT_PATTERN.match(ref):
            raise LookupError(f"Unknown demo intent {ref}")
        # nothing is charged, so there is no settled amount to report
        return IntentState(ref=ref, status="succeeded")


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents over the REST API."""

    method = "STRIPE"

    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com", timeout: float = 5.0):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.api_base, auth=(self.secret_key, ""), timeout=self.timeout)

    def create_intent(self, amount_cents: int, currency: str) -> PaymentIntent:
        try:
            with self._client() as client:
                resp = client.post(
                    "/v1/payment_intents",
                    data={
                        "amount": amount_cents,
                        "currency": currency.lower(),
                        "metadata[integration_check]": "accept_a_payment",
                    },
                )
        except httpx.RequestError as exc:
            raise PaymentGatewayError(f"Payment gateway unavailable: {exc}") from exc
        if resp.status_code != 200:
            raise PaymentGatewayError(f"Payment gateway rejected intent ({resp.status_code})")
        body = resp.json()
        return PaymentIntent(
            ref=body["id"],
            client_secret=body["client_secret"],
            amount_cents=body["amount"],
            currency=body["currency"].upper(),
        )

    def retrieve_intent(self, ref: str) -> IntentState:
        with self._client() as client:
            resp = client.get(f"/v1/payment_intents/{ref}")
        resp.raise_for_status()
        body = resp.json()
        return IntentState(
            ref=body["id"],
            status=body["status"],
            amount_cents=body.get("amount"),
            currency=(body.get("currency") or "").upper() or None,
        )


class PaymentVerifier:
    def __init__(self, gateway: PaymentGateway, demo_mode: bool = False):
        self.gateway = gateway
        self.demo_mode = demo_mode

    def verify(self, intent_ref: str) -> PaymentVerification:
        if self.demo_mode and DEMO_INTENT_PATTERN.match(intent_ref or ""):
            logger.info("Accepting demo payment intent", intent_ref=intent_ref)
            return PaymentVerification(intent_ref, VerificationOutcome.VERIFIED, method=DemoGateway.method)

        try:
            state = self.gateway.retrieve_intent(intent_ref)
        except Exception as exc:  # timeouts, HTTP errors and unknown refs all fail closed
            logger.warning("Payment intent lookup failed", intent_ref=intent_ref, error=str(exc))
            return PaymentVerification(
                intent_ref, VerificationOutcome.INVALID, method=self.gateway.method, detail=str(exc)
            )

        if state.status != "succeeded":
            logger.warning("Payment intent not settled", intent_ref=intent_ref, state=state.status)
            return PaymentVerification(
                intent_ref,
                VerificationOutcome.NOT_COMPLETED,
                method=self.gateway.method,
                amount_cents=state.amount_cents,
                currency=state.currency,
                detail=state.status,
            )

        logger.info("Payment intent verified", intent_ref=intent_ref)
        return PaymentVerification(
            intent_ref,
            VerificationOutcome.VERIFIED,
            method=self.gateway.method,
            amount_cents=state.amount_cents,
            currency=state.currency,
        )

    def require(self, intent_ref: str) -> PaymentVerification:
        """Verify and raise unless the intent settled."""
        result = self.verify(intent_ref)
        if result.outcome is VerificationOutcome.NOT_COMPLETED:
            raise PaymentNotCompletedError(intent_ref, result.detail)
        if result.outcome is VerificationOutcome.INVALID:
            raise PaymentInvalidError(intent_ref, result.detail)
        return result


_demo_gateway: DemoGateway | None = None

def get_gateway() -> PaymentGateway:
    global _demo_gateway
    if settings.demo_mode:
        if _demo_gateway is None:
            _demo_gateway = DemoGateway()
        return _demo_gateway
    return StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_API_BASE, settings.PAYMENT_TIMEOUT_SECONDS)

def get_verifier() -> PaymentVerifier:
    return PaymentVerifier(get_gateway(), demo_mode=settings.demo_mode)
