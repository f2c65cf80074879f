from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_cart_store, get_db, get_dispatcher, get_gateway, get_verifier
from storefront.core.auth import get_current_identity
from storefront.core.config import settings
from storefront.errors import CheckoutValidationError, PaymentGatewayError
from storefront.schemas import CreateIntent, IntentResponse
from storefront.services.checkout import CheckoutCoordinator

router = APIRouter()

@router.post("/v1/payments/create-intent", response_model=IntentResponse)
def create_intent(
    payload: CreateIntent,
    identity: dict = Depends(get_current_identity),
    db: Session = Depends(get_db),
    store=Depends(get_cart_store),
    gateway=Depends(get_gateway),
    verifier=Depends(get_verifier),
    dispatcher=Depends(get_dispatcher),
):
    coordinator = CheckoutCoordinator(db, store, verifier, gateway, dispatcher)
    try:
        intent = coordinator.start_payment(identity["sub"], payload.amount_cents, payload.currency)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return IntentResponse(
        payment_intent_id=intent.ref,
        client_secret=intent.client_secret,
        amount_cents=intent.amount_cents,
        currency=intent.currency,
        demo_mode=settings.demo_mode,
    )

@router.get("/v1/demo-status")
def demo_status():
    return {"demo_mode": settings.demo_mode, "currency": settings.CURRENCY}
