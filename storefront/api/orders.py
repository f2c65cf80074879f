from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_cart_store, get_db, get_dispatcher, get_gateway, get_verifier
from storefront.core.auth import get_current_identity, require_admin
from storefront.db.models import OrderStatus
from storefront.errors import (
    CheckoutValidationError, CommitError, IllegalTransitionError, InsufficientInventoryError,
    OrderNotFoundError, PaymentError, ProductUnavailableError, ReviewRequestError,
)
from storefront.schemas import CheckoutRequest, CheckoutResponse, OrderPage, OrderRead, OrderTransition
from storefront.services import fulfillment, orders, reviews
from storefront.services.checkout import CheckoutCoordinator

router = APIRouter()

@router.post("/v1/orders/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(
    payload: CheckoutRequest,
    identity: dict = Depends(get_current_identity),
    db: Session = Depends(get_db),
    store=Depends(get_cart_store),
    gateway=Depends(get_gateway),
    verifier=Depends(get_verifier),
    dispatcher=Depends(get_dispatcher),
):
    coordinator = CheckoutCoordinator(db, store, verifier, gateway, dispatcher)
    try:
        order = coordinator.place_order(identity["sub"], payload.shipping, payload.payment_intent_id)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except (InsufficientInventoryError, ProductUnavailableError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CommitError:
        raise HTTPException(status_code=500, detail="Order could not be placed")
    return CheckoutResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        total_cents=order.total_cents,
        currency=order.currency,
    )

@router.get("/v1/orders", response_model=List[OrderRead])
def my_orders(identity: dict = Depends(get_current_identity), db: Session = Depends(get_db)):
    return orders.list_orders_for_user(db, identity["sub"])

@router.get("/v1/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, identity: dict = Depends(get_current_identity), db: Session = Depends(get_db)):
    try:
        return orders.get_order_for(db, order_id, identity)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")

# --- admin ---
@router.get("/v1/admin/orders", response_model=OrderPage)
def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    q: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows, pagination = orders.admin_list_orders(db, page, limit, q, status)
    return {"orders": rows, "pagination": pagination}

@router.patch("/v1/admin/orders/{order_id}", response_model=OrderRead)
def admin_update_order(
    order_id: int,
    payload: OrderTransition,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    try:
        return fulfillment.transition(db, order_id, dispatcher=dispatcher, **payload.model_dump())
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CommitError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/v1/admin/review-requests", response_model=List[OrderRead])
def review_eligible(_=Depends(require_admin), db: Session = Depends(get_db)):
    return reviews.review_eligible(db)

@router.post("/v1/admin/review-requests/{order_id}")
def send_review_request(
    order_id: int,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    try:
        queued = reviews.request_review(db, order_id, dispatcher)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except ReviewRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"order_id": order_id, "queued": queued}
