from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_cart_store, get_db
from storefront.core.auth import get_current_identity
from storefront.errors import ProductUnavailableError
from storefront.schemas import CartItemAdd, CartItemUpdate, CartRead
from storefront.services.cart import Cart
from storefront.services.catalog import cart_product
from storefront.store.cart_store import CartStore

router = APIRouter()

def cart_view(cart: Cart) -> dict:
    data = cart.to_dict()
    for raw, line in zip(data["lines"], cart.lines):
        raw["line_total_cents"] = line.line_total_cents
    return data

@router.get("/v1/cart", response_model=CartRead)
def get_my_cart(identity: dict = Depends(get_current_identity), store: CartStore = Depends(get_cart_store)):
    return cart_view(store.load(identity["sub"]))

@router.post("/v1/cart/items", response_model=CartRead, status_code=201)
def add_item(
    payload: CartItemAdd,
    identity: dict = Depends(get_current_identity),
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
):
    email = identity["sub"]
    try:
        product = cart_product(db, payload.product_id)
    except ProductUnavailableError:
        raise HTTPException(status_code=404, detail="Product not found")
    cart = store.load(email).add(product, payload.qty)
    return cart_view(store.save(email, cart))

@router.patch("/v1/cart/items/{product_id}", response_model=CartRead)
def update_item(
    product_id: int,
    payload: CartItemUpdate,
    identity: dict = Depends(get_current_identity),
    store: CartStore = Depends(get_cart_store),
):
    email = identity["sub"]
    cart = store.load(email)
    if product_id not in cart:
        raise HTTPException(status_code=404, detail="Item not in cart")
    return cart_view(store.save(email, cart.set_quantity(product_id, payload.qty)))

@router.delete("/v1/cart/items/{product_id}", response_model=CartRead)
def remove_item(product_id: int, identity: dict = Depends(get_current_identity), store: CartStore = Depends(get_cart_store)):
    email = identity["sub"]
    return cart_view(store.save(email, store.load(email).remove(product_id)))

@router.post("/v1/cart/clear", response_model=CartRead)
def clear(identity: dict = Depends(get_current_identity), store: CartStore = Depends(get_cart_store)):
    return cart_view(store.clear(identity["sub"]))
