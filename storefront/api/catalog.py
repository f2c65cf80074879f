from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_dispatcher
from storefront.core.auth import require_admin
from storefront.db.models import Product
from storefront.errors import ProductUnavailableError
from storefront.schemas import LowStockAlert, LowStockScan, ProductCreate, ProductRead, RestockRequest
from storefront.services import catalog, stock

router = APIRouter()

@router.post("/v1/products", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, _=Depends(require_admin), db: Session = Depends(get_db)):
    if catalog.sku_taken(db, payload.sku, payload.slug):
        raise HTTPException(status_code=409, detail="SKU or slug already exists")
    return catalog.product_view(catalog.create_product(db, payload.model_dump()))

@router.get("/v1/products/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    obj = db.get(Product, product_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Product not found")
    return catalog.product_view(obj)

@router.post("/v1/inventory/restock")
def restock(req: RestockRequest, _=Depends(require_admin), db: Session = Depends(get_db)):
    try:
        catalog.restock(db, [(it.product_id, it.qty) for it in req.items])
    except ProductUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "restocked"}

@router.get("/v1/admin/stock/low", response_model=LowStockScan)
def low_stock(_=Depends(require_admin), db: Session = Depends(get_db)):
    products = stock.scan(db)
    return {"products": products, "count": len(products)}

@router.post("/v1/admin/stock/alerts", response_model=LowStockAlert)
def low_stock_alert(_=Depends(require_admin), db: Session = Depends(get_db), dispatcher=Depends(get_dispatcher)):
    alerted, products = stock.alert(db, dispatcher)
    if not products:
        message = "All products are adequately stocked"
    elif alerted:
        message = f"Low stock alert queued for {len(products)} product(s)"
    else:
        message = "Low stock alert could not be queued"
    return {"alerted": alerted, "message": message, "products": products}
