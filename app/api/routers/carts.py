#app/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import CartLineIn, CartLineQtyIn, CartOut, CartClearedOut
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db)


@router.get("", response_model=CartOut)
def get_cart(user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    return get_service(db).get_cart(user_id)


@router.post("/items", response_model=CartOut, status_code=201)
def add_line(payload: CartLineIn, user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.add_line(
            user_id=user_id,
            product_id=payload.product_id,
            quantity=payload.quantity,
            size=payload.size,
            color=payload.color,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/items/{line_id}", response_model=CartOut)
def update_line(line_id: int, payload: CartLineQtyIn, user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.update_line_qty(user_id, line_id, payload.quantity)
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/items/{line_id}", response_model=CartOut)
def remove_line(line_id: int, user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.remove_line(user_id, line_id)
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("", response_model=CartClearedOut)
def clear_cart(user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    return get_service(db).clear(user_id)
