# app/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import NotFound
from app.domain.schemas import OrderOut, OrderStatusIn
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("", response_model=List[OrderOut])
def list_orders(user_id: int = Query(..., gt=0), db: Session = Depends(get_db)):
    """
    Historia zamówień użytkownika, najnowsze pierwsze.
    """
    return get_service(db).list_orders(user_id)


@router.get("/admin/all", response_model=List[OrderOut])
def list_all_orders(db: Session = Depends(get_db)):
    return get_service(db).list_all_orders()


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: int, payload: OrderStatusIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.update_status(order_id, payload.status)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
