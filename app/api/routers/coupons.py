# app/api/routers/coupons.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import CouponCreate, CouponOut, CouponValidateIn, CouponValidateOut
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


def get_service(db: Session):
    return CouponService(db)


@router.get("", response_model=List[CouponOut])
def list_coupons(db: Session = Depends(get_db)):
    return get_service(db).list_coupons()


@router.post("", response_model=CouponOut, status_code=201)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)):
    try:
        return get_service(db).create_coupon(payload)
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    try:
        get_service(db).delete_coupon(coupon_id)
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/validate", response_model=CouponValidateOut)
def validate_coupon(payload: CouponValidateIn, db: Session = Depends(get_db)):
    """
    Podglad kuponu w koszyku. Nie rezerwuje uzycia, licznik rosnie dopiero przy zamowieniu.
    """
    try:
        coupon = get_service(db).validate(payload.code)
    except CheckoutError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
    return {"code": coupon.code, "discount_percent": coupon.discount_percent}
