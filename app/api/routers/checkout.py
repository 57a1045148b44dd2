# app/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import CaptureIn, CaptureOut, FinalizeIn, IntentIn, IntentOut, OrderOut
from app.services.checkout_service import OrderFinalizer
from app.services.lock_service import LockService
from app.services.notification_service import NotificationService
from app.services.providers import get_payment_gateway
from app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_finalizer(db: Session = Depends(get_db)) -> OrderFinalizer:
    return OrderFinalizer(
        db=db,
        gateway=get_payment_gateway(),
        lock_service=LockService(),
        notifications=NotificationService(),
    )


def _http_error(e: CheckoutError) -> HTTPException:
    if getattr(e, "requires_reconciliation", False):
        # pieniadze pobrane, zamowienia brak - zawsze z capture_id w odpowiedzi
        logger.error(f"Checkout failed after capture: {e}", extra={"detail": e.to_dict()})
    return HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/intent", response_model=IntentOut, status_code=201)
def create_intent(
    payload: IntentIn,
    user_id: int = Query(..., gt=0),
    finalizer: OrderFinalizer = Depends(get_finalizer),
):
    """
    Przeglad koszyka i utworzenie intencji platnosci na kwote policzona przez serwer.
    """
    try:
        attempt = finalizer.create_intent(user_id, payload.coupon_code, payload.client_total)
    except CheckoutError as e:
        raise _http_error(e)

    review = attempt.review
    return {
        "intent_id": attempt.intent_id,
        "status": attempt.intent.status,
        "subtotal": review.subtotal,
        "discount": review.discount,
        "total": review.total,
        "currency": review.currency,
        "dropped_product_ids": review.dropped_product_ids,
        "approve_url": attempt.intent.approve_url,
    }


@router.post("/capture", response_model=CaptureOut)
def capture(payload: CaptureIn, finalizer: OrderFinalizer = Depends(get_finalizer)):
    try:
        result = finalizer.capture(payload.intent_id)
    except CheckoutError as e:
        raise _http_error(e)
    return {"intent_id": result.intent_id, "capture_id": result.capture_id, "status": result.status}


@router.post("/finalize", response_model=OrderOut, status_code=201)
def finalize(
    payload: FinalizeIn,
    user_id: int = Query(..., gt=0),
    finalizer: OrderFinalizer = Depends(get_finalizer),
):
    """
    Capture (idempotentny) i zapis zamowienia w jednej transakcji.
    """
    try:
        return finalizer.finalize(
            user_id=user_id,
            address_id=payload.address_id,
            payment_id=payload.payment_id,
            coupon_code=payload.coupon_code,
        )
    except CheckoutError as e:
        raise _http_error(e)
