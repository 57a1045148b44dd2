# app/api/routers/health.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.services.payment_gateway import PayPalGateway
from app.services.providers import get_payment_gateway

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health(db: Session = Depends(get_db)):
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        db_ok = False
    return JSONResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}}},
        status_code=200 if db_ok else 503,
    )


@router.get("/payments")
def payments_health():
    gateway = get_payment_gateway()
    if not isinstance(gateway, PayPalGateway):
        return {"ok": True, "message": "Stub payment gateway in use", "details": {}}
    result = gateway.check_credentials()
    return JSONResponse(result, status_code=200 if result["ok"] else 503)
