# app/api/__init__.py
import uuid

from fastapi import FastAPI, Request

from app.api.routers import carts, checkout, coupons, orders
from app.api.routers.health import router as health_router
from app.utils.logging import REQUEST_ID_CTX


def create_app():
    app = FastAPI(title="Storefront Checkout", version="1.0.0")

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = REQUEST_ID_CTX.set(request_id)
        try:
            response = await call_next(request)
        finally:
            REQUEST_ID_CTX.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(health_router)
    app.include_router(carts.router)
    app.include_router(coupons.router)
    app.include_router(checkout.router)
    app.include_router(orders.router)
    return app
