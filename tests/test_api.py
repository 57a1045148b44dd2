"""HTTP surface: routers, status mapping and request id propagation."""
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.api import create_app
from app.api.routers.checkout import get_finalizer
from app.data.database import get_db

from tests.conftest import OTHER_USER_ID, USER_ID


@pytest.fixture
def client(session_factory, catalog, make_finalizer):
    app = create_app()

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_finalizer(db: Session = Depends(get_db)):
        return make_finalizer(db)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_finalizer] = override_finalizer
    return TestClient(app)


def _add(client, product_id, quantity=1, **variant):
    return client.post(
        "/cart/items",
        params={"user_id": USER_ID},
        json={"product_id": product_id, "quantity": quantity, **variant},
    )


def _intent(client, **body):
    r = client.post("/checkout/intent", params={"user_id": USER_ID}, json=body)
    assert r.status_code == 201, r.text
    return r.json()


def _finalize(client, catalog, payment_id, **body):
    return client.post(
        "/checkout/finalize",
        params={"user_id": USER_ID},
        json={"address_id": catalog["address"], "payment_id": payment_id, **body},
    )


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["components"]["db"]["ok"] is True


def test_payments_health_with_stub(client):
    assert client.get("/health/payments").json()["ok"] is True


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_cart_endpoints(client, catalog):
    r = _add(client, catalog["shirt"], 2, size="M")
    assert r.status_code == 201
    line_id = r.json()["items"][0]["line_id"]
    assert Decimal(r.json()["subtotal"]) == Decimal("40.00")

    r = client.patch(f"/cart/items/{line_id}", params={"user_id": USER_ID}, json={"quantity": 3})
    assert r.json()["items"][0]["quantity"] == 3

    r = client.delete(f"/cart/items/{line_id}", params={"user_id": USER_ID})
    assert r.json()["items"] == []

    assert client.delete("/cart", params={"user_id": USER_ID}).status_code == 200
    assert client.delete("/cart", params={"user_id": USER_ID}).status_code == 200


def test_invalid_quantity_and_unknown_product(client, catalog):
    r = _add(client, catalog["shirt"], 0)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_QUANTITY"

    r = _add(client, 999, 1)
    assert r.status_code == 404
    assert client.delete("/cart/items/42", params={"user_id": USER_ID}).status_code == 404


def test_coupon_admin_and_validation(client, now):
    payload = {
        "code": "OLD",
        "discount_percent": "20",
        "start_date": (now - timedelta(days=10)).isoformat(),
        "end_date": (now - timedelta(days=1)).isoformat(),
        "usage_limit": 3,
    }
    r = client.post("/coupons", json=payload)
    assert r.status_code == 201
    assert client.post("/coupons", json=payload).status_code == 409

    r = client.post("/coupons/validate", json={"code": "OLD"})
    assert r.status_code == 422
    assert r.json()["detail"]["reason"] == "EXPIRED"

    r = client.post("/coupons/validate", json={"code": "SAVE10"})
    assert r.status_code == 200
    assert Decimal(r.json()["discount_percent"]) == Decimal("10.00")

    codes = [c["code"] for c in client.get("/coupons").json()]
    assert codes == ["SAVE10", "OLD"]


def test_coupon_window_must_be_ordered(client, now):
    r = client.post(
        "/coupons",
        json={
            "code": "BACKWARDS",
            "discount_percent": "5",
            "start_date": now.isoformat(),
            "end_date": (now - timedelta(days=1)).isoformat(),
            "usage_limit": 1,
        },
    )
    assert r.status_code == 422


def test_full_checkout_with_coupon(client, catalog):
    _add(client, catalog["shirt"], 2, size="M")
    intent = _intent(client, coupon_code="SAVE10", client_total="40.00")
    assert Decimal(intent["total"]) == Decimal("36.00")
    assert Decimal(intent["discount"]) == Decimal("4.00")
    assert intent["currency"] == "GBP"

    r = _finalize(client, catalog, intent["intent_id"], coupon_code="SAVE10")
    assert r.status_code == 201, r.text
    order = r.json()
    assert Decimal(order["total_amount"]) == Decimal("36.00")
    assert order["payment_intent_id"] == intent["intent_id"]
    assert order["items"][0]["product_name"] == "Linen shirt"

    assert client.get("/cart", params={"user_id": USER_ID}).json()["items"] == []

    orders = client.get("/orders", params={"user_id": USER_ID}).json()
    assert [o["id"] for o in orders] == [order["id"]]
    assert client.get(f"/orders/{order['id']}", params={"user_id": USER_ID}).status_code == 200
    assert client.get(f"/orders/{order['id']}", params={"user_id": OTHER_USER_ID}).status_code == 403
    assert client.get("/orders/999", params={"user_id": USER_ID}).status_code == 404

    r = _finalize(client, catalog, intent["intent_id"], coupon_code="SAVE10")
    assert r.status_code == 409
    assert r.json()["detail"]["order_id"] == order["id"]


def test_separate_capture_then_finalize(client, catalog, gateway):
    _add(client, catalog["shirt"], 1)
    intent = _intent(client)

    r = client.post("/checkout/capture", json={"intent_id": intent["intent_id"]})
    assert r.status_code == 200
    capture_id = r.json()["capture_id"]

    r = _finalize(client, catalog, intent["intent_id"])
    assert r.status_code == 201
    assert r.json()["payment_capture_id"] == capture_id


def test_empty_cart_intent(client, catalog):
    r = client.post("/checkout/intent", params={"user_id": USER_ID}, json={})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "EMPTY_CART"


def test_declined_payment_is_402(client, catalog, gateway):
    _add(client, catalog["shirt"], 1)
    intent = _intent(client)
    gateway.decline[intent["intent_id"]] = "DECLINED"

    r = _finalize(client, catalog, intent["intent_id"])

    assert r.status_code == 402
    assert r.json()["detail"]["status"] == "DECLINED"
    assert len(client.get("/cart", params={"user_id": USER_ID}).json()["items"]) == 1


def test_unknown_intent_capture_is_502(client, catalog):
    r = client.post("/checkout/capture", json={"intent_id": "NOPE"})
    assert r.status_code == 502
    assert r.json()["detail"]["issue"] == "RESOURCE_NOT_FOUND"


def test_insufficient_stock_requires_reconciliation(client, catalog, notifications):
    _add(client, catalog["tote"], 3)
    intent = _intent(client)

    r = _finalize(client, catalog, intent["intent_id"])

    assert r.status_code == 500
    detail = r.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_STOCK"
    assert detail["requires_reconciliation"] is True
    assert detail["capture_id"]
    assert notifications.alerts[0]["capture_id"] == detail["capture_id"]


def test_order_status_update(client, catalog):
    _add(client, catalog["shirt"], 1)
    intent = _intent(client)
    order_id = _finalize(client, catalog, intent["intent_id"]).json()["id"]

    r = client.patch(f"/orders/{order_id}/status", json={"status": "SHIPPED"})
    assert r.status_code == 200
    assert r.json()["status"] == "SHIPPED"

    assert client.patch(f"/orders/{order_id}/status", json={"status": "LOST"}).status_code == 422
    assert client.patch("/orders/999/status", json={"status": "SHIPPED"}).status_code == 404

    all_orders = client.get("/orders/admin/all").json()
    assert [o["id"] for o in all_orders] == [order_id]


def test_finalize_without_intent_coupon_is_rejected_before_capture(client, catalog, gateway, notifications):
    _add(client, catalog["shirt"], 2)
    intent = _intent(client, coupon_code="SAVE10")

    r = _finalize(client, catalog, intent["intent_id"])

    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["code"] == "INTENT_AMOUNT_MISMATCH"
    assert Decimal(detail["intent_amount"]) == Decimal("36.00")
    assert Decimal(detail["cart_total"]) == Decimal("40.00")
    assert gateway.capture_calls == 0
    assert notifications.alerts == []


def test_full_discount_coupon_not_accepted(client, now):
    r = client.post(
        "/coupons",
        json={
            "code": "FREE",
            "discount_percent": "100",
            "start_date": now.isoformat(),
            "end_date": (now + timedelta(days=1)).isoformat(),
            "usage_limit": 1,
        },
    )
    assert r.status_code == 422
