"""HTTP payment gateway adapter.

``requests.Session.request`` is monkeypatched with a small router so each
test drives the gateway's answers; ``time.sleep`` is patched so retries do
not wait.
"""
from decimal import Decimal

import pytest
import requests

from app.domain.checkout import ReviewedLine
from app.domain.errors import GatewayRejected, GatewayUnreachable, PaymentNotCaptured
from app.services.payment_gateway import PayPalGateway, build_purchase_request

BASE = "https://paypal.test"
TOKEN = {"access_token": "T0K3N", "expires_in": 3600}


class DummyResp:
    """Minimal requests-like response."""

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data
        self.content = b"" if json_data is None else b"{...}"

    def json(self):
        if self._json is None:
            raise ValueError("no body")
        return self._json


def _install(monkeypatch, handler):
    calls = []

    def fake_request(self, method, url, **kw):
        calls.append((method, url[len(BASE):], kw))
        if url.endswith("/v1/oauth2/token"):
            return DummyResp(200, TOKEN)
        return handler(method, url[len(BASE):], kw)

    monkeypatch.setattr(requests.Session, "request", fake_request, raising=True)
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)
    return calls


def _api_calls(calls):
    return [c for c in calls if not c[1].endswith("/oauth2/token")]


def _gateway():
    return PayPalGateway(base_url=BASE, client_id="id", client_secret="secret", timeout=1)


def _lines():
    return [ReviewedLine(line_id=1, product_id=7, name="Linen shirt", unit_price=Decimal("20.00"), quantity=2, size="M")]


def _capture_body(status="COMPLETED", value="36.00"):
    return {
        "id": "INT-1",
        "status": "COMPLETED",
        "purchase_units": [
            {
                "payments": {
                    "captures": [
                        {"id": "CAP-1", "status": status, "amount": {"currency_code": "GBP", "value": value}}
                    ]
                }
            }
        ],
    }


# ---- request body ----
def test_purchase_request_breakdown_balances_with_discount():
    body = build_purchase_request(_lines(), Decimal("36.00"), "GBP", Decimal("4.00"))

    amount = body["purchase_units"][0]["amount"]
    assert body["intent"] == "CAPTURE"
    assert amount["value"] == "36.00"
    assert amount["breakdown"]["item_total"]["value"] == "40.00"
    assert amount["breakdown"]["discount"]["value"] == "4.00"
    item = body["purchase_units"][0]["items"][0]
    assert item["unit_amount"]["value"] == "20.00"
    assert item["quantity"] == "2"


def test_purchase_request_without_discount_has_no_discount_entry():
    body = build_purchase_request(_lines(), Decimal("40.00"), "GBP")
    assert "discount" not in body["purchase_units"][0]["amount"]["breakdown"]


@pytest.mark.parametrize(
    "lines,total,discount,issue",
    [
        ([], Decimal("10.00"), Decimal("0"), "EMPTY_ITEMS"),
        (None, Decimal("0.00"), Decimal("40.00"), "NON_POSITIVE_AMOUNT"),
        (None, Decimal("39.99"), Decimal("0"), "UNBALANCED_BREAKDOWN"),
    ],
)
def test_purchase_request_rejected_locally(lines, total, discount, issue):
    with pytest.raises(GatewayRejected) as e:
        build_purchase_request(_lines() if lines is None else lines, total, "GBP", discount)
    assert e.value.issue == issue


# ---- create intent ----
def test_create_intent_ok(monkeypatch):
    def handler(method, path, kw):
        return DummyResp(
            201,
            {"id": "INT-1", "status": "CREATED", "links": [{"rel": "approve", "href": "https://pay/approve"}]},
        )

    calls = _install(monkeypatch, handler)
    intent = _gateway().create_intent(_lines(), Decimal("36.00"), "GBP", Decimal("4.00"))

    assert intent.intent_id == "INT-1"
    assert intent.amount == Decimal("36.00")
    assert intent.approve_url == "https://pay/approve"

    method, path, kw = _api_calls(calls)[0]
    assert (method, path) == ("POST", "/v2/checkout/orders")
    assert kw["headers"]["Authorization"] == "Bearer T0K3N"
    assert kw["headers"]["PayPal-Request-ID"]
    assert kw["json"]["purchase_units"][0]["amount"]["value"] == "36.00"


def test_token_is_reused_between_calls(monkeypatch):
    calls = _install(monkeypatch, lambda m, p, kw: DummyResp(201, {"id": "INT-1", "status": "CREATED"}))
    gw = _gateway()
    gw.create_intent(_lines(), Decimal("40.00"), "GBP")
    gw.create_intent(_lines(), Decimal("40.00"), "GBP")

    assert len([c for c in calls if c[1].endswith("/oauth2/token")]) == 1


def test_server_errors_retried_then_unreachable(monkeypatch):
    calls = _install(monkeypatch, lambda m, p, kw: DummyResp(503, {"name": "SERVICE_UNAVAILABLE"}))

    with pytest.raises(GatewayUnreachable):
        _gateway().create_intent(_lines(), Decimal("40.00"), "GBP")

    attempts = _api_calls(calls)
    assert len(attempts) == 3
    # ten sam klucz idempotencji we wszystkich probach
    assert len({kw["headers"]["PayPal-Request-ID"] for _, _, kw in attempts}) == 1


def test_network_error_is_unreachable(monkeypatch):
    def handler(method, path, kw):
        raise requests.ConnectionError("boom")

    _install(monkeypatch, handler)
    with pytest.raises(GatewayUnreachable):
        _gateway().create_intent(_lines(), Decimal("40.00"), "GBP")


def test_client_error_is_rejected_without_retry(monkeypatch):
    body = {
        "name": "UNPROCESSABLE_ENTITY",
        "message": "The requested action could not be performed",
        "debug_id": "dbg-1",
        "details": [{"issue": "CURRENCY_NOT_SUPPORTED"}],
    }
    calls = _install(monkeypatch, lambda m, p, kw: DummyResp(422, body))

    with pytest.raises(GatewayRejected) as e:
        _gateway().create_intent(_lines(), Decimal("40.00"), "GBP")

    assert e.value.issue == "CURRENCY_NOT_SUPPORTED"
    assert e.value.debug_id == "dbg-1"
    assert len(_api_calls(calls)) == 1


def test_expired_token_is_refreshed(monkeypatch):
    answers = [DummyResp(401, {"error": "invalid_token"}), DummyResp(201, {"id": "INT-9", "status": "CREATED"})]
    calls = _install(monkeypatch, lambda m, p, kw: answers.pop(0))

    intent = _gateway().create_intent(_lines(), Decimal("40.00"), "GBP")

    assert intent.intent_id == "INT-9"
    assert len([c for c in calls if c[1].endswith("/oauth2/token")]) == 2


# ---- capture ----
def test_capture_completed(monkeypatch):
    calls = _install(monkeypatch, lambda m, p, kw: DummyResp(201, _capture_body()))

    result = _gateway().capture("INT-1")

    assert result.capture_id == "CAP-1"
    assert result.amount == Decimal("36.00")
    _, path, kw = _api_calls(calls)[0]
    assert path == "/v2/checkout/orders/INT-1/capture"
    assert kw["headers"]["PayPal-Request-ID"] == "capture-INT-1"


def test_already_captured_reads_capture_back(monkeypatch):
    def handler(method, path, kw):
        if method == "POST":
            return DummyResp(422, {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "ORDER_ALREADY_CAPTURED"}]})
        return DummyResp(200, _capture_body())

    calls = _install(monkeypatch, handler)
    result = _gateway().capture("INT-1")

    assert result.capture_id == "CAP-1"
    assert [(m, p) for m, p, _ in _api_calls(calls)] == [
        ("POST", "/v2/checkout/orders/INT-1/capture"),
        ("GET", "/v2/checkout/orders/INT-1"),
    ]


def test_instrument_declined_is_not_captured(monkeypatch):
    body = {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "INSTRUMENT_DECLINED"}]}
    _install(monkeypatch, lambda m, p, kw: DummyResp(422, body))

    with pytest.raises(PaymentNotCaptured) as e:
        _gateway().capture("INT-1")
    assert e.value.status == "DECLINED"


def test_denied_capture_is_not_captured(monkeypatch):
    _install(monkeypatch, lambda m, p, kw: DummyResp(201, _capture_body(status="DECLINED")))

    with pytest.raises(PaymentNotCaptured) as e:
        _gateway().capture("INT-1")
    assert e.value.status == "DECLINED"
    assert e.value.capture_id == "CAP-1"


def test_check_credentials_without_config():
    result = PayPalGateway(base_url=BASE, client_id="", client_secret="").check_credentials()
    assert result["ok"] is False
    assert result["details"]["has_client_id"] is False


def test_check_credentials_ok(monkeypatch):
    _install(monkeypatch, lambda m, p, kw: DummyResp(500))
    assert _gateway().check_credentials()["ok"] is True


# ---- intent read ----
def test_get_intent_reads_amount_and_status(monkeypatch):
    body = {
        "id": "INT-1",
        "status": "APPROVED",
        "purchase_units": [{"amount": {"currency_code": "GBP", "value": "36.00"}}],
    }
    calls = _install(monkeypatch, lambda m, p, kw: DummyResp(200, body))

    intent = _gateway().get_intent("INT-1")

    assert intent.status == "APPROVED"
    assert intent.amount == Decimal("36.00")
    assert intent.currency == "GBP"
    assert [(m, p) for m, p, _ in _api_calls(calls)] == [("GET", "/v2/checkout/orders/INT-1")]


def test_get_intent_without_amount_is_rejected(monkeypatch):
    _install(monkeypatch, lambda m, p, kw: DummyResp(200, {"id": "INT-1", "status": "CREATED"}))

    with pytest.raises(GatewayRejected) as e:
        _gateway().get_intent("INT-1")
    assert e.value.issue == "MALFORMED_RESPONSE"
