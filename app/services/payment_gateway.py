# app/services/payment_gateway.py
"""HTTP adapter for a PayPal-style Orders v2 payment gateway.

Implements the ``PaymentGateway`` port (create-intent, intent read-back and
capture) and normalizes every failure into
``GatewayUnreachable`` (transport error, timeout, 5xx after retries),
``GatewayRejected`` (4xx, not worth retrying unchanged) or
``PaymentNotCaptured`` (the capture call worked but money did not move).

Idempotency:
    - one ``PayPal-Request-ID`` per create-intent call, reused by every retry
      of that call, so a retried POST cannot open a second intent;
    - capture uses ``capture-<intent id>``, and an ``ORDER_ALREADY_CAPTURED``
      answer is resolved by reading the order back, so a capture whose
      response was lost to a timeout can be asked for again safely.
"""

import time
import uuid
from decimal import Decimal
from typing import List, Optional

import requests

from app.domain.checkout import (
    CaptureResult,
    CaptureStatus,
    IntentResult,
    PaymentGateway,
    ReviewedLine,
    money,
)
from app.domain.errors import GatewayRejected, GatewayUnreachable, PaymentNotCaptured
from app.utils.logging import get_logger
from app.utils.retry import TransientGatewayError, gateway_retry
from app.utils.settings import (
    GATEWAY_TIMEOUT_SECONDS,
    PAYPAL_BASE_URL,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
)

logger = get_logger(__name__)

# issue z odpowiedzi 422 na capture -> status, ktory zwracamy wolajacemu
_NOT_CAPTURED_ISSUES = {
    "INSTRUMENT_DECLINED": CaptureStatus.DECLINED.value,
    "TRANSACTION_REFUSED": CaptureStatus.DECLINED.value,
    "ORDER_NOT_APPROVED": "NOT_APPROVED",
    "PAYER_ACTION_REQUIRED": "PAYER_ACTION_REQUIRED",
    "ORDER_VOIDED": CaptureStatus.VOIDED.value,
}

# token odswiezamy troche przed faktycznym wygasnieciem
_TOKEN_SAFETY_MARGIN = 60


def _amount(value: Decimal, currency: str) -> dict:
    return {"currency_code": currency, "value": f"{money(value):.2f}"}


def build_purchase_request(
    lines: List[ReviewedLine],
    total: Decimal,
    currency: str,
    discount: Decimal = Decimal("0.00"),
) -> dict:
    """Build the create-intent body with a breakdown that balances exactly.

    ``item_total - discount == total`` must hold to the cent, otherwise the
    gateway rejects the request; the check happens here so an unbalanced
    request never leaves the process.

    Raises:
        GatewayRejected: for an empty line list, a non-positive total or an
            unbalanced breakdown.
    """
    if not lines:
        raise GatewayRejected("Cannot create a payment intent without items", issue="EMPTY_ITEMS")

    item_total = sum((line.line_total for line in lines), Decimal("0.00"))
    discount = money(discount)
    total = money(total)

    if total <= 0:
        raise GatewayRejected(f"Amount must be positive, got {total}", issue="NON_POSITIVE_AMOUNT")
    if money(item_total - discount) != total:
        raise GatewayRejected(
            f"Unbalanced breakdown: item_total {item_total} - discount {discount} != total {total}",
            issue="UNBALANCED_BREAKDOWN",
        )

    breakdown = {"item_total": _amount(item_total, currency)}
    if discount > 0:
        breakdown["discount"] = _amount(discount, currency)

    items = []
    for line in lines:
        variant = ", ".join(v for v in (line.size, line.color) if v)
        items.append(
            {
                "name": line.name[:127],
                "description": variant,
                "sku": str(line.product_id),
                "unit_amount": _amount(line.unit_price, currency),
                "quantity": str(line.quantity),
                "category": "PHYSICAL_GOODS",
            }
        )

    return {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "amount": {**_amount(total, currency), "breakdown": breakdown},
                "items": items,
            }
        ],
    }


def parse_capture(intent_id: str, data: dict) -> CaptureResult:
    """Read the first capture of the first purchase unit out of an order payload."""
    captures = []
    for unit in data.get("purchase_units") or []:
        captures.extend((unit.get("payments") or {}).get("captures") or [])

    if not captures:
        # zamowienie bez capture, np. nadal CREATED/APPROVED
        return CaptureResult(intent_id=intent_id, capture_id="", status=data.get("status") or "UNKNOWN")

    cap = captures[0]
    amount = cap.get("amount") or {}
    return CaptureResult(
        intent_id=intent_id,
        capture_id=cap.get("id", ""),
        status=cap.get("status") or data.get("status") or "UNKNOWN",
        amount=money(amount["value"]) if amount.get("value") is not None else None,
        currency=amount.get("currency_code"),
    )


def parse_intent(intent_id: str, data: dict) -> IntentResult:
    """Read the amount the intent was opened for out of an order payload."""
    units = data.get("purchase_units") or [{}]
    amount = units[0].get("amount") or {}
    if amount.get("value") is None:
        raise GatewayRejected(f"Order {intent_id} carries no amount", issue="MALFORMED_RESPONSE")
    return IntentResult(
        intent_id=intent_id,
        status=data.get("status") or "UNKNOWN",
        amount=money(amount["value"]),
        currency=amount.get("currency_code") or "",
    )


def _rejected(resp: requests.Response) -> GatewayRejected:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    details = body.get("details") or [{}]
    issue = details[0].get("issue") or body.get("name") or body.get("error")
    return GatewayRejected(
        body.get("message") or body.get("error_description") or f"Gateway answered {resp.status_code}",
        issue=issue,
        debug_id=body.get("debug_id"),
    )


class PayPalGateway(PaymentGateway):
    """Orders v2 client with OAuth2 client-credentials, retries and idempotency keys."""

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or PAYPAL_BASE_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else PAYPAL_CLIENT_SECRET
        self.timeout = timeout or GATEWAY_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    # ---- port ----
    def create_intent(
        self,
        lines: List[ReviewedLine],
        total: Decimal,
        currency: str,
        discount: Decimal = Decimal("0.00"),
    ) -> IntentResult:
        body = build_purchase_request(lines, total, currency, discount)
        request_id = str(uuid.uuid4())
        logger.info(
            "Creating payment intent",
            extra={"total": str(money(total)), "currency": currency, "paypal_request_id": request_id},
        )

        data = self._call("POST", "/v2/checkout/orders", json=body, request_id=request_id)

        intent_id = data.get("id")
        if not intent_id:
            raise GatewayRejected("Gateway response carries no order id", issue="MALFORMED_RESPONSE")

        approve_url = next(
            (link.get("href") for link in data.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info("Payment intent created", extra={"intent_id": intent_id, "status": data.get("status")})
        return IntentResult(
            intent_id=intent_id,
            status=data.get("status") or "CREATED",
            amount=money(total),
            currency=currency,
            approve_url=approve_url,
        )

    def get_intent(self, intent_id: str) -> IntentResult:
        data = self._call("GET", f"/v2/checkout/orders/{intent_id}")
        return parse_intent(intent_id, data)

    def capture(self, intent_id: str) -> CaptureResult:
        logger.info("Capturing payment", extra={"intent_id": intent_id})
        try:
            data = self._call(
                "POST",
                f"/v2/checkout/orders/{intent_id}/capture",
                json={},
                request_id=f"capture-{intent_id}",
            )
        except GatewayRejected as e:
            if e.issue == "ORDER_ALREADY_CAPTURED":
                # wczesniejszy capture przeszedl, tylko odpowiedz sie zgubila
                logger.info("Intent already captured, reading capture back", extra={"intent_id": intent_id})
                data = self._call("GET", f"/v2/checkout/orders/{intent_id}")
            elif e.issue in _NOT_CAPTURED_ISSUES:
                raise PaymentNotCaptured(_NOT_CAPTURED_ISSUES[e.issue], intent_id) from e
            else:
                raise

        result = parse_capture(intent_id, data)
        if not result.completed:
            logger.warning(
                "Capture did not complete",
                extra={"intent_id": intent_id, "capture_id": result.capture_id, "status": result.status},
            )
            raise PaymentNotCaptured(result.status, intent_id, result.capture_id or None)

        logger.info("Payment captured", extra={"intent_id": intent_id, "capture_id": result.capture_id})
        return result

    def check_credentials(self) -> dict:
        """Health probe: are credentials configured and does the gateway accept them."""
        details = {
            "has_client_id": bool(self.client_id),
            "has_client_secret": bool(self.client_secret),
            "base_url": self.base_url,
        }
        if not (self.client_id and self.client_secret):
            return {"ok": False, "message": "Payment gateway credentials not configured", "details": details}
        try:
            self._token = None
            self._call_token()
        except (GatewayRejected, TransientGatewayError, requests.RequestException) as e:
            return {"ok": False, "message": str(e), "details": details}
        return {"ok": True, "message": "Payment gateway is configured correctly", "details": details}

    # ---- transport ----
    def _call(self, method: str, path: str, json: dict | None = None, request_id: str | None = None) -> dict:
        try:
            return self._send(method, path, json, request_id)
        except (requests.ConnectionError, requests.Timeout, TransientGatewayError) as e:
            logger.error("Payment gateway unreachable", extra={"path": path, "error": str(e)})
            raise GatewayUnreachable(f"Payment gateway unreachable: {e}") from e

    @gateway_retry()
    def _send(self, method: str, path: str, json: dict | None, request_id: str | None) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token()}",
        }
        if request_id:
            headers["PayPal-Request-ID"] = request_id

        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            headers=headers,
            timeout=self.timeout,
        )

        if resp.status_code == 401:
            # token wygasl po stronie operatora, kolejna proba pobierze nowy
            self._token = None
            raise TransientGatewayError("Access token rejected")
        if resp.status_code >= 500:
            raise TransientGatewayError(f"Gateway answered {resp.status_code}")
        if resp.status_code >= 400:
            raise _rejected(resp)
        return resp.json() if resp.content else {}

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        return self._call_token()

    def _call_token(self) -> str:
        if not (self.client_id and self.client_secret):
            raise GatewayRejected("Payment gateway credentials not configured", issue="MISSING_CREDENTIALS")

        resp = self.session.request(
            "POST",
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        if resp.status_code >= 500:
            raise TransientGatewayError(f"Token endpoint answered {resp.status_code}")
        if resp.status_code >= 400:
            raise _rejected(resp)

        data = resp.json()
        self._token = data["access_token"]
        self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 300)) - _TOKEN_SAFETY_MARGIN, 0)
        logger.info("Payment gateway access token obtained")
        return self._token
