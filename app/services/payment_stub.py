# app/services/payment_stub.py
"""In-process payment gateway for local development and tests.

Mirrors the HTTP adapter's contract without any network calls: the request
breakdown is checked with the same builder, capture is idempotent per intent,
and intents listed in ``decline`` come back as ``PaymentNotCaptured``.
"""

import uuid
from decimal import Decimal
from typing import Dict, List

from app.domain.checkout import (
    CaptureResult,
    CaptureStatus,
    IntentResult,
    PaymentGateway,
    ReviewedLine,
    money,
)
from app.domain.errors import GatewayRejected, PaymentNotCaptured
from app.services.payment_gateway import build_purchase_request


class PaymentGatewayStub(PaymentGateway):
    def __init__(self, decline: Dict[str, str] | None = None):
        # intent_id -> status, ktory ma zwrocic capture
        self.decline: Dict[str, str] = dict(decline or {})
        self.intents: Dict[str, dict] = {}
        self.captures: Dict[str, CaptureResult] = {}
        self.capture_calls = 0

    def create_intent(
        self,
        lines: List[ReviewedLine],
        total: Decimal,
        currency: str,
        discount: Decimal = Decimal("0.00"),
    ) -> IntentResult:
        body = build_purchase_request(lines, total, currency, discount)
        intent_id = f"STUB-{uuid.uuid4().hex[:17].upper()}"
        self.intents[intent_id] = {"body": body, "amount": money(total), "currency": currency}
        return IntentResult(intent_id=intent_id, status="CREATED", amount=money(total), currency=currency)

    def get_intent(self, intent_id: str) -> IntentResult:
        if intent_id not in self.intents:
            raise GatewayRejected(f"Unknown intent {intent_id}", issue="RESOURCE_NOT_FOUND")
        intent = self.intents[intent_id]
        status = CaptureStatus.COMPLETED.value if intent_id in self.captures else "APPROVED"
        return IntentResult(intent_id=intent_id, status=status, amount=intent["amount"], currency=intent["currency"])

    def capture(self, intent_id: str) -> CaptureResult:
        self.capture_calls += 1
        if intent_id not in self.intents:
            raise GatewayRejected(f"Unknown intent {intent_id}", issue="RESOURCE_NOT_FOUND")

        if intent_id in self.captures:
            return self.captures[intent_id]

        status = self.decline.get(intent_id, CaptureStatus.COMPLETED.value)
        if status != CaptureStatus.COMPLETED.value:
            raise PaymentNotCaptured(status, intent_id)

        intent = self.intents[intent_id]
        result = CaptureResult(
            intent_id=intent_id,
            capture_id=f"CAP-{uuid.uuid4().hex[:17].upper()}",
            status=status,
            amount=intent["amount"],
            currency=intent["currency"],
        )
        self.captures[intent_id] = result
        return result
