# app/domain/errors.py
"""Error taxonomy for cart, coupon, payment and order finalization.

Every error carries a stable ``code`` (returned to API clients) and the HTTP
status the routers answer with. Errors raised before a capture are always
safe to report to the user; subclasses of
``PaymentCapturedOrderNotPersisted`` mean money moved without an order and
must reach an operator.
"""


class CheckoutError(Exception):
    code = "CHECKOUT_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


# ---- Validation (no side effects) ----
class InvalidQuantity(CheckoutError, ValueError):
    code = "INVALID_QUANTITY"


class NotFound(CheckoutError, LookupError):
    code = "NOT_FOUND"
    http_status = 404


class AddressNotFound(NotFound):
    code = "ADDRESS_NOT_FOUND"


class EmptyCart(CheckoutError, ValueError):
    code = "EMPTY_CART"


class CouponRejected(CheckoutError, ValueError):
    """Coupon failed validation; ``reason`` is one of the ``CouponRejection`` values."""

    code = "COUPON_REJECTED"
    http_status = 422

    def __init__(self, reason: str, coupon_code: str | None = None):
        self.reason = reason
        self.coupon_code = coupon_code
        super().__init__(f"Coupon {coupon_code!r} rejected: {reason}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason}


class DuplicateCoupon(CheckoutError, ValueError):
    code = "DUPLICATE_COUPON"
    http_status = 409


class ConcurrentModification(CheckoutError, RuntimeError):
    code = "CONCURRENT_MODIFICATION"
    http_status = 409


# ---- Gateway, pre-capture (no side effects) ----
class GatewayUnreachable(CheckoutError, RuntimeError):
    """Network failure or timeout; the same intent may be retried or re-queried."""

    code = "GATEWAY_UNREACHABLE"
    http_status = 503


class GatewayRejected(CheckoutError, RuntimeError):
    """The gateway refused the request; retrying it unchanged will fail again."""

    code = "GATEWAY_REJECTED"
    http_status = 502

    def __init__(self, message: str | None = None, issue: str | None = None, debug_id: str | None = None):
        self.issue = issue
        self.debug_id = debug_id
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "issue": self.issue, "debug_id": self.debug_id}


class PaymentNotCaptured(CheckoutError, RuntimeError):
    code = "PAYMENT_NOT_CAPTURED"
    http_status = 402

    def __init__(self, status: str, intent_id: str | None = None, capture_id: str | None = None):
        self.status = status
        self.intent_id = intent_id
        self.capture_id = capture_id
        super().__init__(f"Payment {intent_id} not captured, gateway status {status}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "status": self.status, "capture_id": self.capture_id}


class CaptureInProgress(CheckoutError, RuntimeError):
    code = "CAPTURE_IN_PROGRESS"
    http_status = 409


class CaptureLockUnavailable(CheckoutError, RuntimeError):
    """The capture lock store could not be reached; nothing was sent to the gateway."""

    code = "CAPTURE_LOCK_UNAVAILABLE"
    http_status = 503


class IntentAmountMismatch(CheckoutError, ValueError):
    """The intent was opened for a different amount than the cart now totals.

    Detected before capture, so no money moved; the client has to create a new intent.
    """

    code = "INTENT_AMOUNT_MISMATCH"
    http_status = 409

    def __init__(self, intent_id: str, intent_amount, cart_total):
        self.intent_id = intent_id
        self.intent_amount = intent_amount
        self.cart_total = cart_total
        super().__init__(f"Intent {intent_id} is for {intent_amount}, cart totals {cart_total}")

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "intent_id": self.intent_id,
            "intent_amount": str(self.intent_amount),
            "cart_total": str(self.cart_total),
        }


# ---- Commit ----
class NothingToCommit(CheckoutError, RuntimeError):
    """The cart was already consumed, by an earlier call or a concurrent one."""

    code = "NOTHING_TO_COMMIT"
    http_status = 409

    def __init__(self, message: str | None = None, order_id: int | None = None):
        self.order_id = order_id
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "order_id": self.order_id}


class PaymentCapturedOrderNotPersisted(CheckoutError, RuntimeError):
    """Capture succeeded at the gateway but no order row was written.

    Reconciliation matches ``capture_id`` against the order store and either
    completes the order or refunds.
    """

    code = "PAYMENT_CAPTURED_ORDER_NOT_PERSISTED"
    http_status = 500
    requires_reconciliation = True

    def __init__(self, reason: str, intent_id: str | None = None, capture_id: str | None = None):
        self.reason = reason
        self.intent_id = intent_id
        self.capture_id = capture_id
        super().__init__(f"Payment {capture_id} captured but order not persisted: {reason}")

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "reason": self.reason,
            "intent_id": self.intent_id,
            "capture_id": self.capture_id,
            "requires_reconciliation": True,
        }


class InsufficientStock(PaymentCapturedOrderNotPersisted):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, intent_id: str | None = None, capture_id: str | None = None):
        self.product_id = product_id
        super().__init__("INSUFFICIENT_STOCK", intent_id, capture_id)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "product_id": self.product_id}


class CommitPersistenceFailure(PaymentCapturedOrderNotPersisted):
    code = "COMMIT_PERSISTENCE_FAILURE"

    def __init__(self, intent_id: str | None = None, capture_id: str | None = None):
        super().__init__("COMMIT_PERSISTENCE_FAILURE", intent_id, capture_id)
