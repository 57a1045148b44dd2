# app/domain/checkout.py
"""Checkout state machine types and the payment gateway port.

The Order Finalizer moves a ``CheckoutAttempt`` through
``CART_REVIEWED -> INTENT_CREATED -> CAPTURED -> COMMITTED``; each failing
step has its own terminal state. Nothing in this module touches the database
or the network.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Protocol

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Round to whole cents, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def discount_for(subtotal: Decimal, percent: Decimal) -> Decimal:
    return money(subtotal * Decimal(str(percent)) / Decimal("100"))


class CheckoutState(str, Enum):
    CART_REVIEWED = "CART_REVIEWED"
    INTENT_CREATED = "INTENT_CREATED"
    CAPTURED = "CAPTURED"
    COMMITTED = "COMMITTED"
    INTENT_FAILED = "INTENT_FAILED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"


class CouponRejection(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_YET_ACTIVE = "NOT_YET_ACTIVE"
    EXPIRED = "EXPIRED"
    LIMIT_REACHED = "LIMIT_REACHED"


class CaptureStatus(str, Enum):
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    DENIED = "DENIED"
    PENDING = "PENDING"
    VOIDED = "VOIDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ReviewedLine:
    """A cart line resolved against the catalog during review.

    ``unit_price`` and ``name`` are the snapshots written to the order.
    """

    line_id: int
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    def identity(self) -> tuple:
        return (self.line_id, self.product_id, self.size, self.color, self.quantity)


@dataclass(frozen=True)
class CheckoutReview:
    user_id: int
    lines: List[ReviewedLine]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    dropped_product_ids: List[int] = field(default_factory=list)
    dropped_line_ids: List[int] = field(default_factory=list)
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None
    discount_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class IntentResult:
    intent_id: str
    status: str
    amount: Decimal
    currency: str
    approve_url: Optional[str] = None


@dataclass(frozen=True)
class CaptureResult:
    intent_id: str
    capture_id: str
    status: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == CaptureStatus.COMPLETED.value


@dataclass
class CheckoutAttempt:
    """Progress of one checkout flow; only lives for the duration of a request."""

    user_id: int
    state: CheckoutState = CheckoutState.CART_REVIEWED
    review: Optional[CheckoutReview] = None
    intent_id: Optional[str] = None
    intent: Optional[IntentResult] = None
    capture: Optional[CaptureResult] = None
    order_id: Optional[int] = None


# ---- Ports ----
class PaymentGateway(Protocol):
    """Port for a capture-based payment gateway."""

    def create_intent(
        self,
        lines: List[ReviewedLine],
        total: Decimal,
        currency: str,
        discount: Decimal = Decimal("0.00"),
    ) -> IntentResult:
        raise NotImplementedError()

    def get_intent(self, intent_id: str) -> IntentResult:
        raise NotImplementedError()

    def capture(self, intent_id: str) -> CaptureResult:
        raise NotImplementedError()
