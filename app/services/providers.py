"""Wiring helpers for the payment gateway.

``get_payment_gateway`` returns the HTTP adapter unless
``PAYMENT_GATEWAY=stub``, in which case the in-process stub is used. The stub
instance is shared so intents created by one request can be captured by the
next.
"""

from app.domain.checkout import PaymentGateway
from app.services.payment_gateway import PayPalGateway
from app.services.payment_stub import PaymentGatewayStub
from app.utils import settings

_stub = PaymentGatewayStub()
_paypal: PayPalGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    global _paypal
    if settings.PAYMENT_GATEWAY == "stub":
        return _stub
    if _paypal is None:
        # jedna instancja na proces, zeby token OAuth byl wspoldzielony
        _paypal = PayPalGateway()
    return _paypal
