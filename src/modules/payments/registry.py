"""Maps an order's payment method to the verifier that must confirm it.

Methods without a registered verifier (cash, bank transfer, ...) are
trusted as reported by the client, matching the checkout flow where only
PayPal captures are confirmed server-side.
"""

from __future__ import annotations

from typing import Dict, Optional

from modules.payments.interfaces import IPaymentVerifier
from modules.payments.paypal import PayPalPaymentVerifier

PAYPAL = "PayPal"


class PaymentVerifierRegistry:
    def __init__(self, verifiers: Optional[Dict[str, IPaymentVerifier]] = None) -> None:
        self._verifiers: Dict[str, IPaymentVerifier] = dict(verifiers or {})

    def register(self, payment_method: str, verifier: IPaymentVerifier) -> None:
        self._verifiers[payment_method] = verifier

    def for_method(self, payment_method: str) -> Optional[IPaymentVerifier]:
        return self._verifiers.get(payment_method)

    @classmethod
    def from_settings(cls) -> PaymentVerifierRegistry:
        return cls({PAYPAL: PayPalPaymentVerifier.from_settings()})
