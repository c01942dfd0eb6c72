"""PayPal order verification over the REST API.

Two calls per verification:

1. ``POST /v1/oauth2/token`` with the client credentials.
2. ``GET /v2/checkout/orders/{id}`` with the bearer token.

The payment counts as verified only when PayPal reports the order as
``COMPLETED``.  Transport and HTTP errors are logged and reported as an
unverified payment so a PayPal outage can never mark an order paid.
"""

from __future__ import annotations

from typing import Optional

import requests
import structlog
from django.conf import settings

from modules.payments.interfaces import IPaymentVerifier, PaymentVerification

logger = structlog.get_logger(__name__)

COMPLETED = "COMPLETED"


class PayPalPaymentVerifier(IPaymentVerifier):
    def __init__(
        self,
        api_base: str,
        client_id: str,
        client_secret: str,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> PayPalPaymentVerifier:
        return cls(
            api_base=settings.PAYPAL_API_BASE,
            client_id=settings.PAYPAL_CLIENT_ID,
            client_secret=settings.PAYPAL_CLIENT_SECRET,
            timeout=settings.PAYPAL_TIMEOUT,
        )

    def verify(self, transaction_id: str) -> PaymentVerification:
        log = logger.bind(transaction_id=transaction_id)
        try:
            token = self._access_token()
            resp = self._session.get(
                f"{self._api_base}/v2/checkout/orders/{transaction_id}",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError, KeyError):
            log.warning("payment.paypal.verification_error", exc_info=True)
            return PaymentVerification(verified=False, transaction_id=transaction_id)

        status = str(data.get("status", ""))
        payer_email = (data.get("payer") or {}).get("email_address")
        verified = status == COMPLETED
        log.info("payment.paypal.verified", status=status, verified=verified)
        return PaymentVerification(
            verified=verified,
            transaction_id=transaction_id,
            status=status,
            payer_email=payer_email,
        )

    def _access_token(self) -> str:
        resp = self._session.post(
            f"{self._api_base}/v1/oauth2/token",
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp.json()["access_token"]
