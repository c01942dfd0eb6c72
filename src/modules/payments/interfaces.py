"""Payment verification contract.

A verifier answers one question for one gateway: did this gateway
transaction really complete?  Verifiers perform network I/O and are
therefore called before any database transaction is opened.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PaymentVerification(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool
    transaction_id: str
    status: str = ""
    payer_email: Optional[str] = None


class IPaymentVerifier(ABC):
    @abstractmethod
    def verify(self, transaction_id: str) -> PaymentVerification:
        """Ask the gateway about *transaction_id*; never raises for a declined payment."""
