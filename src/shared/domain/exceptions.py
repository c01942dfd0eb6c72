"""Domain error taxonomy shared by every bounded context.

Services raise subclasses of these five kinds; the API layer maps each kind
to an HTTP status in ``modules.core.exception_handlers``.  A rejected
operation never leaves partial state behind: preconditions are checked
before any write and writes run inside a single transaction.
"""

from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base class for all business-rule failures."""

    default_code = "domain_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.field = field
        super().__init__(message)


class NotFoundError(DomainError):
    """A referenced order, product or user does not exist."""

    default_code = "not_found"


class ValidationError(DomainError):
    """Malformed input: unknown enum value, empty item list, ..."""

    default_code = "invalid"


class AuthorizationError(DomainError):
    """The actor lacks the role or ownership required for the operation."""

    default_code = "permission_denied"


class PreconditionError(DomainError):
    """The operation is not allowed from the aggregate's current state."""

    default_code = "precondition_failed"


class PaymentVerificationError(DomainError):
    """External payment verification failed or the transaction was replayed."""

    default_code = "payment_verification_failed"
