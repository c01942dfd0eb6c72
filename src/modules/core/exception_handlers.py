"""DRF exception handler producing one error envelope for every failure.

Shape::

    {"type": "client_error", "errors": [{"code": ..., "detail": ..., "attr": ...}]}

``type`` is ``validation_error`` for field-level input errors,
``client_error`` for other 4xx and ``server_error`` for 5xx.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from shared.domain.exceptions import (
    AuthorizationError,
    DomainError,
    NotFoundError,
    PaymentVerificationError,
    PreconditionError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

DOMAIN_STATUS_CODES = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (PreconditionError, status.HTTP_409_CONFLICT),
    (PaymentVerificationError, status.HTTP_402_PAYMENT_REQUIRED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
)


def standardized_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, DomainError):
        return _domain_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        error_type = "validation_error"
        errors = _flatten(response.data)
    else:
        error_type = "server_error" if response.status_code >= 500 else "client_error"
        detail = response.data.get("detail", response.data) if isinstance(response.data, dict) else response.data
        code = getattr(getattr(exc, "detail", None), "code", None) or getattr(exc, "default_code", "error")
        errors = [{"code": code, "detail": str(detail), "attr": None}]

    response.data = {"type": error_type, "errors": errors}
    return response


def _domain_response(exc: DomainError) -> Response:
    http_status = getattr(exc, "http_status", None)
    if http_status is None:
        http_status = next(
            (code for kind, code in DOMAIN_STATUS_CODES if isinstance(exc, kind)),
            status.HTTP_400_BAD_REQUEST,
        )
    logger.info(
        "api.domain_error",
        error=exc.__class__.__name__,
        code=exc.code,
        status_code=http_status,
    )
    error_type = "validation_error" if isinstance(exc, ValidationError) else "client_error"
    return Response(
        {
            "type": error_type,
            "errors": [{"code": exc.code, "detail": exc.message, "attr": exc.field}],
        },
        status=http_status,
    )


def _flatten(data: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    """Turn DRF's nested ``{field: [ErrorDetail]}`` into a flat error list."""
    if isinstance(data, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in data.items():
            if key == "non_field_errors":
                child = attr
            else:
                child = f"{attr}.{key}" if attr else str(key)
            errors.extend(_flatten(value, child))
        return errors
    if isinstance(data, list):
        errors = []
        for index, value in enumerate(data):
            if isinstance(value, (dict, list)):
                errors.extend(_flatten(value, f"{attr}.{index}" if attr else str(index)))
            else:
                errors.extend(_flatten(value, attr))
        return errors
    return [
        {
            "code": getattr(data, "code", "invalid"),
            "detail": str(data),
            "attr": attr,
        }
    ]
