"""Catalog exceptions."""

from __future__ import annotations

from shared.domain.exceptions import NotFoundError


class ProductNotFound(NotFoundError):
    """A referenced product does not exist, is soft-deleted or inactive."""

    default_code = "product_not_found"
