"""Django ORM implementation of the Product repository.

Follows the Null Object pattern: look-ups return ``None`` (or omit the
entry) instead of raising; the service layer decides how a missing
product surfaces to the caller.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest

from modules.products.models import Product, ProductStatus
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_many(self, ids: Iterable[str]) -> Dict[str, Product]:
        wanted = {str(pk) for pk in ids}
        if not wanted:
            return {}
        try:
            products = Product.objects.alive().filter(
                id__in=wanted,
                status=ProductStatus.ACTIVE,
            )
            return {str(product.id): product for product in products}
        except (ValueError, ValidationError):
            # one malformed id poisons the IN clause; resolve individually
            resolved: Dict[str, Product] = {}
            for pk in wanted:
                product = self.get_by_id(pk)
                if product and product.status == ProductStatus.ACTIVE:
                    resolved[pk] = product
            return resolved

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    def decrement_stock(self, id: str, quantity: int) -> None:
        """``UPDATE ... SET stock = GREATEST(stock - qty, 0)`` in one statement.

        The arithmetic happens in the database, so concurrent decrements
        never read a stale value and stock never goes negative.
        """
        updated = Product.objects.filter(id=id).update(
            stock_quantity=Greatest(F("stock_quantity") - quantity, Value(0)),
        )
        logger.info(
            "product.stock_decremented",
            product_id=str(id),
            quantity=quantity,
            matched=bool(updated),
        )
