"""Product repository interface.

Extends ``IRepository[Product]`` with the two catalog operations the
order lifecycle consumes: batch lookup at checkout and stock decrement
at payment.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_many(self, ids: Iterable[str]) -> Dict[str, Product]:
        """Resolve sellable products in a single query, keyed by ``str(id)``.

        Unknown, soft-deleted and inactive ids are simply absent from the
        result; the caller decides how to report them.
        """

    @abstractmethod
    def decrement_stock(self, id: str, quantity: int) -> None:
        """Atomically lower stock by *quantity*, flooring at zero."""
