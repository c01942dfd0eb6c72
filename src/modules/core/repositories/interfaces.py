"""Generic repository interface (Dependency Inversion Principle).

Provides ``IRepository[T]``, the base abstract class that every
bounded-context repository extends.  Services depend on these
abstractions, never on the Django ORM directly, so tests can swap in
fakes or stale copies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    ``T`` is the entity managed by the repository (``Order``,
    ``Product``, ``User``).
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by primary key; ``None`` when missing or malformed."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an entity."""
