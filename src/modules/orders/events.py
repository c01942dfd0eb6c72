"""Domain events for the Orders bounded context.

Written to the outbox (topic ``orders``) by ``OrderDjangoRepository.save``
in the same transaction as the change they describe.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""


@dataclass(frozen=True)
class OrderPaid(DomainEvent):
    """Raised when a payment is claimed and stock decremented."""


@dataclass(frozen=True)
class OrderShipped(DomainEvent):
    pass


@dataclass(frozen=True)
class OrderDelivered(DomainEvent):
    pass


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    pass


@dataclass(frozen=True)
class OrderStatusOverridden(DomainEvent):
    """Raised when an administrator forces a status outside the guarded flow."""


@dataclass(frozen=True)
class DisputeOpened(DomainEvent):
    pass


@dataclass(frozen=True)
class DisputeUpdated(DomainEvent):
    pass
