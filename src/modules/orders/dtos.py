"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  They are
the contracts between the API layer (DRF serializers) and the services,
and are immutable (``frozen=True``).

- ``CreateOrderDTO`` / ``CreateOrderItemDTO`` / ``ShippingAddressDTO``:
  checkout input.  Items carry no price: prices always come from the
  catalog.
- ``ConfirmPaymentDTO``: gateway payment result.
- ``ShipOrderDTO``: tracking data.
- ``OpenDisputeDTO`` / ``UpdateDisputeDTO``: dispute sub-state-machine.

Enum-valued fields (payment method, dispute reason/status) are kept as
plain strings here and validated by the services, so an unknown value
surfaces as the matching domain ``ValidationError``.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import DEFAULT_CARRIER, DEFAULT_DISPUTE_TYPE, PackagingOption

# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    city: str
    postal_code: str
    country: str
    state: str = ""
    phone: str = ""


class CreateOrderDTO(BaseModel):
    """Checkout request.

    An empty ``items`` list is accepted here and rejected by the service
    with ``EmptyOrder``.
    """

    model_config = ConfigDict(frozen=True)

    buyer_id: int
    items: List[CreateOrderItemDTO]
    shipping_address: ShippingAddressDTO
    payment_method: str
    packaging_option: str = PackagingOption.STANDARD
    notes: str = ""


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class ConfirmPaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: Optional[str] = None
    status: str = "COMPLETED"
    payer_email: Optional[str] = None
    update_time: Optional[str] = None


class ShipOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    tracking_number: str = ""
    carrier: str = DEFAULT_CARRIER
    shipped_at: Optional[datetime] = None

    @field_validator("carrier")
    @classmethod
    def carrier_defaults_when_blank(cls, v: str) -> str:
        return v.strip() or DEFAULT_CARRIER


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


class OpenDisputeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str
    description: str = ""
    dispute_type: str = DEFAULT_DISPUTE_TYPE


class UpdateDisputeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    resolution: Optional[str] = None
    admin_notes: Optional[str] = None
