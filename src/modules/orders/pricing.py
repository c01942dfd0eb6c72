"""Order price calculator.

Pure function of the line items and a ``PricingPolicy``:

- items    = sum(unit_price * quantity), accumulated in integer cents
- shipping = flat rate
- fee      = service_fee_rate * items
- tax      = tax_rate * items
- total    = items + fee + shipping + tax

Each component is rounded to cents (ROUND_HALF_UP) and the total is the
sum of the rounded components, so it always equals the parts exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable

from django.conf import settings

CENT = Decimal("0.01")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    shipping_price: Decimal = Decimal("35.00")
    service_fee_rate: Decimal = Decimal("0.50")
    tax_rate: Decimal = Decimal("0.075")

    def __post_init__(self) -> None:
        for name in ("shipping_price", "service_fee_rate", "tax_rate"):
            value = Decimal(str(getattr(self, name)))
            if value < 0:
                raise ValueError(f"{name} cannot be negative.")
            object.__setattr__(self, name, value)

    @classmethod
    def from_settings(cls) -> PricingPolicy:
        return cls(
            shipping_price=Decimal(str(settings.ORDER_SHIPPING_PRICE)),
            service_fee_rate=Decimal(str(settings.ORDER_SERVICE_FEE_RATE)),
            tax_rate=Decimal(str(settings.ORDER_TAX_RATE)),
        )


@dataclass(frozen=True)
class OrderPrices:
    items_price: Decimal
    shipping_price: Decimal
    service_fee: Decimal
    tax_price: Decimal
    total_price: Decimal

    def as_strings(self) -> Dict[str, str]:
        return {
            "items_price": f"{self.items_price:.2f}",
            "shipping_price": f"{self.shipping_price:.2f}",
            "service_fee": f"{self.service_fee:.2f}",
            "tax_price": f"{self.tax_price:.2f}",
            "total_price": f"{self.total_price:.2f}",
        }


def _read(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item[key]
    return getattr(item, key)


def calculate_prices(items: Iterable[Any], policy: PricingPolicy | None = None) -> OrderPrices:
    """Compute order totals for *items* (mappings or objects with ``unit_price``/``quantity``).

    Raises:
        ValueError: a unit price or quantity is negative.
    """
    policy = policy or PricingPolicy()

    cents = 0
    for item in items:
        unit_price = Decimal(str(_read(item, "unit_price")))
        quantity = int(_read(item, "quantity"))
        if unit_price < 0:
            raise ValueError("Unit price cannot be negative.")
        if quantity < 0:
            raise ValueError("Quantity cannot be negative.")
        unit_cents = int(_quantize(unit_price) * 100)
        cents += unit_cents * quantity

    items_price = (Decimal(cents) / 100).quantize(CENT)
    shipping_price = _quantize(policy.shipping_price)
    service_fee = _quantize(items_price * policy.service_fee_rate)
    tax_price = _quantize(items_price * policy.tax_rate)
    total_price = items_price + service_fee + shipping_price + tax_price

    return OrderPrices(
        items_price=items_price,
        shipping_price=shipping_price,
        service_fee=service_fee,
        tax_price=tax_price,
        total_price=total_price,
    )
