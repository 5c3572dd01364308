from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from .currency import parse_amount, primary_to_secondary_display, round2, to_primary

# Differences under 5 cents are rounding drift from converted panels, not real
# under/over-payment.
REMAINING_TOLERANCE_USD = Decimal("0.05")
OVERPAY_FACTOR = Decimal("1.10")
UNDERPAY_TOLERANCE_USD = Decimal("0.01")


@dataclass(frozen=True)
class ReconciliationResult:
    total_tendered_usd: Decimal
    remaining_usd: Decimal
    errors: List[str] = field(default_factory=list)
    remaining_riel_display: Optional[Decimal] = None

    @property
    def can_commit(self) -> bool:
        return not self.errors and self.remaining_usd == 0

    def as_dict(self) -> dict:
        return {
            "total_tendered_usd": str(self.total_tendered_usd),
            "remaining_usd": str(self.remaining_usd),
            "remaining_riel_display": (str(self.remaining_riel_display) if self.remaining_riel_display is not None else None),
            "errors": list(self.errors),
            "can_commit": self.can_commit,
        }


def total_tendered_usd(panels: Iterable, rate) -> Decimal:
    total = Decimal("0")
    for p in panels or []:
        total += to_primary(parse_amount(p.amount), p.currency, rate)
    return total


def reconcile(panels, order_total, rate) -> ReconciliationResult:
    panels = list(panels or [])
    due = Decimal(str(order_total))
    tendered = total_tendered_usd(panels, rate)

    remaining = round2(due) - round2(tendered)
    if abs(remaining) < REMAINING_TOLERANCE_USD:
        remaining = Decimal("0.00")

    errors: List[str] = []
    for idx, p in enumerate(panels, start=1):
        if parse_amount(p.amount) <= 0:
            errors.append(f"Payment {idx}: Amount is required and must be greater than 0")
    if tendered < 0:
        errors.append("Total payment cannot be negative")
    if tendered > due * OVERPAY_FACTOR:
        errors.append("Payment total exceeds the order total by more than 10%")
    if tendered < due - UNDERPAY_TOLERANCE_USD:
        errors.append("Payment total is less than the order total")

    riel_display = primary_to_secondary_display(remaining, rate) if remaining > 0 else Decimal("0")
    return ReconciliationResult(
        total_tendered_usd=round2(tendered),
        remaining_usd=remaining,
        errors=errors,
        remaining_riel_display=riel_display,
    )
