from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


class OrderRecordError(ValueError):
    """The order record cannot be settled (missing id/total or non-numeric figures)."""


@dataclass(frozen=True)
class Order:
    id: str
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    currency_snapshot: dict = field(default_factory=dict)
    split_bill: bool = False
    split_amounts: Any = None
    status: str = ""
    order_number: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status.upper() == "COMPLETED"


def _money(rec: dict, key: str, *, required: bool = False, default: Optional[Decimal] = None) -> Optional[Decimal]:
    raw = rec.get(key)
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        if required:
            raise OrderRecordError(f"order record is missing {key}")
        return default
    try:
        v = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise OrderRecordError(f"order {key} is not a number: {raw!r}")
    if not v.is_finite():
        raise OrderRecordError(f"order {key} is not a number: {raw!r}")
    return v


def order_from_record(rec: Optional[dict]) -> Order:
    """
    Read the order service's order record (camelCase keys).
    `total == subtotal + tax - discount` is trusted as given; a missing subtotal
    is derived from it.
    """
    if not isinstance(rec, dict):
        raise OrderRecordError("order record is missing")
    oid = rec.get("id")
    if oid is None or str(oid).strip() == "":
        raise OrderRecordError("order record is missing id")
    total = _money(rec, "total", required=True)
    tax = _money(rec, "tax", default=Decimal("0"))
    discount = _money(rec, "discount", default=Decimal("0"))
    subtotal = _money(rec, "subtotal", default=None)
    if subtotal is None:
        subtotal = total - tax + discount
    snapshot = rec.get("currencySnapshot")
    return Order(
        id=str(oid).strip(),
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        total=total,
        currency_snapshot=dict(snapshot) if isinstance(snapshot, dict) else {},
        split_bill=bool(rec.get("splitBill")),
        split_amounts=rec.get("splitAmounts"),
        status=str(rec.get("status") or ""),
        order_number=(str(rec["orderNumber"]) if rec.get("orderNumber") is not None else None),
    )
