"""
Per-split receipt figures.

Each split's receipt total is the amount assigned to it; tax and discount are
shown as that split's proportional share of the order figures. Shares are
rounded one split at a time and are not reconciled back to the order totals.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from .currency import parse_amount, round2, to_primary
from .json_log import json_log
from .orders import Order


@dataclass(frozen=True)
class SplitAllocation:
    split_number: int
    total_splits: int
    amount_usd: Decimal
    split_ratio: Decimal
    proportional_tax: Decimal
    proportional_discount: Decimal
    payment_methods: List[dict] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.amount_usd

    def as_dict(self) -> dict:
        return {
            "split_number": self.split_number,
            "total_splits": self.total_splits,
            "amount_usd": str(self.amount_usd),
            "subtotal": str(self.amount_usd),
            "tax": str(self.proportional_tax),
            "discount": str(self.proportional_discount),
            "total": str(self.total),
            "payment_methods": list(self.payment_methods),
        }


def split_ratio(amount_usd: Decimal, subtotal: Decimal) -> Decimal:
    if not subtotal:
        return Decimal("0")
    return Decimal(amount_usd) / Decimal(subtotal)


def _allocate(order: Order, amounts: List[Decimal], methods: List[List[dict]]) -> List[SplitAllocation]:
    out = []
    n = len(amounts)
    for idx, amount in enumerate(amounts):
        ratio = split_ratio(amount, order.subtotal)
        out.append(
            SplitAllocation(
                split_number=idx + 1,
                total_splits=n,
                amount_usd=round2(amount),
                split_ratio=ratio,
                proportional_tax=round2(order.tax * ratio),
                proportional_discount=round2(order.discount * ratio),
                payment_methods=methods[idx],
            )
        )
    return out


def allocate_draft(order: Order, split_panels, rate) -> List[SplitAllocation]:
    """Simulated split receipts from the live (uncommitted) split panels."""
    amounts = []
    methods = []
    for p in split_panels or []:
        amounts.append(to_primary(parse_amount(p.amount), p.currency, rate))
        methods.append([{"id": p.id, "method": p.method, "amount": p.amount, "currency": p.currency}])
    return _allocate(order, amounts, methods)


def _persisted_splits(order: Order) -> list:
    raw = order.split_amounts
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as ex:
            json_log("warning", "payment.split.record_invalid", order_id=order.id, error=str(ex))
            return []
    if not isinstance(raw, list):
        json_log("warning", "payment.split.record_invalid", order_id=order.id, error="split record is not a list")
        return []
    return [s for s in raw if isinstance(s, dict)]


def _persisted_methods(split: dict) -> List[dict]:
    methods = split.get("paymentMethods")
    if isinstance(methods, list):
        return [m for m in methods if isinstance(m, dict)]
    # Records written from split panels carry the tender on the split itself.
    if split.get("method"):
        return [{k: split.get(k) for k in ("id", "method", "amount", "currency")}]
    return []


def allocate_final(order: Order, rate=None) -> List[SplitAllocation]:
    """
    Split receipts from the order service's persisted record of a paid order.
    Riel splits are converted with `rate`; without a rate they count as 0.
    """
    if not order.split_bill:
        return []
    splits = _persisted_splits(order)
    amounts = []
    for s in splits:
        amount = parse_amount(s.get("amount"))
        if str(s.get("currency") or "USD").strip().lower() == "riel":
            amount = to_primary(amount, "Riel", rate) if rate else Decimal("0")
        amounts.append(amount)
    methods = [_persisted_methods(s) for s in splits]
    return _allocate(order, amounts, methods)


def allocate_split(order: Order, index: int, split_panels=None, rate=None) -> SplitAllocation:
    """
    One split's receipt figures. Uses the draft panels when given, otherwise the
    persisted record.
    """
    if split_panels is not None:
        parts = allocate_draft(order, split_panels, rate)
    else:
        parts = allocate_final(order, rate=rate)
    if index < 0 or index >= len(parts):
        raise IndexError(f"split {index + 1} does not exist (order has {len(parts)} splits)")
    return parts[index]
