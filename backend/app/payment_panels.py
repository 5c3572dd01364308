"""
Payment panels: the tender lines a cashier builds for one order.

A session keeps two independent collections (full / split) and `mode` picks
the active one, so switching tabs never discards work. Every mutation made
through `PanelEditor` is handed to the `on_change` hook right away; the agent
wires that hook to the session store so a reload never loses input.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated, Callable, Iterable, List, Optional

from pydantic import BaseModel, BeforeValidator, Field

from .currency import round2
from .validation import SessionMode, TenderCurrency, TenderMethod, normalize_currency, normalize_method, normalize_mode

_NON_AMOUNT_CHARS = re.compile(r"[^0-9.]")


def sanitize_amount(raw) -> str:
    """Keep digits and the first '.' only ("1a2.3.4" -> "12.34")."""
    s = _NON_AMOUNT_CHARS.sub("", str(raw if raw is not None else ""))
    head, dot, tail = s.partition(".")
    if not dot:
        return head
    return f"{head}.{tail.replace('.', '')}"


TenderAmount = Annotated[str, BeforeValidator(sanitize_amount)]


class PanelNotFoundError(LookupError):
    pass


class PaymentPanel(BaseModel):
    id: int
    currency: TenderCurrency = "USD"
    method: TenderMethod = "CASH"
    amount: TenderAmount = ""


class PaymentSession(BaseModel):
    order_id: str
    mode: SessionMode = "full"
    full_panels: List[PaymentPanel] = Field(default_factory=list)
    split_panels: List[PaymentPanel] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    def active_panels(self) -> List[PaymentPanel]:
        return self.split_panels if self.mode == "split" else self.full_panels


def _fmt_amount(v) -> str:
    return str(round2(v))


def seed_full_panels(total, first_id: int = 1) -> List[PaymentPanel]:
    return [PaymentPanel(id=first_id, amount=_fmt_amount(total))]


def seed_split_panels(total, first_id: int = 1) -> List[PaymentPanel]:
    # Two parts that add back up to the total exactly; the odd cent goes to part 2.
    first = round2(round2(total) / 2)
    second = round2(total) - first
    return [
        PaymentPanel(id=first_id, amount=_fmt_amount(first)),
        PaymentPanel(id=first_id + 1, amount=_fmt_amount(second)),
    ]


def seed_session(order_id, total, mode: str = "full") -> PaymentSession:
    full = seed_full_panels(total, first_id=1)
    split = seed_split_panels(total, first_id=len(full) + 1)
    return PaymentSession(order_id=str(order_id), mode=normalize_mode(mode), full_panels=full, split_panels=split)


def apply_full_default(session: PaymentSession, total) -> bool:
    """
    Fill a lone, untouched FULL-mode panel with the order total.
    Returns True when the panel was filled. Typed amounts are never replaced.
    """
    if session.mode != "full" or len(session.full_panels) != 1:
        return False
    panel = session.full_panels[0]
    if panel.amount != "":
        return False
    if round2(total) <= 0:
        return False
    panel.amount = _fmt_amount(total)
    return True


class PanelEditor:
    def __init__(self, session: PaymentSession, on_change: Optional[Callable[[PaymentSession], None]] = None):
        self.session = session
        self._on_change = on_change

    def _changed(self) -> None:
        self.session.updated_at = datetime.now(timezone.utc)
        if self._on_change is not None:
            self._on_change(self.session)

    def _next_id(self) -> int:
        ids = [p.id for p in self.session.full_panels] + [p.id for p in self.session.split_panels]
        return max(ids, default=0) + 1

    def _find(self, panel_id: int) -> PaymentPanel:
        for p in self.session.active_panels():
            if p.id == panel_id:
                return p
        raise PanelNotFoundError(f"payment panel {panel_id} not found")

    def add_panel(self) -> PaymentPanel:
        panel = PaymentPanel(id=self._next_id())
        self.session.active_panels().append(panel)
        self._changed()
        return panel

    def remove_panel(self, panel_id: int) -> None:
        panels = self.session.active_panels()
        panel = self._find(panel_id)
        if len(panels) <= 1:
            raise ValueError("at least one payment is required")
        panels.remove(panel)
        self._changed()

    def update_panel(self, panel_id: int, field: str, value) -> PaymentPanel:
        panel = self._find(panel_id)
        field = (field or "").strip().lower()
        if field == "amount":
            panel.amount = sanitize_amount(value)
        elif field == "currency":
            panel.currency = normalize_currency(value)
        elif field == "method":
            panel.method = normalize_method(value)
        else:
            raise ValueError(f"unknown payment field: {field!r}")
        self._changed()
        return panel

    def set_panels(self, panels: Iterable) -> List[PaymentPanel]:
        parsed = [p if isinstance(p, PaymentPanel) else PaymentPanel.model_validate(p) for p in panels or []]
        if not parsed:
            raise ValueError("at least one payment is required")
        ids = [p.id for p in parsed]
        if len(set(ids)) != len(ids):
            raise ValueError("payment ids must be unique")
        other = self.session.full_panels if self.session.mode == "split" else self.session.split_panels
        if set(ids) & {p.id for p in other}:
            raise ValueError("payment ids must be unique across full and split payments")
        if self.session.mode == "split":
            self.session.split_panels = parsed
        else:
            self.session.full_panels = parsed
        self._changed()
        return parsed

    def set_mode(self, mode: str, order_total=None) -> None:
        self.session.mode = normalize_mode(mode)
        if order_total is not None:
            apply_full_default(self.session, order_total)
        self._changed()
