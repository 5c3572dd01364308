"""
Commit gateway: the only place a payment leaves the agent.

The order service is the authority on double payment (HTTP 409). Locally we
refuse a second submission while the first is in flight, and any submission
for an order already known to be paid.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from .currency import parse_amount
from .json_log import json_log
from .order_service import OrderServiceClient, OrderServiceError
from .orders import Order
from .payment_panels import PaymentSession
from .payment_sessions import SessionStore
from .reconciliation import reconcile
from .split_allocation import allocate_draft

PAID_MEMORY = 512

USER_MESSAGES = {
    "paid": "Payment processed successfully",
    "invalid": "Payment amounts must equal the total amount",
    "in_progress": "Payment is already being processed for this order",
    "validation": "Payment was rejected by the order service",
    "not_found": "Order not found",
    "conflict": "This order has already been paid",
    "transient": "Payment failed, please try again",
}


@dataclass
class CommitResult:
    status: str
    order_id: str
    message: str = ""
    errors: List[str] = field(default_factory=list)
    retryable: bool = False
    session_cleared: bool = False
    receipt: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.status == "paid"

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status": self.status,
            "order_id": self.order_id,
            "message": self.message,
            "errors": list(self.errors),
            "retryable": self.retryable,
            "session_cleared": self.session_cleared,
            "receipt": self.receipt,
        }


def _panel_doc(p) -> dict:
    return {"id": p.id, "currency": p.currency, "method": p.method, "amount": p.amount}


def build_settlement_payload(session: PaymentSession) -> dict:
    panels = session.active_panels()
    split = session.mode == "split"
    riel = [p for p in panels if p.currency == "Riel"]
    riel_total = sum((parse_amount(p.amount) for p in riel), Decimal("0"))
    return {
        "currency": "Riel" if panels and len(riel) == len(panels) else "USD",
        "rielAmount": (str(riel_total) if riel else None),
        "splitBill": split,
        "splitAmounts": [_panel_doc(p) for p in panels] if split else [],
        "paymentMethods": [] if split else [_panel_doc(p) for p in panels],
        "mixedPayments": (not split) and len(panels) > 1,
        "mixedCurrency": bool(riel),
        # Legacy single-method field still validated by the order service.
        "paymentMethod": panels[0].method if panels else "CASH",
    }


def _failure_status(status_code: Optional[int]) -> str:
    if status_code == 404:
        return "not_found"
    if status_code == 409:
        return "conflict"
    if status_code is None or status_code >= 500:
        return "transient"
    return "validation"


class CommitGateway:
    def __init__(self, client: OrderServiceClient, store: SessionStore, paid_memory: int = PAID_MEMORY):
        self.client = client
        self.store = store
        self.paid_memory = paid_memory
        self._lock = threading.Lock()
        self._inflight = set()
        # Orders settled here that the order service may not report as paid yet.
        self._paid = OrderedDict()

    def is_in_flight(self, order_id) -> bool:
        with self._lock:
            return str(order_id) in self._inflight

    def is_paid(self, order_id) -> bool:
        with self._lock:
            return str(order_id) in self._paid

    def forget_paid(self, order_id) -> None:
        with self._lock:
            self._paid.pop(str(order_id), None)

    def _remember_paid(self, order_id: str) -> None:
        with self._lock:
            self._paid[order_id] = True
            self._paid.move_to_end(order_id)
            while len(self._paid) > self.paid_memory:
                self._paid.popitem(last=False)

    def _claim(self, order_id: str) -> bool:
        with self._lock:
            if order_id in self._inflight:
                return False
            self._inflight.add(order_id)
            return True

    def _release(self, order_id: str) -> None:
        with self._lock:
            self._inflight.discard(order_id)

    def commit(self, order: Order, session: Optional[PaymentSession], rate) -> CommitResult:
        """Settle `session` for `order`. `session` may be None only for an order already paid."""
        oid = str(order.id)
        if order.is_paid or self.is_paid(oid):
            self.store.clear(oid)
            json_log("info", "payment.commit.rejected", order_id=oid, errors=["order already paid"])
            return CommitResult(status="conflict", order_id=oid, message=USER_MESSAGES["conflict"], session_cleared=True)
        recon = reconcile(session.active_panels(), order.total, rate)
        if not recon.can_commit:
            errors = list(recon.errors)
            if not errors:
                errors = [f"Remaining balance must be 0 (remaining {recon.remaining_usd})"]
            json_log("info", "payment.commit.rejected", order_id=oid, errors=errors)
            return CommitResult(status="invalid", order_id=oid, message=USER_MESSAGES["invalid"], errors=errors)

        if not self._claim(oid):
            return CommitResult(status="in_progress", order_id=oid, message=USER_MESSAGES["in_progress"])
        try:
            payload = build_settlement_payload(session)
            try:
                res = self.client.pay_order(oid, payload)
            except OrderServiceError as ex:
                status = _failure_status(ex.status_code)
                cleared = False
                if status == "conflict":
                    # Already settled upstream; the stored session can never be committed.
                    self.store.clear(oid)
                    cleared = True
                json_log(
                    "warning",
                    "payment.commit.failed",
                    order_id=oid,
                    status=status,
                    status_code=ex.status_code,
                    errors=ex.messages,
                )
                return CommitResult(
                    status=status,
                    order_id=oid,
                    message=USER_MESSAGES[status],
                    errors=ex.messages,
                    retryable=(status == "transient"),
                    session_cleared=cleared,
                )

            self.store.clear(oid)
            self._remember_paid(oid)
            data = res.get("data") if isinstance(res.get("data"), dict) else {}
            receipt = {
                "receipt_type": "final",
                "order_id": str(data.get("orderId") or oid),
                "split_bill": session.mode == "split",
                "splits": [],
            }
            if session.mode == "split":
                receipt["splits"] = [a.as_dict() for a in allocate_draft(order, session.split_panels, rate)]
            json_log("info", "payment.commit.ok", order_id=oid, mode=session.mode, tendered_usd=recon.total_tendered_usd)
            return CommitResult(
                status="paid",
                order_id=oid,
                message=USER_MESSAGES["paid"],
                session_cleared=True,
                receipt=receipt,
            )
        finally:
            self._release(oid)
