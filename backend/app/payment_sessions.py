"""
Local, per-order storage of in-progress payment sessions.

Rows hold the same document the cashier screen reads and writes:

    {"activeTab": "full"|"split", "fullPaymentPanels": [...],
     "splitPaymentPanels": [...], "timestamp": <epoch ms>}

Storage is best-effort: a row that no longer parses is dropped and reported
as missing, so the screen falls back to the default seeding.
"""
from __future__ import annotations

import json
import os
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from typing import Optional

from .json_log import json_log
from .orders import Order
from .payment_panels import PaymentPanel, PaymentSession, apply_full_default, seed_full_panels, seed_session, seed_split_panels


def _epoch_ms(dt: Optional[datetime]) -> int:
    dt = dt or datetime.now(timezone.utc)
    return int(dt.timestamp() * 1000)


def session_to_doc(session: PaymentSession) -> dict:
    return {
        "activeTab": session.mode,
        "fullPaymentPanels": [p.model_dump() for p in session.full_panels],
        "splitPaymentPanels": [p.model_dump() for p in session.split_panels],
        "timestamp": _epoch_ms(session.updated_at),
    }


def session_from_doc(order_id, doc) -> PaymentSession:
    if not isinstance(doc, dict):
        raise ValueError("stored session is not an object")
    for key in ("activeTab", "fullPaymentPanels", "splitPaymentPanels"):
        if key not in doc:
            raise ValueError(f"stored session is missing {key}")
    ts = doc.get("timestamp")
    updated_at = datetime.fromtimestamp(int(ts) / 1000, tz=timezone.utc) if ts is not None else None
    session = PaymentSession(
        order_id=str(order_id),
        mode=doc["activeTab"],
        full_panels=[PaymentPanel.model_validate(p) for p in doc["fullPaymentPanels"]],
        split_panels=[PaymentPanel.model_validate(p) for p in doc["splitPaymentPanels"]],
        updated_at=updated_at,
    )
    ids = [p.id for p in session.full_panels] + [p.id for p in session.split_panels]
    if len(set(ids)) != len(ids):
        raise ValueError("stored session has duplicate payment ids")
    return session


class SessionStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ready = False

    @contextmanager
    def _connect(self):
        parent = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(parent, exist_ok=True)
        with closing(sqlite3.connect(self.db_path)) as conn:
            with conn:
                yield conn

    def init_db(self):
        if self._ready:
            return
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS payment_sessions (
                  order_id TEXT PRIMARY KEY,
                  state_json TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
        self._ready = True

    def save(self, order_id, session: PaymentSession) -> dict:
        self.init_db()
        doc = session_to_doc(session)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO payment_sessions (order_id, state_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(order_id) DO UPDATE SET
                  state_json = excluded.state_json,
                  updated_at = excluded.updated_at
                """,
                (str(order_id), json.dumps(doc), datetime.now(timezone.utc).isoformat()),
            )
        return doc

    def load(self, order_id) -> Optional[PaymentSession]:
        try:
            self.init_db()
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT state_json FROM payment_sessions WHERE order_id = ?", (str(order_id),)
                ).fetchone()
        except sqlite3.DatabaseError as ex:
            json_log("warning", "payment.session.unreadable", order_id=str(order_id), path=self.db_path, error=str(ex))
            return None
        if row is None:
            return None
        try:
            return session_from_doc(order_id, json.loads(row[0]))
        except (ValueError, TypeError, KeyError, OverflowError) as ex:
            json_log("warning", "payment.session.corrupt", order_id=str(order_id), error=str(ex))
            self.clear(order_id)
            return None

    def clear(self, order_id) -> None:
        self.init_db()
        with self._connect() as conn:
            conn.execute("DELETE FROM payment_sessions WHERE order_id = ?", (str(order_id),))

    def load_or_seed(self, order: Order) -> PaymentSession:
        """
        Restore the stored session or seed a new one. The order total is only
        pre-filled at seed time; a restored amount is the cashier's, even when
        it is empty.
        """
        session = self.load(order.id)
        if session is None:
            session = seed_session(order.id, order.total)
            apply_full_default(session, order.total)
            self.save(order.id, session)
            return session
        changed = False
        # A restored session must still have at least one panel per mode.
        next_id = max([p.id for p in session.full_panels + session.split_panels], default=0) + 1
        if not session.full_panels:
            session.full_panels = seed_full_panels(order.total, first_id=next_id)
            next_id += len(session.full_panels)
            changed = True
        if not session.split_panels:
            session.split_panels = seed_split_panels(order.total, first_id=next_id)
            changed = True
        if changed:
            self.save(order.id, session)
        return session
