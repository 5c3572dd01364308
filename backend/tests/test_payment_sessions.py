import json
import sqlite3
from decimal import Decimal

from backend.app.orders import Order
from backend.app.payment_panels import PanelEditor, PaymentPanel, PaymentSession
from backend.app.payment_sessions import SessionStore, session_to_doc


def _order(oid="5", total="31.90"):
    return Order(id=oid, subtotal=Decimal("29.00"), tax=Decimal("2.90"), discount=Decimal("0"), total=Decimal(total))


def _store(tmp_path):
    return SessionStore(str(tmp_path / "sessions.sqlite"))


def _raw_row(store, order_id):
    with sqlite3.connect(store.db_path) as conn:
        cur = conn.cursor()
        cur.execute("SELECT state_json FROM payment_sessions WHERE order_id = ?", (order_id,))
        return cur.fetchone()


def test_saved_document_has_the_screen_shape(tmp_path):
    store = _store(tmp_path)
    s = PaymentSession(
        order_id="5",
        mode="split",
        full_panels=[PaymentPanel(id=1, amount="31.90")],
        split_panels=[PaymentPanel(id=2, currency="Riel", method="QR", amount="59450")],
    )
    store.save("5", s)
    doc = json.loads(_raw_row(store, "5")[0])
    assert set(doc) == {"activeTab", "fullPaymentPanels", "splitPaymentPanels", "timestamp"}
    assert doc["activeTab"] == "split"
    assert doc["splitPaymentPanels"] == [{"id": 2, "currency": "Riel", "method": "QR", "amount": "59450"}]
    assert isinstance(doc["timestamp"], int)


def test_save_load_and_overwrite(tmp_path):
    store = _store(tmp_path)
    s = PaymentSession(order_id="5", full_panels=[PaymentPanel(id=1, amount="10")], split_panels=[PaymentPanel(id=2)])
    store.save("5", s)
    s.full_panels[0].amount = "12"
    store.save("5", s)
    loaded = store.load("5")
    assert loaded.full_panels[0].amount == "12"
    assert loaded.updated_at is not None


def test_sessions_are_scoped_per_order(tmp_path):
    store = _store(tmp_path)
    store.save("1", PaymentSession(order_id="1", full_panels=[PaymentPanel(id=1, amount="1")]))
    store.save("2", PaymentSession(order_id="2", full_panels=[PaymentPanel(id=1, amount="2")]))
    store.clear("1")
    assert store.load("1") is None
    assert store.load("2").full_panels[0].amount == "2"


def test_corrupt_row_is_discarded_and_reads_as_missing(tmp_path):
    store = _store(tmp_path)
    store.init_db()
    with sqlite3.connect(store.db_path) as conn:
        conn.execute(
            "INSERT INTO payment_sessions (order_id, state_json, updated_at) VALUES (?, ?, ?)",
            ("5", "{broken", "2026-01-01T00:00:00+00:00"),
        )
        conn.execute(
            "INSERT INTO payment_sessions (order_id, state_json, updated_at) VALUES (?, ?, ?)",
            ("6", json.dumps({"activeTab": "sideways", "fullPaymentPanels": [], "splitPaymentPanels": []}), "x"),
        )
        conn.commit()
    assert store.load("5") is None
    assert _raw_row(store, "5") is None
    assert store.load("6") is None
    assert _raw_row(store, "6") is None


def test_load_or_seed_seeds_and_persists_new_session(tmp_path):
    store = _store(tmp_path)
    s = store.load_or_seed(_order())
    assert s.mode == "full"
    assert s.full_panels[0].amount == "31.90"
    assert [p.amount for p in s.split_panels] == ["15.95", "15.95"]
    assert _raw_row(store, "5") is not None


def test_load_or_seed_restores_typed_input(tmp_path):
    store = _store(tmp_path)
    s = store.load_or_seed(_order())
    ed = PanelEditor(s, on_change=lambda x: store.save("5", x))
    ed.update_panel(1, "amount", "20")
    ed.add_panel()
    restored = store.load_or_seed(_order())
    assert [p.amount for p in restored.full_panels] == ["20", ""]


def test_load_or_seed_refills_empty_collections(tmp_path):
    store = _store(tmp_path)
    store.save("5", PaymentSession(order_id="5", mode="split", full_panels=[], split_panels=[PaymentPanel(id=3, amount="1")]))
    s = store.load_or_seed(_order())
    assert [p.id for p in s.full_panels] == [4]
    assert s.split_panels[0].amount == "1"


def test_session_to_doc_round_trips_through_store(tmp_path):
    store = _store(tmp_path)
    s = store.load_or_seed(_order(oid="8"))
    assert session_to_doc(store.load("8"))["fullPaymentPanels"] == session_to_doc(s)["fullPaymentPanels"]


def test_load_or_seed_keeps_an_amount_the_cashier_cleared(tmp_path):
    store = _store(tmp_path)
    s = store.load_or_seed(_order())
    ed = PanelEditor(s, on_change=lambda x: store.save("5", x))
    ed.update_panel(1, "amount", "")
    restored = store.load_or_seed(_order())
    assert [p.amount for p in restored.full_panels] == [""]
    assert store.load("5").full_panels[0].amount == ""


def test_unreadable_database_file_reads_as_missing(tmp_path):
    path = tmp_path / "sessions.sqlite"
    path.write_bytes(b"this is not a sqlite database" * 64)
    store = SessionStore(str(path))
    assert store.load("5") is None
