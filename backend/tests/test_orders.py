from decimal import Decimal

import pytest

from backend.app.orders import OrderRecordError, order_from_record


def test_order_from_record_reads_service_fields():
    order = order_from_record({
        "id": 12,
        "orderNumber": "A-12",
        "subtotal": "29.00",
        "tax": "2.90",
        "discount": "0",
        "total": "31.90",
        "status": "PENDING",
        "splitBill": False,
        "currencySnapshot": {"exchangeRate": 4100},
    })
    assert order.id == "12"
    assert order.total == Decimal("31.90")
    assert order.tax == Decimal("2.90")
    assert order.currency_snapshot == {"exchangeRate": 4100}
    assert order.order_number == "A-12"
    assert not order.is_paid


def test_missing_subtotal_is_derived_from_total():
    order = order_from_record({"id": 1, "total": "31.90", "tax": "2.90", "discount": "1.00"})
    assert order.subtotal == Decimal("30.00")


def test_missing_total_or_id_is_fatal():
    with pytest.raises(OrderRecordError):
        order_from_record({"id": 1, "subtotal": "10"})
    with pytest.raises(OrderRecordError):
        order_from_record({"total": "10"})
    with pytest.raises(OrderRecordError):
        order_from_record(None)


def test_non_numeric_figures_are_fatal():
    with pytest.raises(OrderRecordError):
        order_from_record({"id": 1, "total": "ten"})
    with pytest.raises(OrderRecordError):
        order_from_record({"id": 1, "total": "10", "tax": "NaN"})


def test_completed_order_is_paid():
    order = order_from_record({"id": 1, "total": "5", "status": "completed", "splitBill": True, "splitAmounts": "[]"})
    assert order.is_paid
    assert order.split_bill
    assert order.split_amounts == "[]"
