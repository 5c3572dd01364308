from decimal import Decimal

from backend.app.currency import parse_amount, to_primary
from backend.app.payment_panels import PaymentPanel
from backend.app.reconciliation import reconcile

RATE = Decimal("4100")
TOTAL = Decimal("31.90")


def _p(amount, currency="USD", method="CASH", pid=1):
    return PaymentPanel(id=pid, currency=currency, method=method, amount=amount)


def test_exact_usd_payment_can_commit():
    res = reconcile([_p("31.90")], TOTAL, RATE)
    assert res.total_tendered_usd == Decimal("31.90")
    assert res.remaining_usd == 0
    assert res.errors == []
    assert res.can_commit


def test_riel_payment_converts_and_settles():
    res = reconcile([_p("130790", currency="Riel")], TOTAL, RATE)
    assert res.total_tendered_usd == Decimal("31.90")
    assert res.remaining_usd == 0
    assert res.can_commit


def test_mixed_currency_panels_sum_in_usd():
    res = reconcile([_p("20", pid=1), _p("48790", currency="Riel", method="QR", pid=2)], TOTAL, RATE)
    # 48790 / 4100 = 11.9000 -> 11.90
    assert res.total_tendered_usd == Decimal("31.90")
    assert res.can_commit


def test_small_drift_under_five_cents_counts_as_settled():
    res = reconcile([_p("31.86")], TOTAL, RATE)
    assert res.remaining_usd == 0
    assert res.errors == ["Payment total is less than the order total"]
    assert not res.can_commit

    res = reconcile([_p("31.93")], TOTAL, RATE)
    assert res.remaining_usd == 0
    assert res.can_commit


def test_overpayment_beyond_ten_percent_is_an_error():
    res = reconcile([_p("35.10")], TOTAL, RATE)
    assert "Payment total exceeds the order total by more than 10%" in res.errors
    assert not res.can_commit


def test_overpayment_within_ten_percent_has_no_error_but_cannot_commit():
    res = reconcile([_p("35.00")], TOTAL, RATE)
    assert res.errors == []
    assert res.remaining_usd == Decimal("-3.10")
    assert not res.can_commit


def test_underpayment_is_an_error_and_leaves_remaining():
    res = reconcile([_p("20")], TOTAL, RATE)
    assert res.remaining_usd == Decimal("11.90")
    assert res.errors == ["Payment total is less than the order total"]
    # 11.90 * 4100 = 48790 -> shown as 48800 Riel
    assert res.remaining_riel_display == Decimal("48800")


def test_all_errors_are_collected_together():
    res = reconcile([_p("", pid=1), _p("0", pid=2), _p("10", pid=3)], TOTAL, RATE)
    assert res.errors == [
        "Payment 1: Amount is required and must be greater than 0",
        "Payment 2: Amount is required and must be greater than 0",
        "Payment total is less than the order total",
    ]


def test_reconcile_is_idempotent():
    panels = [_p("12.345", pid=1), _p("41000", currency="Riel", pid=2)]
    assert reconcile(panels, TOTAL, RATE) == reconcile(panels, TOTAL, RATE)


def test_remaining_tracks_unrounded_difference():
    cases = [
        ["10"],
        ["10.005", "5.12"],
        ["1", "2", "3"],
        ["40000"],
        ["0.99", "4099"],
    ]
    for amounts in cases:
        panels = [
            _p(a, currency=("Riel" if Decimal(a) >= 1000 else "USD"), pid=i)
            for i, a in enumerate(amounts, start=1)
        ]
        res = reconcile(panels, TOTAL, RATE)
        raw = TOTAL - sum(to_primary(parse_amount(p.amount), p.currency, RATE) for p in panels)
        if abs(raw) >= Decimal("0.05"):
            assert abs(res.remaining_usd - raw) <= Decimal("0.005")
        else:
            assert res.remaining_usd == 0


def test_oversized_amount_is_reported_as_overpayment():
    for currency in ("USD", "Riel"):
        res = reconcile([_p("1" + "0" * 30, currency=currency)], TOTAL, RATE)
        assert res.errors == ["Payment total exceeds the order total by more than 10%"]
        assert not res.can_commit
        assert res.remaining_riel_display == 0
