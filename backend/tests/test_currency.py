from decimal import Decimal

import pytest

from backend.app.currency import (
    parse_amount,
    primary_to_secondary_display,
    round2,
    secondary_to_primary,
    to_primary,
)


def test_secondary_to_primary_rounds_half_up_on_the_cent():
    # 130790 / 4100 = 31.89990...
    assert secondary_to_primary(Decimal("130790"), Decimal("4100")) == Decimal("31.90")
    # 20.5 / 100 = 0.205 -> 0.21 (not banker's rounding)
    assert secondary_to_primary(Decimal("20.5"), Decimal("100")) == Decimal("0.21")


def test_primary_to_secondary_display_rounds_up_to_next_100_riel():
    assert primary_to_secondary_display(Decimal("31.90"), Decimal("4100")) == Decimal("130800")
    assert primary_to_secondary_display(Decimal("1.00"), Decimal("4100")) == Decimal("4100")
    assert primary_to_secondary_display(Decimal("0.01"), Decimal("4100")) == Decimal("100")


def test_display_of_converted_riel_is_never_below_the_debt():
    rate = Decimal("4100")
    for riel in ("100", "4099", "130790", "205001", "999999"):
        usd = secondary_to_primary(Decimal(riel), rate)
        shown = primary_to_secondary_display(usd, rate)
        assert shown >= usd * rate
        assert shown % 100 == 0


def test_conversion_uses_the_rate_passed_in_each_call():
    assert secondary_to_primary(Decimal("4100"), Decimal("4100")) == Decimal("1.00")
    assert secondary_to_primary(Decimal("4100"), Decimal("4000")) == Decimal("1.03")


def test_invalid_rate_is_rejected():
    with pytest.raises(ValueError):
        secondary_to_primary(Decimal("100"), Decimal("0"))
    with pytest.raises(ValueError):
        primary_to_secondary_display(Decimal("1"), "abc")


def test_parse_amount_treats_bad_input_as_zero():
    assert parse_amount("") == Decimal("0")
    assert parse_amount(None) == Decimal("0")
    assert parse_amount(".") == Decimal("0")
    assert parse_amount("-5") == Decimal("0")
    assert parse_amount("12.5") == Decimal("12.5")


def test_to_primary_dispatches_by_currency():
    assert to_primary(Decimal("10"), "USD", Decimal("4100")) == Decimal("10")
    assert to_primary(Decimal("41000"), "Riel", Decimal("4100")) == Decimal("10.00")
    with pytest.raises(ValueError):
        to_primary(Decimal("1"), "EUR", Decimal("4100"))


def test_round2_half_up():
    assert round2(Decimal("1.005")) == Decimal("1.01")
    assert round2("2.344") == Decimal("2.34")


def test_round2_handles_amounts_wider_than_default_precision():
    huge = "1" + "0" * 30
    assert round2(huge) == Decimal(huge)
    assert round2(huge + ".005") == Decimal(huge + ".01")
