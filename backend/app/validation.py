from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BeforeValidator


def _to_upper_str(v):
    if v is None:
        return v
    return str(v).strip().upper()


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _to_tender_currency(v):
    # The order service spells the secondary currency "Riel", not an ISO code.
    if v is None:
        return v
    s = str(v).strip()
    if s.upper() == "USD":
        return "USD"
    if s.lower() in {"riel", "khr"}:
        return "Riel"
    return s


PRIMARY_CURRENCY = "USD"
SECONDARY_CURRENCY = "Riel"

TenderCurrency = Annotated[Literal["USD", "Riel"], BeforeValidator(_to_tender_currency)]
TenderMethod = Annotated[Literal["CASH", "CARD", "QR"], BeforeValidator(_to_upper_str)]
SessionMode = Annotated[Literal["full", "split"], BeforeValidator(_to_lower_str)]

TENDER_CURRENCIES = ("USD", "Riel")
TENDER_METHODS = ("CASH", "CARD", "QR")
SESSION_MODES = ("full", "split")


def normalize_currency(v) -> str:
    c = _to_tender_currency(v)
    if c not in TENDER_CURRENCIES:
        raise ValueError(f"unsupported currency: {v!r} (expected USD or Riel)")
    return c


def normalize_method(v) -> str:
    m = _to_upper_str(v)
    if m not in TENDER_METHODS:
        raise ValueError(f"unsupported payment method: {v!r} (expected CASH, CARD or QR)")
    return m


def normalize_mode(v) -> str:
    m = _to_lower_str(v)
    if m not in SESSION_MODES:
        raise ValueError(f"unsupported payment mode: {v!r} (expected full or split)")
    return m
