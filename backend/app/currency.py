from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP, localcontext

USD_Q = Decimal("0.01")
RIEL_DISPLAY_STEP = Decimal("100")


def round2(v) -> Decimal:
    d = Decimal(str(v or 0))
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the cents
        ctx.prec = max(ctx.prec, d.adjusted() + 3)
        return d.quantize(USD_Q, rounding=ROUND_HALF_UP)


def _rate(rate) -> Decimal:
    try:
        r = Decimal(str(rate))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid exchange rate: {rate!r}")
    if not r.is_finite() or r <= 0:
        raise ValueError("exchange rate must be > 0")
    return r


def parse_amount(raw) -> Decimal:
    """
    Parse a tender amount as entered by the cashier.
    Empty, malformed and negative input all read as 0 so partial input
    never breaks the running totals.
    """
    s = str(raw if raw is not None else "").strip()
    if not s:
        return Decimal("0")
    try:
        v = Decimal(s)
    except InvalidOperation:
        return Decimal("0")
    if not v.is_finite() or v < 0:
        return Decimal("0")
    return v


def secondary_to_primary(amount, rate) -> Decimal:
    """Riel received -> USD ledger amount, half-up on the cent."""
    return round2(Decimal(str(amount or 0)) / _rate(rate))


def primary_to_secondary_display(amount, rate) -> Decimal:
    """
    USD owed -> Riel to ask for. Always rounded up to the next 100 Riel so the
    displayed debt is never below what is actually owed.
    """
    riel = Decimal(str(amount or 0)) * _rate(rate)
    steps = (riel / RIEL_DISPLAY_STEP).to_integral_value(rounding=ROUND_CEILING)
    return steps * RIEL_DISPLAY_STEP


def to_primary(amount, currency: str, rate) -> Decimal:
    if currency == "Riel":
        return secondary_to_primary(amount, rate)
    if currency == "USD":
        return Decimal(str(amount or 0))
    raise ValueError(f"unsupported currency: {currency!r}")
