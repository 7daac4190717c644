# Overview: Fixed-point money helpers (integer cents, percentages in basis points).

"""
All balances and amounts are integer cents; all percentages are basis points
(500 = 5.00%). Every arithmetic step that can produce a fraction of a cent is
rounded half away from zero, so repeated edits never compound rounding error.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvalidAmountError

# Maximum single amount: 9,999,999,999.99
MAX_AMOUNT_CENTS = 999_999_999_999

BPS_PER_PERCENT = 100
MAX_PERCENT_BPS = 100 * BPS_PER_PERCENT


def _to_decimal(value) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError()
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError()
    if not number.is_finite():
        raise InvalidAmountError()
    return number


def parse_amount_cents(value) -> int:
    """
    Parse a client-supplied currency amount ("12.5", 12.5, "100") into cents.

    Raises InvalidAmountError for non-numeric, non-positive or oversized values.
    """
    number = _to_decimal(value)
    cents = int((number * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidAmountError("Amount is too large")
    return cents


def parse_min_amount_cents(value) -> int:
    """Parse a tier threshold; zero is allowed, negatives are not."""
    number = _to_decimal(value)
    cents = int((number * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise InvalidAmountError("minAmount must be >= 0")
    return cents


def parse_percent_bps(value) -> int:
    """
    Convert a configured percentage (e.g. 2.5) into basis points, clamped to
    [0, 100] percent.
    """
    number = _to_decimal(value)
    bps = int((number * BPS_PER_PERCENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(max(bps, 0), MAX_PERCENT_BPS)


def percent_of(amount_cents: int, percent_bps: int) -> int:
    """round2(amount * percent / 100), expressed in cents."""
    if not amount_cents or not percent_bps:
        return 0
    raw = Decimal(amount_cents) * Decimal(percent_bps) / Decimal(MAX_PERCENT_BPS)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_str(cents: int | None) -> str | None:
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{frac:02d}"


def bps_to_percent(bps: int | None) -> float:
    return (bps or 0) / BPS_PER_PERCENT


def format_amount(cents: int, label: str = "SSP") -> str:
    return f"{label} {cents_to_str(cents)}"


def ensure_amount_cents(amount_cents) -> int:
    """Guard for service entry points that receive already-parsed cents."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmountError()
    if amount_cents <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise InvalidAmountError("Amount is too large")
    return amount_cents
