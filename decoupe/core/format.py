"""Number, money and date formatting for rendered quotes (fr-MA conventions)."""

import math
from datetime import date, datetime
from typing import Any

from dateutil.parser import parse as _parse_date

# Currency code → suffix printed on documents
CURRENCY_SUFFIX = {"MAD": "DH", "EUR": "€"}


def safe_num(value: Any, default: float = 0.0) -> float:
    """Coerce value to a finite float, or return default.

    Missing (None/""), non-numeric and non-finite input all give the default.
    Strings may use a French decimal comma ("12,5").
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            n = float(value)
        except OverflowError:
            return default
        return n if math.isfinite(n) else default
    s = str(value).strip()
    for sep in ("\u00a0", "\u202f", " "):
        s = s.replace(sep, "")
    if not s:
        return default
    if "," in s and "." not in s and s.count(",") == 1:
        s = s.replace(",", ".")
    try:
        n = float(s)
    except ValueError:
        return default
    return n if math.isfinite(n) else default


def round3(value: float) -> float:
    return round(value + 0.0, 3)


def _group_fr(value: float, digits: int) -> str:
    # 1234567.891 → "1 234 567,891"
    s = f"{value:,.{digits}f}"
    return s.replace(",", " ").replace(".", ",")


def n_fixed(value: Any, digits: int = 2) -> str:
    """Grouped fixed-point string, e.g. n_fixed(1234.5) → '1 234,50'."""
    return _group_fr(safe_num(value), digits)


def num3(value: Any) -> str:
    """Quantities: three decimals with grouping."""
    return n_fixed(value, 3)


def fmt_money(amount: Any, currency: str = "MAD") -> str:
    suffix = CURRENCY_SUFFIX.get((currency or "MAD").upper(), (currency or "").upper())
    return f"{n_fixed(amount, 2)} {suffix}".rstrip()


def fmt_mad(amount: Any) -> str:
    return fmt_money(amount, "MAD")


def fmt_pct(value: Any) -> str:
    n = safe_num(value)
    if n == int(n):
        return f"{int(n)}%"
    return f"{_group_fr(n, 2).rstrip('0').rstrip(',')}%"


def fmt_date(value: Any) -> str:
    """dd/mm/yyyy for ISO strings, dates and datetimes. Unparseable input is echoed."""
    if value in (None, ""):
        return ""
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    try:
        return _parse_date(str(value)).strftime("%d/%m/%Y")
    except (ValueError, OverflowError):
        return str(value)
