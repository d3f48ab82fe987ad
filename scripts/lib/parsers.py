"""
Value parsers for the dossier spreadsheet fields.
Amounts, rates and dates arrive as fr-FR display strings ("22 230 €",
"9,00%", "18/8/2020", "2020") or as plain numbers. Every parser here is
total: malformed input degrades to 0 (numbers) or None (dates).

Usage:
    from scripts.lib.parsers import parse_currency, parse_date, days_between

    parse_currency("1 000,00 €")      # 1000.0
    parse_date("2020")                # date(2020, 1, 1)
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

NOT_APPLICABLE = "SO"

# fr-FR grouping uses a narrow no-break space, the currency sign a no-break space
_GROUP_SEP = "\u202f"
_CURRENCY_SEP = "\u00a0"

_WHITESPACE_RE = re.compile(r"\s+")
_NON_NUMERIC_RE = re.compile(r"[^0-9,.\-]+")
_LEADING_FLOAT_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)")
_YEAR_RE = re.compile(r"^\d{4}$")
_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def is_not_applicable(raw: Any) -> bool:
    """True for the "SO" sentinel and blank cells (as opposed to a real 0)."""
    if raw is None:
        return True
    if isinstance(raw, str):
        text = raw.strip()
        return text == "" or text.upper() == NOT_APPLICABLE
    return False


def _extract_number(raw: Any) -> float:
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else 0.0
    if is_not_applicable(raw):
        return 0.0

    text = _WHITESPACE_RE.sub("", str(raw))
    text = _NON_NUMERIC_RE.sub("", text)
    text = text.replace(",", ".", 1)

    # Leading-prefix semantics: "12.5.3" reads as 12.5, "abc" as nothing
    match = _LEADING_FLOAT_RE.match(text)
    if not match:
        return 0.0
    try:
        value = float(match.group(0))
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_currency(raw: Any) -> float:
    """Parse a fr-FR amount ("8 892,00 €", 22230, "SO") into a float."""
    return _extract_number(raw)


def parse_percent(raw: Any) -> float:
    """Parse a display rate ("9,00%") into a fraction (0.09).

    Numeric input is taken to be a fraction already.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return _extract_number(raw)
    return _extract_number(raw) / 100


def to_display_percent(fraction: float) -> float:
    """Scale a stored fraction back to its display percentage."""
    return _extract_number(fraction) * 100


def _group_thousands(value: float, decimals: int) -> str:
    text = f"{abs(value):,.{decimals}f}"
    integer, _, fraction = text.partition(".")
    integer = integer.replace(",", _GROUP_SEP)
    sign = "-" if value < 0 and text.strip("0.,") else ""
    if decimals:
        return f"{sign}{integer},{fraction}"
    return f"{sign}{integer}"


def format_currency(value: Any) -> str:
    """Format a number as a fr-FR euro amount ("1 234,56 €").

    Strings are returned untouched so existing display values, including
    the "SO" sentinel, survive a round trip.
    """
    if isinstance(value, str):
        return value
    return f"{_group_thousands(parse_currency(value), 2)}{_CURRENCY_SEP}€"


def format_percent(fraction: Any) -> str:
    """Format a fraction (0.09) as a fr-FR percentage ("9,00 %")."""
    if isinstance(fraction, str):
        return fraction
    return f"{_group_thousands(to_display_percent(fraction), 2)}{_CURRENCY_SEP}%"


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if denominator == 0:
        return default
    return numerator / denominator


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero on the decimal value (1.15 -> 1.2)."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_date(raw: Any) -> Optional[date]:
    """Parse "DD/MM/YYYY" (padding optional) or a bare "YYYY" (1 January).

    Any other shape, or an impossible calendar date, yields None.
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None or isinstance(raw, bool):
        return None

    text = str(raw).strip()
    if not text:
        return None

    try:
        if _YEAR_RE.match(text):
            return date(int(text), 1, 1)
        match = _DATE_RE.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def parse_entry_date(raw: Any) -> Optional[date]:
    """Parse a client entry date: store ISO timestamps first, then parse_date."""
    if raw is None:
        return None
    match = _ISO_DATE_RE.match(str(raw).strip())
    if match:
        try:
            year, month, day = (int(part) for part in match.groups())
            return date(year, month, day)
        except ValueError:
            return None
    return parse_date(raw)


def days_between(d1: date, d2: date) -> int:
    """Whole days between two dates, order-independent."""
    delta = abs((d2 - d1).total_seconds())
    return math.ceil(delta / 86400)


def format_date(value: Optional[date]) -> str:
    """Return a "DD/MM/YYYY" string or "" for None."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return ""


# ---------------------------------------------------------------------------
# Record keys
# ---------------------------------------------------------------------------

def normalize_name(raw: Any) -> str:
    """Trimmed, lower-cased key for matching free-text names."""
    if raw is None:
        return ""
    return str(raw).strip().lower()


def is_cancelled(statut: Any) -> bool:
    """A sale counts as cancelled when its status mentions "annul"."""
    return "annul" in normalize_name(statut)


def sale_source(sale_type: Any) -> Optional[str]:
    """Map the "F / P" column to "F" (Fiche) or "P" (Parrainage)."""
    code = normalize_name(sale_type)
    if code.startswith("f"):
        return "F"
    if code.startswith("p"):
        return "P"
    return None


__all__ = [
    "NOT_APPLICABLE",
    "days_between",
    "format_currency",
    "format_date",
    "format_percent",
    "is_cancelled",
    "is_not_applicable",
    "normalize_name",
    "parse_currency",
    "parse_date",
    "parse_entry_date",
    "parse_percent",
    "round_half_up",
    "safe_div",
    "sale_source",
    "to_display_percent",
]
