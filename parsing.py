"""Lenient parsers for numbers and dates scraped out of HTML cells."""

from __future__ import annotations

import re
from datetime import date, datetime

EPOCH = date(1970, 1, 1)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_FLOAT = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)")
_SLASH_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})")
_ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")

# Formats seen on Finviz and other quote pages ("Oct 10 '25", "Oct 10, 2025").
_GENERIC_FORMATS = (
    "%b %d '%y",
    "%b %d %y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)


def parse_number(text: str | None) -> float:
    """Parse "$1,234", "12.3%" and friends into a float.

    Everything except digits, '.' and '-' is dropped first. Malformed input
    yields 0.0, which callers cannot tell apart from a genuine zero.
    """
    if not text:
        return 0.0
    cleaned = _NON_NUMERIC.sub("", text)
    try:
        return float(cleaned)
    except ValueError:
        match = _LEADING_FLOAT.match(cleaned)
        if match:
            return float(match.group(0))
        return 0.0


def parse_transaction_value(text: str | None) -> float:
    """Parse a money cell, treating '-' or '(' as accounting negatives."""
    if not text:
        return 0.0
    cleaned = re.sub(r"[$,\s]", "", text)
    negative = "-" in cleaned or "(" in cleaned
    digits = re.sub(r"[-()]", "", cleaned)
    try:
        value = abs(float(digits))
    except ValueError:
        return 0.0
    return -value if negative else value


def parse_transaction_date(text: str | None) -> date:
    """Parse MM/DD/YY(YY), YYYY-MM-DD or a handful of month-name formats.

    Returns EPOCH when nothing matches so the row falls outside any
    recency window.
    """
    if not text:
        return EPOCH
    text = text.strip()

    match = _SLASH_DATE.search(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            return EPOCH

    match = _ISO_DATE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return EPOCH

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _GENERIC_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return EPOCH


def parse_metric(text: str | None) -> float | None:
    """Leading-float parse of a display metric ("12.3%" -> 12.3, "-" -> None)."""
    if text is None:
        return None
    match = _LEADING_FLOAT.match(text.strip().replace(",", ""))
    if not match:
        return None
    return float(match.group(0))
