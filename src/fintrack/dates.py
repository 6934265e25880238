"""
Date normalization — convert between the two textual date encodings.

Persisted ledger dates use ``DD-MM-YYYY``. Date inputs coming from pickers,
APIs, and config files use ``YYYY-MM-DD`` (optionally with a time suffix).
Everything in FinTrack works on :class:`datetime.date` internally and goes
through this module at the edges.

None of the parsing helpers raise: an unparseable value yields ``None``, the
invalid-date sentinel.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import date, datetime

import pandas as pd

logger = logging.getLogger("fintrack.dates")

_DAY_FIRST = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def parse_flexible(value: str | date | None) -> date | None:
    """Parse a date written as ``DD-MM-YYYY`` or ``YYYY-MM-DD[...]``.

    The encoding is detected positionally: a two-digit first token is
    day-first, a four-digit first token is year-first. Anything else goes
    through a generic parser. Returns ``None`` when no interpretation works.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    match = _DAY_FIRST.match(text)
    if match:
        d, m, y = (int(g) for g in match.groups())
        return _safe_date(y, m, d)

    match = _YEAR_FIRST.match(text)
    if match:
        y, m, d = (int(g) for g in match.groups())
        return _safe_date(y, m, d)

    return _generic_parse(text)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _generic_parse(text: str) -> date | None:
    try:
        parsed = pd.to_datetime(text, dayfirst=True)
    except (ValueError, TypeError, OverflowError):
        logger.debug("Unparseable date: %r", text)
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def to_day_first(d: date) -> str:
    """Format a date as ``DD-MM-YYYY``."""
    return f"{d.day:02d}-{d.month:02d}-{d.year:04d}"


def to_year_first(d: date) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def iso_to_day_first(text: str) -> str:
    """Rewrite ``YYYY-MM-DD[Thh:mm...]`` as ``DD-MM-YYYY``.

    Text that does not split into three dash-separated parts is returned as is.
    """
    if not text:
        return ""
    parts = text.split("T")[0].split("-")
    if len(parts) != 3:
        return text
    y, m, d = parts
    return f"{d}-{m}-{y}"


def day_first_to_iso(text: str) -> str:
    """Rewrite ``DD-MM-YYYY`` as ``YYYY-MM-DD``."""
    if not text:
        return ""
    parts = text.split("-")
    if len(parts) != 3:
        return text
    d, m, y = parts
    return f"{y}-{m}-{d}"


def normalize_to_iso(text: str) -> str:
    """Normalize a stored date string to ``YYYY-MM-DD``, or ``""``."""
    if not text:
        return ""
    if _DAY_FIRST.match(text):
        return day_first_to_iso(text)
    if _YEAR_FIRST.match(text):
        return text.split("T")[0]
    return ""


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def same_month(a: date, b: date) -> bool:
    return a.year == b.year and a.month == b.month
