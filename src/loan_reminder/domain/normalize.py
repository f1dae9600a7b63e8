import re
from datetime import date, datetime
from typing import Any, Optional


_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_WS = re.compile(r"\s+")


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse a strict ``YYYY-MM-DD`` string into a date.

    Returns None for non-strings, values with a time component and
    impossible calendar dates such as ``2025-02-30``.
    """
    if not isinstance(value, str):
        return None
    v = value.strip()
    if not _ISO_DATE.fullmatch(v):
        return None
    try:
        return datetime.strptime(v, "%Y-%m-%d").date()
    except ValueError:
        return None


def normalize_iso_date(value: Any) -> Optional[str]:
    parsed = parse_iso_date(value)
    return parsed.isoformat() if parsed else None


def normalize_title(value: Any) -> Optional[str]:
    """Collapse whitespace runs; None when nothing printable remains."""
    if not isinstance(value, str):
        return None
    t = _WS.sub(" ", value).strip()
    return t or None
