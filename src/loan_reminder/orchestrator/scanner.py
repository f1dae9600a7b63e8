from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import ConfigError
from ..domain.models import LoanRecord
from ..logging import get_logger
from ..store.loans import LoanStore


LOG = get_logger("orchestrator-scanner")


def today_in_timezone(tz_name: str, now: Optional[datetime] = None) -> date:
    """Return today's calendar date in tz_name; naive ``now`` is taken as UTC."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone {tz_name!r}") from exc
    current = now or datetime.now(tz)
    if current.tzinfo is None:
        current = current.replace(tzinfo=ZoneInfo("UTC"))
    return current.astimezone(tz).date()


def due_soon_window(reference_date: date) -> List[str]:
    return [reference_date.isoformat(), (reference_date + timedelta(days=1)).isoformat()]


class DueDateScanner:
    """Find loans of every user due on the reference date or the day after."""

    def __init__(self, loan_store: LoanStore) -> None:
        self.loan_store = loan_store

    def find_due_soon(self, reference_date: date) -> List[LoanRecord]:
        window = due_soon_window(reference_date)
        loans = self.loan_store.scan_due(window)
        LOG.info("Found %d loan(s) due in %s", len(loans), window)
        return loans
