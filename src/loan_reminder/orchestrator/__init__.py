"""High-level orchestration for ingestion and scheduled reminders."""

from .ingest import IngestionError, IngestionPipeline, IngestResult
from .scanner import DueDateScanner, due_soon_window, today_in_timezone
from .dispatch import NotificationDispatcher, ScanReport, render_notification
from .service import LoanService, SCHEDULE_SOURCE

__all__ = [
    "IngestionError",
    "IngestionPipeline",
    "IngestResult",
    "DueDateScanner",
    "due_soon_window",
    "today_in_timezone",
    "NotificationDispatcher",
    "ScanReport",
    "render_notification",
    "LoanService",
    "SCHEDULE_SOURCE",
]
