"""Entry points consumed by an outer request layer or the scheduler."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from ..config import ConfigError, Settings
from ..domain.models import LoanRecord
from ..extraction.backends import ImageExtractionService, build_extraction_service
from ..logging import get_logger
from ..notify.push import PushNotifier, build_notifier
from ..store.db import LoanDatabase, StoreError
from ..store.loans import LoanStore
from ..store.subscriptions import SubscriptionStore
from .dispatch import NotificationDispatcher, ScanReport
from .ingest import IngestionPipeline, IngestResult
from .scanner import DueDateScanner, today_in_timezone


LOG = get_logger("orchestrator-service")

# Discriminator carried by the scheduler's event payload.
SCHEDULE_SOURCE = "morning_schedule"


class _DeferredNotifier:
    """Resolves the service's notifier on the first send; scans that deliver nothing never build it."""

    def __init__(self, service: "LoanService") -> None:
        self._service = service

    def send(self, subscription: Mapping[str, Any], payload: str) -> None:
        self._service.notifier.send(subscription, payload)


class LoanService:
    """Wires stores, the model client and the push notifier from explicit settings.

    The model client and notifier are built on first use so that commands
    that never call them (listing, deleting) work without their credentials.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        db: Optional[LoanDatabase] = None,
        extraction_service: Optional[ImageExtractionService] = None,
        notifier: Optional[PushNotifier] = None,
    ) -> None:
        self.settings = settings
        self.db = db or LoanDatabase(settings.db_path)
        self.loans = LoanStore(self.db)
        self.subscriptions = SubscriptionStore(self.db)
        self.scanner = DueDateScanner(self.loans)
        self._extraction_service = extraction_service
        self._notifier = notifier

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoanService":
        return cls(settings)

    @property
    def extraction_service(self) -> ImageExtractionService:
        if self._extraction_service is None:
            self._extraction_service = build_extraction_service(self.settings)
        return self._extraction_service

    @property
    def notifier(self) -> PushNotifier:
        if self._notifier is None:
            self._notifier = build_notifier(self.settings)
        return self._notifier

    def ingest(self, user_id: str, image_base64: str) -> IngestResult:
        pipeline = IngestionPipeline(self.extraction_service, self.loans)
        return pipeline.ingest(user_id, image_base64)

    def list_loans(self, user_id: str) -> List[LoanRecord]:
        return self.loans.list(user_id)

    def delete_loan(self, user_id: str, book_id: str) -> None:
        self.loans.delete(user_id, book_id)

    def put_subscription(self, user_id: str, subscription: Mapping[str, Any]) -> None:
        self.subscriptions.put(user_id, subscription)

    def run_scheduled_scan(self, reference_date: Optional[date] = None) -> ScanReport:
        ref = reference_date or today_in_timezone(self.settings.timezone)
        dispatcher = NotificationDispatcher(self.scanner, self.subscriptions, _DeferredNotifier(self))
        return dispatcher.run_scheduled_scan(ref)

    def handle_event(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        """Scheduled-trigger entry point; interactive requests are routed elsewhere."""
        source = event.get("source") if isinstance(event, Mapping) else None
        if source != SCHEDULE_SOURCE:
            LOG.warning("Ignoring event with unsupported source=%r", source)
            return {"statusCode": 400, "body": f"Unsupported event source: {source!r}"}
        try:
            report = self.run_scheduled_scan()
        except (StoreError, ConfigError) as exc:
            LOG.error("Error sending notifications: %s", exc)
            return {"statusCode": 500, "body": f"Scheduled task failed: {exc}"}
        except Exception as exc:
            LOG.exception("Unexpected failure in scheduled task: %s", exc)
            return {"statusCode": 500, "body": "Scheduled task failed: internal error"}
        LOG.info("Scheduled task executed: delivered=%d failed=%d", report.delivered, report.failed)
        return {"statusCode": 200, "body": "Scheduled task executed."}
