"""Scheduled due-date scan and per-loan push delivery.

Delivery is at-least-once: nothing records that a loan was already
notified, so a loan that stays inside the due-soon window is notified again
on every scan (and twice if two scans overlap).
"""

from __future__ import annotations

import json
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from ..domain.models import LoanRecord
from ..logging import get_logger
from ..notify.push import DeliveryError, PushNotifier
from ..store.subscriptions import SubscriptionStore
from .scanner import DueDateScanner


LOG = get_logger("orchestrator-dispatch")

NOTIFICATION_TITLE = "Book Return Reminder"


def render_notification(loan: LoanRecord) -> str:
    return json.dumps(
        {
            "title": NOTIFICATION_TITLE,
            "body": f'Your book "{loan.title}" is due on {loan.due_date}.',
        },
        ensure_ascii=False,
    )


@dataclass
class ScanReport:
    due: int = 0
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    skipped_users: List[str] = field(default_factory=list)


class NotificationDispatcher:
    def __init__(
        self,
        scanner: DueDateScanner,
        subscription_store: SubscriptionStore,
        notifier: PushNotifier,
    ) -> None:
        self.scanner = scanner
        self.subscription_store = subscription_store
        self.notifier = notifier

    def run_scheduled_scan(self, reference_date: date) -> ScanReport:
        LOG.info("Running scheduled notification check for %s...", reference_date.isoformat())
        report = ScanReport()
        due_loans = self.scanner.find_due_soon(reference_date)
        report.due = len(due_loans)
        if not due_loans:
            LOG.info("No books due for notification.")
            return report

        by_user: Dict[str, List[LoanRecord]] = OrderedDict()
        for loan in due_loans:
            by_user.setdefault(loan.user_id, []).append(loan)

        for user_id, loans in by_user.items():
            subscription = self.subscription_store.get(user_id)
            if not subscription:
                LOG.info("User %s has not subscribed for notifications; skipping %d loan(s)", user_id, len(loans))
                report.skipped_users.append(user_id)
                continue
            for loan in loans:
                report.attempted += 1
                try:
                    self.notifier.send(subscription, render_notification(loan))
                except DeliveryError as exc:
                    report.failed += 1
                    LOG.error(
                        "Failed to send reminder for %r (due %s) to user %s%s: %s",
                        loan.title,
                        loan.due_date,
                        user_id,
                        " [endpoint expired]" if exc.expired else "",
                        exc,
                    )
                    continue
                report.delivered += 1
                LOG.info("Sent book return reminder: title=%r dueDate=%s", loan.title, loan.due_date)

        LOG.info(
            "Notification scan finished: due=%d attempted=%d delivered=%d failed=%d",
            report.due,
            report.attempted,
            report.delivered,
            report.failed,
        )
        return report
