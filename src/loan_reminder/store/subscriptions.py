from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Mapping, Optional

from ..domain.models import PushSubscriptionRecord
from ..logging import get_logger
from .db import LoanDatabase, StoreError


LOG = get_logger("store-subscriptions")


class SubscriptionError(ValueError):
    pass


def validate_subscription(subscription: Any) -> Dict[str, Any]:
    """Presence checks on a browser push subscription.

    The descriptor stays opaque: only ``endpoint`` and ``keys.p256dh`` /
    ``keys.auth`` are required to be non-empty strings.
    """
    if not isinstance(subscription, Mapping):
        raise SubscriptionError("subscription must be an object")
    endpoint = subscription.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip().lower().startswith(("https://", "http://")):
        raise SubscriptionError("subscription.endpoint must be a URL")
    keys = subscription.get("keys")
    if not isinstance(keys, Mapping):
        raise SubscriptionError("subscription.keys must be an object")
    for name in ("p256dh", "auth"):
        value = keys.get(name)
        if not isinstance(value, str) or not value.strip():
            raise SubscriptionError(f"subscription.keys.{name} required")
    return dict(subscription)


class SubscriptionStore:
    """One push subscription per user with overwrite semantics."""

    def __init__(self, db: LoanDatabase) -> None:
        self.db = db

    def put(self, user_id: str, subscription: Mapping[str, Any]) -> PushSubscriptionRecord:
        record = PushSubscriptionRecord(user_id=user_id, subscription=validate_subscription(subscription))
        blob = json.dumps(record.subscription, ensure_ascii=False)
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO subscriptions (user_id, subscription, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(user_id) DO UPDATE SET
                  subscription = excluded.subscription,
                  updated_at = excluded.updated_at;
                """,
                (user_id, blob),
            )
        LOG.info("Stored push subscription for user=%s", user_id)
        return record

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT subscription FROM subscriptions WHERE user_id = ?;",
                    (user_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        if row is None:
            return None
        try:
            data = json.loads(row["subscription"])
        except ValueError:
            LOG.warning("Stored subscription for user=%s is not valid JSON; treating as absent", user_id)
            return None
        return data if isinstance(data, dict) else None
