"""SQLite persistence for loans and push subscriptions."""

from .db import LoanDatabase, StoreError
from .loans import LoanStore
from .subscriptions import SubscriptionError, SubscriptionStore, validate_subscription

__all__ = [
    "LoanDatabase",
    "StoreError",
    "LoanStore",
    "SubscriptionError",
    "SubscriptionStore",
    "validate_subscription",
]
