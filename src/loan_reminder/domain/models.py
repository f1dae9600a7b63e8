from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, TypeVar, Union


T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class CandidateLoan:
    """One validated book entry read from the model response."""

    title: str
    lending_date: str  # YYYY-MM-DD
    due_date: str      # YYYY-MM-DD


@dataclass(frozen=True)
class LoanRecord:
    user_id: str
    book_id: str
    title: str
    lending_date: str  # YYYY-MM-DD
    due_date: str      # YYYY-MM-DD, not checked against lending_date

    def as_item(self) -> Dict[str, str]:
        """Return the document shape clients of the loan API expect."""
        return {
            "userId": self.user_id,
            "bookId": self.book_id,
            "title": self.title,
            "lendingDate": self.lending_date,
            "dueDate": self.due_date,
        }


@dataclass
class PushSubscriptionRecord:
    user_id: str
    subscription: Dict[str, Any] = field(default_factory=dict)
