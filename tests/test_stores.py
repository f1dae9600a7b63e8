from __future__ import annotations

from pathlib import Path

import pytest

from loan_reminder.domain.models import LoanRecord
from loan_reminder.store import (
    LoanDatabase,
    LoanStore,
    StoreError,
    SubscriptionError,
    SubscriptionStore,
)


SUBSCRIPTION = {
    "endpoint": "https://push.example.com/send/abc",
    "keys": {"p256dh": "BPublicKey", "auth": "secret"},
}


def _loan(user_id: str, book_id: str, due: str = "2025-06-10", title: str = "Foo") -> LoanRecord:
    return LoanRecord(user_id=user_id, book_id=book_id, title=title, lending_date="2025-06-01", due_date=due)


def _db(tmp_path: Path) -> LoanDatabase:
    return LoanDatabase(str(tmp_path / "loans.sqlite3"))


def test_list_is_scoped_by_user(tmp_path: Path) -> None:
    store = LoanStore(_db(tmp_path))
    assert store.batch_create([_loan("alice", "a1"), _loan("alice", "a2"), _loan("bob", "b1")]) == 3

    assert {l.book_id for l in store.list("alice")} == {"a1", "a2"}
    assert [l.book_id for l in store.list("bob")] == ["b1"]
    assert store.list("carol") == []


def test_create_single_loan_round_trips_fields(tmp_path: Path) -> None:
    store = LoanStore(_db(tmp_path))
    loan = _loan("alice", "a1", due="2025-07-01", title="Der Zauberberg")
    store.create(loan)
    assert store.list("alice") == [loan]


def test_delete_is_idempotent_and_scoped(tmp_path: Path) -> None:
    store = LoanStore(_db(tmp_path))
    store.batch_create([_loan("alice", "shared"), _loan("bob", "shared")])

    store.delete("alice", "shared")
    store.delete("alice", "shared")
    store.delete("alice", "never-existed")

    assert store.list("alice") == []
    assert [l.user_id for l in store.list("bob")] == ["bob"]


def test_batch_create_is_all_or_nothing(tmp_path: Path) -> None:
    store = LoanStore(_db(tmp_path))
    store.create(_loan("alice", "dup"))

    with pytest.raises(StoreError):
        store.batch_create([_loan("alice", "fresh"), _loan("alice", "dup")])

    assert [l.book_id for l in store.list("alice")] == ["dup"]


def test_scan_due_spans_users(tmp_path: Path) -> None:
    store = LoanStore(_db(tmp_path))
    store.batch_create(
        [
            _loan("alice", "a1", due="2025-06-10"),
            _loan("bob", "b1", due="2025-06-11"),
            _loan("bob", "b2", due="2025-06-12"),
        ]
    )
    assert {l.book_id for l in store.scan_due(["2025-06-10", "2025-06-11"])} == {"a1", "b1"}
    assert store.scan_due([]) == []


def test_subscription_put_overwrites_and_get_absent(tmp_path: Path) -> None:
    subs = SubscriptionStore(_db(tmp_path))
    assert subs.get("alice") is None

    record = subs.put("alice", SUBSCRIPTION)
    assert (record.user_id, record.subscription) == ("alice", SUBSCRIPTION)
    replacement = {**SUBSCRIPTION, "endpoint": "https://push.example.com/send/new"}
    subs.put("alice", replacement)

    assert subs.get("alice") == replacement
    assert subs.get("bob") is None


@pytest.mark.parametrize(
    "bad",
    [
        None,
        {"keys": {"p256dh": "x", "auth": "y"}},
        {"endpoint": "not-a-url", "keys": {"p256dh": "x", "auth": "y"}},
        {"endpoint": "https://push.example.com", "keys": {"p256dh": "x"}},
        {"endpoint": "https://push.example.com"},
    ],
)
def test_subscription_presence_checks(tmp_path: Path, bad) -> None:
    subs = SubscriptionStore(_db(tmp_path))
    with pytest.raises(SubscriptionError):
        subs.put("alice", bad)
    assert subs.get("alice") is None


def test_default_db_location_under_project_var(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("marker", encoding="utf-8")
    db = LoanDatabase(root_dir=str(tmp_path))
    assert Path(db.db_path) == tmp_path / "var" / "loandb" / "loans.sqlite3"
    assert Path(db.db_path).exists()
