from __future__ import annotations

import sqlite3
from typing import Iterable, List, Sequence

from ..domain.models import LoanRecord
from ..logging import get_logger
from .db import LoanDatabase, StoreError


LOG = get_logger("store-loans")

_INSERT_SQL = """
INSERT INTO loans (user_id, book_id, title, lending_date, due_date)
VALUES (?, ?, ?, ?, ?);
"""


def _row_to_loan(row: sqlite3.Row) -> LoanRecord:
    return LoanRecord(
        user_id=row["user_id"],
        book_id=row["book_id"],
        title=row["title"],
        lending_date=row["lending_date"],
        due_date=row["due_date"],
    )


def _params(loan: LoanRecord) -> tuple:
    return (loan.user_id, loan.book_id, loan.title, loan.lending_date, loan.due_date)


class LoanStore:
    """Persisted loan records keyed by (user_id, book_id).

    There is no update path: loans are created in batches from one image and
    removed by an explicit delete.
    """

    def __init__(self, db: LoanDatabase) -> None:
        self.db = db

    def create(self, loan: LoanRecord) -> None:
        self.batch_create([loan])

    def batch_create(self, loans: Sequence[LoanRecord]) -> int:
        """Insert all loans in one transaction; either every row lands or none does."""
        if not loans:
            return 0
        with self.db.transaction() as conn:
            conn.executemany(_INSERT_SQL, [_params(l) for l in loans])
        LOG.info("Stored %d loan(s) for user(s) %s", len(loans), sorted({l.user_id for l in loans}))
        return len(loans)

    def list(self, user_id: str) -> List[LoanRecord]:
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM loans WHERE user_id = ? ORDER BY due_date, title;",
                    (user_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [_row_to_loan(r) for r in rows]

    def delete(self, user_id: str, book_id: str) -> None:
        """Remove one loan. Deleting a key that does not exist is not an error."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM loans WHERE user_id = ? AND book_id = ?;",
                (user_id, book_id),
            )
        if cur.rowcount:
            LOG.info("Deleted loan book_id=%s for user=%s", book_id, user_id)
        else:
            LOG.debug("Delete for missing loan book_id=%s user=%s ignored", book_id, user_id)

    def scan_due(self, due_dates: Iterable[str]) -> List[LoanRecord]:
        """Return loans of every user whose due_date is one of due_dates."""
        dates = sorted(set(due_dates))
        if not dates:
            return []
        placeholders = ", ".join("?" for _ in dates)
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    f"SELECT * FROM loans WHERE due_date IN ({placeholders}) ORDER BY user_id, due_date;",
                    dates,
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [_row_to_loan(r) for r in rows]
