from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from ..logging import get_logger
from ..paths import find_project_root, var_dir


LOG = get_logger("store-db")


DEFAULT_DB_FOLDER = "loandb"
DEFAULT_DB_FILENAME = "loans.sqlite3"


SCHEMA_SQL = """
-- Loans, one row per borrowed book, owned by user_id
CREATE TABLE IF NOT EXISTS loans (
  user_id       TEXT NOT NULL,
  book_id       TEXT NOT NULL,
  title         TEXT NOT NULL CHECK(length(trim(title)) > 0),
  lending_date  TEXT NOT NULL,   -- "YYYY-MM-DD"
  due_date      TEXT NOT NULL,   -- "YYYY-MM-DD"
  created_at    TEXT DEFAULT (datetime('now')),
  PRIMARY KEY (user_id, book_id)
);

-- At most one push subscription per user, stored as raw JSON
CREATE TABLE IF NOT EXISTS subscriptions (
  user_id       TEXT PRIMARY KEY,
  subscription  TEXT NOT NULL,
  updated_at    TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_loans_due_date ON loans(due_date);
"""


class StoreError(Exception):
    pass


class LoanDatabase:
    """SQLite-backed store for loans and push subscriptions.

    - Places DB under `<repo-root>/var/loandb/loans.sqlite3` unless a path is given.
    - Ensures schema on first use.
    - Provides a context-managed connection method.
    """

    def __init__(self, db_path: Optional[str] = None, *, root_dir: Optional[str] = None) -> None:
        if db_path:
            self.db_path = os.path.abspath(db_path)
        else:
            root = find_project_root(root_dir)
            self.db_path = os.path.join(var_dir(root), DEFAULT_DB_FOLDER, DEFAULT_DB_FILENAME)
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        LOG.info(f"Loan DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open loan DB at {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit together or not at all."""
        with self.connect() as conn:
            try:
                with conn:
                    yield conn
            except sqlite3.Error as exc:
                LOG.error("Loan DB transaction rolled back: %s", exc)
                raise StoreError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.Error as exc:
                LOG.debug("Could not switch loan DB to WAL: %s", exc)
            try:
                cur.executescript(SCHEMA_SQL)
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to create loan DB schema: {exc}") from exc
            LOG.debug("Loan DB schema ensured.")
