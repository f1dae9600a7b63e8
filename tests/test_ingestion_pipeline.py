from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import pytest

from loan_reminder.extraction.backends import LENDING_SLIP_PROMPT, ServiceError
from loan_reminder.orchestrator.ingest import IngestionError, IngestionPipeline
from loan_reminder.store import LoanDatabase, LoanStore, StoreError


FOO_RESPONSE = 'Here you go:\n{"books": [{"title": "Foo", "lending_date": "2025-06-01", "due_date": "2025-06-10"}]}'


class FakeExtractionService:
    def __init__(self, response: str = FOO_RESPONSE, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    def invoke(self, image_base64: str, prompt: str) -> str:
        self.calls.append((image_base64, prompt))
        if self.error is not None:
            raise self.error
        return self.response


class BrokenLoanStore(LoanStore):
    def batch_create(self, loans):
        raise StoreError("disk full")


def _store(tmp_path: Path) -> LoanStore:
    return LoanStore(LoanDatabase(str(tmp_path / "loans.sqlite3")))


def test_ingest_list_delete_end_to_end(tmp_path: Path) -> None:
    store = _store(tmp_path)
    service = FakeExtractionService()
    pipeline = IngestionPipeline(service, store)

    result = pipeline.ingest("defaultUser", "aW1hZ2U=")

    assert result.created_count == 1
    assert service.calls == [("aW1hZ2U=", LENDING_SLIP_PROMPT)]
    loans = store.list("defaultUser")
    assert len(loans) == 1
    loan = loans[0]
    assert (loan.title, loan.lending_date, loan.due_date) == ("Foo", "2025-06-01", "2025-06-10")
    assert loan.book_id == result.book_ids[0]

    store.delete("defaultUser", loan.book_id)
    assert store.list("defaultUser") == []


def test_repeated_ingest_produces_disjoint_book_ids(tmp_path: Path) -> None:
    store = _store(tmp_path)
    pipeline = IngestionPipeline(FakeExtractionService(), store)

    first = pipeline.ingest("defaultUser", "aW1hZ2U=")
    second = pipeline.ingest("defaultUser", "aW1hZ2U=")

    assert set(first.book_ids).isdisjoint(second.book_ids)
    assert len(store.list("defaultUser")) == 2


def test_zero_books_is_not_an_error(tmp_path: Path) -> None:
    store = _store(tmp_path)
    pipeline = IngestionPipeline(FakeExtractionService('{"books": []}'), store)
    result = pipeline.ingest("defaultUser", "aW1hZ2U=")
    assert result.created_count == 0
    assert store.list("defaultUser") == []


def test_extraction_failure_writes_nothing(tmp_path: Path) -> None:
    store = _store(tmp_path)
    pipeline = IngestionPipeline(FakeExtractionService("no books here"), store)

    with pytest.raises(IngestionError) as excinfo:
        pipeline.ingest("defaultUser", "aW1hZ2U=")

    assert excinfo.value.cause == "extraction"
    assert store.list("defaultUser") == []


def test_store_failure_is_wrapped(tmp_path: Path) -> None:
    store = BrokenLoanStore(LoanDatabase(str(tmp_path / "loans.sqlite3")))
    pipeline = IngestionPipeline(FakeExtractionService(), store)
    with pytest.raises(IngestionError) as excinfo:
        pipeline.ingest("defaultUser", "aW1hZ2U=")
    assert excinfo.value.cause == "store"


def test_service_error_is_surfaced(tmp_path: Path) -> None:
    pipeline = IngestionPipeline(FakeExtractionService(error=ServiceError("timeout")), _store(tmp_path))
    with pytest.raises(ServiceError):
        pipeline.ingest("defaultUser", "aW1hZ2U=")
