"""Image -> model -> validated loans -> one batch write."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.models import Err, LoanRecord
from ..extraction.backends import LENDING_SLIP_PROMPT, ImageExtractionService
from ..extraction.parser import RecordExtractor
from ..logging import get_logger
from ..store.db import StoreError
from ..store.loans import LoanStore


LOG = get_logger("orchestrator-ingest")


class IngestionError(Exception):
    def __init__(self, cause: str, message: str) -> None:
        self.cause = cause  # "extraction" | "store"
        super().__init__(message)


@dataclass
class IngestResult:
    created_count: int
    book_ids: List[str] = field(default_factory=list)


def new_book_id() -> str:
    return uuid.uuid4().hex


class IngestionPipeline:
    def __init__(
        self,
        extraction_service: ImageExtractionService,
        loan_store: LoanStore,
        extractor: Optional[RecordExtractor] = None,
        *,
        prompt: str = LENDING_SLIP_PROMPT,
    ) -> None:
        self.extraction_service = extraction_service
        self.loan_store = loan_store
        self.extractor = extractor or RecordExtractor()
        self.prompt = prompt

    def ingest(self, user_id: str, image_base64: str) -> IngestResult:
        """Extract loans from one lending-slip image and store them in one batch.

        A ServiceError from the model call propagates unchanged. Zero
        recognised books is a successful ingest with created_count 0.
        """
        LOG.info("Ingesting lending slip for user=%s (base64 chars=%d)", user_id, len(image_base64 or ""))
        raw_text = self.extraction_service.invoke(image_base64, self.prompt)

        result = self.extractor.parse(raw_text)
        if isinstance(result, Err):
            err = result.error
            LOG.error("Extraction failed for user=%s: %s", user_id, err.reason)
            raise IngestionError("extraction", f"Failed to process image: {err.reason}") from err

        loans = [
            LoanRecord(
                user_id=user_id,
                book_id=new_book_id(),
                title=c.title,
                lending_date=c.lending_date,
                due_date=c.due_date,
            )
            for c in result.value
        ]
        if not loans:
            LOG.info("No books recognised on the lending slip; nothing stored")
            return IngestResult(created_count=0)

        try:
            written = self.loan_store.batch_create(loans)
        except StoreError as exc:
            raise IngestionError("store", f"Failed to save loans: {exc}") from exc
        return IngestResult(created_count=written, book_ids=[l.book_id for l in loans])
