from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, List, Optional

from ..domain.models import CandidateLoan, Err, Ok, Result
from ..domain.normalize import normalize_iso_date, normalize_title
from ..logging import get_logger


LOG = get_logger("extraction-parser")

NO_JSON_FOUND = "no-json-found"
MALFORMED_SCHEMA = "malformed-schema"

REQUIRED_FIELDS = ("title", "lending_date", "due_date")


class ExtractionError(Exception):
    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


def _extract_fenced_json(text: str) -> Optional[str]:
    """If the model wrapped JSON in ``` or ```json fences, return the inner content."""
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if match and match.group(1):
        return match.group(1).strip()
    return None


def _balanced_objects(text: str) -> Iterator[Dict[str, Any]]:
    """Yield the outermost JSON objects in text, in order.

    Scanning resumes after each decoded object, so objects nested inside one
    are never candidates on their own.
    """
    decoder = json.JSONDecoder()
    pos = text.find("{")
    while pos != -1:
        try:
            obj, end = decoder.raw_decode(text, pos)
        except ValueError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            yield obj
        pos = text.find("{", end)


def _greedy_object(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        obj = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def locate_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Find the JSON object carrying ``books`` inside free text.

    Fenced content is searched first. Only outermost balanced objects are
    candidates, and the first one with a top-level ``books`` key wins; if
    none has it, the first object that parsed is returned so the caller can
    report a schema problem. The greedy first-``{``-to-last-``}`` slice
    is the last resort. Unrelated brace pairs in surrounding prose can still
    be picked when the model never emits ``books``.
    """
    if not text:
        return None
    sources = []
    fenced = _extract_fenced_json(text)
    if fenced:
        sources.append(fenced)
    sources.append(text)

    first_parsed: Optional[Dict[str, Any]] = None
    for source in sources:
        for obj in _balanced_objects(source):
            if "books" in obj:
                return obj
            if first_parsed is None:
                first_parsed = obj
    if first_parsed is not None:
        return first_parsed
    return _greedy_object(text)


def _candidate_from_entry(idx: int, entry: Any) -> Optional[CandidateLoan]:
    if not isinstance(entry, dict):
        LOG.warning("Dropping books[%d]: not an object (%s)", idx, type(entry).__name__)
        return None
    missing = [k for k in REQUIRED_FIELDS if entry.get(k) is None]
    if missing:
        LOG.warning("Dropping books[%d]: missing %s", idx, ", ".join(missing))
        return None
    title = normalize_title(entry.get("title"))
    if not title:
        LOG.warning("Dropping books[%d]: empty title", idx)
        return None
    lending_date = normalize_iso_date(entry.get("lending_date"))
    due_date = normalize_iso_date(entry.get("due_date"))
    if not lending_date or not due_date:
        LOG.warning(
            "Dropping books[%d] %r: dates must be YYYY-MM-DD (lending_date=%r, due_date=%r)",
            idx,
            title,
            entry.get("lending_date"),
            entry.get("due_date"),
        )
        return None
    return CandidateLoan(title=title, lending_date=lending_date, due_date=due_date)


class RecordExtractor:
    """Turn a vision model's text answer into validated candidate loans.

    Malformed entries inside ``books`` are dropped one by one; only a missing
    JSON object or a missing/non-list ``books`` field fails the whole call.
    """

    def parse(self, raw_text: str) -> Result[List[CandidateLoan], ExtractionError]:
        obj = locate_json_object(raw_text if isinstance(raw_text, str) else "")
        if obj is None:
            LOG.error("No JSON object found in model response (first 200 chars: %r)", (raw_text or "")[:200])
            return Err(ExtractionError(NO_JSON_FOUND, "Could not find a valid JSON object in the model response"))

        books = obj.get("books")
        if not isinstance(books, list):
            LOG.error("Model response JSON lacks a 'books' list; keys=%s", sorted(obj.keys()))
            return Err(ExtractionError(MALFORMED_SCHEMA, "Model response JSON must contain a 'books' list"))

        candidates: List[CandidateLoan] = []
        for idx, entry in enumerate(books):
            candidate = _candidate_from_entry(idx, entry)
            if candidate is not None:
                candidates.append(candidate)
        LOG.info("Extracted %d of %d book entries", len(candidates), len(books))
        return Ok(candidates)

    def extract(self, raw_text: str) -> List[CandidateLoan]:
        result = self.parse(raw_text)
        if isinstance(result, Err):
            raise result.error
        return result.value
