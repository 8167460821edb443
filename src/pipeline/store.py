"""Durable submission store: interface and implementations.

Every update can be made conditional on the record's current state
(``expected_state``). A worker holding a stale view of a record loses the
race with ``ConcurrentUpdateError`` instead of overwriting newer state.
"""

import json
import logging
import os
import re
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from src.config.settings import DEFAULT_STORE_DIR
from src.models.enums import SubmissionState
from src.models.errors import ConcurrentUpdateError, SubmissionNotFoundError
from src.pipeline.models import SubmissionRecord

logger = logging.getLogger(__name__)

SUBMISSION_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class SubmissionStore(Protocol):
    """Protocol for persisting submission records.

    This abstraction allows swapping the file-based store for a database
    without touching the intake coordinator or workers.
    """

    def put(self, record: SubmissionRecord) -> None:
        """Insert a new record.

        Raises:
            ValueError: If a record with the same id already exists.
        """
        ...

    def get(self, submission_id: str) -> SubmissionRecord | None:
        """Load a record by id, or None if it does not exist."""
        ...

    def update_state(
        self,
        submission_id: str,
        new_state: SubmissionState,
        expected_state: SubmissionState | None = None,
        reason: str | None = None,
        **changes: Any,
    ) -> SubmissionRecord:
        """Apply field changes and transition a record.

        Raises:
            SubmissionNotFoundError: If the record does not exist.
            ConcurrentUpdateError: If the current state is not ``expected_state``.
        """
        ...

    def update(
        self, record: SubmissionRecord, expected_state: SubmissionState
    ) -> SubmissionRecord:
        """Replace a record if its stored state is ``expected_state``."""
        ...

    def find_by_dedup_key(
        self, dedup_key: str, states: Iterable[SubmissionState] | None = None
    ) -> list[SubmissionRecord]:
        """Return records sharing a dedup key, optionally filtered by state."""
        ...

    def list_by_state(self, state: SubmissionState) -> list[SubmissionRecord]:
        """Return every record currently in ``state``, oldest first."""
        ...


class _BaseSubmissionStore:
    """Shared conditional-update logic over a raw read/write backend."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def _read(self, submission_id: str) -> SubmissionRecord | None:
        raise NotImplementedError

    def _write(self, record: SubmissionRecord) -> None:
        raise NotImplementedError

    def _iter_records(self) -> Iterator[SubmissionRecord]:
        raise NotImplementedError

    def _current(
        self, submission_id: str, expected_state: SubmissionState | None
    ) -> SubmissionRecord:
        current = self._read(submission_id)
        if current is None:
            raise SubmissionNotFoundError(submission_id)
        if expected_state is not None and current.state != expected_state:
            raise ConcurrentUpdateError(
                submission_id, expected_state.value, current.state.value
            )
        return current

    def put(self, record: SubmissionRecord) -> None:
        with self._lock:
            if self._read(record.submission_id) is not None:
                raise ValueError(f"Submission already stored: {record.submission_id}")
            self._write(record)
        logger.debug("Stored %s in state %s", record.submission_id, record.state.value)

    def get(self, submission_id: str) -> SubmissionRecord | None:
        with self._lock:
            return self._read(submission_id)

    def update_state(
        self,
        submission_id: str,
        new_state: SubmissionState,
        expected_state: SubmissionState | None = None,
        reason: str | None = None,
        **changes: Any,
    ) -> SubmissionRecord:
        with self._lock:
            record = self._current(submission_id, expected_state)
            for name, value in changes.items():
                if name not in SubmissionRecord.model_fields:
                    raise ValueError(f"Unknown record field: {name}")
                setattr(record, name, value)
            if new_state != record.state:
                record.transition(new_state, reason=reason)
            self._write(record)
        logger.info("Submission %s -> %s", submission_id, new_state.value)
        return record

    def update(
        self, record: SubmissionRecord, expected_state: SubmissionState
    ) -> SubmissionRecord:
        with self._lock:
            self._current(record.submission_id, expected_state)
            self._write(record)
        return record

    def find_by_dedup_key(
        self, dedup_key: str, states: Iterable[SubmissionState] | None = None
    ) -> list[SubmissionRecord]:
        wanted = set(states) if states is not None else None
        with self._lock:
            return [
                r
                for r in self._iter_records()
                if r.dedup_key == dedup_key and (wanted is None or r.state in wanted)
            ]

    def list_by_state(self, state: SubmissionState) -> list[SubmissionRecord]:
        with self._lock:
            records = [r for r in self._iter_records() if r.state == state]
        records.sort(key=lambda r: r.created_at)
        return records


class InMemorySubmissionStore(_BaseSubmissionStore):
    """Process-local store. Records are copied in and out."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, SubmissionRecord] = {}

    def _read(self, submission_id: str) -> SubmissionRecord | None:
        record = self._records.get(submission_id)
        return record.model_copy(deep=True) if record else None

    def _write(self, record: SubmissionRecord) -> None:
        self._records[record.submission_id] = record.model_copy(deep=True)

    def _iter_records(self) -> Iterator[SubmissionRecord]:
        for record in list(self._records.values()):
            yield record.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._records)


class FileSubmissionStore(_BaseSubmissionStore):
    """File-based store with one JSON document per submission.

    Writes go to a temporary file that is atomically renamed over the
    record, so a crash never leaves a half-written document.
    """

    def __init__(self, base_path: Path | str | None = None):
        """Initialize file storage.

        Args:
            base_path: Directory for record files. Defaults to data/submissions.
        """
        super().__init__()
        self.base_path = Path(base_path) if base_path else DEFAULT_STORE_DIR
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_record_path(self, submission_id: str) -> Path:
        if not SUBMISSION_ID_RE.match(submission_id):
            raise ValueError(f"Invalid submission id: {submission_id!r}")
        return self.base_path / f"{submission_id}.json"

    def _load(self, file_path: Path) -> SubmissionRecord | None:
        try:
            with open(file_path, encoding="utf-8") as f:
                data = json.load(f)
            return SubmissionRecord.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load submission record %s: %s", file_path, e)
            return None

    def _read(self, submission_id: str) -> SubmissionRecord | None:
        try:
            file_path = self._get_record_path(submission_id)
        except ValueError:
            return None
        if not file_path.exists():
            return None
        return self._load(file_path)

    def _write(self, record: SubmissionRecord) -> None:
        file_path = self._get_record_path(record.submission_id)
        tmp_path = file_path.with_name(f".{file_path.name}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record.model_dump(mode="json"), f, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, file_path)
        except OSError as e:
            logger.error(
                "Failed to save submission record %s: %s", record.submission_id, e
            )
            raise

    def _iter_records(self) -> Iterator[SubmissionRecord]:
        for file_path in sorted(self.base_path.glob("*.json")):
            record = self._load(file_path)
            if record is not None:
                yield record
