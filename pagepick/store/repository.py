"""Record repositories — where finished records live.

The extraction engine only produces drafts; ids and timestamps are assigned
here. ``list()`` is always newest first.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pagepick.config.settings import StoreConfig
from pagepick.extraction.models import Record, RecordPatch
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class RecordNotFoundError(KeyError):
    """Raised when a record id does not exist in the store."""

    def __init__(self, record_id: int) -> None:
        super().__init__(record_id)
        self.record_id = record_id

    def __str__(self) -> str:
        return f"Item with id {self.record_id} not found"


def _as_patch(partial: RecordPatch | Record | dict[str, Any] | None) -> dict[str, Any]:
    if partial is None:
        return {}
    if isinstance(partial, Record):
        partial = partial.model_dump(exclude={"id", "created_at", "updated_at"})
    if isinstance(partial, dict):
        partial = RecordPatch.model_validate(partial)
    return partial.changes()


class RecordRepository(ABC):
    """Record store contract consumed by the workbench and API."""

    backend: str = "abstract"

    @abstractmethod
    def create(self, partial: RecordPatch | Record | dict[str, Any] | None = None) -> Record: ...

    @abstractmethod
    def update(self, record_id: int, partial: RecordPatch | dict[str, Any]) -> Record: ...

    @abstractmethod
    def delete(self, record_id: int) -> bool: ...

    @abstractmethod
    def get(self, record_id: int) -> Record: ...

    @abstractmethod
    def list(self) -> list[Record]: ...

    @abstractmethod
    def clear(self) -> int: ...

    def statistics(self) -> dict[str, Any]:
        records = self.list()
        verified = sum(1 for record in records if record.verified)
        return {
            "total": len(records),
            "verified": verified,
            "unverified": len(records) - verified,
            "backend": self.backend,
        }


class InMemoryRecordRepository(RecordRepository):
    """Process-local store; contents are lost on exit."""

    backend = "memory"

    def __init__(self) -> None:
        self._records: dict[int, Record] = {}

    def _next_id(self) -> int:
        return max(self._records, default=0) + 1

    def _commit(self) -> None:
        """Hook for persistent subclasses; called after every mutation."""

    def create(self, partial: RecordPatch | Record | dict[str, Any] | None = None) -> Record:
        changes = _as_patch(partial)
        now = datetime.now(timezone.utc)
        record = Record(
            **{**changes, "verified": bool(changes.get("verified", False))},
            id=self._next_id(),
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        self._commit()
        logger.debug("Created record %d", record.id)
        return record

    def update(self, record_id: int, partial: RecordPatch | dict[str, Any]) -> Record:
        current = self.get(record_id)
        updated = current.model_copy(
            update={**_as_patch(partial), "updated_at": datetime.now(timezone.utc)}
        )
        self._records[record_id] = updated
        self._commit()
        return updated

    def delete(self, record_id: int) -> bool:
        if record_id not in self._records:
            raise RecordNotFoundError(record_id)
        del self._records[record_id]
        self._commit()
        return True

    def get(self, record_id: int) -> Record:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFoundError(record_id) from None

    def list(self) -> list[Record]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            self._records.values(),
            key=lambda record: (record.created_at or epoch, record.id or 0),
            reverse=True,
        )

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        self._commit()
        return count


class JsonlRecordRepository(InMemoryRecordRepository):
    """Store backed by a JSONL file, rewritten atomically on every mutation."""

    backend = "jsonl"

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self.hydrate_from_disk()

    @property
    def path(self) -> Path:
        return self._path

    def hydrate_from_disk(self) -> None:
        self._records.clear()
        if not self._path.exists():
            return
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    record = Record.model_validate_json(line)
                    if record.id is not None:
                        self._records[record.id] = record
        logger.info("Loaded %d records from %s", len(self._records), self._path)

    def _commit(self) -> None:
        # Write atomically: temp file then rename.
        temp_path = self._path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                for record_id in sorted(self._records):
                    f.write(self._records[record_id].model_dump_json() + "\n")
            temp_path.replace(self._path)
        except OSError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.RECORD_STORE_WRITE_FAILED,
                message=str(exc),
                suppressed=False,
                details={"path": str(self._path)},
            )
            if temp_path.exists():
                temp_path.unlink()
            raise


def create_repository(config: StoreConfig | None = None) -> RecordRepository:
    config = config or StoreConfig()
    if config.backend == "jsonl":
        return JsonlRecordRepository(config.records_path)
    return InMemoryRecordRepository()
