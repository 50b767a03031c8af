"""Batch progress records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel

from pagecapture.capture.errors import BatchStateError


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class SucceededItem(BaseModel):
    id: str
    path: str
    attempts: int


class FailedItem(BaseModel):
    id: str
    error: str
    kind: str
    attempts: int


class BatchResults(BaseModel):
    success: list[SucceededItem] = []
    failed: list[FailedItem] = []


class BatchRecord(BaseModel):
    """Point-in-time progress of one batch.

    ``completed == successful + failed`` and ``completed <= total`` hold after
    every mutation; once ``status`` is ``completed`` the record is frozen.
    """

    batch_id: str
    status: BatchStatus = BatchStatus.PENDING
    total: int
    completed: int = 0
    successful: int = 0
    failed: int = 0
    start_time: datetime
    end_time: datetime | None = None
    duration_ms: int | None = None
    results: BatchResults = BatchResults()

    @classmethod
    def start(cls, batch_id: str, total: int) -> BatchRecord:
        return cls(
            batch_id=batch_id,
            status=BatchStatus.PROCESSING,
            total=total,
            start_time=datetime.now(timezone.utc),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == BatchStatus.COMPLETED

    def _ensure_open(self) -> None:
        if self.is_completed:
            raise BatchStateError(f"batch {self.batch_id} is already completed")
        if self.completed >= self.total:
            raise BatchStateError(f"batch {self.batch_id} has no outstanding items")

    def record_success(self, item: SucceededItem) -> None:
        self._ensure_open()
        self.results.success.append(item)
        self.successful += 1
        self.completed += 1

    def record_failure(self, item: FailedItem) -> None:
        self._ensure_open()
        self.results.failed.append(item)
        self.failed += 1
        self.completed += 1

    def mark_completed(self, now: datetime | None = None) -> None:
        if self.is_completed:
            raise BatchStateError(f"batch {self.batch_id} is already completed")
        if self.completed != self.total:
            raise BatchStateError(
                f"batch {self.batch_id} has {self.total - self.completed} unfinished items"
            )
        self.status = BatchStatus.COMPLETED
        self.end_time = now or datetime.now(timezone.utc)
        self.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)
