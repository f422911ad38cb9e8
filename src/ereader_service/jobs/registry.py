import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from .operation import PendingOperation


class _NotFound:
    """Sentinel returned by `JobRegistry.lookup` for unknown identifiers."""

    _instance: "_NotFound | None" = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


@dataclass
class JobRecord:
    id: str
    operation: PendingOperation[Any]
    created_at: float = field(default_factory=time.monotonic)


class JobRegistry:
    """Thread-safe map of job id -> pending operation.

    Entries live for the life of the registry unless `ttl_sec` is given, in
    which case entries whose operation settled more than `ttl_sec` seconds ago
    are dropped on the next `register` or `prune` call.
    """

    def __init__(self, *, ttl_sec: float | None = None) -> None:
        self._ttl_sec = ttl_sec
        self._lock = threading.Lock()
        self._jobs: dict[str, JobRecord] = {}

    def register(self, operation: PendingOperation[Any]) -> str:
        with self._lock:
            if self._ttl_sec is not None:
                self._prune_locked(time.monotonic())
            job_id = str(uuid.uuid4())
            while job_id in self._jobs:
                job_id = str(uuid.uuid4())
            self._jobs[job_id] = JobRecord(id=job_id, operation=operation)
        return job_id

    def lookup(self, job_id: str) -> PendingOperation[Any] | _NotFound:
        with self._lock:
            record = self._jobs.get(job_id)
        return record.operation if record is not None else NOT_FOUND

    def prune(self, now: float | None = None) -> int:
        """Drop expired entries; returns how many were removed. No-op without a TTL."""
        if self._ttl_sec is None:
            return 0
        with self._lock:
            return self._prune_locked(time.monotonic() if now is None else now)

    def _prune_locked(self, now: float) -> int:
        assert self._ttl_sec is not None
        expired = [
            job_id
            for job_id, rec in self._jobs.items()
            if rec.operation.settled_at is not None and now - rec.operation.settled_at > self._ttl_sec
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs
