"""
Domain layer for conversion jobs.
Provides the process runner, the job registry and a service that composes
them, so front-ends (HTTP or others) share the same core logic.
"""

from .errors import (
    InvalidRequestError,
    JobError,
    JobNotFoundError,
    JobTimeoutError,
    NonZeroExitError,
    SpawnError,
)
from .interfaces import CommandRunner, FileEntry, StorageGateway
from .operation import OperationState, PendingOperation
from .registry import NOT_FOUND, JobRecord, JobRegistry
from .runner import DEFAULT_TIMEOUT_MS, ProcessRunner, run
from .service import ConversionService, JobStatus
