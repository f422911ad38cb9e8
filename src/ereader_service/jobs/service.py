import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable
from urllib.parse import quote, urlsplit

from .errors import InvalidRequestError, JobNotFoundError
from .interfaces import CommandRunner, FileEntry, StorageGateway
from .operation import OperationState, PendingOperation
from .registry import NOT_FOUND, JobRegistry

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("pdf", "epub", "html", "md")


class JobStatus:
    PENDING = "pending"
    FINISHED = "finished"
    ERROR = "error"


def link_for(fname: str) -> str:
    return f"/link?fname={quote(fname, safe='')}"


class ConversionService:
    """Core domain service for uploads and e-reader conversion jobs.

    Framework-agnostic: the HTTP layer hands it upload readers and form
    values, and gets back file names, job ids and job status payloads.
    """

    def __init__(
        self,
        storage: StorageGateway,
        runner: CommandRunner,
        registry: JobRegistry,
        *,
        command: str = "npx",
        default_timeout_sec: int = 60,
    ) -> None:
        self._storage = storage
        self._runner = runner
        self._registry = registry
        self._command = command
        self._default_timeout_sec = default_timeout_sec

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    async def save_upload(
        self,
        filename: str,
        reader: Callable[[int], Awaitable[bytes]],
        *,
        max_upload_mb: int,
    ) -> str:
        """Stream an upload into the files directory and return its stored name."""
        target = self._storage.path_for(filename)
        size_bytes = 0
        CHUNK = 1024 * 1024
        max_bytes = max_upload_mb * 1024 * 1024
        with target.open("wb") as f_out:
            while True:
                chunk = await reader(CHUNK)
                if not chunk:
                    break
                size_bytes += len(chunk)
                if size_bytes > max_bytes:
                    f_out.close()
                    target.unlink(missing_ok=True)
                    raise ValueError(f"upload exceeds {max_upload_mb} MB")
                f_out.write(chunk)
        logger.info("Stored upload %s (%d bytes)", target.name, size_bytes)
        return target.name

    def launch(self, operation: PendingOperation[Any]) -> str:
        job_id = self._registry.register(operation)
        logger.info("Registered job %s for %r", job_id, operation)
        return job_id

    def launch_ereader(self, url: str, fmt: str, timeout_sec: int | None = None) -> str:
        """Start `percollate` on `url` and return the job id.

        The job settles with the follow-up link of the produced file.
        """
        if any(ord(c) < 32 or ord(c) == 127 for c in url or ""):
            raise InvalidRequestError(f"invalid url {url!r}")
        parts = urlsplit((url or "").strip())
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidRequestError(f"invalid url {url!r}")
        fmt = (fmt or "").strip().lower()
        if fmt not in SUPPORTED_FORMATS:
            raise InvalidRequestError(f"unsupported format {fmt!r}; expected one of {', '.join(SUPPORTED_FORMATS)}")
        if timeout_sec is not None and timeout_sec < 0:
            raise InvalidRequestError("timeout must not be negative")

        fname = f"{uuid.uuid4()}.{fmt}"
        output_path = self._storage.path_for(fname)
        args = ["percollate", fmt, "--output", str(output_path), parts.geturl()]
        timeout_ms = (timeout_sec or self._default_timeout_sec) * 1000

        redirect = link_for(fname)
        operation = self._runner.run(self._command, args, timeout_ms).then(lambda _output: redirect)
        return self.launch(operation)

    async def job_status(self, job_id: str, *, wait: bool = True) -> dict[str, object]:
        operation = self._registry.lookup(job_id)
        if operation is NOT_FOUND:
            raise JobNotFoundError(job_id)
        assert isinstance(operation, PendingOperation)

        if wait:
            await operation.join()
        if operation.state is OperationState.PENDING:
            return {"id": job_id, "status": JobStatus.PENDING}
        if operation.state is OperationState.FAILED:
            return {"id": job_id, "status": JobStatus.ERROR, "error": str(operation.error)}

        body: dict[str, object] = {"id": job_id, "status": JobStatus.FINISHED}
        value = operation.result()
        if isinstance(value, str) and value.startswith("/"):
            body["redirect"] = value
        return body

    def list_files(self) -> list[FileEntry]:
        return self._storage.list_files()

    def file_path(self, name: str) -> Path:
        return self._storage.path_for(name)
