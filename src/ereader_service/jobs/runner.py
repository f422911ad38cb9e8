import asyncio
import codecs
import logging
import os
import signal
from typing import Sequence

from .errors import JobError, JobTimeoutError, NonZeroExitError, SpawnError
from .operation import PendingOperation

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 60_000
READ_CHUNK = 64 * 1024
REAP_TIMEOUT_SEC = 5.0


class ProcessRunner:
    """Launches commands in their own process group and tracks them as
    `PendingOperation`s.

    `run` returns immediately; a background task owns the child process,
    collects its stdout and settles the operation on exit or timeout.
    Must be used from within a running event loop.
    """

    def __init__(self, *, default_timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self._default_timeout_ms = default_timeout_ms
        self._tasks: set[asyncio.Task] = set()

    def run(
        self,
        command: str,
        arguments: Sequence[str] = (),
        timeout_ms: int | None = None,
    ) -> PendingOperation[str]:
        # Zero, None and negative values all mean "use the default".
        effective_ms = timeout_ms if timeout_ms and timeout_ms > 0 else self._default_timeout_ms
        args = [str(a) for a in arguments]

        op: PendingOperation[str] = PendingOperation(name=command)
        task = asyncio.get_running_loop().create_task(self._supervise(op, command, args, effective_ms))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return op

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel supervision of every running process, killing their groups."""
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _supervise(
        self,
        op: PendingOperation[str],
        command: str,
        args: list[str],
        timeout_ms: int,
    ) -> None:
        timeout_seconds = timeout_ms / 1000
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except asyncio.CancelledError:
            op.settle_failure(JobError("Process was cancelled."))
            raise
        except Exception as e:
            logger.error("Failed to start %s: %s", command, e)
            op.settle_failure(SpawnError(command, e))
            return

        logger.info("Started pid=%s: %s %s", proc.pid, command, " ".join(args))
        buffer: list[str] = []
        try:
            code = await asyncio.wait_for(self._collect(proc, buffer), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            self._kill_group(proc, command)
            op.settle_failure(JobTimeoutError(timeout_seconds))
            await self._reap(proc)
            return
        except asyncio.CancelledError:
            self._kill_group(proc, command)
            op.settle_failure(JobError("Process was cancelled."))
            await self._reap(proc)
            raise
        except Exception as e:
            logger.exception("Supervising pid=%s failed", proc.pid)
            self._kill_group(proc, command)
            op.settle_failure(e)
            return

        logger.info("pid=%s exited with code %s", proc.pid, code)
        if code == 0:
            op.settle_success("".join(buffer))
        else:
            op.settle_failure(NonZeroExitError(code))

    async def _collect(self, proc: asyncio.subprocess.Process, buffer: list[str]) -> int:
        # Exit only counts once both pipes are closed, so no output arrives after settlement.
        await asyncio.gather(
            self._pump_stdout(proc, buffer),
            self._pump_stderr(proc),
        )
        return await proc.wait()

    @staticmethod
    async def _pump_stdout(proc: asyncio.subprocess.Process, buffer: list[str]) -> None:
        assert proc.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await proc.stdout.read(READ_CHUNK)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                buffer.append(text)
                logger.info("[pid=%s] %s", proc.pid, text.rstrip("\n"))
        tail = decoder.decode(b"", final=True)
        if tail:
            buffer.append(tail)

    @staticmethod
    async def _pump_stderr(proc: asyncio.subprocess.Process) -> None:
        assert proc.stderr is not None
        while True:
            chunk = await proc.stderr.read(READ_CHUNK)
            if not chunk:
                break
            logger.warning("[pid=%s] %s", proc.pid, chunk.decode("utf-8", errors="replace").rstrip("\n"))

    @staticmethod
    def _kill_group(proc: asyncio.subprocess.Process, command: str) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError as e:
            logger.error("Failed to kill process group %s for command %s: %s", proc.pid, command, e)

    @staticmethod
    async def _reap(proc: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(proc.wait(), timeout=REAP_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            logger.warning("pid=%s did not exit after kill", proc.pid)


_default_runner: ProcessRunner | None = None


def run(command: str, arguments: Sequence[str] = (), timeout_ms: int | None = None) -> PendingOperation[str]:
    """Run `command` with a process-wide default `ProcessRunner`."""
    global _default_runner
    if _default_runner is None:
        _default_runner = ProcessRunner()
    return _default_runner.run(command, arguments, timeout_ms)
