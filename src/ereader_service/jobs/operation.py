import asyncio
import enum
import logging
import time
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class OperationState(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PendingOperation(Generic[T]):
    """An asynchronous unit of work that settles exactly once.

    Settlement goes through `settle_success` / `settle_failure`. The first call
    wins; later calls are ignored and report False, so two independent triggers
    (a timer and a process exit, say) can race without double-settling.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._state = OperationState.PENDING
        self._value: T | None = None
        self._error: BaseException | None = None
        self._settled = asyncio.Event()
        self._callbacks: list[Callable[["PendingOperation[T]"], None]] = []
        self.settled_at: float | None = None

    def __repr__(self) -> str:
        return f"<PendingOperation {self.name!r} {self._state.value}>"

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        return self._error

    def done(self) -> bool:
        return self._state is not OperationState.PENDING

    def settle_success(self, value: T) -> bool:
        if self.done():
            logger.debug("Ignoring success for already settled operation %r", self)
            return False
        self._state = OperationState.SUCCEEDED
        self._value = value
        self._finish()
        return True

    def settle_failure(self, error: BaseException) -> bool:
        if self.done():
            logger.debug("Ignoring failure for already settled operation %r: %s", self, error)
            return False
        self._state = OperationState.FAILED
        self._error = error
        self._finish()
        return True

    def _finish(self) -> None:
        self.settled_at = time.monotonic()
        self._settled.set()
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb(self)

    def result(self) -> T:
        if self._state is OperationState.PENDING:
            raise asyncio.InvalidStateError("operation is still pending")
        if self._state is OperationState.FAILED:
            assert self._error is not None
            raise self._error
        return self._value  # type: ignore[return-value]

    async def join(self) -> None:
        """Suspend until settled without raising the failure."""
        await self._settled.wait()

    async def wait(self) -> T:
        """Suspend until settled, then return the value or raise the failure."""
        await self._settled.wait()
        return self.result()

    def add_done_callback(self, fn: Callable[["PendingOperation[T]"], None]) -> None:
        if self.done():
            fn(self)
        else:
            self._callbacks.append(fn)

    def then(self, transform: Callable[[T], U]) -> "PendingOperation[U]":
        """Derive an operation that settles with `transform(value)` on success
        and with the same error on failure."""
        derived: PendingOperation[U] = PendingOperation(name=self.name)

        def _propagate(parent: "PendingOperation[T]") -> None:
            if parent.state is OperationState.FAILED:
                assert parent.error is not None
                derived.settle_failure(parent.error)
                return
            try:
                derived.settle_success(transform(parent.result()))
            except Exception as e:
                derived.settle_failure(e)

        self.add_done_callback(_propagate)
        return derived
