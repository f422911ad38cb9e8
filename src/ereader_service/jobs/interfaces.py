from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from .operation import PendingOperation


class CommandRunner(Protocol):
    def run(self, command: str, arguments: Sequence[str] = (), timeout_ms: int | None = None) -> PendingOperation[str]:
        """Start `command` in the background and return its pending operation.
        Never blocks on the process; failures settle the operation.
        """


class StorageGateway(Protocol):
    def path_for(self, name: str) -> Path:
        ...

    def list_files(self) -> list["FileEntry"]:
        ...


@dataclass(frozen=True)
class FileEntry:
    name: str
    size_bytes: int
    is_dir: bool
