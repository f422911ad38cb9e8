from pathlib import Path

from .errors import InvalidRequestError
from .interfaces import FileEntry, StorageGateway


class LocalStorage(StorageGateway):
    def __init__(self, files_dir: str) -> None:
        self._base = Path(files_dir).resolve()

    @property
    def base(self) -> Path:
        return self._base

    def ensure(self) -> None:
        self._base.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """Resolve a bare file name inside the files directory.

        Directory components are stripped; names that end up empty or
        refer to the directory itself are rejected.
        """
        safe = Path(name.replace("\\", "/")).name
        if safe in {"", ".", ".."}:
            raise InvalidRequestError(f"invalid file name {name!r}")
        return self._base / safe

    def list_files(self) -> list[FileEntry]:
        if not self._base.exists():
            return []
        entries = []
        for p in sorted(self._base.iterdir(), key=lambda p: p.name):
            if p.name.startswith("."):
                continue
            is_dir = p.is_dir()
            entries.append(FileEntry(name=p.name, size_bytes=0 if is_dir else p.stat().st_size, is_dir=is_dir))
        return entries
