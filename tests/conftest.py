import os
import stat
from pathlib import Path

import pytest


def _write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture()
def make_script(tmp_path):
    """Create an executable shell script standing in for the converter command.

    The service invokes it as `<script> percollate <format> --output <path> <url>`.
    """

    def _make(body: str, name: str = "fake-npx") -> str:
        return str(_write_script(tmp_path / name, body))

    return _make


def _pid_alive(pid: int) -> bool:
    if Path("/proc/self").exists():
        try:
            fields = Path(f"/proc/{pid}/stat").read_text().rsplit(")", 1)[1].split()
        except FileNotFoundError:
            return False
        # Zombies are dead, just not reaped yet.
        return fields[0] != "Z"
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.fixture()
def pid_alive():
    return _pid_alive
