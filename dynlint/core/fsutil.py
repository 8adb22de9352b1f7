"""Advisory directory locks and atomic installation of build products."""

from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional

LOCK_FILENAME = ".dynlint.lock"


def _lock_file(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)  # type: ignore[attr-defined]
        return
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        return
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def directory_lock(directory: Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock on ``directory`` for the duration of the context.

    The lock lives in a sidecar file so that entries of ``directory`` can be
    replaced with ``os.replace`` while it is held. Readers never take it.
    """
    directory.mkdir(parents=True, exist_ok=True)
    lock_path = directory / LOCK_FILENAME
    with lock_path.open("a+", encoding="utf-8") as handle:
        _lock_file(handle)
        try:
            yield directory
        finally:
            _unlock_file(handle)


def atomic_install(source: Path, destination: Path, mode: Optional[int] = None) -> Path:
    """Copy ``source`` next to ``destination`` and rename it into place."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=str(destination.parent)
    )
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copy2(source, temp_path)
        if mode is not None:
            temp_path.chmod(mode)
        os.replace(temp_path, destination)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return destination


def atomic_move_dir(source: Path, destination: Path) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    os.replace(source, destination)
    return destination
