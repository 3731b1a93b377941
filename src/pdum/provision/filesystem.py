"""Local filesystem operations used for credential files and archives."""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path
from typing import Union

OWNER_ONLY_FILE = 0o600
OWNER_ONLY_DIR = 0o700


class LocalFilesystem:
    """Create directories, write private files and move artifacts on local disk."""

    def make_private_dir(self, path: Path) -> Path:
        """Create ``path`` (and parents) and restrict it to its owner."""
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, OWNER_ONLY_DIR)
        return path

    def make_dir(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def write_private(self, path: Path, data: Union[bytes, str]) -> Path:
        """Write ``data`` to ``path`` so that the file is never group/world readable.

        The file is opened with mode 0600 and re-chmodded in case it already existed
        with looser permissions.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OWNER_ONLY_FILE)
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), OWNER_ONLY_FILE)
            f.write(data)
        return path

    def mode(self, path: Path) -> int:
        return stat.S_IMODE(path.stat().st_mode)

    def move(self, source: Path, destination_dir: Path) -> Path:
        """Move ``source`` into ``destination_dir``; return the new path."""
        target = destination_dir / source.name
        shutil.move(str(source), str(target))
        return target


__all__ = ["LocalFilesystem", "OWNER_ONLY_DIR", "OWNER_ONLY_FILE"]
