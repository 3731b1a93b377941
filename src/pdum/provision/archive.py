"""Collect the artifacts of a run into one timestamped directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from pdum.provision.filesystem import LocalFilesystem
from pdum.provision.log import ConsoleLogger

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass
class ArchiveResult:
    directory: Optional[Path] = None
    moved: dict[Path, Path] = field(default_factory=dict)
    left_in_place: dict[Path, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.left_in_place


class ArchiveAggregator:
    """Move produced files into ``<root>/<label> <timestamp>/``.

    Missing artifacts (``None`` or a path that no longer exists) are skipped. If the
    directory cannot be created every artifact stays where it is.
    """

    def __init__(
        self,
        root: Path,
        *,
        label: str = "key json",
        filesystem: Optional[LocalFilesystem] = None,
        logger: Optional[ConsoleLogger] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.root = root
        self.label = label
        self.filesystem = filesystem or LocalFilesystem()
        self.logger = logger or ConsoleLogger()
        self._now = now

    def destination(self) -> Path:
        return self.root / f"{self.label} {self._now().strftime(TIMESTAMP_FORMAT)}"

    def archive(self, artifacts: Iterable[Optional[Path]]) -> ArchiveResult:
        present = [a for a in artifacts if a is not None and a.exists()]
        destination = self.destination()
        result = ArchiveResult()

        try:
            self.filesystem.make_dir(destination)
        except OSError as e:
            result.error = f"Failed to create archive directory {destination}: {e}"
            self.logger.error(result.error)
            return result

        result.directory = destination
        for artifact in present:
            try:
                result.moved[artifact] = self.filesystem.move(artifact, destination)
            except OSError as e:
                self.logger.warning(f"Could not archive {artifact}: {e}")
                result.left_in_place[artifact] = str(e)

        if result.left_in_place:
            self.logger.warning(
                "Some files could not be archived and remain in place: "
                f"{', '.join(str(p) for p in result.left_in_place)}"
            )
        else:
            self.logger.success(f"Files archived to: {destination}")
        return result

    def write_key_lists(self, keys: list[str]) -> tuple[Path, Path]:
        """Write API key strings into ``<root>/api_keys_<timestamp>.txt`` and ``.csv``.

        The ``.txt`` file holds one key per line and the ``.csv`` file holds them on one
        comma-separated line. Both files are owner-only. Returns ``(txt_path, csv_path)``.
        """
        self.filesystem.make_dir(self.root)
        stem = self.root / f"api_keys_{self._now().strftime(TIMESTAMP_FORMAT)}"
        lines_path = self.filesystem.write_private(stem.with_suffix(".txt"), "".join(f"{k}\n" for k in keys))
        csv_path = self.filesystem.write_private(stem.with_suffix(".csv"), ",".join(keys) + "\n")
        self.logger.success(f"{len(keys)} API key(s) saved to {lines_path} and {csv_path}")
        return lines_path, csv_path


__all__ = ["ArchiveAggregator", "ArchiveResult"]
