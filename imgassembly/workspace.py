"""
Per-job staging directories.

Every animation job stages its frames in a fresh, uniquely named
directory under the configured temp root.  The directory belongs to that
job alone and is removed when the job's encoding attempt finishes,
whether it succeeded or not.  Removal problems are logged and swallowed
so they never replace the job's real outcome.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

from imgassembly.exceptions import WorkspaceCleanupFailure

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%04d.png"


class Workspace:
    """An ephemeral staging directory owned by exactly one job."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._released = False

    @classmethod
    def acquire(cls, root: Path) -> Workspace:
        root = Path(root)
        root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix="job_", dir=root))
        logger.debug("Acquired workspace %s", path)
        return cls(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def frame_pattern(self) -> str:
        """printf-style pattern matching every file written by write_frame."""
        return str(self._path / FRAME_PATTERN)

    @property
    def released(self) -> bool:
        return self._released

    def frame_path(self, index: int) -> Path:
        return self._path / (FRAME_PATTERN % index)

    def write_frame(self, index: int, data: bytes) -> Path:
        path = self.frame_path(index)
        path.write_bytes(data)
        return path

    def frame_paths(self) -> list[Path]:
        return sorted(self._path.glob("frame_*.png"))

    def release(self) -> None:
        """Remove every file, then the directory.  Never raises."""
        if self._released:
            return
        self._released = True
        try:
            for entry in self._path.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            self._path.rmdir()
        except FileNotFoundError:
            pass
        except OSError as exc:
            failure = WorkspaceCleanupFailure(
                f"Could not remove workspace {self._path}: {exc}"
            )
            logger.warning("%s", failure)
        else:
            logger.debug("Released workspace %s", self._path)

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"Workspace({str(self._path)!r})"


@contextlib.contextmanager
def acquire_workspace(root: Path) -> Iterator[Workspace]:
    """Yield a fresh workspace and release it on every exit path."""
    workspace = Workspace.acquire(root)
    try:
        yield workspace
    finally:
        workspace.release()
