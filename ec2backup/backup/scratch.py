"""Scratch files removed when a run ends, however it ends."""

import logging
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class ScratchFiles:
    """Local temporary files owned by one run."""

    def __init__(self):
        self.paths: list[Path] = []

    def track(self, path: Path) -> Path:
        self.paths.append(Path(path))
        return path

    def cleanup(self) -> None:
        for path in self.paths:
            if path.is_file():
                path.unlink()
                logger.debug(f"Deleted scratch file: {path}")
        self.paths.clear()


@contextmanager
def scratch_files():
    """Yield a ScratchFiles that is emptied on every exit path, KeyboardInterrupt included."""
    scratch = ScratchFiles()
    try:
        yield scratch
    finally:
        scratch.cleanup()
