from __future__ import annotations

import logging
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Set

logger = logging.getLogger(__name__)


class PreviewStore(Protocol):
    """Host capability that turns encoded bytes into a displayable handle."""

    def publish(self, role: str, data: bytes, suffix: str) -> Path: ...

    def release(self, handle: Path) -> None: ...


@dataclass
class TempPreviewStore:
    """
    Preview files in a temp directory. Each published preview is a file; its path is the handle.

    Callers release handles they no longer show. cleanup() removes whatever is still live.
    """
    base_dir: Path

    def __post_init__(self) -> None:
        self._live: Set[Path] = set()

    @staticmethod
    def default(app_name: str = "blpconvert") -> "TempPreviewStore":
        base = Path(tempfile.gettempdir()) / app_name
        base.mkdir(parents=True, exist_ok=True)
        return TempPreviewStore(base_dir=base)

    @property
    def live_handles(self) -> Set[Path]:
        return set(self._live)

    def publish(self, role: str, data: bytes, suffix: str = "") -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self.base_dir / f"{role}-{uuid.uuid4().hex}{suffix}"
        path.write_bytes(data)
        self._live.add(path)
        return path

    def release(self, handle: Path) -> None:
        """Delete a published preview. Safe to call more than once."""
        self._live.discard(handle)
        try:
            handle.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove preview file %s", handle)

    def cleanup(self) -> None:
        for handle in list(self._live):
            self.release(handle)
