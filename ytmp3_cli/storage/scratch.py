"""
Scoped working files under one process-wide scratch directory.
"""

import logging
import re
import tempfile
import threading
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from ytmp3_cli.exceptions import ScratchDirectoryError

log = logging.getLogger(__name__)

DEFAULT_SCRATCH_NAME = "ytmp3-cli"


class TempHandle:
    """A unique working path owned by exactly one pipeline attempt."""

    def __init__(self, manager: "ScratchDirectory", path: Path):
        self._manager = manager
        self.path = path
        self.released = False

    @property
    def stem(self) -> str:
        """The unique prefix shared by this handle and any tool-created siblings."""
        return self.path.name.split("_", 1)[0]

    def companions(self) -> list[Path]:
        """Files created by external tools that share this handle's unique stem."""
        return [
            p
            for p in self.path.parent.glob(f"{self.stem}_*")
            if p != self.path and p.is_file()
        ]

    def release(self) -> None:
        """Deletes the file and its companions. Safe to call more than once."""
        if self.released:
            return
        for target in [self.path, *self.companions()]:
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Could not delete scratch file '{target.name}': {e}")
        self.released = True
        self._manager._forget(self)

    def __repr__(self) -> str:
        return f"TempHandle({self.path.name!r}, released={self.released})"


class ScratchDirectory:
    """
    Hands out unique working files under a lazily created scratch root.

    Every handle should be used through `scoped()` so that it is released on
    all exit paths, including cancellation.
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root else Path(tempfile.gettempdir()) / DEFAULT_SCRATCH_NAME
        self._ready = False
        self._lock = threading.Lock()
        self._active: Set[TempHandle] = set()

    def ensure(self) -> Path:
        """Creates the scratch root once. Failure is fatal for the caller."""
        if self._ready:
            return self.root
        with self._lock:
            if not self._ready:
                try:
                    self.root.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise ScratchDirectoryError(
                        f"Could not create scratch directory '{self.root}': {e}"
                    ) from e
                self._ready = True
                log.debug(f"Scratch directory ready at {self.root}")
        return self.root

    def acquire(self, name_pattern: str) -> TempHandle:
        """Creates a handle for `<uuid>_<name_pattern>` under the scratch root."""
        root = self.ensure()
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", name_pattern).strip("._") or "file"
        handle = TempHandle(self, root / f"{uuid.uuid4().hex}_{safe_name}")
        with self._lock:
            self._active.add(handle)
        return handle

    @asynccontextmanager
    async def scoped(self, name_pattern: str) -> AsyncIterator[TempHandle]:
        handle = self.acquire(name_pattern)
        try:
            yield handle
        finally:
            handle.release()

    def release_all(self) -> int:
        """Releases every outstanding handle. Returns how many were released."""
        with self._lock:
            outstanding = list(self._active)
        for handle in outstanding:
            handle.release()
        return len(outstanding)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def _forget(self, handle: TempHandle) -> None:
        with self._lock:
            self._active.discard(handle)


_default_scratch: Optional[ScratchDirectory] = None
_default_lock = threading.Lock()


def default_scratch(root: Optional[Path] = None) -> ScratchDirectory:
    """Returns the process-wide scratch directory, creating the manager once."""
    global _default_scratch
    with _default_lock:
        if _default_scratch is None:
            _default_scratch = ScratchDirectory(root)
        return _default_scratch
