"""Durable key-value persistence for settings, secrets and the retry queue.

``JsonFileStore`` keeps one JSON document per key in the state directory
(``<state_dir>/<key>.json``).

Key design choices:

* **Atomic writes** -- ``set_item()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data and a crash mid-write
  leaves the previous document intact.
* **Async surface** -- every read and write is a suspension point; the
  blocking file I/O runs in a worker thread via ``run_sync``.
* **No cross-key transactions** -- each key is an independent document.
  Read-modify-write cycles are only safe under the single event loop.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .core.async_utils import run_sync

logger = logging.getLogger(__name__)

SETTINGS_KEY = "cookiejar_settings"
SECRETS_KEY = "cookiejar_secrets"
QUEUE_KEY = "cookiejar_queue"

# Keys whose files are created owner-read/write only.
PRIVATE_KEYS = frozenset({SECRETS_KEY})

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    """String-keyed JSON store.  ``get_item`` returns ``None`` for absent keys."""

    async def get_item(self, key: str) -> Any: ...

    async def set_item(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store.  Values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get_item(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set_item(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileStore:
    """File-backed store, one JSON file per key.

    Args:
        state_dir: Directory holding the documents.  Created on first write.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    async def get_item(self, key: str) -> Any:
        return await run_sync(self.read, key)

    async def set_item(self, key: str, value: Any) -> None:
        await run_sync(self.write, key, value)

    # ------------------------------------------------------------------
    # Blocking implementation
    # ------------------------------------------------------------------

    def read(self, key: str) -> Any:
        """Return the stored value, or ``None`` if absent or unreadable."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as fh:
                return json.load(fh)
        except ValueError:
            logger.error("Corrupt JSON in %s; treating key %s as absent", path, key)
            return None

    def write(self, key: str, value: Any) -> None:
        """Persist *value* atomically."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            if key in PRIVATE_KEYS:
                os.chmod(tmp_path, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh, indent=2)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._state_dir / f"{key}.json"
