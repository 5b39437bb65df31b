"""Durable content-addressed store of successful task responses.

Purpose:
- Return previously computed answers for identical requests without contacting
  any backend.
- Persist entries across process runs in one JSON document.

Index lifecycle:
- The JSON file is loaded lazily on first access. A missing file starts an empty
  cache; a corrupt file is logged and treated as empty.
- `set` only updates memory. `save` persists the whole mapping through a
  temporary file and `os.replace`, so readers never observe a half-written file.

Concurrency:
- No locking and no request coalescing. Concurrent misses for the same fingerprint
  may both call a backend and both write; the last write wins. Backend calls are
  treated as side-effect free, so duplicate work is the only cost.

Side effects:
- Creates the cache directory on first save.
"""

import json
import logging
import os

from aitask.core.types import ResponsePayload


logger = logging.getLogger(__name__)


DEFAULT_CACHE_PATH = os.getenv("AITASK_CACHE_PATH", os.path.join(".cache", "aitask-cache.json"))


class ResponseCache:
    """Append-only fingerprint -> payload store backed by a JSON file.

    Args:
        path: Cache file location. `None` keeps the cache in memory only.
    """

    def __init__(self, path: str | None = DEFAULT_CACHE_PATH) -> None:
        self.path = path
        self._entries: dict | None = None

    def _load(self) -> dict:
        if self._entries is not None:
            return self._entries

        entries = {}
        if self.path and os.path.exists(self.path):
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    entries = data
                else:
                    logger.warning("Ignoring cache file with unexpected shape: %s", self.path)
            except (OSError, ValueError):
                logger.exception("Failed to load response cache from %s", self.path)

        self._entries = entries
        return entries

    def get(self, fingerprint: str) -> ResponsePayload | None:
        """Return the cached payload for `fingerprint`, or `None`."""
        entry = self._load().get(fingerprint)
        if entry is None:
            return None
        if not isinstance(entry, dict):
            logger.warning("Ignoring malformed cache entry %s", fingerprint)
            return None
        return ResponsePayload(
            value=entry.get("value"),
            usage=entry.get("usage"),
            raw_message=bool(entry.get("raw_message", False)),
        )

    def set(self, fingerprint: str, payload: ResponsePayload) -> None:
        """Record `payload` under `fingerprint` (last write wins)."""
        self._load()[fingerprint] = {
            "value": payload.value,
            "usage": payload.usage,
            "raw_message": payload.raw_message,
        }

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._load()

    def __len__(self) -> int:
        return len(self._load())

    def save(self) -> None:
        """Persist all entries atomically.

        Failure modes:
            Write failures are logged; the in-memory entries stay available.
        """
        if not self.path:
            return

        entries = self._load()
        directory = os.path.dirname(self.path)
        tmp_path = self.path + ".tmp"

        try:
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, ensure_ascii=False, default=str)

            os.replace(tmp_path, self.path)
        except OSError:
            logger.exception("Failed to persist response cache to %s", self.path)
