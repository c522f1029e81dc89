"""Disk cache for persisting computed Aquascope results."""

from __future__ import annotations

import gzip
import hashlib
import json
import os
import sys
import zlib
from pathlib import Path
from typing import Any, Generic, TypeVar

CACHE_PATH = ".aquascope-cache"

K = TypeVar("K")
V = TypeVar("V")


def _digest(key: Any) -> str:
    fingerprint = getattr(key, "fingerprint", None)
    if callable(fingerprint):
        return str(fingerprint())
    return hashlib.sha256(repr(key).encode("utf-8")).hexdigest()


class Cache(Generic[K, V]):
    """A gzip-compressed JSON map from hashed keys to JSON-serialisable values."""

    def __init__(self, path: str | os.PathLike[str], entries: dict[str, V] | None = None):
        self.path = Path(path)
        self._entries: dict[str, V] = dict(entries or {})
        self._dirty = False

    @classmethod
    def load(cls, path: str | os.PathLike[str] = CACHE_PATH) -> Cache[K, V]:
        """Open the cache file, creating it if needed.

        An unreadable cache is reported on stderr and replaced by an empty one.
        """
        path = Path(path)
        path.touch(exist_ok=True)
        data = path.read_bytes()
        entries: dict[str, V] = {}
        if data:
            try:
                decoded = json.loads(gzip.decompress(data).decode("utf-8"))
                if not isinstance(decoded, dict):
                    raise ValueError("cache contents are not a JSON object")
                entries = decoded
            except (OSError, EOFError, ValueError, zlib.error) as error:
                print(
                    f"Warning: failed to read Aquascope cache with error {error}",
                    file=sys.stderr,
                )
                entries = {}
        return cls(path, entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: K) -> V | None:
        return self._entries.get(_digest(key))

    def set(self, key: K, value: V) -> None:
        self._entries[_digest(key)] = value
        self._dirty = True

    def save(self) -> None:
        """Write the cache back to disk if anything changed since loading."""
        if not self._dirty:
            return
        payload = json.dumps(
            self._entries, sort_keys=True, ensure_ascii=False, separators=(",", ":")
        ).encode("utf-8")
        self.path.write_bytes(gzip.compress(payload, compresslevel=9, mtime=0))
        self._dirty = False