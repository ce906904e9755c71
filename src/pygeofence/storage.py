"""Persistent key-value backends.

The engine only needs per-key atomic ``get``/``put``/``delete`` of
JSON-compatible dicts; expiry is a convention of the stored records, not a
backend feature.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from pygeofence.exceptions import StoreError

_logger = logging.getLogger(__name__)

JsonDict = dict[str, Any]


class KeyValueStore(Protocol):
    """Structural interface for the persistence collaborator.

    Having a protocol here lets applications plug in their own backend
    (browser storage bridge, Redis, a table row) while tests use
    :class:`MemoryKeyValueStore`.
    """

    async def get(self, key: str) -> JsonDict | None:
        ...

    async def put(self, key: str, value: JsonDict) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: dict[str, JsonDict] | None = None) -> None:
        self._data: dict[str, JsonDict] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> JsonDict | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, key: str, value: JsonDict) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileKeyValueStore:
    """All keys in one JSON document on disk, replaced atomically on write."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, JsonDict]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StoreError(f"Cannot read {self._path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Corrupt store file {self._path}: {exc}") from exc
        if not isinstance(document, dict):
            raise StoreError(f"Store file {self._path} does not hold a JSON object")
        return document

    def _dump(self, document: dict[str, JsonDict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(f"Cannot write {self._path}: {exc}") from exc

    async def get(self, key: str) -> JsonDict | None:
        async with self._lock:
            document = await asyncio.to_thread(self._load)
        value = document.get(key)
        return value if isinstance(value, dict) else None

    async def put(self, key: str, value: JsonDict) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._load)
            document[key] = value
            await asyncio.to_thread(self._dump, document)
        _logger.debug("Stored key=%s in %s", key, self._path)

    async def delete(self, key: str) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._load)
            if document.pop(key, None) is not None:
                await asyncio.to_thread(self._dump, document)
