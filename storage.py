"""Async key-value storage port and the backends shipped with the CLI."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Mapping, Protocol, Sequence

from errors import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Eventually consistent key-value store used by both stores."""

    async def get(self, keys: Sequence[str]) -> dict[str, Any]:
        """Return the present subset of ``keys``; absent keys are omitted."""

    async def set(self, items: Mapping[str, Any]) -> None:
        """Write every key in ``items``."""

    async def remove(self, keys: Sequence[str]) -> None:
        """Delete ``keys``; missing keys are ignored."""


def _json_copy(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Value is not JSON serializable: {exc}") from exc


class MemoryStorage:
    """In-process backend; values are stored as JSON-compatible copies."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = _json_copy(dict(initial or {}))
        self.writes: list[dict[str, Any]] = []

    async def get(self, keys: Sequence[str]) -> dict[str, Any]:
        return {
            key: copy.deepcopy(self._data[key])
            for key in keys
            if key in self._data
        }

    async def set(self, items: Mapping[str, Any]) -> None:
        payload = _json_copy(dict(items))
        self._data.update(payload)
        self.writes.append(payload)

    async def remove(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStorage:
    """Single JSON document on disk, replaced atomically on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def get(self, keys: Sequence[str]) -> dict[str, Any]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return {key: data[key] for key in keys if key in data}

    async def set(self, items: Mapping[str, Any]) -> None:
        payload = _json_copy(dict(items))
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data.update(payload)
            await asyncio.to_thread(self._write, data)

    async def remove(self, keys: Sequence[str]) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if not any(key in data for key in keys):
                return
            for key in keys:
                data.pop(key, None)
            await asyncio.to_thread(self._write, data)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self.path}: {exc}") from exc
        except ValueError as exc:
            raise PersistenceError(
                f"Storage file {self.path} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise PersistenceError(
                f"Storage file {self.path} does not contain a JSON object"
            )
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                delete=False,
            ) as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
                tmp_name = handle.name
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("Writing %s failed: %s", self.path, exc)
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc


__all__ = ["JsonFileStorage", "KeyValueStorage", "MemoryStorage"]
