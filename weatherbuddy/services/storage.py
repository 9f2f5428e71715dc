"""
Key-Value Storage.

Small async key-value interface for the engine's persistent state:
- weatherHistory    — rolling sample window
- lastWeatherAlerts — dispatch history for cooldown checks

Backends:
- MemoryStore:   process lifetime only (tests, ephemeral runs)
- JsonFileStore: one JSON document on disk, survives restarts
- RedisStore:    shared Redis instance

Values are JSON-encoded. Callers deal in plain JSON-compatible values.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog

from weatherbuddy.config import Settings, settings

logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Raised when a storage backend cannot read or write."""


class KeyValueStore(Protocol):
    """Protocol for persistent key-value backends."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None on a miss."""
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many existed."""
        ...


class MemoryStore:
    """In-process store. Values are round-tripped through JSON like the others."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False, default=str)

    async def delete(self, *keys: str) -> int:
        count = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                count += 1
        return count


class JsonFileStore:
    """
    Durable store backed by a single JSON file.

    Writes go to a temp file and are renamed into place, so a crash mid-write
    leaves the previous document intact.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected document in {self.path}")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, default=str)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = json.loads(json.dumps(value, ensure_ascii=False, default=str))
            await asyncio.to_thread(self._write_all, data)

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            count = sum(1 for k in keys if data.pop(k, None) is not None)
            if count:
                await asyncio.to_thread(self._write_all, data)
        return count


class RedisStore:
    """Redis-backed store. Connection is created lazily on first use."""

    def __init__(self, url: str, namespace: str = ""):
        self.url = url
        self.namespace = namespace
        self._redis = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def _client(self):
        if self._redis is None:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        try:
            r = await self._client()
            val = await r.get(self._key(key))
        except Exception as e:
            raise StorageError(f"Redis get failed: {e}") from e
        return json.loads(val) if val else None

    async def set(self, key: str, value: Any) -> None:
        try:
            r = await self._client()
            await r.set(self._key(key), json.dumps(value, ensure_ascii=False, default=str))
        except Exception as e:
            raise StorageError(f"Redis set failed: {e}") from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            r = await self._client()
            return await r.delete(*(self._key(k) for k in keys))
        except Exception as e:
            raise StorageError(f"Redis delete failed: {e}") from e

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_store(backend: str | None = None, config: Settings | None = None) -> KeyValueStore:
    """Build the configured backend."""
    config = config or settings
    backend = (backend or config.storage_backend).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "redis":
        return RedisStore(config.redis_url, namespace=config.storage_namespace)
    if backend == "file":
        return JsonFileStore(config.state_file_path)
    raise ValueError(f"Unknown storage backend: {backend}")
