"""
Last-known-good cache — per-zone JSON records that survive a cold start.

Provides:
    • RedisCacheStore — async Redis client with namespaced keys
    • FileCacheStore  — one JSON file per key in a local directory
    • build_cache_store() — picks the backend from settings

Both stores are best-effort: a read or write failure is logged and
reported as a miss / False, never raised. The cache is an offline aid,
not a correctness-critical store.

Keys are namespaced by zone identifier:

    weather_jalukbari  →  {"zone_id": ..., "weather": ..., "captured_at": ...}

Usage:
    store = build_cache_store(settings)
    await store.set("jalukbari", entry.to_dict())
    cached = await store.get("jalukbari")
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from floodwatch.core.config import Settings

logger = logging.getLogger(__name__)


class CacheStore:
    """Interface shared by the cache backends."""

    def __init__(self, prefix: str = "weather_"):
        self.prefix = prefix

    def key_for(self, zone_id: str) -> str:
        return f"{self.prefix}{zone_id}"

    async def get(self, zone_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def set(self, zone_id: str, value: Dict[str, Any]) -> bool:
        raise NotImplementedError

    async def delete(self, zone_id: str) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class FileCacheStore(CacheStore):
    """Stores each zone record as ``<directory>/<prefix><zone>.json``."""

    def __init__(self, directory: str | Path, prefix: str = "weather_"):
        super().__init__(prefix)
        self.directory = Path(directory)

    def _path(self, zone_id: str) -> Path:
        return self.directory / f"{self.key_for(zone_id)}.json"

    async def get(self, zone_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(zone_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Cache GET error for %s: %s", path.name, e)
            return None

    async def set(self, zone_id: str, value: Dict[str, Any]) -> bool:
        path = self._path(zone_id)
        tmp: Optional[str] = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            serialised = json.dumps(value, default=str, ensure_ascii=False)
            # Write-then-rename so a concurrent reader sees old or new, never half.
            fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(serialised)
            os.replace(tmp, path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Cache SET error for %s: %s", path.name, e)
            if tmp is not None:
                Path(tmp).unlink(missing_ok=True)
            return False

    async def delete(self, zone_id: str) -> bool:
        try:
            self._path(zone_id).unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.warning("Cache DELETE error for %s: %s", zone_id, e)
            return False


class RedisCacheStore(CacheStore):
    """Redis-backed store; the client is created lazily on first use."""

    def __init__(self, url: str, prefix: str = "weather_", client: Any = None):
        super().__init__(prefix)
        self.url = url
        self._client = client

    async def _get_redis(self):
        """Get or create async Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis cache connected: %s", self.url)
        return self._client

    async def get(self, zone_id: str) -> Optional[Dict[str, Any]]:
        key = self.key_for(zone_id)
        try:
            client = await self._get_redis()
            raw = await client.get(key)
            if raw is not None:
                return json.loads(raw)
        except Exception as e:
            logger.warning("Cache GET error for %s: %s", key, e)
        return None

    async def set(self, zone_id: str, value: Dict[str, Any]) -> bool:
        key = self.key_for(zone_id)
        try:
            client = await self._get_redis()
            await client.set(key, json.dumps(value, default=str, ensure_ascii=False))
            return True
        except Exception as e:
            logger.warning("Cache SET error for %s: %s", key, e)
            return False

    async def delete(self, zone_id: str) -> bool:
        key = self.key_for(zone_id)
        try:
            client = await self._get_redis()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning("Cache DELETE error for %s: %s", key, e)
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis cache connection closed")


def build_cache_store(settings: Settings) -> CacheStore:
    """Select the cache backend configured by ``CACHE_BACKEND``."""
    if settings.CACHE_BACKEND == "redis":
        return RedisCacheStore(settings.REDIS_URL, prefix=settings.CACHE_KEY_PREFIX)
    return FileCacheStore(settings.CACHE_DIR, prefix=settings.CACHE_KEY_PREFIX)
