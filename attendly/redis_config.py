import asyncio
import inspect
import time
from typing import Protocol

import httpx
from redis.asyncio import Redis

from attendly.config import settings
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


class CacheClient(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class RedisTcpCache:
    def __init__(self, client: Redis):
        self.client = client

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self.client.setex(key, ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        close_result = self.client.aclose()
        if inspect.isawaitable(close_result):
            await close_result


class UpstashRestCache:
    def __init__(self, rest_url: str, token: str):
        self.client = httpx.AsyncClient(
            base_url=rest_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=5.0,
        )

    async def _run(self, *command: str) -> object | None:
        response = await self.client.post("/", json=list(command))
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict):
            if payload.get("error"):
                raise RuntimeError(str(payload["error"]))
            return payload.get("result")
        return None

    async def ping(self) -> None:
        result = await self._run("PING")
        if str(result).upper() != "PONG":
            raise RuntimeError("Upstash REST ping failed")

    async def get(self, key: str) -> str | None:
        result = await self._run("GET", key)
        if result is None:
            return None
        return str(result)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self._run("SETEX", key, str(ttl_seconds), value)

    async def delete(self, key: str) -> None:
        await self._run("DEL", key)

    async def close(self) -> None:
        await self.client.aclose()


class MemoryCache:
    """Process-local cache for development and tests; not shared across workers."""

    def __init__(self) -> None:
        self._values: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if time.monotonic() >= deadline:
            self._values.pop(key, None)
            return None
        return value

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        self._values[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def close(self) -> None:
        self._values.clear()


_cache_client: CacheClient | None = None
_cache_lock = asyncio.Lock()


async def _build_redis_cache() -> RedisTcpCache:
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        ping_result = redis.ping()
        if inspect.isawaitable(ping_result):
            await ping_result
        return RedisTcpCache(redis)
    except Exception:
        await redis.aclose()
        raise


async def _build_cache_client() -> CacheClient:
    backend = settings.CACHE_BACKEND.strip().lower()
    if backend not in {"auto", "redis", "upstash_rest", "memory"}:
        backend = "auto"

    if backend == "memory":
        logger.info("Cache backend: in-process memory")
        return MemoryCache()

    if backend in {"auto", "upstash_rest"}:
        if settings.UPSTASH_REDIS_REST_URL and settings.UPSTASH_REDIS_REST_TOKEN:
            upstash_cache = UpstashRestCache(
                settings.UPSTASH_REDIS_REST_URL, settings.UPSTASH_REDIS_REST_TOKEN
            )
            try:
                await upstash_cache.ping()
                logger.info("Cache backend: Upstash REST")
                return upstash_cache
            except Exception as error:
                await upstash_cache.close()
                logger.warning("Upstash REST unavailable: %s", error)
        elif backend == "upstash_rest":
            logger.warning(
                "Upstash REST selected but credentials are missing. "
                "Falling back to automatic cache detection."
            )

    try:
        cache = await _build_redis_cache()
        logger.info("Cache backend: Redis TCP")
        return cache
    except Exception as error:
        if backend == "redis":
            raise RuntimeError(f"Redis unavailable at {settings.REDIS_URL}") from error
        # The cache only short-circuits lookups, the database stays authoritative.
        logger.warning("Redis unavailable (%s); using in-process memory cache", error)
        return MemoryCache()


async def init_cache() -> None:
    await get_cache_client()


async def shutdown_cache() -> None:
    global _cache_client
    async with _cache_lock:
        if _cache_client is not None:
            await _cache_client.close()
            _cache_client = None


async def get_cache_client() -> CacheClient:
    global _cache_client
    if _cache_client is not None:
        return _cache_client

    async with _cache_lock:
        if _cache_client is None:
            _cache_client = await _build_cache_client()
        return _cache_client


async def get_redis():
    cache = await get_cache_client()
    yield cache


def attendance_cache_key(event_id: str, client_id: str) -> str:
    return f"attendance:{event_id}:{client_id}"
