"""Async Redis access for the cache and the rate limiter, degrading to no-ops when down."""
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import NoScriptError, RedisError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# INCR the window counter, start the window's TTL on its first hit.
# Returns {allowed, remaining, ttl, retry_after}.
FIXED_WINDOW_SCRIPT = """
local hits = redis.call('INCR', KEYS[1])
if hits == 1 then
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
local ttl = redis.call('TTL', KEYS[1])
local cap = tonumber(ARGV[1])
if hits > cap then
    return {0, 0, ttl, ttl}
end
return {1, cap - hits, ttl, 0}
"""


class RedisClient:
    """
    Pooled redis.asyncio client that never raises to its callers.

    Redis only holds disposable state here (cache snapshots, rate-limit
    windows), so a failed command is logged and answered with a neutral value:
    None for reads, False for writes.

    Tests pass a ready-made client (fakeredis) instead of a URL-built pool.
    """

    def __init__(
        self,
        url: str,
        enabled: bool = True,
        pool_size: int = 20,
        client: Redis | None = None,
    ) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._provided = client
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._fixed_window_sha: str | None = None

    async def connect(self) -> None:
        """Open the pool, check the server answers, and register the Lua script."""
        if not self._enabled:
            logger.info("redis_disabled")
            return
        if self._provided is not None:
            client = self._provided
        else:
            self._pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
            client = Redis(connection_pool=self._pool)
        try:
            await client.ping()
        except RedisError as e:
            logger.warning("redis_connect_failed", extra={"error": str(e)})
            self._pool = None
            return
        self._client = client
        await self._register_scripts()
        logger.info("redis_connected")

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        self._pool = None
        logger.info("redis_closed")

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def fixed_window_sha(self) -> str | None:
        return self._fixed_window_sha

    async def _register_scripts(self) -> None:
        self._fixed_window_sha = await self._run(
            "script_load", None, lambda c: c.script_load(FIXED_WINDOW_SCRIPT),
        )

    async def _run(
        self,
        command: str,
        fallback: T,
        call: Callable[[Redis], Awaitable[T]],
    ) -> T:
        """Run one command against the live client, or return fallback."""
        if self._client is None:
            return fallback
        try:
            return await call(self._client)
        except RedisError as e:
            logger.warning("redis_command_failed", extra={"command": command, "error": str(e)})
            return fallback

    async def ping(self) -> bool:
        return bool(await self._run("ping", False, lambda c: c.ping()))

    async def get(self, key: str) -> bytes | None:
        return await self._run("get", None, lambda c: c.get(key))

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        async def _setex(c: Redis) -> bool:
            await c.setex(key, seconds, value)
            return True

        return await self._run("setex", False, _setex)

    async def delete(self, *keys: str) -> bool:
        async def _delete(c: Redis) -> bool:
            await c.delete(*keys)
            return True

        return await self._run("delete", False, _delete)

    async def delete_pattern(self, pattern: str, batch_size: int = 500) -> bool:
        """
        Delete every key matching a glob pattern.

        Walks the keyspace with SCAN and deletes in batches, so a large keyspace
        never blocks the server the way KEYS would.
        """

        async def _delete_matching(c: Redis) -> bool:
            batch: list[Any] = []
            async for key in c.scan_iter(match=pattern, count=batch_size):
                batch.append(key)
                if len(batch) == batch_size:
                    await c.delete(*batch)
                    batch.clear()
            if batch:
                await c.delete(*batch)
            return True

        return await self._run("delete_pattern", False, _delete_matching)

    async def eval_fixed_window(
        self, key: str, max_requests: int, window_seconds: int,
    ) -> list[int] | None:
        """
        Count one hit in the fixed window stored at key.

        Returns [allowed, remaining, ttl, retry_after], or None when Redis is
        unavailable or the script could not be (re)registered. A server restart
        drops cached scripts; that NOSCRIPT is answered by registering the
        script again and retrying once.
        """
        if self._client is None or self._fixed_window_sha is None:
            return None

        def _eval(c: Redis) -> Awaitable[list[int]]:
            return c.evalsha(self._fixed_window_sha, 1, key, max_requests, window_seconds)

        try:
            return await _eval(self._client)
        except NoScriptError:
            logger.warning("redis_script_reload", extra={"script": "fixed_window"})
            await self._register_scripts()
            if self._fixed_window_sha is None:
                return None
            return await self._run("evalsha", None, _eval)
        except RedisError as e:
            logger.warning("redis_command_failed", extra={"command": "evalsha", "error": str(e)})
            return None
