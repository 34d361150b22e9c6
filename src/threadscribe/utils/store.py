"""Redis-backed JSON blob store used by the ledger and event deduplication."""

import json
from typing import Any, Callable

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from threadscribe.config import get_settings
from threadscribe.utils.errors import LedgerConflictError
from threadscribe.utils.logging import get_logger

logger = get_logger(__name__)

# Optimistic write attempts before giving up on a hot key
MAX_CAS_ATTEMPTS = 5


class BlobStore:
    """Async JSON blob store addressed by stable string keys.

    Values are stored as JSON text. Writes that depend on the current
    value go through ``update_json``, which uses WATCH/MULTI/EXEC so that a
    concurrent writer forces a re-read instead of being overwritten.
    """

    def __init__(self, client: Redis | None = None):
        self._client = client

    def _get_client(self) -> Redis:
        if self._client is None:
            settings = get_settings()

            logger.info(
                "connecting_to_redis",
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
            )

            self._client = redis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.store_token,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_keepalive=True,
            )
        return self._client

    async def disconnect(self) -> None:
        """Close the Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    async def get_json(self, key: str) -> Any | None:
        """Read and decode a JSON value.

        Args:
            key: Blob key.

        Returns:
            Decoded value, or None if the key is absent or holds invalid JSON.
        """
        raw = await self._get_client().get(key)
        return _decode(key, raw)

    async def update_json(
        self,
        key: str,
        mutate: Callable[[Any | None], Any],
        ttl: int | None = None,
        max_attempts: int = MAX_CAS_ATTEMPTS,
    ) -> Any:
        """Apply ``mutate`` to the current value and store the result atomically.

        ``mutate`` receives the decoded current value (None when absent) and
        may be called more than once if another writer changes the key in
        between; it must be a pure function of its input.

        Args:
            key: Blob key.
            mutate: Function computing the new value from the current one.
            ttl: Optional expiry in seconds.
            max_attempts: Conflicts tolerated before giving up.

        Returns:
            The value that was written.

        Raises:
            LedgerConflictError: If every attempt lost to a concurrent writer.
        """
        client = self._get_client()

        async with client.pipeline(transaction=True) as pipe:
            for attempt in range(1, max_attempts + 1):
                try:
                    await pipe.watch(key)
                    current = _decode(key, await pipe.get(key))
                    new_value = mutate(current)

                    pipe.multi()
                    pipe.set(key, json.dumps(new_value), ex=ttl)
                    await pipe.execute()

                    logger.debug("blob_written", key=key, attempt=attempt)
                    return new_value
                except WatchError:
                    logger.info("blob_write_conflict", key=key, attempt=attempt)
                    continue

        raise LedgerConflictError(
            f"Gave up writing {key} after {max_attempts} conflicting attempts",
            details={"key": key, "attempts": max_attempts},
        )

    async def claim(self, key: str, ttl: int) -> bool:
        """Claim a key for ``ttl`` seconds.

        Used as a time-windowed idempotency check: the first caller gets True,
        later callers get False until the key expires. When the store is
        unreachable the claim is granted, so an outage cannot block work.
        """
        try:
            result = await self._get_client().set(key, "1", ex=ttl, nx=True)
            logger.debug("claim_attempted", key=key, granted=bool(result))
            return bool(result)
        except RedisError as e:
            logger.warning("claim_failed_granting", key=key, error=str(e))
            return True


def _decode(key: str, raw: str | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("blob_decode_failed", key=key, error=str(e))
        return None


# Global store instance
_store: BlobStore | None = None


def get_store() -> BlobStore:
    """Get the global blob store instance."""
    global _store
    if _store is None:
        _store = BlobStore()
    return _store
