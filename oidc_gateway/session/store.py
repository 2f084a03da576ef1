"""
Session storage.

Sessions live in a shared key-value store with overwrite-only semantics:
nothing is deleted, a refresh token that must not be reused is overwritten
with the tombstone ``"-"``. Each opaque session token owns two keys:

    oidc:id_token:<session id>       current ID Token
    oidc:refresh_token:<session id>  refresh token, or "-"

There is no locking or compare-and-swap. Two refreshes racing for the same
session both write, and the last write wins.
"""

import asyncio
import logging
import time
from typing import Dict, Optional, Protocol, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import SessionStoreError
from ..models import REFRESH_TOKEN_TOMBSTONE, RefreshTokenState, Session


logger = logging.getLogger(__name__)

ID_TOKEN_PREFIX = "oidc:id_token:"
REFRESH_TOKEN_PREFIX = "oidc:refresh_token:"


class KeyValueStore(Protocol):
    """Minimal contract of the backing store."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...


# =============================================================================
# Backends
# =============================================================================

class InMemoryKeyValueStore:
    """
    Process-local store with per-key expiry.

    Only suitable for a single gateway process. Expired entries are dropped
    when read, and swept on write at most once per ``sweep_interval`` seconds.
    """

    def __init__(self, sweep_interval: float = 60.0):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep: Optional[float] = None

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._next_sweep is None or now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + self.sweep_interval

            expires_at = now + ttl_seconds if ttl_seconds else None
            self._data[key] = (value, expires_at)

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired session keys")


class RedisKeyValueStore:
    """Redis-backed store shared by every gateway instance."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None

    async def start(self) -> None:
        """
        Connect and ping Redis.

        Raises:
            SessionStoreError: If Redis is unreachable
        """
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            await self.redis.ping()
        except RedisError as e:
            logger.error(f"Failed to connect to session store: {e}")
            raise SessionStoreError(f"Session store unavailable: {e}") from e

        logger.info("Redis session store started")

    async def stop(self) -> None:
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis session store stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise SessionStoreError("Session store not started")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        return await self._client().get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self._client().setex(key, ttl_seconds, value)
        else:
            await self._client().set(key, value)


# =============================================================================
# Session adapter
# =============================================================================

class SessionStore:
    """Session-shaped view over a KeyValueStore."""

    def __init__(
        self,
        kv: KeyValueStore,
        session_ttl_seconds: Optional[int] = None,
        refresh_ttl_seconds: Optional[int] = None,
    ):
        self.kv = kv
        self.session_ttl_seconds = session_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds

    async def get_session(self, session_id: str) -> Optional[Session]:
        """
        Load a session.

        Returns:
            Session, or None when no ID Token is stored for the id
        """
        if not session_id:
            return None

        id_token = await self.kv.get(ID_TOKEN_PREFIX + session_id)
        if not id_token:
            return None

        refresh_token = await self.kv.get(REFRESH_TOKEN_PREFIX + session_id)
        return Session(
            session_id=session_id,
            id_token=id_token,
            refresh_token=refresh_token,
        )

    async def get_refresh_token(self, session_id: str) -> Tuple[RefreshTokenState, Optional[str]]:
        """
        Returns:
            (state, token); token is only set when state is PRESENT
        """
        value = await self.kv.get(REFRESH_TOKEN_PREFIX + session_id) if session_id else None
        state = RefreshTokenState.of(value)
        return state, value if state is RefreshTokenState.PRESENT else None

    async def save_id_token(self, session_id: str, id_token: str) -> None:
        await self.kv.set(ID_TOKEN_PREFIX + session_id, id_token, self.session_ttl_seconds)

    async def save_refresh_token(self, session_id: str, refresh_token: str) -> None:
        await self.kv.set(
            REFRESH_TOKEN_PREFIX + session_id, refresh_token, self.refresh_ttl_seconds
        )

    async def clear_refresh_token(self, session_id: str) -> None:
        """Overwrite the refresh token with the tombstone."""
        await self.kv.set(
            REFRESH_TOKEN_PREFIX + session_id,
            REFRESH_TOKEN_TOMBSTONE,
            self.refresh_ttl_seconds,
        )
