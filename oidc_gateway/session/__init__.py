"""
Session Package

Key-value session storage (in-memory or Redis) with the tombstone
convention for refresh tokens.
"""

from .store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    SessionStore,
)

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "SessionStore",
]
