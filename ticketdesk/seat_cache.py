"""Cache of available-seat counts per event."""

from __future__ import annotations

import redis


class CacheError(Exception):
    """A cache operation failed."""


class CacheMissError(CacheError):
    """No cached value exists."""


class SeatCache:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @staticmethod
    def _key(event_id: str) -> str:
        return f"seats:available:{event_id}"

    def get_available_count(self, event_id: str) -> int:
        try:
            value = self.client.get(self._key(event_id))
        except redis.RedisError as exc:
            raise CacheError(f"failed to read cache: {exc}") from exc
        if value is None:
            raise CacheMissError("cache miss")
        try:
            return int(value)
        except ValueError as exc:
            raise CacheError(f"failed to read cache: {exc}") from exc

    def set_available_count(self, event_id: str, count: int, ttl: float) -> None:
        """Store the count; a ttl of zero or less means no expiry."""
        px = max(1, int(round(ttl * 1000))) if ttl > 0 else None
        try:
            self.client.set(self._key(event_id), count, px=px)
        except redis.RedisError as exc:
            raise CacheError(f"failed to write cache: {exc}") from exc

    def invalidate(self, event_id: str) -> None:
        try:
            self.client.delete(self._key(event_id))
        except redis.RedisError as exc:
            raise CacheError(f"failed to invalidate cache: {exc}") from exc