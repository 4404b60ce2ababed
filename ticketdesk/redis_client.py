"""Redis connection setup."""

from __future__ import annotations

from dataclasses import dataclass

import redis


class RedisConnectionError(Exception):
    """Raised when the Redis server cannot be reached."""


@dataclass
class RedisConfig:
    host: str
    port: str
    password: str = ""
    db: int = 0


def new_client(config: RedisConfig) -> redis.Redis:
    """Connect to Redis and verify the connection with a PING."""
    client = redis.Redis(
        host=config.host,
        port=int(config.port),
        password=config.password or None,
        db=config.db,
    )
    try:
        client.ping()
    except redis.RedisError as exc:
        client.close()
        raise RedisConnectionError(
            f"failed to connect to Redis at {config.host}:{config.port}: {exc}"
        ) from exc
    return client