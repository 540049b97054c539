"""
Shared Redis client for the login attempt limiter.

All Redis connections go through this module so there is exactly one
connection pool per process. Values are decoded to str.
"""

import logging
import threading

import redis

from gatekeeper.core.config import settings

_LOG = logging.getLogger(__name__)

_lock = threading.Lock()
_client: "redis.Redis | None" = None
_tried = False


def get_redis() -> "redis.Redis | None":
    """Return the shared Redis client.

    Returns ``None`` when the limiter is configured for the in-memory
    backend or the initial ping fails. The first outcome is remembered;
    call ``reset_redis()`` to try again.
    """
    global _client, _tried
    if _tried:
        return _client
    with _lock:
        if _tried:
            return _client
        _tried = True
        _client = _create_client()
        return _client


def reset_redis() -> None:
    global _client, _tried
    with _lock:
        _client = None
        _tried = False


def _create_client() -> "redis.Redis | None":
    if settings.LOGIN_RATE_LIMIT_BACKEND != "redis":
        return None
    try:
        r = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        r.ping()
        return r
    except redis.RedisError as e:
        _LOG.warning("Redis unavailable, using in-memory login limiter: %s", e)
        return None


def ping() -> bool:
    """Quick health check: True if the shared client (or a fresh one) can PING."""
    client = _client
    if client is not None:
        try:
            return bool(client.ping())
        except redis.RedisError:
            return False
    return _create_client() is not None
