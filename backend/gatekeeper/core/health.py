"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and not deadlocked?  (cheap, no I/O)
Readiness: can it serve traffic?  (Redis, when the login limiter uses it)
"""

import logging

from gatekeeper.core.config import settings
from gatekeeper.core.redis_client import ping as redis_ping

logger = logging.getLogger(__name__)


def redis_required() -> bool:
    """Redis is only a readiness dependency for the shared login limiter."""
    return settings.LOGIN_RATE_LIMIT_BACKEND == "redis"


def check_redis() -> bool:
    ok = redis_ping()
    if not ok:
        logger.warning("Redis readiness check failed")
    return ok


def liveness_check() -> tuple[bool, list[str]]:
    """
    Lightweight liveness probe: just confirms the Python process is responsive.
    Return format matches readiness_check for consistency.
    """
    return (True, [])


def readiness_check() -> tuple[bool, list[str]]:
    """Returns (ok, list of failure messages)."""
    failures: list[str] = []

    if redis_required() and not check_redis():
        failures.append("redis")

    return (len(failures) == 0, failures)
