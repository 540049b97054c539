"""
Login attempt limiter: sliding-window failure counts with temporary lockouts.

Two independent keyspaces, ``ip:<address>`` and ``email:<address>``. A key is
locked for ``block_duration_ms`` once its failures inside ``window_ms`` reach
``max_attempts``. Callers check before verifying credentials and record after,
whatever the outcome. Check and record are separate calls, so two concurrent
attempts on one key can both pass the check: this can only under-block.

Backends:
- LoginRateLimiter: in-memory, one lock, per-process. Default.
- RedisLoginRateLimiter: shared across instances. Fail-open: on Redis errors
  checks report "not limited" and records are dropped (logged).

Timestamps are epoch milliseconds.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

import redis
from starlette.requests import Request

from gatekeeper.core.config import settings
from gatekeeper.core.redis_client import get_redis

_log = logging.getLogger(__name__)

RETENTION_MS = 24 * 60 * 60 * 1000
CLIENT_IP_FALLBACK = "localhost"

_ATTEMPTS_PREFIX = "login:attempts:"
_BLOCK_PREFIX = "login:block:"


@dataclass(frozen=True, slots=True)
class LoginRateLimitConfig:
    max_attempts: int = 5
    window_ms: int = 15 * 60 * 1000
    block_duration_ms: int = 30 * 60 * 1000


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    limited: bool
    remaining_attempts: int
    reset_time: int | None = None


@dataclass(frozen=True, slots=True)
class LoginAttempt:
    timestamp: int
    success: bool


def default_config() -> LoginRateLimitConfig:
    return LoginRateLimitConfig(
        max_attempts=settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
        window_ms=settings.LOGIN_RATE_LIMIT_WINDOW_MS,
        block_duration_ms=settings.LOGIN_RATE_LIMIT_BLOCK_MS,
    )


def now_ms() -> int:
    return int(time.time() * 1000)


def ip_key(ip: str) -> str:
    return f"ip:{ip}"


def email_key(email: str) -> str:
    return f"email:{email}"


def _status_from_counts(
    failed_ip: int,
    failed_email: int | None,
    now: int,
    config: LoginRateLimitConfig,
) -> RateLimitStatus:
    ip_exceeded = failed_ip >= config.max_attempts
    email_exceeded = failed_email is not None and failed_email >= config.max_attempts
    if ip_exceeded or email_exceeded:
        # Computed, not persisted: record_login_attempt sets the actual lockout.
        return RateLimitStatus(
            limited=True, remaining_attempts=0, reset_time=now + config.block_duration_ms
        )
    remaining_ip = config.max_attempts - failed_ip
    remaining_email = (
        config.max_attempts - failed_email if failed_email is not None else remaining_ip
    )
    return RateLimitStatus(
        limited=False, remaining_attempts=max(0, min(remaining_ip, remaining_email))
    )


class LoginRateLimiter:
    """In-memory limiter. All state lives behind a single lock."""

    __slots__ = ("_attempts", "_blocks", "_clock", "_lock")

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or now_ms
        self._lock = threading.Lock()
        self._attempts: dict[str, list[LoginAttempt]] = {}
        self._blocks: dict[str, int] = {}

    def _active_block(self, key: str, now: int) -> int | None:
        blocked_until = self._blocks.get(key)
        if blocked_until is not None and now < blocked_until:
            return blocked_until
        return None

    def _failures_in_window(self, key: str, now: int, window_ms: int) -> int:
        return sum(
            1
            for a in self._attempts.get(key, ())
            if now - a.timestamp < window_ms and not a.success
        )

    def is_rate_limited(
        self,
        ip: str,
        email: str | None = None,
        config: LoginRateLimitConfig | None = None,
    ) -> RateLimitStatus:
        cfg = config or default_config()
        now = self._clock()
        keys = [ip_key(ip)] + ([email_key(email)] if email else [])
        with self._lock:
            for key in keys:
                blocked_until = self._active_block(key, now)
                if blocked_until is not None:
                    return RateLimitStatus(
                        limited=True, remaining_attempts=0, reset_time=blocked_until
                    )
            failed_ip = self._failures_in_window(keys[0], now, cfg.window_ms)
            failed_email = (
                self._failures_in_window(keys[1], now, cfg.window_ms) if email else None
            )
        return _status_from_counts(failed_ip, failed_email, now, cfg)

    def record_login_attempt(
        self,
        ip: str,
        email: str,
        success: bool,
        config: LoginRateLimitConfig | None = None,
    ) -> None:
        cfg = config or default_config()
        now = self._clock()
        attempt = LoginAttempt(timestamp=now, success=success)
        with self._lock:
            for key in (ip_key(ip), email_key(email)):
                history = self._attempts.get(key, [])
                history.append(attempt)
                history = [a for a in history if now - a.timestamp < cfg.window_ms]
                self._attempts[key] = history
                if success:
                    continue
                failed = sum(1 for a in history if not a.success)
                if failed >= cfg.max_attempts:
                    self._blocks[key] = now + cfg.block_duration_ms
                    _log.warning(
                        "Login lockout for %s until %d (%d failures)",
                        key.split(":", 1)[0],
                        self._blocks[key],
                        failed,
                    )
            if success:
                # Only the account lock is lifted; an IP lock stays in place.
                self._blocks.pop(email_key(email), None)

    def cleanup(self) -> None:
        """Drop expired lockouts and attempts older than the retention horizon."""
        now = self._clock()
        with self._lock:
            for key, blocked_until in list(self._blocks.items()):
                if now >= blocked_until:
                    del self._blocks[key]
            for key, history in list(self._attempts.items()):
                recent = [a for a in history if now - a.timestamp < RETENTION_MS]
                if recent:
                    self._attempts[key] = recent
                else:
                    del self._attempts[key]

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()
            self._blocks.clear()


class RedisLoginRateLimiter:
    """
    Redis-backed limiter with the same interface as LoginRateLimiter.

    Attempts are sorted sets ``login:attempts:<key>`` (score = timestamp,
    member = ``<ts>:<0|1>:<nonce>``). Lockouts are ``login:block:<key>`` holding
    the blocked-until timestamp and expiring at that instant.
    """

    __slots__ = ("_clock", "_redis")

    def __init__(
        self, client: "redis.Redis", clock: Callable[[], int] | None = None
    ) -> None:
        self._redis = client
        self._clock = clock or now_ms

    @staticmethod
    def _count_failures(members: list[str]) -> int:
        return sum(1 for m in members if m.split(":", 2)[1:2] == ["0"])

    def is_rate_limited(
        self,
        ip: str,
        email: str | None = None,
        config: LoginRateLimitConfig | None = None,
    ) -> RateLimitStatus:
        cfg = config or default_config()
        now = self._clock()
        keys = [ip_key(ip)] + ([email_key(email)] if email else [])
        # Strictly inside the window: now - ts < window_ms.
        low = f"({now - cfg.window_ms}"
        try:
            pipe = self._redis.pipeline(transaction=False)
            for key in keys:
                pipe.get(_BLOCK_PREFIX + key)
            for key in keys:
                pipe.zrangebyscore(_ATTEMPTS_PREFIX + key, low, "+inf")
            results = pipe.execute()
        except redis.RedisError as e:
            _log.warning("Login limiter check skipped, Redis error: %s", e)
            return RateLimitStatus(limited=False, remaining_attempts=cfg.max_attempts)

        blocks, histories = results[: len(keys)], results[len(keys) :]
        for raw in blocks:
            if raw is not None and now < int(raw):
                return RateLimitStatus(
                    limited=True, remaining_attempts=0, reset_time=int(raw)
                )
        failed_ip = self._count_failures(histories[0])
        failed_email = self._count_failures(histories[1]) if email else None
        return _status_from_counts(failed_ip, failed_email, now, cfg)

    def record_login_attempt(
        self,
        ip: str,
        email: str,
        success: bool,
        config: LoginRateLimitConfig | None = None,
    ) -> None:
        cfg = config or default_config()
        now = self._clock()
        member = f"{now}:{int(success)}:{uuid.uuid4().hex[:8]}"
        keys = (ip_key(ip), email_key(email))
        try:
            pipe = self._redis.pipeline(transaction=False)
            for key in keys:
                k = _ATTEMPTS_PREFIX + key
                pipe.zadd(k, {member: now})
                pipe.zremrangebyscore(k, "-inf", now - cfg.window_ms)
                pipe.pexpire(k, RETENTION_MS)
                pipe.zrange(k, 0, -1)
            results = pipe.execute()
            if success:
                self._redis.delete(_BLOCK_PREFIX + email_key(email))
                return
            blocked_until = now + cfg.block_duration_ms
            for i, key in enumerate(keys):
                members = results[i * 4 + 3]
                if self._count_failures(members) >= cfg.max_attempts:
                    self._redis.set(
                        _BLOCK_PREFIX + key, str(blocked_until), pxat=blocked_until
                    )
        except redis.RedisError as e:
            _log.warning("Login attempt not recorded, Redis error: %s", e)

    def cleanup(self) -> None:
        """Lockouts expire on their own; trim attempt sets to the retention horizon."""
        cutoff = self._clock() - RETENTION_MS
        try:
            for k in self._redis.scan_iter(match=_ATTEMPTS_PREFIX + "*", count=500):
                self._redis.zremrangebyscore(k, "-inf", cutoff)
                if self._redis.zcard(k) == 0:
                    self._redis.delete(k)
        except redis.RedisError as e:
            _log.warning("Login limiter cleanup skipped, Redis error: %s", e)


# ---------------------------------------------------------------------------
# Process-wide limiter
# ---------------------------------------------------------------------------

_limiter: LoginRateLimiter | RedisLoginRateLimiter | None = None
_limiter_lock = threading.Lock()


def get_login_rate_limiter() -> LoginRateLimiter | RedisLoginRateLimiter:
    """Redis limiter when configured and reachable; in-memory otherwise."""
    global _limiter
    if _limiter is not None:
        return _limiter
    with _limiter_lock:
        if _limiter is None:
            r = get_redis()
            _limiter = RedisLoginRateLimiter(r) if r is not None else LoginRateLimiter()
            _log.info("Login limiter backend: %s", type(_limiter).__name__)
        return _limiter


def reset_login_rate_limiter() -> None:
    """Forget the process-wide limiter (next call rebuilds it)."""
    global _limiter
    with _limiter_lock:
        _limiter = None


def is_rate_limited(
    ip: str, email: str | None = None, config: LoginRateLimitConfig | None = None
) -> RateLimitStatus:
    return get_login_rate_limiter().is_rate_limited(ip, email, config)


def record_login_attempt(
    ip: str, email: str, success: bool, config: LoginRateLimitConfig | None = None
) -> None:
    get_login_rate_limiter().record_login_attempt(ip, email, success, config)


def cleanup_rate_limit() -> None:
    get_login_rate_limiter().cleanup()


async def run_cleanup_loop(interval_seconds: float | None = None) -> None:
    """Sweep the limiter on a fixed interval until cancelled."""
    interval = interval_seconds or settings.LOGIN_RATE_LIMIT_CLEANUP_INTERVAL_SECONDS
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(cleanup_rate_limit)
        except Exception:
            _log.exception("Login limiter cleanup failed")


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, else a fixed sentinel."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return CLIENT_IP_FALLBACK
