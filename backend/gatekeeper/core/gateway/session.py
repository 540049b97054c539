"""
Gateway session resolver: cookies -> (SessionInfo, CookieJar).

Never raises. Provider errors, malformed tokens and timeouts all collapse to
an unauthenticated session; cookies the provider queued before failing are
still returned so the caller can write them.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from gatekeeper.core.config import settings
from gatekeeper.core.gateway.auth import AuthProvider
from gatekeeper.core.security import CookieJar

_log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionInfo:
    user_id: str | None = None
    role: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id)


UNAUTHENTICATED = SessionInfo()


async def resolve_session(
    cookies: Mapping[str, str],
    provider: AuthProvider,
    *,
    timeout: float | None = None,
) -> tuple[SessionInfo, CookieJar]:
    jar = CookieJar()
    limit = settings.AUTH_PROVIDER_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        user = await asyncio.wait_for(provider.get_user(cookies, jar), timeout=limit)
    except asyncio.TimeoutError:
        _log.warning("Identity provider did not answer within %.1fs", limit)
        return UNAUTHENTICATED, jar
    except Exception:
        _log.exception("Session resolution failed; treating request as anonymous")
        return UNAUTHENTICATED, jar

    if user is None or not user.id:
        return UNAUTHENTICATED, jar
    return SessionInfo(user_id=user.id, role=user.role), jar
