"""
Gateway middleware: one allow/redirect decision per request, before any
handler runs.

Flow: session -> protected & anonymous? -> protected & wrong role? ->
redirect policy (signed-in only) -> allow.

A failure inside the gateway itself is logged and the request passes through
unmodified, except under GATEWAY_FAIL_CLOSED_PREFIXES where it is sent to
/no-access. Errors raised by the downstream handler are not touched.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from gatekeeper.core.config import settings
from gatekeeper.core.gateway.auth import AuthProvider, get_auth_provider
from gatekeeper.core.gateway.redirect import NO_ACCESS_PATH, get_redirect_path
from gatekeeper.core.gateway.routes import ROUTE_TABLE, RouteTable
from gatekeeper.core.gateway.session import resolve_session
from gatekeeper.core.security import CookieJar

_log = logging.getLogger(__name__)

_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

_PRODUCTION_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' challenges.cloudflare.com; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: blob: *.supabase.co; "
    "font-src 'self' data:; "
    "connect-src 'self' *.supabase.co wss://*.supabase.co; "
    "frame-src 'self' challenges.cloudflare.com;"
)


class GatewayAction(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"


@dataclass(slots=True)
class GatewayDecision:
    action: GatewayAction
    location: str | None = None
    reason: str = ""
    cookies: CookieJar = field(default_factory=CookieJar)

    @property
    def is_redirect(self) -> bool:
        return self.action is GatewayAction.REDIRECT


async def evaluate_request(
    path: str,
    cookies: Mapping[str, str],
    provider: AuthProvider,
    routes: RouteTable = ROUTE_TABLE,
) -> GatewayDecision:
    """Decide allow/redirect for ``path``. Session lookup never raises."""
    session, jar = await resolve_session(cookies, provider)
    protected = routes.is_protected(path)

    # Authentication before authorization; only protected routes fail closed.
    if protected and not session.authenticated:
        return GatewayDecision(
            GatewayAction.REDIRECT, NO_ACCESS_PATH, "unauthenticated", jar
        )

    if protected and not routes.has_access(path, session.role):
        return GatewayDecision(GatewayAction.REDIRECT, NO_ACCESS_PATH, "forbidden", jar)

    if session.authenticated:
        target = get_redirect_path(path, session.role, True, routes)
        if target != path:
            return GatewayDecision(GatewayAction.REDIRECT, target, "policy", jar)

    return GatewayDecision(GatewayAction.ALLOW, None, "allowed", jar)


def _provider_for(app: ASGIApp) -> AuthProvider:
    """Honor FastAPI dependency overrides so the API and the gateway agree."""
    if isinstance(app, FastAPI):
        override = app.dependency_overrides.get(get_auth_provider)
        if override is not None:
            return override()
    return get_auth_provider()


def apply_security_headers(response: Response) -> None:
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if settings.ENVIRONMENT == "production":
        response.headers.setdefault("Content-Security-Policy", _PRODUCTION_CSP)


class GatewayMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_provider: AuthProvider | None = None,
        routes: RouteTable = ROUTE_TABLE,
        exclude_pattern: str | None = None,
        fail_closed_prefixes: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self._auth_provider = auth_provider
        self._routes = routes
        self._exclude = re.compile(
            exclude_pattern
            if exclude_pattern is not None
            else settings.GATEWAY_EXCLUDE_PATTERN
        )
        self._fail_closed = tuple(
            p.rstrip("/")
            for p in (
                fail_closed_prefixes
                if fail_closed_prefixes is not None
                else settings.GATEWAY_FAIL_CLOSED_PREFIXES
            )
        )

    def _is_fail_closed(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self._fail_closed)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if not settings.GATEWAY_ENABLED or self._exclude.search(path):
            return await call_next(request)

        try:
            provider = self._auth_provider or _provider_for(request.app)
            decision = await evaluate_request(
                path, request.cookies, provider, self._routes
            )
        except Exception:
            _log.exception("Gateway evaluation failed for %s", path)
            if self._is_fail_closed(path):
                response: Response = RedirectResponse(NO_ACCESS_PATH, status_code=307)
            else:
                response = await call_next(request)
            if settings.GATEWAY_SECURITY_HEADERS:
                apply_security_headers(response)
            return response

        if decision.is_redirect:
            _log.debug(
                "Gateway redirect %s -> %s (%s)", path, decision.location, decision.reason
            )
            response = RedirectResponse(decision.location or "/", status_code=307)
        else:
            response = await call_next(request)

        decision.cookies.apply(response)
        if settings.GATEWAY_SECURITY_HEADERS:
            apply_security_headers(response)
        return response
