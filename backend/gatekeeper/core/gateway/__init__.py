"""
Gateway: route classification, session resolution, redirect policy,
per-request middleware, and login attempt limiting.
"""

from gatekeeper.core.gateway.auth import (
    AuthProvider,
    AuthProviderError,
    AuthUser,
    InvalidCredentialsError,
    SupabaseAuthProvider,
    get_auth_provider,
)
from gatekeeper.core.gateway.middleware import (
    GatewayAction,
    GatewayDecision,
    GatewayMiddleware,
    evaluate_request,
)
from gatekeeper.core.gateway.ratelimit import (
    LoginRateLimitConfig,
    RateLimitStatus,
    cleanup_rate_limit,
    get_client_ip,
    is_rate_limited,
    record_login_attempt,
)
from gatekeeper.core.gateway.redirect import get_redirect_path
from gatekeeper.core.gateway.routes import (
    ROUTE_TABLE,
    RouteConfigError,
    RouteTable,
    UserRole,
    has_access_to_route,
    is_known_route,
    is_protected_route,
    is_public_route,
)
from gatekeeper.core.gateway.session import SessionInfo, resolve_session

__all__ = [
    "ROUTE_TABLE",
    "AuthProvider",
    "AuthProviderError",
    "AuthUser",
    "GatewayAction",
    "GatewayDecision",
    "GatewayMiddleware",
    "InvalidCredentialsError",
    "LoginRateLimitConfig",
    "RateLimitStatus",
    "RouteConfigError",
    "RouteTable",
    "SessionInfo",
    "SupabaseAuthProvider",
    "UserRole",
    "cleanup_rate_limit",
    "evaluate_request",
    "get_auth_provider",
    "get_client_ip",
    "get_redirect_path",
    "has_access_to_route",
    "is_known_route",
    "is_protected_route",
    "is_public_route",
    "is_rate_limited",
    "record_login_attempt",
    "resolve_session",
]
