from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Response

from gatekeeper.core.config import settings

ALGORITHM = "HS256"

# Audience claim the identity provider puts on signed-in user tokens
TOKEN_AUDIENCE = "authenticated"

# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(
    subject: str | Any,
    expires_delta: timedelta,
    secret: str,
    role: str | None = None,
) -> str:
    """Issue a provider-shaped access token (used by local dev tooling and tests)."""
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = {
        "sub": str(subject),
        "aud": TOKEN_AUDIENCE,
        "iat": now,
        "exp": now + expires_delta,
        "app_metadata": {"role": role} if role else {},
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str) -> dict[str, Any]:
    """
    Verify signature, expiry and audience. Raises ``jwt.ExpiredSignatureError``
    for expired tokens and ``jwt.InvalidTokenError`` for anything else wrong.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        audience=TOKEN_AUDIENCE,
        options={"verify_exp": True, "require": ["exp", "sub"]},
    )


def role_from_claims(claims: dict[str, Any]) -> str | None:
    meta = claims.get("app_metadata") or {}
    role = meta.get("role") if isinstance(meta, dict) else None
    return role if isinstance(role, str) and role else None


# ---------------------------------------------------------------------------
# Session cookies
# ---------------------------------------------------------------------------


def default_cookie_options() -> dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.secure_cookies,
        "samesite": "lax",
        "path": "/",
    }


@dataclass(frozen=True, slots=True)
class QueuedCookie:
    name: str
    value: str
    max_age: int | None
    httponly: bool
    secure: bool
    samesite: str
    path: str

    def apply(self, response: Response) -> None:
        response.set_cookie(
            self.name,
            self.value,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,  # type: ignore[arg-type]
        )


class CookieJar:
    """
    Outgoing cookies collected while a request is evaluated.

    Providers call ``set``/``delete``; the gateway writes everything onto the
    final response, whether that response is an allow or a redirect.
    Later writes to the same name replace earlier ones.
    """

    __slots__ = ("_cookies",)

    def __init__(self) -> None:
        self._cookies: dict[str, QueuedCookie] = {}

    def set(self, name: str, value: str, **options: Any) -> None:
        merged = {**default_cookie_options(), **options}
        self._cookies[name] = QueuedCookie(
            name=name,
            value=value,
            max_age=merged.get("max_age"),
            httponly=bool(merged["httponly"]),
            secure=bool(merged["secure"]),
            samesite=str(merged["samesite"]),
            path=str(merged["path"]),
        )

    def delete(self, name: str) -> None:
        self.set(name, "", max_age=0)

    def __iter__(self):
        return iter(self._cookies.values())

    def __len__(self) -> int:
        return len(self._cookies)

    def get(self, name: str) -> QueuedCookie | None:
        return self._cookies.get(name)

    def apply(self, response: Response) -> None:
        for cookie in self._cookies.values():
            cookie.apply(response)
