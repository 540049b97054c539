"""In-process identity provider for tests (no network)."""

import asyncio
import secrets
from collections.abc import Mapping

from gatekeeper.core.gateway.auth import (
    AuthProviderError,
    AuthUser,
    InvalidCredentialsError,
)
from gatekeeper.core.security import CookieJar

SESSION_COOKIE = "session"
REFRESH_COOKIE = "refresh"


class FakeAuthProvider:
    """
    Users are registered with ``add_user``; a successful sign-in issues an
    opaque token stored in the ``session`` cookie. A ``refresh`` cookie naming
    a known refresh token yields a fresh session cookie, like a token refresh.
    """

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, AuthUser]] = {}
        self.sessions: dict[str, AuthUser] = {}
        self.refresh_tokens: dict[str, AuthUser] = {}
        self.get_user_error: Exception | None = None
        self.get_user_delay: float = 0.0
        self.sign_in_error: Exception | None = None
        self.sign_in_calls = 0

    def add_user(
        self, email: str, password: str, user_id: str, role: str | None
    ) -> AuthUser:
        user = AuthUser(id=user_id, role=role, email=email)
        self.users[email.lower()] = (password, user)
        return user

    def session_for(self, user_id: str, role: str | None) -> str:
        token = secrets.token_hex(8)
        self.sessions[token] = AuthUser(id=user_id, role=role)
        return token

    def refresh_for(self, user_id: str, role: str | None) -> str:
        token = secrets.token_hex(8)
        self.refresh_tokens[token] = AuthUser(id=user_id, role=role)
        return token

    async def get_user(
        self, cookies: Mapping[str, str], jar: CookieJar
    ) -> AuthUser | None:
        if self.get_user_delay:
            await asyncio.sleep(self.get_user_delay)
        if self.get_user_error is not None:
            raise self.get_user_error
        user = self.sessions.get(cookies.get(SESSION_COOKIE, ""))
        if user is not None:
            return user
        refreshed = self.refresh_tokens.get(cookies.get(REFRESH_COOKIE, ""))
        if refreshed is None:
            return None
        token = secrets.token_hex(8)
        self.sessions[token] = refreshed
        jar.set(SESSION_COOKIE, token, max_age=3600)
        return refreshed

    async def sign_in(self, email: str, password: str, jar: CookieJar) -> AuthUser:
        self.sign_in_calls += 1
        if self.sign_in_error is not None:
            raise self.sign_in_error
        entry = self.users.get(email.lower())
        if entry is None or entry[0] != password:
            raise InvalidCredentialsError("Invalid login credentials")
        user = entry[1]
        token = secrets.token_hex(8)
        self.sessions[token] = user
        jar.set(SESSION_COOKIE, token, max_age=3600)
        return user

    async def sign_out(self, cookies: Mapping[str, str], jar: CookieJar) -> None:
        self.sessions.pop(cookies.get(SESSION_COOKIE, ""), None)
        jar.delete(SESSION_COOKIE)


class BrokenAuthProvider(FakeAuthProvider):
    """Provider whose backend is unreachable."""

    def __init__(self) -> None:
        super().__init__()
        self.get_user_error = AuthProviderError("connection refused")
        self.sign_in_error = AuthProviderError("connection refused")
