"""
Gateway auth: the identity-provider contract and its GoTrue (Supabase auth)
implementation.

The gateway never checks passwords itself. Every provider answers three
questions: who owns these cookies (``get_user``), are these credentials valid
(``sign_in``), and forget this session (``sign_out``). Cookie writes go into
the request's CookieJar so the gateway can attach them to whatever response
it ends up returning.
"""

import functools
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import jwt

from gatekeeper.core.config import settings
from gatekeeper.core.security import CookieJar, decode_access_token, role_from_claims

_log = logging.getLogger(__name__)


class AuthProviderError(Exception):
    """The identity provider could not be reached or answered unexpectedly."""


class InvalidCredentialsError(AuthProviderError):
    """The identity provider rejected the email/password pair."""


@dataclass(frozen=True, slots=True)
class AuthUser:
    id: str
    role: str | None = None
    email: str | None = None


class AuthProvider(Protocol):
    async def get_user(
        self, cookies: Mapping[str, str], jar: CookieJar
    ) -> AuthUser | None: ...

    async def sign_in(self, email: str, password: str, jar: CookieJar) -> AuthUser: ...

    async def sign_out(self, cookies: Mapping[str, str], jar: CookieJar) -> None: ...


def _user_from_payload(user: Any) -> AuthUser:
    if not isinstance(user, dict) or not user.get("id"):
        raise AuthProviderError("Identity provider returned no user id")
    meta = user.get("app_metadata") or {}
    role = meta.get("role") if isinstance(meta, dict) else None
    return AuthUser(
        id=str(user["id"]),
        role=role if isinstance(role, str) and role else None,
        email=user.get("email"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise AuthProviderError(
            f"Identity provider returned a non-JSON body ({response.status_code})"
        ) from e
    if not isinstance(body, dict):
        raise AuthProviderError("Identity provider returned an unexpected body")
    return body


class SupabaseAuthProvider:
    """
    Client for a GoTrue auth service (``{base_url}/auth/v1``).

    - Access tokens are verified locally when ``jwt_secret`` is given,
      otherwise by ``GET /user``.
    - Expired or rejected access tokens are renewed with the refresh cookie;
      the renewed pair is queued on the jar.
    - A refresh the service refuses clears both cookies.
    """

    _REJECTED = (400, 401, 403, 422)

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        jwt_secret: str | None = None,
        access_cookie: str = "sb-access-token",
        refresh_cookie: str = "sb-refresh-token",
        refresh_max_age: int = 60 * 60 * 24 * 30,
        timeout: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._anon_key = anon_key
        self._jwt_secret = jwt_secret
        self._access_cookie = access_cookie
        self._refresh_cookie = refresh_cookie
        self._refresh_max_age = refresh_max_age
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/auth/v1",
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key},
        )

    @classmethod
    def from_settings(cls) -> "SupabaseAuthProvider":
        return cls(
            settings.AUTH_PROVIDER_URL,
            settings.AUTH_PROVIDER_ANON_KEY,
            jwt_secret=settings.AUTH_JWT_SECRET,
            access_cookie=settings.AUTH_ACCESS_COOKIE,
            refresh_cookie=settings.AUTH_REFRESH_COOKIE,
            refresh_max_age=settings.AUTH_REFRESH_COOKIE_MAX_AGE_SECONDS,
            timeout=settings.AUTH_PROVIDER_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, url: str, *, access_token: str | None = None, **kwargs: Any
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token or self._anon_key}"}
        try:
            return await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise AuthProviderError(f"Identity provider request failed: {e}") from e

    def _store_session(self, body: dict[str, Any], jar: CookieJar) -> None:
        access = body.get("access_token")
        refresh = body.get("refresh_token")
        if not access or not refresh:
            raise AuthProviderError("Identity provider returned no session tokens")
        expires_in = body.get("expires_in")
        jar.set(
            self._access_cookie,
            access,
            max_age=int(expires_in) if isinstance(expires_in, int) else None,
        )
        jar.set(self._refresh_cookie, refresh, max_age=self._refresh_max_age)

    def _clear_session(self, jar: CookieJar) -> None:
        jar.delete(self._access_cookie)
        jar.delete(self._refresh_cookie)

    async def _fetch_user(self, access_token: str) -> AuthUser | None:
        r = await self._request("GET", "/user", access_token=access_token)
        if r.status_code in self._REJECTED:
            return None
        if r.is_error:
            raise AuthProviderError(f"GET /user failed: {r.status_code}")
        return _user_from_payload(_json_object(r))

    async def _refresh(self, refresh_token: str, jar: CookieJar) -> AuthUser | None:
        r = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if r.status_code in self._REJECTED:
            _log.info("Refresh token rejected: %s", _error_message(r))
            self._clear_session(jar)
            return None
        if r.is_error:
            raise AuthProviderError(f"Token refresh failed: {r.status_code}")
        body = _json_object(r)
        self._store_session(body, jar)
        return _user_from_payload(body.get("user"))

    async def get_user(
        self, cookies: Mapping[str, str], jar: CookieJar
    ) -> AuthUser | None:
        access = cookies.get(self._access_cookie) or None
        refresh = cookies.get(self._refresh_cookie) or None
        if not access and not refresh:
            return None

        if access and self._jwt_secret:
            try:
                claims = decode_access_token(access, self._jwt_secret)
                if not claims.get("sub"):
                    raise jwt.InvalidTokenError("Token has an empty 'sub' claim")
                return AuthUser(
                    id=str(claims["sub"]),
                    role=role_from_claims(claims),
                    email=claims.get("email"),
                )
            except jwt.ExpiredSignatureError:
                pass
            except jwt.InvalidTokenError as e:
                _log.info("Rejected access token: %s", e)
                return None
        elif access:
            user = await self._fetch_user(access)
            if user is not None:
                return user

        if not refresh:
            return None
        return await self._refresh(refresh, jar)

    async def sign_in(self, email: str, password: str, jar: CookieJar) -> AuthUser:
        r = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if r.status_code in self._REJECTED:
            raise InvalidCredentialsError(_error_message(r))
        if r.is_error:
            raise AuthProviderError(f"Sign-in failed: {r.status_code}")
        body = _json_object(r)
        self._store_session(body, jar)
        return _user_from_payload(body.get("user"))

    async def sign_out(self, cookies: Mapping[str, str], jar: CookieJar) -> None:
        access = cookies.get(self._access_cookie)
        if access:
            try:
                r = await self._request("POST", "/logout", access_token=access)
                if r.is_error and r.status_code not in self._REJECTED:
                    _log.warning("Sign-out returned %s", r.status_code)
            except AuthProviderError as e:
                _log.warning("Sign-out request failed: %s", e)
        self._clear_session(jar)


@functools.lru_cache(maxsize=1)
def get_auth_provider() -> AuthProvider:
    """Process-wide provider built from settings (FastAPI dependency)."""
    return SupabaseAuthProvider.from_settings()
