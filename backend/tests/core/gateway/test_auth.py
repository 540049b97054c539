"""Unit tests for SupabaseAuthProvider against a mocked GoTrue service."""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from gatekeeper.core.gateway.auth import (
    AuthProviderError,
    InvalidCredentialsError,
    SupabaseAuthProvider,
)
from gatekeeper.core.security import CookieJar, create_access_token

SECRET = "test-jwt-secret-with-at-least-32-bytes!"
ACCESS = "sb-access-token"
REFRESH = "sb-refresh-token"


def _session_body(user_id: str = "u1", role: str | None = "writer") -> dict:
    return {
        "access_token": "new-access",
        "refresh_token": "new-refresh",
        "expires_in": 3600,
        "user": {
            "id": user_id,
            "email": "w@x.com",
            "app_metadata": {"role": role} if role else {},
        },
    }


def _provider(handler, *, jwt_secret: str | None = SECRET) -> SupabaseAuthProvider:
    return SupabaseAuthProvider(
        "https://project.supabase.co",
        "anon-key",
        jwt_secret=jwt_secret,
        transport=httpx.MockTransport(handler),
    )


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request {request.method} {request.url}")


def test_local_token_verification() -> None:
    token = create_access_token("u1", timedelta(minutes=5), SECRET, role="admin")
    jar = CookieJar()
    user = asyncio.run(_provider(_no_network).get_user({ACCESS: token}, jar))
    assert user is not None
    assert user.id == "u1"
    assert user.role == "admin"
    assert len(jar) == 0


def test_tampered_token_is_rejected_without_refresh() -> None:
    token = create_access_token("u1", timedelta(minutes=5), "some-other-secret-of-32-bytes!!!!")
    jar = CookieJar()
    user = asyncio.run(
        _provider(_no_network).get_user({ACCESS: token, REFRESH: "r"}, jar)
    )
    assert user is None


def test_no_cookies_means_no_user() -> None:
    assert asyncio.run(_provider(_no_network).get_user({}, CookieJar())) is None


def test_expired_token_is_refreshed() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.url.path == "/auth/v1/token"
        assert request.url.params["grant_type"] == "refresh_token"
        assert json.loads(request.content) == {"refresh_token": "old-refresh"}
        return httpx.Response(200, json=_session_body(role="writer"))

    token = create_access_token("u1", timedelta(seconds=-30), SECRET, role="writer")
    jar = CookieJar()
    user = asyncio.run(
        _provider(handler).get_user({ACCESS: token, REFRESH: "old-refresh"}, jar)
    )
    assert user is not None and user.role == "writer"
    assert len(seen) == 1
    assert seen[0].headers["apikey"] == "anon-key"

    access = jar.get(ACCESS)
    assert access is not None
    assert access.value == "new-access"
    assert access.max_age == 3600
    assert access.httponly is True
    assert access.samesite == "lax"
    assert access.path == "/"
    assert jar.get(REFRESH).value == "new-refresh"


def test_rejected_refresh_clears_cookies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})

    jar = CookieJar()
    user = asyncio.run(_provider(handler).get_user({REFRESH: "stale"}, jar))
    assert user is None
    for name in (ACCESS, REFRESH):
        cookie = jar.get(name)
        assert cookie is not None
        assert cookie.value == ""
        assert cookie.max_age == 0


def test_refresh_server_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    with pytest.raises(AuthProviderError):
        asyncio.run(_provider(handler).get_user({REFRESH: "r"}, CookieJar()))


def test_remote_verification_without_secret() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        assert request.headers["Authorization"] == "Bearer opaque"
        return httpx.Response(200, json={"id": "u9", "app_metadata": {"role": "league_operator"}})

    user = asyncio.run(
        _provider(handler, jwt_secret=None).get_user({ACCESS: "opaque"}, CookieJar())
    )
    assert user is not None
    assert user.id == "u9"
    assert user.role == "league_operator"


def test_sign_in_success_sets_cookies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["grant_type"] == "password"
        body = json.loads(request.content)
        assert body == {"email": "w@x.com", "password": "pw"}
        return httpx.Response(200, json=_session_body(role="head_writer"))

    jar = CookieJar()
    user = asyncio.run(_provider(handler).sign_in("w@x.com", "pw", jar))
    assert user.role == "head_writer"
    assert {c.name for c in jar} == {ACCESS, REFRESH}


def test_sign_in_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error_description": "Invalid login credentials"})

    with pytest.raises(InvalidCredentialsError, match="Invalid login credentials"):
        asyncio.run(_provider(handler).sign_in("w@x.com", "bad", CookieJar()))


def test_sign_in_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(AuthProviderError) as exc_info:
        asyncio.run(_provider(handler).sign_in("w@x.com", "pw", CookieJar()))
    assert not isinstance(exc_info.value, InvalidCredentialsError)


def test_sign_in_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(AuthProviderError):
        asyncio.run(_provider(handler).sign_in("w@x.com", "pw", CookieJar()))


def test_sign_out_clears_cookies_even_if_provider_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    jar = CookieJar()
    asyncio.run(_provider(handler).sign_out({ACCESS: "a"}, jar))
    assert jar.get(ACCESS).max_age == 0
    assert jar.get(REFRESH).max_age == 0


def test_sign_in_non_json_body_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway error page</html>")

    with pytest.raises(AuthProviderError) as exc_info:
        asyncio.run(_provider(handler).sign_in("w@x.com", "pw", CookieJar()))
    assert not isinstance(exc_info.value, InvalidCredentialsError)


def test_refresh_non_json_body_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway error page</html>")

    with pytest.raises(AuthProviderError):
        asyncio.run(_provider(handler).get_user({REFRESH: "r"}, CookieJar()))


def test_user_lookup_non_object_body_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    with pytest.raises(AuthProviderError):
        asyncio.run(
            _provider(handler, jwt_secret=None).get_user({ACCESS: "opaque"}, CookieJar())
        )


def test_token_with_empty_subject_is_rejected() -> None:
    token = create_access_token("", timedelta(minutes=5), SECRET, role="admin")
    jar = CookieJar()
    user = asyncio.run(
        _provider(_no_network).get_user({ACCESS: token, REFRESH: "r"}, jar)
    )
    assert user is None
    assert len(jar) == 0
