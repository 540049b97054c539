"""
Auth API: POST /auth/login, POST /auth/logout, GET /auth/session.

Login is the limiter's collaborator: it checks ``is_rate_limited`` before the
credential check and calls ``record_login_attempt`` after it, whatever the
outcome. The throttling message never says whether the IP or the account
tripped the limit.
"""

import logging
import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from gatekeeper.api.deps import AuthProviderDep
from gatekeeper.core.gateway.auth import AuthProviderError, InvalidCredentialsError
from gatekeeper.core.gateway.ratelimit import (
    RateLimitStatus,
    get_client_ip,
    is_rate_limited,
    now_ms,
    record_login_attempt,
)
from gatekeeper.core.gateway.redirect import LANDING_PATH, LOGIN_PATH
from gatekeeper.core.gateway.routes import ROUTE_TABLE
from gatekeeper.core.gateway.session import resolve_session
from gatekeeper.core.security import CookieJar
from gatekeeper.core.turnstile import verify_turnstile_token
from gatekeeper.schemas import LoginIn, LoginResult, Message, SessionOut

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _result(status_code: int, result: LoginResult, jar: CookieJar | None = None) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=result.model_dump())
    if jar is not None:
        jar.apply(response)
    return response


def _throttled(status: RateLimitStatus) -> JSONResponse:
    reset_time = status.reset_time or now_ms()
    wait_seconds = max(1, math.ceil((reset_time - now_ms()) / 1000))
    minutes = max(1, math.ceil(wait_seconds / 60))
    result = LoginResult(
        success=False,
        message=(
            "Too many login attempts. "
            f"Please try again in {minutes} minute{'s' if minutes != 1 else ''}."
        ),
        remaining_attempts=0,
        reset_time=reset_time,
    )
    response = _result(429, result)
    response.headers["Retry-After"] = str(wait_seconds)
    return response


@router.post("/login", response_model=LoginResult)
async def login(
    body: LoginIn, request: Request, provider: AuthProviderDep
) -> JSONResponse:
    """
    Exchange email + password for a provider session (set as cookies).

    429 while throttled, 400 on a failed bot challenge, 401 on rejected
    credentials (with remaining attempts), 503 when the provider is down.
    """
    ip = get_client_ip(request)
    email = str(body.email).strip().lower()

    status = is_rate_limited(ip, email)
    if status.limited:
        _log.info("Login throttled for %s", ip)
        return _throttled(status)

    if not await verify_turnstile_token(body.turnstile_token, ip):
        return _result(
            400,
            LoginResult(success=False, message="Bot verification failed. Please try again."),
        )

    jar = CookieJar()
    try:
        user = await provider.sign_in(email, body.password, jar)
    except InvalidCredentialsError:
        record_login_attempt(ip, email, False)
        after = is_rate_limited(ip, email)
        return _result(
            401,
            LoginResult(
                success=False,
                message="Invalid email or password.",
                remaining_attempts=after.remaining_attempts,
                reset_time=after.reset_time,
            ),
        )
    except AuthProviderError:
        _log.exception("Identity provider failed during sign-in")
        record_login_attempt(ip, email, False)
        return _result(
            503,
            LoginResult(
                success=False,
                message="Sign-in is temporarily unavailable. Please try again later.",
            ),
        )

    record_login_attempt(ip, email, True)
    return _result(
        200,
        LoginResult(
            success=True,
            redirect_to=ROUTE_TABLE.dashboard_for(user.role) or LANDING_PATH,
        ),
        jar,
    )


@router.post("/logout", response_model=Message)
async def logout(request: Request, provider: AuthProviderDep) -> JSONResponse:
    jar = CookieJar()
    await provider.sign_out(request.cookies, jar)
    response = JSONResponse(content=Message(redirect_to=LOGIN_PATH).model_dump())
    jar.apply(response)
    return response


@router.get("/session", response_model=SessionOut)
async def current_session(request: Request, provider: AuthProviderDep) -> JSONResponse:
    """Who the cookies belong to. Refreshed cookies are written back."""
    session, jar = await resolve_session(request.cookies, provider)
    out = SessionOut(
        authenticated=session.authenticated,
        user_id=session.user_id,
        role=session.role,
        dashboard=ROUTE_TABLE.dashboard_for(session.role),
    )
    response = JSONResponse(content=out.model_dump())
    jar.apply(response)
    return response
