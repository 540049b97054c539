"""
Cloudflare Turnstile verification for the login form.

Disabled (always passes) when TURNSTILE_SECRET_KEY is unset. In the local
environment the token "dev-bypass-token" is accepted without a network call.
"""

import logging

import httpx

from gatekeeper.core.config import settings

_log = logging.getLogger(__name__)

DEV_BYPASS_TOKEN = "dev-bypass-token"


def turnstile_enabled() -> bool:
    return bool(settings.TURNSTILE_SECRET_KEY)


async def verify_turnstile_token(
    token: str | None,
    remote_ip: str | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    if not turnstile_enabled():
        return True
    if not token:
        return False
    if settings.ENVIRONMENT == "local" and token == DEV_BYPASS_TOKEN:
        return True

    data = {"secret": settings.TURNSTILE_SECRET_KEY or "", "response": token}
    if remote_ip:
        data["remoteip"] = remote_ip
    try:
        async with httpx.AsyncClient(
            timeout=settings.AUTH_PROVIDER_TIMEOUT_SECONDS, transport=transport
        ) as client:
            r = await client.post(settings.TURNSTILE_VERIFY_URL, data=data)
            result = r.json()
    except (httpx.HTTPError, ValueError) as e:
        _log.warning("Turnstile verification failed: %s", e)
        return False
    return isinstance(result, dict) and result.get("success") is True
