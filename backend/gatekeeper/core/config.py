import warnings
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Gatekeeper"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    FRONTEND_HOST: str = "http://localhost:3000"
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # Identity provider (GoTrue / Supabase auth API)
    AUTH_PROVIDER_URL: str = "http://localhost:54321"
    AUTH_PROVIDER_ANON_KEY: str = ""
    # When set, access tokens are verified locally instead of calling GET /user.
    AUTH_JWT_SECRET: str | None = None
    AUTH_PROVIDER_TIMEOUT_SECONDS: float = 3.0
    AUTH_ACCESS_COOKIE: str = "sb-access-token"
    AUTH_REFRESH_COOKIE: str = "sb-refresh-token"
    AUTH_REFRESH_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30

    # Login attempt limiter
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    LOGIN_RATE_LIMIT_BLOCK_MS: int = 30 * 60 * 1000
    LOGIN_RATE_LIMIT_CLEANUP_INTERVAL_SECONDS: float = 300.0
    # memory: per-process; redis: shared across instances (falls back to memory when unreachable)
    LOGIN_RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def redis_url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Gateway middleware
    GATEWAY_ENABLED: bool = True
    GATEWAY_SECURITY_HEADERS: bool = True
    # Path prefixes that redirect to /no-access (instead of passing through)
    # when the gateway itself fails. Empty = fail-open everywhere.
    GATEWAY_FAIL_CLOSED_PREFIXES: list[str] = []
    GATEWAY_EXCLUDE_PATTERN: str = (
        r"^/(?:static/|api/|_next/|favicon\.ico$)"
        r"|\.(?:svg|png|jpg|jpeg|gif|webp|ico|mp4|webm|ogg|css|js|map)$"
    )

    # Cloudflare Turnstile (login bot challenge); disabled when unset
    TURNSTILE_SECRET_KEY: str | None = None
    TURNSTILE_VERIFY_URL: str = (
        "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def secure_cookies(self) -> bool:
        return self.ENVIRONMENT == "production"

    def _check_positive(self, var_name: str, value: float) -> None:
        if value <= 0:
            raise ValueError(f"{var_name} must be greater than 0, got {value}.")

    def _warn_missing(self, var_name: str, value: str | None) -> None:
        if not value:
            message = (
                f"{var_name} is empty; requests to the identity provider "
                "will be rejected."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_sane_values(self) -> Self:
        self._check_positive(
            "LOGIN_RATE_LIMIT_MAX_ATTEMPTS", self.LOGIN_RATE_LIMIT_MAX_ATTEMPTS
        )
        self._check_positive("LOGIN_RATE_LIMIT_WINDOW_MS", self.LOGIN_RATE_LIMIT_WINDOW_MS)
        self._check_positive("LOGIN_RATE_LIMIT_BLOCK_MS", self.LOGIN_RATE_LIMIT_BLOCK_MS)
        self._check_positive(
            "AUTH_PROVIDER_TIMEOUT_SECONDS", self.AUTH_PROVIDER_TIMEOUT_SECONDS
        )
        self._warn_missing("AUTH_PROVIDER_ANON_KEY", self.AUTH_PROVIDER_ANON_KEY)
        return self


settings = Settings()  # type: ignore
