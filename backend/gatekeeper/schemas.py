"""
Pydantic schemas for the auth API.
"""

from pydantic import BaseModel, EmailStr, Field


class LoginIn(BaseModel):
    """Body for POST /auth/login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=512)
    turnstile_token: str | None = Field(default=None, max_length=4096)


class LoginResult(BaseModel):
    success: bool
    message: str | None = None
    redirect_to: str | None = None
    remaining_attempts: int | None = None
    reset_time: int | None = Field(
        default=None, description="Epoch milliseconds when the lockout ends."
    )


class SessionOut(BaseModel):
    authenticated: bool
    user_id: str | None = None
    role: str | None = None
    dashboard: str | None = None


class Message(BaseModel):
    success: bool = True
    message: str | None = None
    redirect_to: str | None = None
