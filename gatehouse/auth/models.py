from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


@dataclass(frozen=True)
class RequestMeta:
    """Per-request client metadata, passed explicitly into the auth flows."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    device: str = "unknown"


class RegisterIn(BaseModel):
    email: str = Field(..., examples=["user@example.com"])
    phone: Optional[str] = Field(default=None, examples=["+998901234567"])
    username: Optional[str] = Field(default=None, examples=["alice"])
    password: str = Field(..., examples=["StrongPassword1!"])
    confirm_password: str = Field(..., examples=["StrongPassword1!"])


class VerifyIn(BaseModel):
    email: str
    code: int


class LoginIn(BaseModel):
    login_input: str = Field(..., description="email or phone")
    password: str


class RefreshIn(BaseModel):
    refresh_token: Optional[str] = None


class LogoutIn(BaseModel):
    operation: Literal["all", "one", "except-current"]
    session_id: Optional[int] = None


class AuthTokensOut(BaseModel):
    access_token: str
    refresh_token: str
    access_token_ttl: datetime
    refresh_token_ttl: datetime
    device: Optional[str] = None
    ip_address: Optional[str] = None
    user_email: Optional[str] = None
