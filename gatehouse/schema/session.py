from datetime import datetime
from typing import Optional
from sqlalchemy import Column, ForeignKey, Index, Integer, String
from sqlmodel import SQLModel, Field
from gatehouse.schema.utils import UTCDateTime, now


class UserSession(SQLModel, table=True):
    """One row per authenticated device. Valid while revoked_at is null and the refresh token has not expired."""

    __tablename__ = "sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))

    # digests of the signed tokens (e.g., sha256 hex = 64 chars) - unique so no duplicate tokens
    access_token_hash: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))
    access_token_expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))
    refresh_token_hash: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))
    refresh_token_expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))

    # metadata...
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))
    device: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))

    last_used_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(UTCDateTime(), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(UTCDateTime(), nullable=False, default=now, onupdate=now))

    __table_args__ = (
        Index("ix_sessions_user_valid", "user_id", "revoked_at", "refresh_token_expires_at"),
    )
