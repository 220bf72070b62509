import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlmodel import SQLModel, Field
from gatehouse.schema.utils import UTCDateTime, now


class UserRoleName(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


class Users(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)  #* optional just means for the created object before saving in db .
    # all three are optional identity claims, uniqueness is enforced by the db
    username: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, unique=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True, unique=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True, unique=True))
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    role: str = Field(default=UserRoleName.USER.value, sa_column=Column(String(32), nullable=False, default=UserRoleName.USER.value))

    created_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False, default=now, onupdate=now))


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profile"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False))
    fullname: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    address: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))
    bio: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    profile_image_key: Optional[str] = Field(default=None, sa_column=Column(String(1024), nullable=True))

    created_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(UTCDateTime(), nullable=False, default=now, onupdate=now))
