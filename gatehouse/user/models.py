from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class UpdateProfileIn(BaseModel):
    fullname: Optional[str] = Field(default=None, max_length=128)
    address: Optional[str] = Field(default=None, max_length=512)
    bio: Optional[str] = None
    profile_image_key: Optional[str] = Field(default=None, max_length=1024)


class UserProfileOut(BaseModel):
    fullname: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    profile_image_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserOut(BaseModel):
    id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    username: Optional[str] = None
    role: str
    verified: bool
    created_at: datetime
    updated_at: datetime
    profile: UserProfileOut
