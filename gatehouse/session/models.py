from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class SessionOut(BaseModel):
    id: int
    device: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime
    current: bool = False
