from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol
from gatehouse.schema.session import UserSession
from gatehouse.schema.user import Users

# async callable delivering a freshly generated code to its owner, e.g. an email sender
CodeSender = Callable[[str, str], Awaitable[None]]


class SessionStore(Protocol):
    async def get_all_valid(self, user_id: int, now: datetime) -> List[UserSession]: ...
    async def get_by_access_token(self, access_token: str, now: datetime) -> Optional[UserSession]: ...
    async def get_by_refresh_token(self, refresh_token: str, now: datetime,
                                   include_expired: bool = False) -> Optional[UserSession]: ...
    async def create(self, row: UserSession) -> UserSession: ...
    async def delete_oldest_valid(self, user_id: int, now: datetime) -> Optional[int]: ...
    async def update_tokens(self, session_id: int, access_token: str, access_expires_at: datetime,
                            refresh_token: str, refresh_expires_at: datetime) -> None: ...
    async def rotate_refresh(self, session_id: int, refresh_token: str, refresh_expires_at: datetime, *,
                             access_token: Optional[str] = None, access_expires_at: Optional[datetime] = None,
                             expected_refresh: Optional[str] = None) -> bool: ...
    async def update_meta(self, session_id: int, device: Optional[str], ip: Optional[str],
                          user_agent: Optional[str], now: datetime) -> None: ...
    async def revoke_by_id(self, session_id: int, user_id: int, now: datetime) -> int: ...
    async def revoke_all_by_user_id(self, user_id: int, now: datetime) -> int: ...
    async def revoke_all_except_current(self, user_id: int, except_id: int, now: datetime) -> int: ...
    async def delete_by_id(self, session_id: int) -> None: ...
    async def delete_by_user_id(self, user_id: int) -> None: ...
    async def delete_by_refresh_token(self, refresh_token: str) -> None: ...
    async def delete_expired_by_user_id(self, user_id: int, now: datetime) -> int: ...


class AccountStore(Protocol):
    async def get_by_id(self, user_id: int, for_update: bool = False) -> Optional[Users]: ...
    async def get_by_email(self, email: str) -> Optional[Users]: ...
    async def get_by_phone(self, phone: str) -> Optional[Users]: ...
    async def find_taken_identity(self, email: Optional[str], phone: Optional[str],
                                  username: Optional[str]) -> Optional[str]: ...
    async def create(self, user: Users) -> Users: ...
    async def mark_verified(self, user_id: int) -> None: ...


class CodeStore(Protocol):
    async def save(self, email: str, code_hash: str, ttl: int) -> None: ...
    async def get(self, email: str) -> Optional[str]: ...
    async def delete(self, email: str) -> None: ...
    async def failed_attempts(self, email: str) -> int: ...
    async def register_failed_attempt(self, email: str, ttl: int) -> int: ...
