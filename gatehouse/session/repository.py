from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.auth.utils import hash_token
from gatehouse.schema.session import UserSession
from gatehouse.session.constants import logger


def _valid(now: datetime):
    return (UserSession.revoked_at.is_(None), UserSession.refresh_token_expires_at > now)


class SessionRepository:
    """
    Persistence for session rows. Tokens are stored and matched as digests.
    Built on the caller's AsyncSession, so it takes part in whatever
    transaction that session is in; nothing here commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all_valid(self, user_id: int, now: datetime) -> List[UserSession]:
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == user_id, *_valid(now))
            .order_by(UserSession.created_at.asc(), UserSession.id.asc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_access_token(self, access_token: str, now: datetime) -> Optional[UserSession]:
        stmt = select(UserSession).where(
            UserSession.access_token_hash == hash_token(access_token),
            UserSession.access_token_expires_at > now,
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_refresh_token(self, refresh_token: str, now: datetime,
                                   include_expired: bool = False) -> Optional[UserSession]:
        stmt = select(UserSession).where(UserSession.refresh_token_hash == hash_token(refresh_token))
        if not include_expired:
            stmt = stmt.where(UserSession.refresh_token_expires_at > now)
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(self, row: UserSession) -> UserSession:
        self.session.add(row)
        await self.session.flush()
        logger.debug("session.created", extra={"session_id": row.id, "user_id": row.user_id})
        return row

    async def delete_oldest_valid(self, user_id: int, now: datetime) -> Optional[int]:
        oldest = (
            select(UserSession.id)
            .where(UserSession.user_id == user_id, *_valid(now))
            .order_by(UserSession.created_at.asc(), UserSession.id.asc())
            .limit(1)
        )
        oldest_id = (await self.session.execute(oldest)).scalar_one_or_none()
        if oldest_id is None:
            return None
        await self.session.execute(delete(UserSession).where(UserSession.id == oldest_id))
        logger.info("session.evicted", extra={"session_id": oldest_id, "user_id": user_id})
        return oldest_id

    async def update_tokens(self, session_id: int, access_token: str, access_expires_at: datetime,
                            refresh_token: str, refresh_expires_at: datetime) -> None:
        stmt = (
            update(UserSession)
            .where(UserSession.id == session_id)
            .values(
                access_token_hash=hash_token(access_token),
                access_token_expires_at=access_expires_at,
                refresh_token_hash=hash_token(refresh_token),
                refresh_token_expires_at=refresh_expires_at,
                revoked_at=None,
            )
        )
        await self.session.execute(stmt)

    async def rotate_refresh(self, session_id: int, refresh_token: str, refresh_expires_at: datetime, *,
                             access_token: Optional[str] = None, access_expires_at: Optional[datetime] = None,
                             expected_refresh: Optional[str] = None) -> bool:
        """
        Overwrite the refresh digest (and optionally the access one) in a single UPDATE.
        With `expected_refresh` the row only changes if it still holds that token,
        so of two concurrent rotations with the same token only one wins.
        """
        values = {
            "refresh_token_hash": hash_token(refresh_token),
            "refresh_token_expires_at": refresh_expires_at,
        }
        if access_token is not None:
            values["access_token_hash"] = hash_token(access_token)
            values["access_token_expires_at"] = access_expires_at

        stmt = update(UserSession).where(UserSession.id == session_id, UserSession.revoked_at.is_(None))
        if expected_refresh is not None:
            stmt = stmt.where(UserSession.refresh_token_hash == hash_token(expected_refresh))
        res = await self.session.execute(stmt.values(**values))
        return res.rowcount == 1

    async def update_meta(self, session_id: int, device: Optional[str], ip: Optional[str],
                          user_agent: Optional[str], now: datetime) -> None:
        stmt = (
            update(UserSession)
            .where(UserSession.id == session_id)
            .values(device=device, ip_address=ip, user_agent=user_agent, last_used_at=now, updated_at=now)
        )
        await self.session.execute(stmt)

    async def touch_last_used(self, session_id: int, now: datetime) -> None:
        await self.session.execute(update(UserSession).where(UserSession.id == session_id).values(last_used_at=now))

    async def revoke_by_id(self, session_id: int, user_id: int, now: datetime) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.id == session_id, UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        res = await self.session.execute(stmt)
        return res.rowcount

    async def revoke_all_by_user_id(self, user_id: int, now: datetime) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        res = await self.session.execute(stmt)
        return res.rowcount

    async def revoke_all_except_current(self, user_id: int, except_id: int, now: datetime) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.id != except_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        res = await self.session.execute(stmt)
        return res.rowcount

    async def delete_by_id(self, session_id: int) -> None:
        await self.session.execute(delete(UserSession).where(UserSession.id == session_id))

    async def delete_by_user_id(self, user_id: int) -> None:
        await self.session.execute(delete(UserSession).where(UserSession.user_id == user_id))

    async def delete_by_refresh_token(self, refresh_token: str) -> None:
        await self.session.execute(
            delete(UserSession).where(UserSession.refresh_token_hash == hash_token(refresh_token)))

    async def delete_expired_by_user_id(self, user_id: int, now: datetime) -> int:
        stmt = delete(UserSession).where(UserSession.user_id == user_id, UserSession.refresh_token_expires_at <= now)
        res = await self.session.execute(stmt)
        return res.rowcount
