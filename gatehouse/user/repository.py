
from typing import Any, Dict, Optional
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.schema.user import UserProfile, Users
from gatehouse.user.constants import logger


class UserRepository:
    """Account and profile rows. Shares the caller's AsyncSession and never commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int, for_update: bool = False) -> Optional[Users]:
        stmt = select(Users).where(Users.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Users]:
        res = await self.session.execute(select(Users).where(Users.email == email))
        return res.scalar_one_or_none()

    async def get_by_phone(self, phone: str) -> Optional[Users]:
        res = await self.session.execute(select(Users).where(Users.phone == phone))
        return res.scalar_one_or_none()

    async def find_taken_identity(self, email: Optional[str], phone: Optional[str],
                                  username: Optional[str]) -> Optional[str]:
        """Name of the first identity claim already in use, or None."""
        conds = []
        if email:
            conds.append(Users.email == email)
        if phone:
            conds.append(Users.phone == phone)
        if username:
            conds.append(Users.username == username)
        if not conds:
            return None

        stmt = select(Users.email, Users.phone, Users.username).where(or_(*conds))
        rows = (await self.session.execute(stmt)).all()
        for row in rows:
            if email and row.email == email:
                return "email"
            if phone and row.phone == phone:
                return "phone"
            if username and row.username == username:
                return "username"
        return None

    async def create(self, user: Users) -> Users:
        self.session.add(user)
        await self.session.flush()
        # every account gets an (empty) profile row
        self.session.add(UserProfile(user_id=user.id))
        await self.session.flush()
        logger.debug("user.inserted", extra={"user_id": user.id})
        return user

    async def mark_verified(self, user_id: int) -> None:
        await self.session.execute(update(Users).where(Users.id == user_id).values(verified=True))

    async def get_profile(self, user_id: int) -> Optional[UserProfile]:
        res = await self.session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
        return res.scalar_one_or_none()

    async def update_profile(self, user_id: int, values: Dict[str, Any]) -> int:
        if not values:
            return 0
        stmt = update(UserProfile).where(UserProfile.user_id == user_id).values(**values)
        res = await self.session.execute(stmt)
        if res.rowcount == 0:
            # profile row went missing (older accounts), recreate it with the given fields
            self.session.add(UserProfile(user_id=user_id, **values))
            await self.session.flush()
            return 1
        return res.rowcount

    async def delete_profile(self, user_id: int) -> None:
        await self.session.execute(delete(UserProfile).where(UserProfile.user_id == user_id))

    async def delete(self, user_id: int) -> int:
        res = await self.session.execute(delete(Users).where(Users.id == user_id))
        return res.rowcount
