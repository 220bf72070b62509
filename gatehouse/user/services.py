from typing import Any, Dict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from gatehouse.common.custom_exceptions import AppError
from gatehouse.db.uow import UnitOfWork
from gatehouse.session.repository import SessionRepository
from gatehouse.user.constants import PROFILE_FIELDS, logger
from gatehouse.user.models import UserOut, UserProfileOut
from gatehouse.user.repository import UserRepository


class UserService:

    def __init__(self, session: AsyncSession, session_maker: async_sessionmaker):
        self.session = session
        self.session_maker = session_maker
        self.users = UserRepository(session)

    async def get_me(self, user_id: int) -> UserOut:
        user = await self.users.get_by_id(user_id)
        if not user:
            raise AppError.not_found("user not found")
        profile = await self.users.get_profile(user_id)
        profile_out = UserProfileOut.model_validate(profile, from_attributes=True) if profile else UserProfileOut()
        return UserOut(
            id=user.id,
            email=user.email,
            phone=user.phone,
            username=user.username,
            role=user.role,
            verified=user.verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
            profile=profile_out,
        )

    async def update_profile(self, user_id: int, fields: Dict[str, Any]) -> None:
        values = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if not values:
            return
        await self.users.update_profile(user_id, values)
        await self.session.commit()
        logger.info("user.profile.updated", extra={"user_id": user_id, "fields": sorted(values)})

    async def delete_account(self, user_id: int) -> None:
        """Sessions, profile and account go together or not at all."""

        async def _delete(session: AsyncSession) -> int:
            await SessionRepository(session).delete_by_user_id(user_id)
            users = UserRepository(session)
            await users.delete_profile(user_id)
            return await users.delete(user_id)

        try:
            deleted = await UnitOfWork(self.session_maker).run(_delete)
        except SQLAlchemyError as e:
            logger.error("user.delete.failed", extra={"user_id": user_id}, exc_info=e)
            raise AppError.internal(e, message="failed to delete account")

        if not deleted:
            raise AppError.not_found("user not found")
        logger.info("user.deleted", extra={"user_id": user_id})
