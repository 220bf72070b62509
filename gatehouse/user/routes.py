from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from gatehouse.auth.dependencies import current_user_id
from gatehouse.common.utils import json_ok, success_response
from gatehouse.db.dependencies import get_session, get_session_factory
from gatehouse.user.models import UpdateProfileIn
from gatehouse.user.services import UserService

user_router=APIRouter()


@user_router.get("/me")
async def get_user_profile(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session),
                           session_maker: async_sessionmaker = Depends(get_session_factory)):
    me = await UserService(session, session_maker).get_me(user_id)
    return json_ok(me.model_dump())


@user_router.patch("/me")
async def update_profile(payload: UpdateProfileIn, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session),
                         session_maker: async_sessionmaker = Depends(get_session_factory)):
    await UserService(session, session_maker).update_profile(user_id, payload.model_dump(exclude_unset=True))
    return success_response("User updated successfully")


@user_router.delete("/me")
async def delete_account(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session),
                         session_maker: async_sessionmaker = Depends(get_session_factory)):
    await UserService(session, session_maker).delete_account(user_id)
    return success_response("User deleted successfully")
