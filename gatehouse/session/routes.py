from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.auth.dependencies import current_session_id, current_user_id
from gatehouse.common.utils import json_ok, success_response
from gatehouse.db.dependencies import get_session
from gatehouse.session.services import SessionService

session_router = APIRouter()


@session_router.get("/sessions")
async def list_sessions(request: Request, user_id: int = Depends(current_user_id),
                        session: AsyncSession = Depends(get_session)):
    rows = await SessionService(session).list_sessions(user_id, current_session_id(request))
    return json_ok([r.model_dump() for r in rows])


@session_router.post("/{session_id}/revoke")
async def revoke_session(session_id: int, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    await SessionService(session).revoke_session(user_id, session_id)
    return success_response("Session revoked successfully")
