from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.common.utils import now
from gatehouse.session.constants import logger
from gatehouse.session.models import SessionOut
from gatehouse.session.repository import SessionRepository


class SessionService:

    def __init__(self, session: AsyncSession, sessions: Optional[SessionRepository] = None):
        self.session = session
        self.sessions = sessions or SessionRepository(session)

    async def list_sessions(self, user_id: int, current_session_id: Optional[int] = None) -> List[SessionOut]:
        rows = await self.sessions.get_all_valid(user_id, now())
        return [
            SessionOut(
                id=r.id,
                device=r.device,
                ip_address=r.ip_address,
                user_agent=r.user_agent,
                last_used_at=r.last_used_at,
                created_at=r.created_at,
                access_token_expires_at=r.access_token_expires_at,
                refresh_token_expires_at=r.refresh_token_expires_at,
                current=r.id == current_session_id,
            )
            for r in rows
        ]

    async def revoke_session(self, user_id: int, session_id: int) -> None:
        """Owner scoped; revoking a foreign, unknown or already revoked session is a no-op."""
        n = await self.sessions.revoke_by_id(session_id, user_id, now())
        await self.session.commit()
        logger.info("session.revoked", extra={"user_id": user_id, "session_id": session_id, "revoked": n})
