
import asyncio
from typing import List, Optional
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from gatehouse.auth.constants import ACCESS_COOKIE_NAME
from gatehouse.common.custom_exceptions import AppError, error_response
from gatehouse.common.utils import now
from gatehouse.middlewares.constants import logger
from gatehouse.session.repository import SessionRepository


def bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization")
    if auth:
        scheme, _, token = auth.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return request.cookies.get(ACCESS_COOKIE_NAME) or None


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Authenticates every request outside `paths` against the session store.
    No silent refresh: an expired access token is a 401 and the client has to call /refresh.
    """

    def __init__(self, app, *, paths: List[str], touch_last_used: bool = True):
        super().__init__(app)
        self.paths = paths
        self.touch_last_used = touch_last_used

    def _reject(self, request: Request, reason: str, **extra):
        logger.warning("auth.middleware.failed", extra={
            "reason": reason,
            "path": request.url.path,
            "method": request.method,
            **extra,
        })
        return error_response(AppError.unauthorized())

    async def dispatch(self, request: Request, call_next):

        if any(request.url.path.startswith(p) for p in self.paths):
            return await call_next(request)

        token = bearer_token(request)
        if not token:
            return self._reject(request, "missing_token")

        state = request.app.state
        try:
            state.token_issuer.verify_access(token)
        except AppError as e:
            return self._reject(request, "invalid_token", detail=e.message)

        ts = now()
        try:
            async with state.session_maker() as session:
                row = await SessionRepository(session).get_by_access_token(token, ts)
        except SQLAlchemyError as e:
            logger.error("auth.middleware.store_error", extra={"path": request.url.path}, exc_info=e)
            return error_response(AppError.internal(e))

        if row is None:
            return self._reject(request, "session_not_found_or_expired")
        if row.revoked_at is not None:
            return self._reject(request, "session_revoked", session_id=row.id)
        if ts >= row.access_token_expires_at:
            return self._reject(request, "access_token_expired", session_id=row.id)

        request.state.user_id = row.user_id
        request.state.session_id = row.id

        if self.touch_last_used:
            await self._touch(state.session_maker, row.id, ts)

        return await call_next(request)

    async def _touch(self, session_maker, session_id: int, ts) -> None:
        # best effort, a failed write never fails the request
        try:
            async with session_maker() as session:
                await SessionRepository(session).touch_last_used(session_id, ts)
                await session.commit()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.warning("auth.middleware.touch_failed", extra={"session_id": session_id, "error": repr(e)})
