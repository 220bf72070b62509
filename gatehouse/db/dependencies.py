from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_maker


async def get_session(request: Request) -> AsyncGenerator[AsyncSession,None]:
    async with get_session_factory(request)() as session:  # closes the session at the end of the request, uncommitted work is rolled back
        yield session
