from typing import Awaitable, Callable, Optional, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from gatehouse import logger

T = TypeVar("T")

READ_COMMITTED = "READ COMMITTED"


class UnitOfWork:
    """
    Runs a callback inside one transaction.

    The callback gets the transaction bound AsyncSession and builds whatever
    repositories it needs on top of it; every statement they issue commits or
    rolls back together.
    """

    def __init__(self, session_maker: async_sessionmaker, isolation_level: Optional[str] = READ_COMMITTED):
        self.session_maker = session_maker
        self.isolation_level = isolation_level

    async def run(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_maker() as session:
            try:
                async with session.begin():
                    await self._apply_isolation(session)
                    return await fn(session)
            except Exception:
                logger.warning("uow.rolled_back")
                raise

    async def _apply_isolation(self, session: AsyncSession) -> None:
        # sqlite has no READ COMMITTED, postgres applies it per connection
        if not self.isolation_level:
            return
        bind = session.bind
        if bind is not None and bind.dialect.name == "postgresql":
            await session.connection(execution_options={"isolation_level": self.isolation_level})
