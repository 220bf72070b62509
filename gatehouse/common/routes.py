from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.common.custom_exceptions import AppError
from gatehouse.db.dependencies import get_session

home_router = APIRouter()


@home_router.get("/health")
async def health_check(session:AsyncSession=Depends(get_session)):

    try:
        await session.execute(select(1))
    except SQLAlchemyError as e:
        raise AppError.internal(e, message="database connection error")

    return {"status": "healthy"}
