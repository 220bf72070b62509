
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker
from gatehouse import logger
from gatehouse.api.routers import public_routers
from gatehouse.auth.ports import CodeSender
from gatehouse.auth.services import log_only_code_sender
from gatehouse.auth.utils import CodeHasher, PasswordHasher, TokenIssuer
from gatehouse.cache._cache import build_redis_client
from gatehouse.common.background import DetachedTasks
from gatehouse.common.constants import PUBLIC_PATHS
from gatehouse.common.custom_exceptions import register_all_exceptions
from gatehouse.common.logging_setup import setup_logging, shutdown_logging
from gatehouse.config.settings import check_production_secrets, config_settings
from gatehouse.db.connection import create_all_tables
from gatehouse.middlewares.auth_middleware import AuthenticationMiddleware
from gatehouse.middlewares.request_id_middleware import RequestIdMiddleware


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    check_production_secrets(config_settings)

    if config_settings.AUTO_CREATE_TABLES:
        await create_all_tables(app.state.session_maker.kw["bind"])

    logger.info("app.started", extra={"env": config_settings.ENV})
    try:
        yield
    finally:
        # new requests are no longer accepted at this point; let detached code dispatches finish
        await app.state.background.shutdown(wait_timeout=config_settings.OTP_DISPATCH_TIMEOUT_SECONDS)
        if app.state.owns_resources:
            await app.state.redis.aclose()
            await app.state.session_maker.kw["bind"].dispose()
        logger.info("app.stopped")
        shutdown_logging()


def create_app(session_maker: Optional[async_sessionmaker] = None, redis_client=None,
               code_sender: Optional[CodeSender] = None) -> FastAPI:
    app=FastAPI(
        title="Gatehouse",
        version="0.1.0",
        lifespan=app_lifespan)

    owns_resources = session_maker is None and redis_client is None
    if session_maker is None:
        from gatehouse.db.connection import async_session
        session_maker = async_session
    if redis_client is None:
        redis_client = build_redis_client()

    app.state.session_maker = session_maker
    app.state.redis = redis_client
    app.state.owns_resources = owns_resources
    app.state.token_issuer = TokenIssuer()
    app.state.password_hasher = PasswordHasher()
    app.state.code_hasher = CodeHasher()
    app.state.background = DetachedTasks(default_timeout=config_settings.OTP_DISPATCH_TIMEOUT_SECONDS)
    app.state.code_sender = code_sender or log_only_code_sender

    app.include_router(public_routers)

    app.add_middleware(AuthenticationMiddleware, paths=PUBLIC_PATHS,
                       touch_last_used=config_settings.TOUCH_SESSION_ON_REQUEST)
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    return app


app=create_app()
