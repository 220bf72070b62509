from fastapi import APIRouter
from gatehouse.auth.routes import auth_router
from gatehouse.common.routes import home_router
from gatehouse.session.routes import session_router
from gatehouse.user.routes import user_router


public_routers = APIRouter()

public_routers.include_router(auth_router, tags=["auth"])
public_routers.include_router(user_router, tags=["users"])
public_routers.include_router(session_router, tags=["sessions"])
public_routers.include_router(home_router, tags=["home"])
