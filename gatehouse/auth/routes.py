from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from gatehouse.auth.constants import (ACCESS_COOKIE_NAME, ACCESS_TOKEN_TTL_SECONDS, REFRESH_COOKIE_NAME,
                                      REFRESH_TOKEN_TTL_SECONDS, logger)
from gatehouse.auth.dependencies import (current_session_id, current_user_id, get_auth_service,
                                         refresh_token_source, request_meta)
from gatehouse.auth.models import AuthTokensOut, LoginIn, LogoutIn, RefreshIn, RegisterIn, RequestMeta, VerifyIn
from gatehouse.auth.services import AuthService
from gatehouse.common.custom_exceptions import AppError
from gatehouse.common.utils import json_ok, success_response
from gatehouse.config.settings import config_settings

current_env = config_settings.ENV.lower()
secure_flag = False if current_env == "dev" else True

auth_router = APIRouter()


def _token_response(out: AuthTokensOut, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    response = json_ok(out.model_dump(exclude_none=True), status_code=status_code)
    response.set_cookie(ACCESS_COOKIE_NAME, out.access_token, httponly=True, secure=secure_flag,
                        path="/", max_age=ACCESS_TOKEN_TTL_SECONDS, samesite="lax")
    response.set_cookie(REFRESH_COOKIE_NAME, out.refresh_token, httponly=True, secure=secure_flag,
                        path="/refresh", max_age=REFRESH_TOKEN_TTL_SECONDS, samesite="lax")
    return response


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(payload: RegisterIn, service: AuthService = Depends(get_auth_service)):

    logger.info("register.attempt", extra={"email": payload.email})
    await service.register(payload)
    return success_response("User registered successfully", status.HTTP_201_CREATED)


@auth_router.post("/verify")
async def verify_user(payload: VerifyIn, meta: RequestMeta = Depends(request_meta),
                      service: AuthService = Depends(get_auth_service)):

    out = await service.verify_user(payload.email, payload.code, meta)
    return _token_response(out)


#* login_input is either an email or a phone number
@auth_router.post("/login")
async def login_user(payload: LoginIn, meta: RequestMeta = Depends(request_meta),
                     service: AuthService = Depends(get_auth_service)):

    logger.info("login.attempt", extra={"device": meta.device, "ip": meta.ip})
    out = await service.login(payload.login_input, payload.password, meta)
    return _token_response(out)


@auth_router.post("/refresh")
async def refresh_auth(payload: Optional[RefreshIn] = None,
                       fallback_token: Optional[str] = Depends(refresh_token_source),
                       meta: RequestMeta = Depends(request_meta),
                       service: AuthService = Depends(get_auth_service)):

    token = (payload.refresh_token if payload else None) or fallback_token
    out = await service.refresh(token, meta)
    return _token_response(out)


@auth_router.post("/logout")
async def logout(request: Request, payload: LogoutIn,
                 user_id: int = Depends(current_user_id),
                 service: AuthService = Depends(get_auth_service)):

    session_id = payload.session_id or current_session_id(request)

    if payload.operation == "all":
        await service.logout_all(user_id)
    elif payload.operation == "one":
        await service.logout_one(user_id, session_id)
    else:
        if session_id is None:
            raise AppError.invalid_input("session_id is required", fields={"session_id": "required"})
        await service.logout_except_current(user_id, session_id)

    res = success_response("User logged out successfully")
    if payload.operation == "all" or (payload.operation == "one" and session_id == current_session_id(request)):
        res.delete_cookie(key=ACCESS_COOKIE_NAME, path="/")
        res.delete_cookie(key=REFRESH_COOKIE_NAME, path="/refresh")
    return res
