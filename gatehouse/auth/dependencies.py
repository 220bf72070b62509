from typing import Optional
from fastapi import Cookie, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.auth.constants import REFRESH_COOKIE_NAME
from gatehouse.auth.models import RequestMeta
from gatehouse.auth.services import AuthService
from gatehouse.common.custom_exceptions import AppError
from gatehouse.cache.otp_store import RedisOTPStore
from gatehouse.db.dependencies import get_session

_BROWSERS = (
    # order matters, most of these UAs also mention Chrome/Safari
    ("Edg/", "Edge"),
    ("OPR/", "Opera"),
    ("Opera", "Opera"),
    ("YaBrowser", "Yandex"),
    ("Firefox/", "Firefox"),
    ("FxiOS", "Firefox"),
    ("CriOS", "Chrome"),
    ("Chrome/", "Chrome"),
    ("Safari/", "Safari"),
    ("PostmanRuntime", "Postman"),
    ("curl/", "curl"),
    ("python-httpx", "httpx"),
    ("okhttp", "OkHttp"),
)

_SYSTEMS = (
    ("Windows", "Windows"),
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iPadOS"),
    ("Mac OS X", "macOS"),
    ("Macintosh", "macOS"),
    ("CrOS", "ChromeOS"),
    ("Linux", "Linux"),
)


def device_label(user_agent: Optional[str]) -> str:
    """Human readable device from a User-Agent, e.g. "Chrome on Windows"."""
    if not user_agent:
        return "unknown"
    browser = next((name for marker, name in _BROWSERS if marker in user_agent), None)
    system = next((name for marker, name in _SYSTEMS if marker in user_agent), None)
    if browser and system:
        return f"{browser} on {system}"
    if browser or system:
        return browser or system
    # fall back to the leading product token of the UA
    return user_agent.split(")")[0].split(" ")[0][:128] or "unknown"


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None


def request_meta(request: Request) -> RequestMeta:
    ua = request.headers.get("user-agent", "")[:512]
    return RequestMeta(ip=client_ip(request), user_agent=ua or None, device=device_label(ua))


def get_auth_service(request: Request, session: AsyncSession = Depends(get_session)) -> AuthService:
    state = request.app.state
    return AuthService(
        session,
        otp_store=RedisOTPStore(state.redis),
        tokens=state.token_issuer,
        passwords=state.password_hasher,
        codes=state.code_hasher,
        background=state.background,
        code_sender=state.code_sender,
    )


def refresh_token_source(refresh_header: Optional[str] = Header(None, alias="X-Refresh-Token"),
                         refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE_NAME)) -> Optional[str]:
    return refresh_header or refresh_cookie


def current_user_id(request: Request) -> int:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise AppError.unauthorized()
    return user_id


def current_session_id(request: Request) -> Optional[int]:
    return getattr(request.state, "session_id", None)
