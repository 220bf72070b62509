import re
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from gatehouse.common.constants import REQUEST_ID_HEADER, request_id_ctx

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")


def incoming_request_id(request: Request) -> str:
    """Client supplied X-Request-ID when it is a sane token, a fresh uuid4 otherwise."""
    supplied = request.headers.get(REQUEST_ID_HEADER)
    if supplied and _SAFE_REQUEST_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):

        req_id = incoming_request_id(request)

        token = request_id_ctx.set(req_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = req_id

        return response
