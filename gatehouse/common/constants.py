import contextvars
from typing import Optional

# Context variable for request id, set by RequestIdMiddleware
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

PUBLIC_PATHS = ["/register", "/verify", "/login", "/refresh", "/health", "/docs", "/openapi.json"]

REQUEST_ID_HEADER = "X-Request-ID"
