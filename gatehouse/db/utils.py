from typing import Optional

_ASYNC_DRIVERS = (
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)


def _normalize_db_url(url: Optional[str]) -> Optional[str]:
    # hosted providers hand out sync urls, the engine here is always async
    if not url:
        return None
    for plain, async_prefix in _ASYNC_DRIVERS:
        if url.startswith(plain):
            return async_prefix + url[len(plain):]
    return url
