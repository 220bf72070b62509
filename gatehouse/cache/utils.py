import hashlib
from typing import Optional

MAX_KEY_LENGTH = 200


def build_key(prefix: str, *parts: str, max_length: Optional[int] = MAX_KEY_LENGTH) -> str:
    """
    `prefix:part:part`. Parts are trimmed and lowercased, empty ones dropped.
    A key longer than `max_length` gets its tail replaced by the sha256 so the prefix stays scannable,
    pass `max_length=None` for keys that must stay readable.
    """
    tail = ":".join(p.strip().lower() for p in parts if p and p.strip())
    key = f"{prefix}:{tail}" if tail else prefix
    if max_length is not None and len(key) > max_length:
        return f"{prefix}:{hashlib.sha256(tail.encode()).hexdigest()}"
    return key
