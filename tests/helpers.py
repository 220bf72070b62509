import asyncio
from typing import Dict, List, Optional
from gatehouse.auth.models import RegisterIn, RequestMeta
from gatehouse.common.background import DetachedTasks

STRONG_PASSWORD = "Secret123!"

CHROME_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.ops = []
        return False

    def _queue(self, name, *args, **kwargs):
        self.ops.append((name, args, kwargs))
        return self

    def set(self, *args, **kwargs):
        return self._queue("set", *args, **kwargs)

    def delete(self, *args):
        return self._queue("delete", *args)

    def incr(self, *args):
        return self._queue("incr", *args)

    def expire(self, *args):
        return self._queue("expire", *args)

    async def execute(self):
        results = []
        for name, args, kwargs in self.ops:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.ops = []
        return results


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio commands the OTP store issues."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_with: Optional[Exception] = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        n = 0
        for k in keys:
            if k in self.data:
                n += 1
            self.data.pop(k, None)
            self.ttls.pop(k, None)
        return n

    async def incr(self, key):
        self._check()
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self._check()
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def expire_now(self, key):
        """Simulate the key's TTL running out."""
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    async def aclose(self):
        return None


class CodeOutbox:
    """Collects dispatched one-time codes in place of an email sender."""

    def __init__(self):
        self.sent: Dict[str, List[str]] = {}

    async def __call__(self, email: str, code: str) -> None:
        self.sent.setdefault(email, []).append(code)

    def last(self, email: str) -> str:
        return self.sent[email][-1]


async def drain(background: DetachedTasks):
    """Let detached tasks (code dispatch) run to completion."""
    await asyncio.sleep(0)
    await background.shutdown(wait_timeout=5.0)


def meta_for(device: str, ip: str = "10.0.0.1") -> RequestMeta:
    return RequestMeta(ip=ip, user_agent=f"agent/{device}", device=device)


def register_payload(email: str = "a@x.com", username: str = "alice", phone: str = "",
                     password: str = STRONG_PASSWORD, confirm: Optional[str] = None) -> RegisterIn:
    return RegisterIn(email=email, phone=phone, username=username, password=password,
                      confirm_password=password if confirm is None else confirm)


async def register_and_verify(service, outbox: CodeOutbox, email: str = "a@x.com", username: str = "alice",
                              phone: str = "", meta: Optional[RequestMeta] = None):
    await service.register(register_payload(email=email, username=username, phone=phone))
    await drain(service.background)
    return await service.verify_user(email, int(outbox.last(email)), meta or meta_for("seed"))
