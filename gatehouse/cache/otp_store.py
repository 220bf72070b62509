from typing import Optional
from gatehouse.auth.constants import OTP_ATTEMPTS_PREFIX, OTP_KEY_PREFIX
from gatehouse.cache.utils import build_key


def otp_key(email: str) -> str:
    return build_key(OTP_KEY_PREFIX, email, max_length=None)


def attempts_key(email: str) -> str:
    return build_key(OTP_ATTEMPTS_PREFIX, email, max_length=None)


class RedisOTPStore:
    """
    One-time code digests keyed by email, expiry is left to redis.
    A miss is reported as None, never as an error.
    """

    def __init__(self, redis_client):
        self.redis = redis_client

    async def save(self, email: str, code_hash: str, ttl: int) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(otp_key(email), code_hash, ex=ttl)
            pipe.delete(attempts_key(email))
            await pipe.execute()

    async def get(self, email: str) -> Optional[str]:
        value = await self.redis.get(otp_key(email))
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        return value or None

    async def delete(self, email: str) -> None:
        await self.redis.delete(otp_key(email), attempts_key(email))

    async def failed_attempts(self, email: str) -> int:
        value = await self.redis.get(attempts_key(email))
        return int(value) if value else 0

    async def register_failed_attempt(self, email: str, ttl: int) -> int:
        key = attempts_key(email)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl)
            count, _ = await pipe.execute()
        return int(count)
