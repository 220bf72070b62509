import redis.asyncio as redis
from gatehouse.config.settings import config_settings


def build_redis_client() -> redis.Redis:
    return redis.Redis(
        host=config_settings.REDIS_HOST, port=config_settings.REDIS_PORT, db=config_settings.REDIS_DB,
        password=config_settings.REDIS_PASSWORD, decode_responses=True)
