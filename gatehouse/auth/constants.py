
from gatehouse.config.settings import config_settings
from gatehouse.common.logging_setup import get_logger

logger = get_logger("gatehouse.auth")

SPECIALS = set("!@#$%^&*()-_=+[]{};:'\",.<>/?\\|`~")

REFRESH_TOKEN_TTL_SECONDS = config_settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600

ACCESS_TOKEN_TTL_SECONDS = config_settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

ACCESS_COOKIE_NAME = "access_token"

REFRESH_COOKIE_NAME = "refresh_token"

OTP_KEY_PREFIX = "otp:email"

OTP_ATTEMPTS_PREFIX = "otp:attempts"

ACCESS_TOKEN_TYPE = "access"

REFRESH_TOKEN_TYPE = "refresh"

INVALID_CREDENTIALS = "invalid credentials"

INVALID_CODE = "email code is invalid"

CODE_ATTEMPTS_EXHAUSTED = "too many attempts, request a new code"

UNVERIFIED_USER = "user is not verified"
