
from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import secrets
from typing import Any, Dict, Optional, Tuple
from passlib.context import CryptContext
from jose import jwt, JWTError, ExpiredSignatureError
from gatehouse.auth.constants import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, SPECIALS
from gatehouse.common.custom_exceptions import AppError, ErrorKind
from gatehouse.config.settings import config_settings


class TokenExpiredError(AppError):
    """Signature was fine but the token is past its exp claim."""

    def __init__(self, message: str = "token expired", cause=None):
        super().__init__(ErrorKind.UNAUTHORIZED, message, cause=cause)


class PasswordHasher:
    """Salted adaptive hash for passwords (bcrypt through passlib)."""

    def __init__(self, scheme: str = config_settings.PASS_HASH_SCHEME, rounds: int = config_settings.PASS_HASH_ROUNDS):
        kwargs = {f"{scheme}__rounds": rounds} if scheme == "bcrypt" else {}
        self.pwd_context = CryptContext(schemes=[scheme], deprecated="auto", **kwargs)
        self._dummy_hash: Optional[str] = None

    def hash(self, plain_password: str) -> str:
        return self.pwd_context.hash(plain_password)

    @property
    def dummy_hash(self) -> str:
        """Hash of a random secret at the configured cost, compared against when no account matched."""
        if self._dummy_hash is None:
            self._dummy_hash = self.pwd_context.hash(secrets.token_urlsafe(16))
        return self._dummy_hash

    def verify(self, plain_password: str, password_hash: str) -> bool:
        if not plain_password or not password_hash:
            return False
        try:
            return self.pwd_context.verify(plain_password, password_hash)
        except (ValueError, TypeError):
            # malformed or unknown hash format
            return False

    def verify_account(self, plain_password: str, password_hash: Optional[str]) -> bool:
        """Like `verify`, but spends a full hash comparison even when there is no account."""
        if password_hash is None:
            self.verify(plain_password, self.dummy_hash)
            return False
        return self.verify(plain_password, password_hash)


class CodeHasher:
    """Keyed deterministic digest for short one-time codes."""

    def __init__(self, secret: str = config_settings.CODE_HASH_SECRET, algo: str = config_settings.CODE_HASH_ALGO):
        self.secret = secret.encode()
        self.digestmod = getattr(hashlib, algo)

    def hash(self, value: str) -> str:
        return hmac.new(self.secret, str(value).encode(), self.digestmod).hexdigest()

    def compare(self, value: str, digest: str) -> bool:
        if not digest:
            return False
        return hmac.compare_digest(self.hash(value), digest)


class TokenIssuer:
    """
    Signs and verifies access and refresh JWTs.
    Each token type has its own secret and ttl, and carries a `typ` claim so a
    token can never be replayed as the other type even if the secrets were shared.
    """

    def __init__(self,
                 access_secret: str = config_settings.ACCESS_TOKEN_SECRET,
                 refresh_secret: str = config_settings.REFRESH_TOKEN_SECRET,
                 access_ttl: timedelta = timedelta(minutes=config_settings.ACCESS_TOKEN_EXPIRE_MINUTES),
                 refresh_ttl: timedelta = timedelta(days=config_settings.REFRESH_TOKEN_EXPIRE_DAYS),
                 algo: str = config_settings.JWT_ALGO):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algo = algo

    def _generate(self, subject, secret: str, ttl: timedelta, typ: str) -> Tuple[str, datetime]:
        now = datetime.now(timezone.utc)
        # jwt exp has second precision, keep the returned expiry in step with the claim
        expiry = (now + ttl).replace(microsecond=0)
        payload = {
            "sub": str(subject),
            "iat": int(now.timestamp()),
            "exp": int(expiry.timestamp()),
            "jti": secrets.token_hex(16),
            "typ": typ,
        }
        token = jwt.encode(claims=payload, key=secret, algorithm=self.algo)
        return token, expiry

    def _verify(self, token: str, secret: str, typ: str) -> Dict[str, Any]:
        if not token:
            raise AppError.unauthorized("missing token")
        try:
            claims = jwt.decode(token, secret, algorithms=[self.algo])
        except ExpiredSignatureError as e:
            raise TokenExpiredError(cause=e)
        except JWTError as e:
            raise AppError.unauthorized("invalid token", cause=e)
        if claims.get("typ") != typ or not claims.get("sub"):
            raise AppError.unauthorized("invalid token")
        return claims

    def generate_access(self, subject) -> Tuple[str, datetime]:
        return self._generate(subject, self.access_secret, self.access_ttl, ACCESS_TOKEN_TYPE)

    def generate_refresh(self, subject) -> Tuple[str, datetime]:
        return self._generate(subject, self.refresh_secret, self.refresh_ttl, REFRESH_TOKEN_TYPE)

    def verify_access(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.refresh_secret, REFRESH_TOKEN_TYPE)


def hash_token(plain: str) -> str:
    hash_func = getattr(hashlib, config_settings.TOKEN_HASH_ALGO)
    return hash_func(plain.encode()).hexdigest()


def generate_otp_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


def validate_password(password: str, min_length: int = config_settings.PASSWORD_MIN_LENGTH) -> tuple[bool, str]:
    pw = password.strip()
    if len(pw) < min_length:
        return False, f"Password must be at least {min_length} characters long"
    if not any(c.islower() for c in pw):
        return False, "Password must include at least one lowercase letter"
    if not any(c.isupper() for c in pw):
        return False, "Password must include at least one uppercase letter"
    if not any(c.isdigit() for c in pw):
        return False, "Password must include at least one digit"
    if not any(c in SPECIALS for c in pw):
        return False, "Password must include at least one special character"
    return True, "OK"
