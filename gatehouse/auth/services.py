import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar
from email_validator import validate_email, EmailNotValidError
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.auth.constants import (CODE_ATTEMPTS_EXHAUSTED, INVALID_CODE, INVALID_CREDENTIALS,
                                      UNVERIFIED_USER, logger)
from gatehouse.auth.models import AuthTokensOut, RegisterIn, RequestMeta
from gatehouse.auth.ports import AccountStore, CodeSender, CodeStore, SessionStore
from gatehouse.auth.utils import (CodeHasher, PasswordHasher, TokenExpiredError, TokenIssuer,
                                  generate_otp_code, hash_token, validate_password)
from gatehouse.common.background import DetachedTasks
from gatehouse.common.custom_exceptions import AppError
from gatehouse.common.utils import now
from gatehouse.config.settings import config_settings
from gatehouse.schema.session import UserSession
from gatehouse.schema.user import Users
from gatehouse.session.repository import SessionRepository
from gatehouse.user.repository import UserRepository

T = TypeVar("T")

INVALID_REFRESH = "invalid or expired refresh token"


def normalize_email_address(email: str) -> str:
    """
    Validate and return normalized email (lowercased, normalized by email-validator).
    Raises ValueError if invalid.
    """
    try:
        v = validate_email(email.strip(), check_deliverability=False)
        return v.normalized.lower()
    except EmailNotValidError as e:
        raise ValueError(str(e))


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def log_only_code_sender(email: str, code: str) -> None:
    # no mail transport wired in, the code itself is never logged
    logger.info("auth.otp.dispatched", extra={"email": email})


@dataclass
class IssuedSession:
    session_id: int
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    device: Optional[str]
    ip_address: Optional[str]

    def to_out(self, email: Optional[str] = None) -> AuthTokensOut:
        return AuthTokensOut(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            access_token_ttl=self.access_expires_at,
            refresh_token_ttl=self.refresh_expires_at,
            device=self.device,
            ip_address=self.ip_address,
            user_email=email,
        )


class AuthService:
    """
    Register -> Verify -> Login -> Refresh -> Logout.

    One instance per request, bound to that request's AsyncSession; every
    flow that writes commits once at its end.
    """

    def __init__(self, session: AsyncSession, *,
                 otp_store: CodeStore,
                 tokens: TokenIssuer,
                 passwords: PasswordHasher,
                 codes: CodeHasher,
                 background: DetachedTasks,
                 code_sender: CodeSender = log_only_code_sender,
                 sessions: Optional[SessionStore] = None,
                 users: Optional[AccountStore] = None,
                 max_devices: int = config_settings.MAX_DEVICE_SESSIONS,
                 otp_ttl: int = config_settings.OTP_TTL_SECONDS,
                 otp_max_attempts: int = config_settings.OTP_MAX_ATTEMPTS,
                 dispatch_timeout: float = config_settings.OTP_DISPATCH_TIMEOUT_SECONDS,
                 default_role: str = config_settings.DEFAULT_ROLE):
        self.session = session
        self.otp_store = otp_store
        self.tokens = tokens
        self.passwords = passwords
        self.codes = codes
        self.background = background
        self.code_sender = code_sender
        self.sessions = sessions or SessionRepository(session)
        self.users = users or UserRepository(session)
        self.max_devices = max(1, max_devices)
        self.otp_ttl = otp_ttl
        self.otp_max_attempts = otp_max_attempts
        self.dispatch_timeout = dispatch_timeout
        self.default_role = default_role

    async def _cache(self, op: Awaitable[T]) -> T:
        try:
            return await op
        except RedisError as e:
            raise AppError.internal(e)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise AppError.internal(e)

    # ------------------------------------------------------------------ register

    async def register(self, payload: RegisterIn) -> Users:
        try:
            email = normalize_email_address(payload.email)
        except ValueError as e:
            logger.warning("auth.register.email_invalid", extra={"reason": str(e)})
            raise AppError.invalid_input("invalid email", fields={"email": str(e)})

        if payload.password != payload.confirm_password:
            raise AppError.conflict("passwords do not match", fields={"confirm_password": "does not match password"})

        is_valid, detail = validate_password(payload.password)
        if not is_valid:
            logger.warning("auth.register.password_invalid", extra={"email": email, "reason": detail})
            raise AppError.conflict(detail, fields={"password": detail})

        phone = _blank_to_none(payload.phone)
        username = _blank_to_none(payload.username)

        existing = await self.users.get_by_email(email)
        if existing is not None and not existing.verified:
            # the stored password is kept, only a fresh code goes out to the mailbox owner
            logger.info("auth.register.code_resent", extra={"user_id": existing.id, "email": email})
            self.background.spawn(self.dispatch_code(email), name=f"otp-dispatch:{existing.id}",
                                  timeout=self.dispatch_timeout)
            return existing

        taken = await self.users.find_taken_identity(email, phone, username)
        if taken:
            logger.warning("auth.register.duplicate", extra={"email": email, "field": taken})
            raise AppError.conflict(f"{taken} is already in use", fields={taken: "already in use"})

        password_hash = await asyncio.to_thread(self.passwords.hash, payload.password)

        user = Users(email=email, phone=phone, username=username, password_hash=password_hash,
                     verified=False, role=self.default_role)
        try:
            await self.users.create(user)
            await self.session.commit()
        except IntegrityError:
            # a concurrent registration won, the unique constraints are the final word
            await self.session.rollback()
            logger.warning("auth.register.integrity_error", extra={"email": email})
            raise AppError.conflict("email, phone or username is already in use")

        logger.info("auth.register.success", extra={"user_id": user.id, "email": email})

        self.background.spawn(self.dispatch_code(email), name=f"otp-dispatch:{user.id}",
                              timeout=self.dispatch_timeout)
        return user

    async def dispatch_code(self, email: str) -> None:
        code = generate_otp_code()
        await self.otp_store.save(email, self.codes.hash(code), self.otp_ttl)
        await self.code_sender(email, code)

    # ------------------------------------------------------------------ verify

    async def verify_user(self, email: str, code: int, meta: RequestMeta) -> AuthTokensOut:
        try:
            email = normalize_email_address(email)
        except ValueError:
            raise AppError.conflict(INVALID_CODE)

        stored = await self._cache(self.otp_store.get(email))
        if stored is not None and await self._cache(self.otp_store.failed_attempts(email)) >= self.otp_max_attempts:
            logger.warning("auth.verify.locked", extra={"email": email})
            raise AppError.rate_limited(CODE_ATTEMPTS_EXHAUSTED)

        if stored is None or not self.codes.compare(str(code), stored):
            if stored is not None:
                await self._count_failed_attempt(email)
            logger.warning("auth.verify.code_invalid",
                           extra={"email": email, "reason": "missing" if stored is None else "mismatch"})
            raise AppError.conflict(INVALID_CODE)

        # single consumption, the same code can not be replayed
        await self._cache(self.otp_store.delete(email))

        user = await self.users.get_by_email(email)
        if not user:
            logger.warning("auth.verify.user_missing", extra={"email": email})
            raise AppError.not_found("user not found")

        await self.users.get_by_id(user.id, for_update=True)
        await self.sessions.delete_expired_by_user_id(user.id, now())
        issued = await self._open_session(user.id, meta, reuse_device=False)
        await self.users.mark_verified(user.id)
        await self._commit()

        logger.info("auth.verify.success", extra={"user_id": user.id, "session_id": issued.session_id})
        return issued.to_out(email=user.email)

    async def _count_failed_attempt(self, email: str) -> None:
        attempts = await self._cache(self.otp_store.register_failed_attempt(email, self.otp_ttl))
        if attempts == self.otp_max_attempts:
            logger.warning("auth.verify.code_exhausted", extra={"email": email, "attempts": attempts})

    # ------------------------------------------------------------------ login

    async def login(self, login_input: str, password: str, meta: RequestMeta) -> AuthTokensOut:
        identifier = (login_input or "").strip()
        if "@" in identifier:
            user = await self.users.get_by_email(identifier.lower())
        else:
            user = await self.users.get_by_phone(identifier)

        password_hash = user.password_hash if user else None
        ok = await asyncio.to_thread(self.passwords.verify_account, password, password_hash)
        if user is None or not ok:
            logger.warning("auth.login.failed",
                           extra={"reason": "user_not_found" if user is None else "password_mismatch",
                                  "user_id": user.id if user else None})
            raise AppError.unauthorized(INVALID_CREDENTIALS)

        if not user.verified:
            logger.warning("auth.login.failed", extra={"reason": "unverified", "user_id": user.id})
            raise AppError.conflict(UNVERIFIED_USER)

        # row lock on the account serialises its concurrent logins, keeping the device cap exact
        await self.users.get_by_id(user.id, for_update=True)
        purged = await self.sessions.delete_expired_by_user_id(user.id, now())
        if purged:
            logger.debug("auth.login.expired_sessions_purged", extra={"user_id": user.id, "count": purged})
        issued = await self._open_session(user.id, meta, reuse_device=True)
        await self._commit()

        logger.info("auth.login.success",
                    extra={"user_id": user.id, "session_id": issued.session_id, "device": issued.device})
        return issued.to_out(email=user.email)

    async def _open_session(self, user_id: int, meta: RequestMeta, reuse_device: bool) -> IssuedSession:
        """
        Issue a token pair and bind it to a session row.

        With `reuse_device` a valid session of the same device is continued in
        place. Otherwise the oldest valid sessions are evicted until the new row
        fits under the device cap.
        """
        access, access_exp = self.tokens.generate_access(user_id)
        refresh, refresh_exp = self.tokens.generate_refresh(user_id)
        ts = now()

        valid: List[UserSession] = await self.sessions.get_all_valid(user_id, ts)

        if reuse_device:
            same_device = next((s for s in valid if s.device == meta.device), None)
            if same_device is not None:
                await self.sessions.update_tokens(same_device.id, access, access_exp, refresh, refresh_exp)
                await self.sessions.update_meta(same_device.id, meta.device, meta.ip, meta.user_agent, ts)
                logger.debug("auth.session.reused", extra={"session_id": same_device.id, "user_id": user_id})
                return IssuedSession(same_device.id, access, access_exp, refresh, refresh_exp, meta.device, meta.ip)

        count = len(valid)
        while count >= self.max_devices:
            if await self.sessions.delete_oldest_valid(user_id, ts) is None:
                break
            count -= 1

        row = UserSession(
            user_id=user_id,
            access_token_hash=hash_token(access),
            access_token_expires_at=access_exp,
            refresh_token_hash=hash_token(refresh),
            refresh_token_expires_at=refresh_exp,
            ip_address=meta.ip,
            user_agent=meta.user_agent[:512] if meta.user_agent else None,
            device=meta.device,
            last_used_at=ts,
            created_at=ts,
            updated_at=ts,
        )
        await self.sessions.create(row)
        return IssuedSession(row.id, access, access_exp, refresh, refresh_exp, meta.device, meta.ip)

    # ------------------------------------------------------------------ refresh

    async def refresh(self, refresh_token: Optional[str], meta: RequestMeta) -> AuthTokensOut:
        if not refresh_token:
            logger.warning("auth.refresh.failed", extra={"reason": "missing_refresh_token"})
            raise AppError.unauthorized(INVALID_REFRESH)

        try:
            claims = self.tokens.verify_refresh(refresh_token)
        except TokenExpiredError:
            # the session can never be refreshed again, drop it
            await self.sessions.delete_by_refresh_token(refresh_token)
            await self._commit()
            logger.warning("auth.refresh.failed", extra={"reason": "token_expired"})
            raise AppError.unauthorized(INVALID_REFRESH)
        except AppError as e:
            logger.warning("auth.refresh.failed", extra={"reason": e.message})
            raise AppError.unauthorized(INVALID_REFRESH, cause=e)

        ts = now()
        row = await self.sessions.get_by_refresh_token(refresh_token, ts, include_expired=True)
        if row is None:
            logger.warning("auth.refresh.failed", extra={"reason": "session_not_found"})
            raise AppError.unauthorized(INVALID_REFRESH)

        if row.revoked_at is not None:
            logger.warning("auth.refresh.failed", extra={"reason": "session_revoked", "session_id": row.id})
            raise AppError.unauthorized(INVALID_REFRESH)

        if row.refresh_token_expires_at <= ts:
            session_id = row.id
            await self.sessions.delete_by_id(session_id)
            await self._commit()
            logger.warning("auth.refresh.failed", extra={"reason": "session_expired", "session_id": session_id})
            raise AppError.unauthorized(INVALID_REFRESH)

        if str(row.user_id) != str(claims.get("sub")):
            logger.error("auth.refresh.subject_mismatch", extra={"session_id": row.id})
            raise AppError.unauthorized(INVALID_REFRESH)

        access, access_exp = self.tokens.generate_access(row.user_id)
        new_refresh, refresh_exp = self.tokens.generate_refresh(row.user_id)

        rotated = await self.sessions.rotate_refresh(row.id, new_refresh, refresh_exp,
                                                     access_token=access, access_expires_at=access_exp,
                                                     expected_refresh=refresh_token)
        if not rotated:
            # a concurrent refresh with the same token got there first
            await self.session.rollback()
            logger.warning("auth.refresh.failed", extra={"reason": "already_rotated", "session_id": row.id})
            raise AppError.unauthorized(INVALID_REFRESH)

        await self.sessions.update_meta(row.id, meta.device, meta.ip, meta.user_agent, ts)
        await self._commit()

        logger.info("auth.refresh.success", extra={"user_id": row.user_id, "session_id": row.id})
        return IssuedSession(row.id, access, access_exp, new_refresh, refresh_exp, meta.device, meta.ip).to_out()

    # ------------------------------------------------------------------ logout

    async def logout_one(self, user_id: int, session_id: int) -> None:
        n = await self.sessions.revoke_by_id(session_id, user_id, now())
        await self._commit()
        logger.info("auth.logout.one", extra={"user_id": user_id, "session_id": session_id, "revoked": n})

    async def logout_all(self, user_id: int) -> None:
        n = await self.sessions.revoke_all_by_user_id(user_id, now())
        await self._commit()
        logger.info("auth.logout.all", extra={"user_id": user_id, "revoked": n})

    async def logout_except_current(self, user_id: int, keep_session_id: int) -> None:
        n = await self.sessions.revoke_all_except_current(user_id, keep_session_id, now())
        await self._commit()
        logger.info("auth.logout.except_current", extra={"user_id": user_id, "kept": keep_session_id, "revoked": n})
