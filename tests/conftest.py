import pytest
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager
from sqlalchemy.ext.asyncio import AsyncSession
from gatehouse.auth.services import AuthService
from gatehouse.auth.utils import CodeHasher, PasswordHasher, TokenIssuer
from gatehouse.cache.otp_store import RedisOTPStore
from gatehouse.common.background import DetachedTasks
from gatehouse.db.connection import build_engine, build_session_maker, create_all_tables
from gatehouse.main import create_app
from tests.helpers import CodeOutbox, FakeRedis

CODE_SECRET = "test-code-secret"


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'gatehouse.db'}")
    await create_all_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def outbox():
    return CodeOutbox()


@pytest.fixture
def token_issuer():
    return TokenIssuer(access_secret="test-access-secret", refresh_secret="test-refresh-secret")


@pytest.fixture
def password_hasher():
    # lowest bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def code_hasher():
    return CodeHasher(secret=CODE_SECRET)


@pytest.fixture
def background():
    return DetachedTasks(default_timeout=2.0)


@pytest.fixture
def make_auth_service(fake_redis, token_issuer, password_hasher, code_hasher, background, outbox):
    def _make(session: AsyncSession, **overrides) -> AuthService:
        kwargs = dict(
            otp_store=RedisOTPStore(fake_redis),
            tokens=token_issuer,
            passwords=password_hasher,
            codes=code_hasher,
            background=background,
            code_sender=outbox,
            max_devices=5,
        )
        kwargs.update(overrides)
        return AuthService(session, **kwargs)
    return _make


@pytest.fixture
def auth_service(make_auth_service, db_session):
    return make_auth_service(db_session)


@pytest.fixture
def app(session_maker, fake_redis, outbox, token_issuer, password_hasher, code_hasher):
    application = create_app(session_maker=session_maker, redis_client=fake_redis, code_sender=outbox)
    application.state.token_issuer = token_issuer
    application.state.password_hasher = password_hasher
    application.state.code_hasher = code_hasher
    return application


@pytest.fixture
async def ac_client(app):
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
