import asyncio
import pytest
from gatehouse.cache.utils import build_key
from gatehouse.common.background import DetachedTasks
from gatehouse.common.logging_setup import mask_email, redact_extra, sanitize_message_text
from gatehouse.db.utils import _normalize_db_url


def test_redact_extra_hides_secrets_and_masks_pii():
    out = redact_extra({"password": "Secret123!", "refresh_token": "abc", "email": "alice@x.com",
                        "ip_address": "10.0.0.1", "user_id": 7, "error_code": "conflict"}, mask_pii=True)

    assert out["password"] == "[REDACTED]"
    assert out["refresh_token"] == "[REDACTED]"
    assert out["email"] == "a***@x.com"
    assert out["ip_address"] == "[MASKED]"
    assert out["user_id"] == 7
    assert out["error_code"] == "conflict"


def test_redact_extra_keeps_pii_in_dev():
    assert redact_extra({"email": "alice@x.com"}, mask_pii=False) == {"email": "alice@x.com"}


def test_mask_email_without_at_sign():
    assert mask_email("not-an-email") == "[REDACTED]"


def test_sanitize_message_text():
    text = sanitize_message_text('login password=hunter2 {"refresh_token": "eyJabc"}')
    assert "hunter2" not in text
    assert "eyJabc" not in text


def test_build_key():
    assert build_key("otp:email", " A@X.com ") == "otp:email:a@x.com"
    assert build_key("otp:email", "", None) == "otp:email"

    long_key = build_key("otp:email", "x" * 300 + "@x.com")
    assert long_key.startswith("otp:email:")
    assert len(long_key) == len("otp:email:") + 64
    assert build_key("otp:email", "x" * 300, max_length=None) == "otp:email:" + "x" * 300


@pytest.mark.parametrize("url,expected", [
    ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("sqlite:///./gatehouse.db", "sqlite+aiosqlite:///./gatehouse.db"),
    ("", None),
    (None, None),
])
def test_normalize_db_url(url, expected):
    assert _normalize_db_url(url) == expected


@pytest.mark.asyncio
async def test_detached_tasks_swallow_failures_and_timeouts():
    tasks = DetachedTasks(default_timeout=0.05)
    finished = []

    async def ok():
        finished.append("ok")

    async def boom():
        raise RuntimeError("boom")

    async def slow():
        await asyncio.sleep(5)
        finished.append("slow")

    spawned = [tasks.spawn(ok(), name="ok"), tasks.spawn(boom(), name="boom"), tasks.spawn(slow(), name="slow")]
    await tasks.shutdown(wait_timeout=2.0)

    assert finished == ["ok"]
    assert all(t.done() for t in spawned)
    # failures never propagate out of the task
    assert all(t.exception() is None for t in spawned)


@pytest.mark.asyncio
async def test_unsafe_request_id_is_replaced(ac_client):
    res = await ac_client.get("/health", headers={"X-Request-ID": "bad id with spaces!"})
    assert res.headers["X-Request-ID"] != "bad id with spaces!"
    assert len(res.headers["X-Request-ID"]) == 36
