import pytest
from gatehouse.config.settings import config_settings
from tests.helpers import CHROME_WINDOWS, STRONG_PASSWORD, drain


async def _register(ac, outbox, app, email="a@x.com", username="alice", phone=""):
    res = await ac.post("/register", json={
        "email": email,
        "username": username,
        "phone": phone,
        "password": STRONG_PASSWORD,
        "confirm_password": STRONG_PASSWORD,
    })
    assert res.status_code == 201, res.text
    await drain(app.state.background)
    return outbox.last(email)


async def _signed_up(ac, outbox, app, email="a@x.com", username="alice", user_agent=CHROME_WINDOWS):
    code = await _register(ac, outbox, app, email=email, username=username)
    res = await ac.post("/verify", json={"email": email, "code": int(code)}, headers={"User-Agent": user_agent})
    assert res.status_code == 200, res.text
    return res.json()


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _assert_envelope(res, status_code, code):
    assert res.status_code == status_code
    body = res.json()
    assert set(body) == {"error"}
    assert body["error"]["code"] == code
    assert isinstance(body["error"]["message"], str)
    assert "fields" in body["error"]


@pytest.mark.asyncio
async def test_health(ac_client):
    res = await ac_client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_register_returns_created(ac_client, outbox, app):
    res = await ac_client.post("/register", json={
        "email": "a@x.com", "password": STRONG_PASSWORD, "confirm_password": STRONG_PASSWORD,
    })
    assert res.status_code == 201
    assert res.json() == {"message": "User registered successfully", "success": True}

    await drain(app.state.background)
    assert len(outbox.last("a@x.com")) == 6


@pytest.mark.asyncio
async def test_register_duplicate_is_conflict_envelope(ac_client, outbox, app):
    await _signed_up(ac_client, outbox, app)
    res = await ac_client.post("/register", json={
        "email": "a@x.com", "password": STRONG_PASSWORD, "confirm_password": STRONG_PASSWORD,
    })
    _assert_envelope(res, 409, "conflict")
    assert res.json()["error"]["fields"] == {"email": "already in use"}


@pytest.mark.asyncio
async def test_register_missing_fields_is_invalid_input(ac_client):
    res = await ac_client.post("/register", json={"email": "a@x.com"})

    _assert_envelope(res, 400, "invalid_input")
    fields = res.json()["error"]["fields"]
    assert "password" in fields
    assert "confirm_password" in fields


@pytest.mark.asyncio
async def test_register_bad_email_is_invalid_input(ac_client):
    res = await ac_client.post("/register", json={
        "email": "nope", "password": STRONG_PASSWORD, "confirm_password": STRONG_PASSWORD,
    })
    _assert_envelope(res, 400, "invalid_input")
    assert "email" in res.json()["error"]["fields"]


@pytest.mark.asyncio
async def test_verify_sets_cookies_and_returns_tokens(ac_client, outbox, app):
    code = await _register(ac_client, outbox, app)
    res = await ac_client.post("/verify", json={"email": "a@x.com", "code": int(code)},
                               headers={"User-Agent": CHROME_WINDOWS, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

    assert res.status_code == 200
    body = res.json()
    assert body["user_email"] == "a@x.com"
    assert body["device"] == "Chrome on Windows"
    assert body["ip_address"] == "203.0.113.7"
    assert res.cookies.get("access_token") == body["access_token"]
    assert res.cookies.get("refresh_token") == body["refresh_token"]
    set_cookie = ";".join(res.headers.get_list("set-cookie")).lower()
    assert "httponly" in set_cookie


@pytest.mark.asyncio
async def test_verify_wrong_code_is_conflict(ac_client, outbox, app):
    code = await _register(ac_client, outbox, app)
    wrong = 100000 if int(code) != 100000 else 100001
    res = await ac_client.post("/verify", json={"email": "a@x.com", "code": wrong})
    _assert_envelope(res, 409, "conflict")


@pytest.mark.asyncio
async def test_verify_locked_after_too_many_guesses(ac_client, outbox, app):
    code = await _register(ac_client, outbox, app)
    wrong = 100000 if int(code) != 100000 else 100001
    for _ in range(config_settings.OTP_MAX_ATTEMPTS):
        res = await ac_client.post("/verify", json={"email": "a@x.com", "code": wrong})
        _assert_envelope(res, 409, "conflict")

    res = await ac_client.post("/verify", json={"email": "a@x.com", "code": int(code)})
    _assert_envelope(res, 429, "rate_limited")

    fresh = await _register(ac_client, outbox, app)
    res = await ac_client.post("/verify", json={"email": "a@x.com", "code": int(fresh)})
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_login_flow_and_me(ac_client, outbox, app):
    await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()

    res = await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD},
                               headers={"User-Agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0"})
    assert res.status_code == 200
    tokens = res.json()
    assert tokens["device"] == "Firefox on Linux"
    ac_client.cookies.clear()

    me = await ac_client.get("/me", headers=_bearer(tokens["access_token"]))
    assert me.status_code == 200
    assert me.json()["email"] == "a@x.com"
    assert me.json()["verified"] is True
    assert "password_hash" not in me.json()


@pytest.mark.asyncio
async def test_login_wrong_password_is_unauthorized(ac_client, outbox, app):
    await _signed_up(ac_client, outbox, app)
    res = await ac_client.post("/login", json={"login_input": "a@x.com", "password": "Wrong123!"})
    _assert_envelope(res, 401, "unauthorized")
    assert res.json()["error"]["message"] == "invalid credentials"


@pytest.mark.asyncio
async def test_login_unverified_is_conflict(ac_client, outbox, app):
    await _register(ac_client, outbox, app)
    res = await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD})
    _assert_envelope(res, 409, "conflict")


@pytest.mark.asyncio
async def test_protected_route_without_token(ac_client):
    res = await ac_client.get("/me")
    _assert_envelope(res, 401, "unauthorized")


@pytest.mark.asyncio
async def test_protected_route_with_garbage_token(ac_client):
    res = await ac_client.get("/me", headers=_bearer("not.a.jwt"))
    _assert_envelope(res, 401, "unauthorized")


@pytest.mark.asyncio
async def test_access_cookie_authenticates(ac_client, outbox, app):
    await _signed_up(ac_client, outbox, app)
    # the cookie jar now carries access_token
    res = await ac_client.get("/me")
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_refresh_via_body_rotates(ac_client, outbox, app):
    tokens = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()

    res = await ac_client.post("/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200
    rotated = res.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]
    ac_client.cookies.clear()

    replay = await ac_client.post("/refresh", json={"refresh_token": tokens["refresh_token"]})
    _assert_envelope(replay, 401, "unauthorized")

    # the old access token died with the rotation
    old = await ac_client.get("/me", headers=_bearer(tokens["access_token"]))
    assert old.status_code == 401
    new = await ac_client.get("/me", headers=_bearer(rotated["access_token"]))
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_refresh_via_header_and_cookie(ac_client, outbox, app):
    tokens = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()

    by_header = await ac_client.post("/refresh", headers={"X-Refresh-Token": tokens["refresh_token"]})
    assert by_header.status_code == 200

    # the rotated refresh cookie from the previous response is scoped to /refresh
    by_cookie = await ac_client.post("/refresh")
    assert by_cookie.status_code == 200
    assert by_cookie.json()["refresh_token"] != by_header.json()["refresh_token"]


@pytest.mark.asyncio
async def test_refresh_without_token(ac_client):
    res = await ac_client.post("/refresh")
    _assert_envelope(res, 401, "unauthorized")


@pytest.mark.asyncio
async def test_sessions_list_marks_current(ac_client, outbox, app):
    first = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()
    second = (await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD},
                                   headers={"User-Agent": "curl/8.0"})).json()
    ac_client.cookies.clear()

    res = await ac_client.get("/sessions", headers=_bearer(second["access_token"]))
    assert res.status_code == 200
    sessions = res.json()
    assert [s["device"] for s in sessions] == ["Chrome on Windows", "curl"]
    assert [s["current"] for s in sessions] == [False, True]
    assert "access_token_hash" not in sessions[0]
    assert first["device"] == "Chrome on Windows"


@pytest.mark.asyncio
async def test_revoke_session_endpoint(ac_client, outbox, app):
    first = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()
    second = (await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD},
                                   headers={"User-Agent": "curl/8.0"})).json()
    ac_client.cookies.clear()
    sessions = (await ac_client.get("/sessions", headers=_bearer(second["access_token"]))).json()
    other_id = next(s["id"] for s in sessions if not s["current"])

    res = await ac_client.post(f"/{other_id}/revoke", headers=_bearer(second["access_token"]))
    assert res.status_code == 200
    assert res.json()["success"] is True

    assert (await ac_client.get("/me", headers=_bearer(first["access_token"]))).status_code == 401
    assert (await ac_client.get("/me", headers=_bearer(second["access_token"]))).status_code == 200


@pytest.mark.asyncio
async def test_logout_current_session(ac_client, outbox, app):
    tokens = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()

    res = await ac_client.post("/logout", json={"operation": "one"}, headers=_bearer(tokens["access_token"]))
    assert res.status_code == 200
    assert res.json() == {"message": "User logged out successfully", "success": True}
    set_cookie = ";".join(res.headers.get_list("set-cookie"))
    assert "access_token=" in set_cookie

    after = await ac_client.get("/me", headers=_bearer(tokens["access_token"]))
    _assert_envelope(after, 401, "unauthorized")
    refreshed = await ac_client.post("/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 401


@pytest.mark.asyncio
async def test_logout_all_twice(ac_client, outbox, app):
    tokens = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()
    other = (await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD},
                                  headers={"User-Agent": "curl/8.0"})).json()
    ac_client.cookies.clear()

    res = await ac_client.post("/logout", json={"operation": "all"}, headers=_bearer(tokens["access_token"]))
    assert res.status_code == 200

    assert (await ac_client.get("/me", headers=_bearer(other["access_token"]))).status_code == 401
    again = await ac_client.post("/logout", json={"operation": "all"}, headers=_bearer(tokens["access_token"]))
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_logout_except_current(ac_client, outbox, app):
    first = await _signed_up(ac_client, outbox, app)
    ac_client.cookies.clear()
    second = (await ac_client.post("/login", json={"login_input": "a@x.com", "password": STRONG_PASSWORD},
                                   headers={"User-Agent": "curl/8.0"})).json()
    ac_client.cookies.clear()

    res = await ac_client.post("/logout", json={"operation": "except-current"},
                               headers=_bearer(second["access_token"]))
    assert res.status_code == 200
    assert "access_token=" not in ";".join(res.headers.get_list("set-cookie"))

    assert (await ac_client.get("/me", headers=_bearer(first["access_token"]))).status_code == 401
    assert (await ac_client.get("/me", headers=_bearer(second["access_token"]))).status_code == 200


@pytest.mark.asyncio
async def test_logout_unknown_operation_is_invalid_input(ac_client, outbox, app):
    tokens = await _signed_up(ac_client, outbox, app)
    res = await ac_client.post("/logout", json={"operation": "everything"}, headers=_bearer(tokens["access_token"]))
    _assert_envelope(res, 400, "invalid_input")
    assert "operation" in res.json()["error"]["fields"]


@pytest.mark.asyncio
async def test_request_id_is_echoed(ac_client):
    res = await ac_client.get("/health", headers={"X-Request-ID": "req-123"})
    assert res.headers["X-Request-ID"] == "req-123"

    generated = await ac_client.get("/health")
    assert generated.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_on_rejected_request(ac_client):
    res = await ac_client.get("/me", headers={"X-Request-ID": "req-401"})
    assert res.status_code == 401
    assert res.headers["X-Request-ID"] == "req-401"
