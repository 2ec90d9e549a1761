import pytest

from quart_webauthn_mfa.sessions import InMemorySessionStore


@pytest.mark.asyncio
async def test_me_requires_both_factors(client, helpers):
    response = await client.get("/api/me")
    assert response.status_code == 401

    await helpers.login(client)
    response = await client.get("/api/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_success(client):
    response = await client.post(
        "/api/auth/login",
        json={"username": "alice", "password": "correct-password"},
    )
    assert response.status_code == 200
    assert await response.get_json() == {"success": True}

    status = await (await client.get("/api/auth/session")).get_json()
    assert status == {
        "stage": "first_factor_verified",
        "username": "alice",
        "hasDevice": False,
    }


@pytest.mark.asyncio
async def test_login_with_wrong_password(client):
    response = await client.post(
        "/api/auth/login", json={"username": "alice", "password": "nope"}
    )
    assert response.status_code == 401
    assert await response.get_json() == {"error": "Invalid credentials"}

    status = await (await client.get("/api/auth/session")).get_json()
    assert status["stage"] == "anonymous"
    assert status["username"] is None


@pytest.mark.asyncio
async def test_login_with_missing_body(client):
    response = await client.post("/api/auth/login")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_rotates_session_token(client, app, helpers):
    store = app.extensions["webauthn_mfa"].session_store

    await client.get("/api/auth/webauthn/generate-challenge")
    assert len(store) == 1
    before = set(store._states)

    await helpers.login(client)
    assert len(store) == 1
    assert set(store._states).isdisjoint(before)


@pytest.mark.asyncio
async def test_logout_returns_to_anonymous(client, app, helpers):
    await helpers.login(client)

    response = await client.post("/api/auth/logout")
    assert response.status_code == 200
    assert await response.get_json() == {"success": True}
    assert len(app.extensions["webauthn_mfa"].session_store) == 0

    status = await (await client.get("/api/auth/session")).get_json()
    assert status["stage"] == "anonymous"


@pytest.mark.asyncio
async def test_session_reports_registered_device(client, authenticator, helpers):
    await helpers.register(client, authenticator)
    await helpers.login(client)

    status = await (await client.get("/api/auth/session")).get_json()
    assert status["hasDevice"] is True


@pytest.mark.asyncio
async def test_unexpected_errors_become_500(client, app, monkeypatch):
    coordinator = app.extensions["webauthn_mfa"].coordinator

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(coordinator, "begin_authentication", explode)

    response = await client.get("/api/auth/webauthn/generate-challenge")
    assert response.status_code == 500
    assert await response.get_json() == {"error": "Internal server error"}


@pytest.mark.asyncio
async def test_first_factor_required_guard(app, client, helpers):
    from quart_webauthn_mfa import first_factor_required

    @app.get("/half-way")
    @first_factor_required
    async def half_way():
        return "ok"

    assert (await client.get("/half-way")).status_code == 401
    await helpers.login(client)
    assert (await client.get("/half-way")).status_code == 200


@pytest.mark.asyncio
async def test_idle_anonymous_sessions_are_evicted(app):
    extension = app.extensions["webauthn_mfa"]
    assert extension.session_store.idle_timeout == app.config["WAN_SESSION_TIMEOUT"]

    now = [0.0]
    extension.session_store = InMemorySessionStore(
        idle_timeout=60, clock=lambda: now[0]
    )
    store = extension.session_store

    for _ in range(20):
        await app.test_client().get("/api/auth/webauthn/generate-challenge")
    assert len(store) == 20

    await app.test_client().get("/api/auth/session")
    assert len(store) == 20

    now[0] += 61
    await app.test_client().get("/api/auth/webauthn/generate-challenge")
    assert len(store) == 1


@pytest.mark.asyncio
async def test_spent_anonymous_session_is_not_kept(client, app):
    store = app.extensions["webauthn_mfa"].session_store

    await client.post("/api/auth/registration-options", json={"username": "alice"})
    assert len(store) == 1

    await client.post("/api/auth/verify-registration", json={"username": "alice"})
    assert len(store) == 0


@pytest.mark.asyncio
async def test_session_status_reads_async_datastores(
    client, app, authenticator, helpers, monkeypatch
):
    await helpers.register(client, authenticator)
    await helpers.login(client)

    datastore = app.extensions["webauthn_mfa"].datastore
    find_user, get_credential = datastore.find_user, datastore.get_credential

    async def find_user_async(username):
        return find_user(username)

    async def get_credential_async(user):
        return get_credential(user)

    monkeypatch.setattr(datastore, "find_user", find_user_async)
    monkeypatch.setattr(datastore, "get_credential", get_credential_async)

    status = await (await client.get("/api/auth/session")).get_json()
    assert status == {
        "stage": "first_factor_verified",
        "username": "alice",
        "hasDevice": True,
    }
