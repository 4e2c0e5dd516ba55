"""
Registration, login, logout and account maintenance over HTTP.
"""

from unittest.mock import patch

import pytest
from pymongo.errors import OperationFailure

from staroracle.database import RESEARCHERS, SESSIONS, USER_PREFERENCES, USERS, UnitOfWork
from helpers import TEST_PASSWORD, collection_counts


@pytest.mark.asyncio
async def test_register_observer_creates_user_and_preferences(client, db, register):
    body = await register("vera@staroracle.org")

    assert body["success"] is True
    assert body["user"]["role"] == "observer"
    assert body["user"]["verified"] is False
    assert body["verification_link"].startswith("/api/auth/verify-email?token=")
    assert await collection_counts(db) == {USERS: 1, RESEARCHERS: 0, USER_PREFERENCES: 1, SESSIONS: 0}

    user = await db[USERS].find_one({"email": "vera@staroracle.org"})
    assert user["password_hash"] != TEST_PASSWORD
    prefs = await db[USER_PREFERENCES].find_one({"user_id": user["_id"]})
    assert prefs["email_alerts"] is True
    assert prefs["sms_alerts"] is False
    assert prefs["push_notifications"] is True


@pytest.mark.asyncio
async def test_register_researcher_generates_research_id(client, db, register):
    body = await register("kai@staroracle.org", role="researcher", organization="Mauna Kea")

    research_id = body["user"]["research_id"]
    assert research_id.startswith("RSR-")
    assert len(research_id) == 12
    profile = await db[RESEARCHERS].find_one({"research_id": research_id})
    assert profile["organization"] == "Mauna Kea"


@pytest.mark.asyncio
async def test_register_researcher_keeps_supplied_research_id(client, register):
    body = await register("kai@staroracle.org", role="researcher", research_id="ORG-7781")

    assert body["user"]["research_id"] == "ORG-7781"


@pytest.mark.asyncio
async def test_duplicate_email_conflicts_and_writes_nothing(client, db, register):
    await register("vera@staroracle.org")
    before = await collection_counts(db)

    response = await client.post("/api/auth/register", json={
        "name": "Someone Else",
        "email": "vera@staroracle.org",
        "password": "Different99",
        "role": "researcher",
    })

    assert response.status_code == 409
    assert await collection_counts(db) == before


@pytest.mark.asyncio
async def test_duplicate_research_id_conflicts(client, db, register):
    await register("kai@staroracle.org", role="researcher", research_id="ORG-1")
    before = await collection_counts(db)

    response = await client.post("/api/auth/register", json={
        "name": "Other", "email": "other@staroracle.org", "password": TEST_PASSWORD,
        "role": "researcher", "research_id": "ORG-1",
    })

    assert response.status_code == 409
    assert await collection_counts(db) == before


@pytest.mark.asyncio
@pytest.mark.parametrize("password", ["Short1", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
async def test_weak_passwords_are_rejected(client, db, password):
    response = await client.post("/api/auth/register", json={
        "name": "Vera", "email": "vera@staroracle.org", "password": password, "role": "observer",
    })

    assert response.status_code == 400
    assert await db[USERS].count_documents({}) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"name": "Vera", "email": "not-an-email", "password": TEST_PASSWORD, "role": "observer"},
    {"name": "Vera", "email": "vera@staroracle.org", "password": TEST_PASSWORD, "role": "admin"},
    {"name": "   ", "email": "vera@staroracle.org", "password": TEST_PASSWORD, "role": "observer"},
    {"email": "vera@staroracle.org", "password": TEST_PASSWORD, "role": "observer"},
])
async def test_invalid_registration_is_a_400(client, db, body):
    response = await client.post("/api/auth/register", json=body)

    assert response.status_code == 400
    assert await db[USERS].count_documents({}) == 0


@pytest.mark.asyncio
async def test_failed_step_rolls_back_the_whole_registration(client, db):
    original_insert = UnitOfWork.insert

    async def failing_insert(self, collection, document):
        if collection == USER_PREFERENCES:
            raise OperationFailure("disk full")
        return await original_insert(self, collection, document)

    with patch.object(UnitOfWork, "insert", failing_insert):
        response = await client.post("/api/auth/register", json={
            "name": "Kai", "email": "kai@staroracle.org", "password": TEST_PASSWORD, "role": "researcher",
        })

    assert response.status_code == 500
    assert "disk full" not in response.text
    assert await collection_counts(db) == {USERS: 0, RESEARCHERS: 0, USER_PREFERENCES: 0, SESSIONS: 0}


@pytest.mark.asyncio
async def test_login_issues_token_and_session(client, db, register):
    await register("vera@staroracle.org")

    response = await client.post(
        "/api/auth/login",
        json={"email": "vera@staroracle.org", "password": TEST_PASSWORD},
        headers={"User-Agent": "telescope/1.0"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token"].count(".") == 2
    assert body["expires_in"] == 86400
    assert body["user"]["email"] == "vera@staroracle.org"
    session = await db[SESSIONS].find_one({})
    assert session["user_agent"] == "telescope/1.0"


@pytest.mark.asyncio
@pytest.mark.parametrize("email, password", [
    ("vera@staroracle.org", "WrongPass1"),
    ("nobody@staroracle.org", TEST_PASSWORD),
])
async def test_login_with_bad_credentials(client, db, register, email, password):
    await register("vera@staroracle.org")

    response = await client.post("/api/auth/login", json={"email": email, "password": password})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"
    assert await db[SESSIONS].count_documents({}) == 0


@pytest.mark.asyncio
async def test_concurrent_logins_each_get_a_session(client, db, register):
    await register("vera@staroracle.org")
    credentials = {"email": "vera@staroracle.org", "password": TEST_PASSWORD}

    first = (await client.post("/api/auth/login", json=credentials)).json()["token"]
    second = (await client.post("/api/auth/login", json=credentials)).json()["token"]

    assert await db[SESSIONS].count_documents({}) == 2
    for token in (first, second):
        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_me_requires_authentication(client):
    response = await client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_logout_revokes_still_valid_token(client, codec, login):
    token, headers, _ = await login("vera@staroracle.org")
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 200

    response = await client.post("/api/auth/logout", headers=headers)

    assert response.json()["message"] == "Logged out successfully"
    # The credential itself is still genuine and unexpired
    assert codec.verify(token)["email"] == "vera@staroracle.org"
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401

    again = await client.post("/api/auth/logout", headers=headers)
    assert again.json()["message"] == "Session already ended"


@pytest.mark.asyncio
async def test_logout_without_token_or_with_garbage(client):
    assert (await client.post("/api/auth/logout")).status_code == 400
    response = await client.post("/api/auth/logout", headers={"Authorization": "Bearer a.b.c"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_all_ends_every_session(client, db, login):
    _, headers, _ = await login("vera@staroracle.org")
    second = await client.post("/api/auth/login", json={"email": "vera@staroracle.org", "password": TEST_PASSWORD})
    other_headers = {"Authorization": f"Bearer {second.json()['token']}"}

    response = await client.post("/api/auth/logout-all", headers=headers)

    assert response.status_code == 200
    assert await db[SESSIONS].count_documents({}) == 0
    assert (await client.get("/api/auth/me", headers=other_headers)).status_code == 401


@pytest.mark.asyncio
async def test_researcher_login_checks_research_id(client, register):
    registered = await register("kai@staroracle.org", role="researcher")
    research_id = registered["user"]["research_id"]

    wrong = await client.post("/api/auth/login/researcher", json={
        "email": "kai@staroracle.org", "password": TEST_PASSWORD, "research_id": "RSR-00000000",
    })
    right = await client.post("/api/auth/login/researcher", json={
        "email": "kai@staroracle.org", "password": TEST_PASSWORD, "research_id": research_id,
    })

    assert wrong.status_code == 401
    assert right.status_code == 200
    assert right.json()["user"]["researcher"]["research_id"] == research_id


@pytest.mark.asyncio
async def test_researcher_login_refuses_observers(client, register):
    await register("vera@staroracle.org")

    response = await client.post("/api/auth/login/researcher", json={
        "email": "vera@staroracle.org", "password": TEST_PASSWORD, "research_id": "RSR-1",
    })

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_email_once(client, db, register):
    body = await register("vera@staroracle.org")
    link = body["verification_link"]

    first = await client.get(link)
    second = await client.get(link)

    assert first.status_code == 200
    assert second.status_code == 404
    user = await db[USERS].find_one({"email": "vera@staroracle.org"})
    assert user["verified"] is True
    assert user["verification_token"] is None


@pytest.mark.asyncio
async def test_verify_email_requires_token(client):
    assert (await client.get("/api/auth/verify-email")).status_code == 400


@pytest.mark.asyncio
async def test_verify_email_by_post(client, db, register):
    body = await register("vera@staroracle.org")
    token = body["verification_link"].split("token=", 1)[1]

    response = await client.post("/api/auth/verify-email", json={"token": token})

    assert response.status_code == 200
    assert (await db[USERS].find_one({}))["verified"] is True


@pytest.mark.asyncio
async def test_password_change_revokes_sessions(client, login):
    _, headers, _ = await login("vera@staroracle.org")

    wrong = await client.post("/api/auth/password", headers=headers, json={
        "current_password": "Nope12345", "new_password": "Brighter77",
    })
    assert wrong.status_code == 401

    response = await client.post("/api/auth/password", headers=headers, json={
        "current_password": TEST_PASSWORD, "new_password": "Brighter77",
    })
    assert response.status_code == 200
    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401

    old = await client.post("/api/auth/login", json={"email": "vera@staroracle.org", "password": TEST_PASSWORD})
    new = await client.post("/api/auth/login", json={"email": "vera@staroracle.org", "password": "Brighter77"})
    assert old.status_code == 401
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_email_case_does_not_make_a_new_account(client, db, register):
    await register("vera@staroracle.org")

    response = await client.post("/api/auth/register", json={
        "name": "Vera Again", "email": "Vera@StarOracle.org", "password": TEST_PASSWORD, "role": "observer",
    })

    assert response.status_code == 409
    assert await db[USERS].count_documents({}) == 1


@pytest.mark.asyncio
async def test_login_ignores_email_case(client, register):
    await register("Vera@staroracle.org")

    response = await client.post("/api/auth/login", json={"email": "VERA@staroracle.org", "password": TEST_PASSWORD})

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "vera@staroracle.org"


@pytest.mark.asyncio
async def test_researcher_login_ignores_email_case(client, register):
    registered = await register("kai@staroracle.org", role="researcher")

    response = await client.post("/api/auth/login/researcher", json={
        "email": "KAI@staroracle.org", "password": TEST_PASSWORD,
        "research_id": registered["user"]["research_id"],
    })

    assert response.status_code == 200
