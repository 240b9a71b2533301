"""
Login flow over HTTP:
1. Register and log in without 2FA
2. Log in with codes sent by SMS / email
3. Enroll an authenticator app, log in with it and disable 2FA again
4. The code step only works after the password step
"""

import pyotp
import pytest

from api import anti_abuse
from api.auth.service import AuthOrchestrator

PASSWORD = "Password123"


async def register(client, username="hannibal"):
    response = await client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]["access_token"]


async def login(client, username="hannibal", password=PASSWORD):
    return await client.post("/api/auth/login", json={"username": username, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def other_code(code):
    return str((int(code) + 1) % 1000000).zfill(6)


@pytest.mark.asyncio
async def test_login_without_two_factor(async_client):
    await register(async_client)

    response = await login(async_client)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["requires_two_factor"] is False
    assert data["token_type"] == "bearer"
    assert data["access_token"]


@pytest.mark.asyncio
async def test_duplicate_registration(async_client):
    await register(async_client)
    response = await async_client.post(
        "/api/auth/register",
        json={"username": "hannibal", "email": "other@example.com", "password": PASSWORD}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_wrong_password_is_rejected_and_counted(async_client, fake_redis):
    await register(async_client)

    response = await login(async_client, password="wrong-password")
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert sum(len(values) for key, values in fake_redis.lists.items() if key.startswith("auth:failed_ip:")) == 1


async def challenge_for(client, username="hannibal"):
    response = await login(client, username)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["requires_two_factor"] is True
    assert "access_token" not in data
    return data["challenge_token"]


async def verify(client, challenge, code):
    return await client.post("/api/auth/verify-2fa", json={"challenge_token": challenge, "code": code})


async def enroll_authenticator(client, token):
    response = await client.post("/api/auth/2fa/generate", headers=bearer(token), json={"method": "totp"})
    assert response.status_code == 200
    totp = pyotp.TOTP(response.json()["data"]["secret"])
    response = await client.post("/api/auth/2fa/enable", headers=bearer(token), json={"code": totp.now()})
    assert response.status_code == 200
    return totp


@pytest.mark.asyncio
async def test_sms_code_login(async_client, notifier):
    token = await register(async_client)
    response = await async_client.post("/api/auth/2fa/enable-sms", headers=bearer(token))
    assert response.status_code == 200

    challenge = await challenge_for(async_client)
    code = notifier.last_code_for("hannibal")
    assert code is not None

    response = await verify(async_client, challenge, other_code(code))
    assert response.status_code == 401
    assert response.json()["data"]["reason"] == "code_mismatch"

    response = await verify(async_client, challenge, code)
    assert response.status_code == 200
    assert response.json()["data"]["access_token"]

    response = await verify(async_client, challenge, code)
    assert response.status_code == 401
    assert response.json()["data"]["reason"] == "code_already_used"


@pytest.mark.asyncio
async def test_resend_code(async_client, notifier):
    token = await register(async_client)

    response = await async_client.post("/api/auth/resend-2fa", json={})
    assert response.status_code == 401

    await async_client.post("/api/auth/2fa/enable-sms", headers=bearer(token))
    challenge = await challenge_for(async_client)
    response = await async_client.post("/api/auth/resend-2fa", json={"challenge_token": challenge})
    assert response.status_code == 200
    # development servers echo the code
    assert response.json()["data"]["code"] == notifier.last_code_for("hannibal")
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_code_alone_does_not_log_in(async_client):
    token = await register(async_client)
    totp = await enroll_authenticator(async_client, token)

    response = await async_client.post("/api/auth/verify-2fa", json={"code": totp.now()})
    assert response.status_code == 401
    assert response.json()["data"]["reason"] == "invalid_challenge"
    assert "access_token" not in response.json()["data"]

    response = await verify(async_client, "not-a-jwt", totp.now())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_access_and_challenge_tokens_are_not_interchangeable(async_client):
    token = await register(async_client)
    totp = await enroll_authenticator(async_client, token)

    response = await verify(async_client, token, totp.now())
    assert response.status_code == 401
    assert response.json()["data"]["reason"] == "invalid_challenge"

    challenge = await challenge_for(async_client)
    response = await async_client.get("/api/auth/2fa/status", headers=bearer(challenge))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_authenticator_app_flow(async_client, notifier):
    token = await register(async_client)

    response = await async_client.post("/api/auth/2fa/enable", headers=bearer(token), json={"code": "123456"})
    assert response.status_code == 400
    assert response.json()["data"]["action"] == "generate_secret"

    response = await async_client.post("/api/auth/2fa/generate", headers=bearer(token), json={"method": "totp"})
    assert response.status_code == 200
    enrollment = response.json()["data"]
    assert enrollment["uri"] == enrollment["totp_uri"]
    assert enrollment["totp_uri"].endswith("&algorithm=SHA1&digits=6&period=30")
    totp = pyotp.TOTP(enrollment["secret"])

    response = await async_client.post("/api/auth/2fa/enable", headers=bearer(token), json={"code": totp.now()})
    assert response.status_code == 200
    assert response.json()["data"] == {"two_factor_enabled": True, "method": "totp"}

    response = await async_client.get("/api/auth/2fa/status", headers=bearer(token))
    assert response.json()["data"] == {
        "two_factor_enabled": True,
        "has_secret": True,
        "method": "totp",
        "has_active_code": False,
    }

    challenge = await challenge_for(async_client)
    assert notifier.sent == []

    response = await verify(async_client, challenge, totp.now())
    assert response.status_code == 200
    token = response.json()["data"]["access_token"]

    response = await async_client.post("/api/auth/2fa/disable", headers=bearer(token), json={"code": totp.now()})
    assert response.status_code == 200

    response = await async_client.get("/api/auth/2fa/status", headers=bearer(token))
    assert response.json()["data"]["two_factor_enabled"] is False
    assert response.json()["data"]["has_secret"] is False

    response = await login(async_client)
    assert response.json()["data"]["requires_two_factor"] is False


@pytest.mark.asyncio
async def test_sms_users_cannot_switch_to_an_app_without_disabling(async_client, notifier):
    token = await register(async_client)
    await async_client.post("/api/auth/2fa/enable-sms", headers=bearer(token))

    response = await async_client.post("/api/auth/2fa/generate", headers=bearer(token), json={})
    assert response.status_code == 400

    response = await async_client.get("/api/auth/2fa/status", headers=bearer(token))
    assert response.json()["data"]["has_secret"] is False

    await challenge_for(async_client)
    assert notifier.last_code_for("hannibal") is not None


@pytest.mark.asyncio
async def test_secret_in_use_cannot_be_replaced(async_client):
    token = await register(async_client)
    response = await async_client.post("/api/auth/2fa/generate", headers=bearer(token), json={})
    secret = response.json()["data"]["secret"]
    await async_client.post("/api/auth/2fa/enable", headers=bearer(token), json={"code": pyotp.TOTP(secret).now()})

    response = await async_client.post("/api/auth/2fa/generate", headers=bearer(token), json={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_protected_routes_require_token(async_client):
    response = await async_client.get("/api/auth/2fa/status")
    assert response.status_code == 401

    response = await async_client.get("/api/auth/2fa/status", headers=bearer("not-a-jwt"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_repeated_failures_ban_the_ip(async_client, monkeypatch):
    monkeypatch.setattr(anti_abuse, "MAX_FAILED_ATTEMPTS", 2)
    await register(async_client)

    await login(async_client, password="wrong-password")
    await login(async_client, password="wrong-password")

    response = await login(async_client)
    assert response.status_code == 403
    assert "Retry-After" in response.headers


@pytest.mark.asyncio
async def test_metrics_are_admin_only(async_client, two_factor):
    await register(async_client, "voter1")
    await AuthOrchestrator(two_factor).register("root", "root@example.com", PASSWORD, ["admin"])

    voter_token = (await login(async_client, "voter1")).json()["data"]["access_token"]
    response = await async_client.get("/api/metrics", headers=bearer(voter_token))
    assert response.status_code == 403

    admin_token = (await login(async_client, "root")).json()["data"]["access_token"]
    response = await async_client.get("/api/metrics", headers=bearer(admin_token))
    assert response.status_code == 200
    assert "two_factor_verifications_total" in response.text
