"""
Authentication Tests

Registration, email verification, two-step login and token refresh.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from spare_finance.api.config import settings
from spare_finance.api.db.models import Household, OTPCode, Subscription, utcnow


REGISTER_BODY = {
    "email": "new.user@spare.finance",
    "password": "SecurePass123!",
    "first_name": "New",
    "last_name": "User",
}


def other_code(code: str) -> str:
    return f"{(int(code) + 1) % 10**6:06d}"


# ==================== Registration ====================


@pytest.mark.asyncio
async def test_register_creates_unverified_user_with_free_plan(
    async_client: AsyncClient, db_session, email_sender, helpers
):
    """Registration sends a signup code and sets up household and plan."""
    response = await async_client.post("/api/v1/auth/register", json=REGISTER_BODY)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "new.user@spare.finance"
    assert data["is_verified"] is False

    assert email_sender.sent[-1].to == "new.user@spare.finance"
    assert len(helpers.last_code(email_sender)) == 6

    subs = (await db_session.execute(select(Subscription))).scalars().all()
    assert [s.plan_id for s in subs] == ["free"]
    households = (await db_session.execute(select(Household))).scalars().all()
    assert len(households) == 1
    assert households[0].type == "personal"


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: AsyncClient, test_user):
    response = await async_client.post(
        "/api/v1/auth/register",
        json={**REGISTER_BODY, "email": test_user.email},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
async def test_register_rejects_short_password(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/auth/register",
        json={**REGISTER_BODY, "password": "short"},
    )

    assert response.status_code == 422


# ==================== Verification and Login ====================


@pytest.mark.asyncio
async def test_unverified_user_cannot_login(async_client: AsyncClient):
    await async_client.post("/api/v1/auth/register", json=REGISTER_BODY)

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": REGISTER_BODY["email"], "password": REGISTER_BODY["password"]},
    )

    assert response.status_code == 403
    assert "verify your email" in response.json()["detail"]


@pytest.mark.asyncio
async def test_signup_verification_then_login(
    async_client: AsyncClient, email_sender, helpers
):
    """Full flow: register, verify signup code, login, verify login code."""
    await async_client.post("/api/v1/auth/register", json=REGISTER_BODY)
    signup_code = helpers.last_code(email_sender)

    verified = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": REGISTER_BODY["email"], "code": signup_code, "type": "signup"},
    )
    assert verified.status_code == 200
    assert verified.json()["user"]["is_verified"] is True

    login = await async_client.post(
        "/api/v1/auth/login",
        json={"email": REGISTER_BODY["email"], "password": REGISTER_BODY["password"]},
    )
    assert login.status_code == 200
    assert login.json()["otp_required"] is True

    login_code = helpers.last_code(email_sender)
    tokens = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": REGISTER_BODY["email"], "code": login_code, "type": "login"},
    )
    assert tokens.status_code == 200
    data = tokens.json()
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["expires_in"] > 0

    me = await async_client.get(
        "/api/v1/users/me",
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    assert me.status_code == 200
    assert me.json()["email"] == REGISTER_BODY["email"]


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient, test_user):
    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "WrongPassword1!"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_blocked_user(async_client: AsyncClient, db_session, test_user):
    test_user.is_blocked = True
    await db_session.commit()

    response = await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_wrong_code_is_rejected_and_code_is_single_use(
    async_client: AsyncClient, test_user, email_sender, helpers
):
    await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )
    code = helpers.last_code(email_sender)

    wrong = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": other_code(code), "type": "login"},
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Invalid code"

    ok = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": code, "type": "login"},
    )
    assert ok.status_code == 200

    reused = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": code, "type": "login"},
    )
    assert reused.status_code == 400


@pytest.mark.asyncio
async def test_resend_invalidates_previous_code(
    async_client: AsyncClient, test_user, email_sender, helpers
):
    await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )
    first = helpers.last_code(email_sender)

    resend = await async_client.post(
        "/api/v1/auth/resend-otp", json={"email": test_user.email, "type": "login"}
    )
    assert resend.status_code == 200
    second = helpers.last_code(email_sender)

    if first != second:
        stale = await async_client.post(
            "/api/v1/auth/verify-otp",
            json={"email": test_user.email, "code": first, "type": "login"},
        )
        assert stale.status_code == 400

    fresh = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": second, "type": "login"},
    )
    assert fresh.status_code == 200


@pytest.mark.asyncio
async def test_resend_unknown_email_still_succeeds(async_client: AsyncClient, email_sender):
    response = await async_client.post(
        "/api/v1/auth/resend-otp", json={"email": "ghost@spare.finance", "type": "login"}
    )

    assert response.status_code == 200
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_expired_code_is_refused(
    async_client: AsyncClient, db_session, test_user, email_sender, helpers
):
    await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )
    code = helpers.last_code(email_sender)
    otp = (
        await db_session.execute(select(OTPCode).where(OTPCode.consumed_at.is_(None)))
    ).scalar_one()
    otp.expires_at = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    response = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": code, "type": "login"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Code has expired. Request a new one"


@pytest.mark.asyncio
async def test_code_is_locked_after_max_attempts(
    async_client: AsyncClient, test_user, email_sender, helpers
):
    await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )
    code = helpers.last_code(email_sender)

    for _ in range(settings.OTP_MAX_ATTEMPTS):
        wrong = await async_client.post(
            "/api/v1/auth/verify-otp",
            json={"email": test_user.email, "code": other_code(code), "type": "login"},
        )
        assert wrong.json()["detail"] == "Invalid code"

    locked = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": test_user.email, "code": code, "type": "login"},
    )

    assert locked.status_code == 400
    assert locked.json()["detail"] == "Too many attempts. Request a new code"


# ==================== Tokens ====================


@pytest.mark.asyncio
async def test_refresh_token(async_client: AsyncClient, test_user, email_sender, helpers):
    await async_client.post(
        "/api/v1/auth/login",
        json={"email": test_user.email, "password": "TestPassword123!"},
    )
    tokens = (
        await async_client.post(
            "/api/v1/auth/verify-otp",
            json={
                "email": test_user.email,
                "code": helpers.last_code(email_sender),
                "type": "login",
            },
        )
    ).json()

    response = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert response.status_code == 200
    assert response.json()["access_token"]

    # access tokens are not accepted as refresh tokens
    rejected = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]}
    )
    assert rejected.status_code == 401


@pytest.mark.asyncio
async def test_protected_endpoint_requires_token(async_client: AsyncClient):
    response = await async_client.get("/api/v1/users/me")
    assert response.status_code in (401, 403)

    response = await async_client.get(
        "/api/v1/users/me", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_blocked_user_token_is_refused(
    async_client: AsyncClient, db_session, test_user, auth_headers
):
    test_user.is_blocked = True
    await db_session.commit()

    response = await async_client.get("/api/v1/users/me", headers=auth_headers)

    assert response.status_code == 403


# ==================== Profile ====================


@pytest.mark.asyncio
async def test_update_profile_and_change_password(
    async_client: AsyncClient, auth_headers
):
    updated = await async_client.patch(
        "/api/v1/users/me", headers=auth_headers, json={"first_name": "Renamed"}
    )
    assert updated.status_code == 200
    assert updated.json()["first_name"] == "Renamed"

    wrong = await async_client.post(
        "/api/v1/users/me/password",
        headers=auth_headers,
        json={"current_password": "nope-nope", "new_password": "BrandNew123!"},
    )
    assert wrong.status_code == 400

    ok = await async_client.post(
        "/api/v1/users/me/password",
        headers=auth_headers,
        json={"current_password": "TestPassword123!", "new_password": "BrandNew123!"},
    )
    assert ok.status_code == 200


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient):
    response = await async_client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
