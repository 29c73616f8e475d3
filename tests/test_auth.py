"""
Tests for authentication endpoints (signup, login, logout, password change).

These tests verify:
  - Successful signup creates a funded account and returns a token
  - Duplicate usernames and emails are rejected (409 Conflict)
  - The reserve account's username can never be registered
  - Successful login returns a working token
  - Wrong password and unknown username fail identically (anti-enumeration)
  - The reserve account cannot log in
  - Logout and password changes revoke tokens server-side
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from conftest import ONBOARDING_CREDIT_CENTS, RESERVE_USERNAME, signup_member
from bank_ledger.models.session import Session
from bank_ledger.services import auth_service


# ---------------------------------------------------------------------------
# Signup Tests
# ---------------------------------------------------------------------------

class TestSignup:
    """Tests for POST /auth/signup."""

    async def test_signup_success(self, client):
        """A valid signup returns 201 with the account, its number, and a token."""
        response = await client.post(
            "/auth/signup",
            json={
                "username": "jane_doe",
                "email": "jane@example.com",
                "password": "StrongPass99!",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["username"] == "jane_doe"
        assert data["email"] == "jane@example.com"
        assert len(data["account_number"]) == 10
        assert data["account_number"].isdigit()
        assert "token" in data
        assert data["token_type"] == "bearer"

    async def test_signup_grants_onboarding_credit(self, client):
        """Every new account starts with the onboarding credit as a deposit."""
        member = await signup_member(client, "funded")

        balance = await client.get("/account/balance", headers=member.headers)
        assert balance.json()["balance_cents"] == ONBOARDING_CREDIT_CENTS

        history = await client.get("/account/transactions", headers=member.headers)
        transactions = history.json()
        assert len(transactions) == 1
        assert transactions[0]["type"] == "deposit"
        assert transactions[0]["amount_cents"] == ONBOARDING_CREDIT_CENTS
        assert transactions[0]["from_username"] == RESERVE_USERNAME
        assert transactions[0]["description"] == "Onboarding credit"

    async def test_signup_duplicate_username(self, client):
        """Signing up with a taken username returns 409."""
        await signup_member(client, "taken")
        response = await client.post(
            "/auth/signup",
            json={"username": "taken", "email": "other@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "duplicate_username"

    async def test_signup_duplicate_email(self, client):
        """Signing up with an already-registered email returns 409."""
        await client.post(
            "/auth/signup",
            json={"username": "first", "email": "dup@example.com", "password": "StrongPass99!"},
        )
        response = await client.post(
            "/auth/signup",
            json={"username": "second", "email": "dup@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 409
        assert "already registered" in response.json()["detail"]

    async def test_signup_reserved_username(self, client):
        """The reserve account's username is refused whatever its case."""
        for username in (RESERVE_USERNAME, RESERVE_USERNAME.lower(), RESERVE_USERNAME.upper()):
            response = await client.post(
                "/auth/signup",
                json={
                    "username": username,
                    "email": f"{username}@example.com",
                    "password": "StrongPass99!",
                },
            )
            assert response.status_code == 409, username
            assert response.json()["error_type"] == "reserved_identity"

    async def test_signup_short_password(self, client):
        """Passwords shorter than 8 characters are rejected."""
        response = await client.post(
            "/auth/signup",
            json={"username": "shorty", "email": "short@example.com", "password": "short"},
        )
        assert response.status_code == 422

    async def test_signup_invalid_username(self, client):
        """Usernames are 3-20 letters, digits and underscores."""
        for username in ("ab", "a" * 21, "has space", "dash-name"):
            response = await client.post(
                "/auth/signup",
                json={"username": username, "email": "x@example.com", "password": "StrongPass99!"},
            )
            assert response.status_code == 422, username

    async def test_signup_invalid_email(self, client):
        response = await client.post(
            "/auth/signup",
            json={"username": "bademail", "email": "not-an-email", "password": "StrongPass99!"},
        )
        assert response.status_code == 422

    async def test_failed_signup_leaves_no_account(self, client):
        """A refused signup consumes neither the username nor the email."""
        await signup_member(client, "original")
        refused = await client.post(
            "/auth/signup",
            json={"username": "original", "email": "new@example.com", "password": "StrongPass99!"},
        )
        assert refused.status_code == 409

        retry = await client.post(
            "/auth/signup",
            json={"username": "newcomer", "email": "new@example.com", "password": "StrongPass99!"},
        )
        assert retry.status_code == 201


# ---------------------------------------------------------------------------
# Login Tests
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success(self, client):
        member = await signup_member(client, "loginuser")
        response = await client.post(
            "/auth/login",
            json={"username": "loginuser", "password": member.password},
        )
        assert response.status_code == 200
        token = response.json()["token"]

        me = await client.get("/account", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "loginuser"

    async def test_login_wrong_password(self, client):
        await signup_member(client, "wrongpw")
        response = await client.post(
            "/auth/login",
            json={"username": "wrongpw", "password": "WrongPassword!"},
        )
        assert response.status_code == 401

    async def test_login_unknown_user_same_error(self, client):
        """Unknown usernames get exactly the same error as wrong passwords."""
        await signup_member(client, "realuser")
        wrong_password = await client.post(
            "/auth/login",
            json={"username": "realuser", "password": "WrongPassword!"},
        )
        unknown_user = await client.post(
            "/auth/login",
            json={"username": "ghost", "password": "WrongPassword!"},
        )
        assert unknown_user.status_code == 401
        assert unknown_user.json() == wrong_password.json()

    async def test_reserve_cannot_log_in(self, client):
        response = await client.post(
            "/auth/login",
            json={"username": RESERVE_USERNAME, "password": "anything-at-all"},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Token / session Tests
# ---------------------------------------------------------------------------

class TestSessions:
    """Tests for token validation, logout and password changes."""

    async def test_no_token(self, client):
        response = await client.get("/account")
        assert response.status_code == 401

    async def test_garbage_token(self, client):
        response = await client.get(
            "/account", headers={"Authorization": "Bearer not-a-real-token"}
        )
        assert response.status_code == 401

    async def test_logout_revokes_token(self, client):
        member = await signup_member(client, "leaver")

        response = await client.post("/auth/logout", headers=member.headers)
        assert response.status_code == 200

        after = await client.get("/account", headers=member.headers)
        assert after.status_code == 401

    async def test_logout_keeps_other_sessions(self, client):
        """Logging out one token leaves the account's other sessions alive."""
        member = await signup_member(client, "twodevices")
        login = await client.post(
            "/auth/login",
            json={"username": member.username, "password": member.password},
        )
        other_headers = {"Authorization": f"Bearer {login.json()['token']}"}

        await client.post("/auth/logout", headers=member.headers)

        assert (await client.get("/account", headers=member.headers)).status_code == 401
        assert (await client.get("/account", headers=other_headers)).status_code == 200

    async def test_change_password(self, client):
        """A password change revokes every session; the new password works."""
        member = await signup_member(client, "changer")
        response = await client.post(
            "/auth/change-password",
            headers=member.headers,
            json={
                "current_password": member.password,
                "new_password": "BrandNewPass42!",
                "confirm_new_password": "BrandNewPass42!",
            },
        )
        assert response.status_code == 200

        assert (await client.get("/account", headers=member.headers)).status_code == 401

        old = await client.post(
            "/auth/login", json={"username": "changer", "password": member.password}
        )
        assert old.status_code == 401
        new = await client.post(
            "/auth/login", json={"username": "changer", "password": "BrandNewPass42!"}
        )
        assert new.status_code == 200

    async def test_change_password_wrong_current(self, client):
        member = await signup_member(client, "forgetful")
        response = await client.post(
            "/auth/change-password",
            headers=member.headers,
            json={
                "current_password": "NotMyPassword!",
                "new_password": "BrandNewPass42!",
                "confirm_new_password": "BrandNewPass42!",
            },
        )
        assert response.status_code == 422
        assert (await client.get("/account", headers=member.headers)).status_code == 200

    async def test_change_password_mismatched_confirmation(self, client):
        member = await signup_member(client, "typo")
        response = await client.post(
            "/auth/change-password",
            headers=member.headers,
            json={
                "current_password": member.password,
                "new_password": "BrandNewPass42!",
                "confirm_new_password": "BrandNewPass43!",
            },
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Session housekeeping
# ---------------------------------------------------------------------------

class TestSessionPruning:
    """Opening a session deletes the account's expired sessions."""

    async def test_login_prunes_expired_sessions(self, db_session, ledger, reserve):
        account, _ = await auth_service.signup(
            db_session, ledger, "regular", "regular@example.com", "SecurePass123!"
        )
        other, _ = await auth_service.signup(
            db_session, ledger, "other", "other@example.com", "SecurePass123!"
        )
        account_id, other_id = account.id, other.id

        past = datetime.now(timezone.utc) - timedelta(hours=1)
        db_session.add_all([
            Session(account_id=account_id, token_id="stale-1", expires_at=past),
            Session(account_id=account_id, token_id="stale-2", expires_at=past),
            Session(account_id=other_id, token_id="stale-other", expires_at=past),
        ])
        await db_session.commit()

        await auth_service.login(db_session, "regular", "SecurePass123!")

        result = await db_session.execute(
            select(Session.token_id).where(Session.account_id == account_id)
        )
        remaining = set(result.scalars().all())
        # The signup session and the new login session are still live
        assert len(remaining) == 2
        assert not remaining & {"stale-1", "stale-2"}

        # Other accounts' sessions are left alone
        result = await db_session.execute(
            select(Session.token_id).where(Session.account_id == other_id)
        )
        assert "stale-other" in set(result.scalars().all())
