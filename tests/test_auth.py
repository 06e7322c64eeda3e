"""
Tests for authentication endpoints.

These tests verify:
  - Registration creates a STANDARD account, returns a JWT and sets the
    httpOnly token cookie
  - Duplicate email registration is rejected (400 duplicate_email)
  - Login returns a token; wrong password and unknown email produce the
    same 401 (anti-enumeration)
  - Five failed logins lock the account; only an admin unlock restores it
  - Logout clears the token cookie
  - The token cookie is accepted in place of the Authorization header
  - Password change, profile update, and the forgot/reset password flow
"""

import uuid

import pytest

from tests.conftest import STANDARD_USER, register_payload


def login_body(email: str = STANDARD_USER["email"], password: str = STANDARD_USER["password"]) -> dict:
    return {"email": email, "password": password}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegister:
    """Tests for POST /auth/register."""

    async def test_register_success(self, client):
        """A valid registration returns 201 with the account and a token."""
        response = await client.post(
            "/auth/register",
            json=register_payload("Jane Doe", "jane@example.com", "StrongPass99!"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["account"]["email"] == "jane@example.com"
        assert data["account"]["name"] == "Jane Doe"
        assert data["account"]["role"] == "standard"
        assert data["token_type"] == "bearer"
        assert data["token"].count(".") == 2

    async def test_register_never_exposes_password_hash(self, client):
        response = await client.post(
            "/auth/register",
            json=register_payload("Jane Doe", "jane@example.com", "StrongPass99!"),
        )
        body = response.text
        assert "password" not in body
        assert "argon2" not in body

    async def test_register_sets_token_cookie(self, client):
        response = await client.post(
            "/auth/register",
            json=register_payload("Jane Doe", "jane@example.com", "StrongPass99!"),
        )
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("token=")
        assert "httponly" in cookie
        assert f"max-age={30 * 24 * 60 * 60}" in cookie

    async def test_register_ignores_client_supplied_role(self, client):
        payload = register_payload("Mallory", "mallory@example.com", "StrongPass99!")
        payload["role"] = "administrator"
        response = await client.post("/auth/register", json=payload)
        assert response.status_code == 201
        assert response.json()["account"]["role"] == "standard"

    async def test_register_duplicate_email(self, client):
        """Registering an email already on file returns 400."""
        payload = register_payload("First", "duplicate@example.com", "StrongPass99!")
        assert (await client.post("/auth/register", json=payload)).status_code == 201

        payload["email"] = "DUPLICATE@example.com"
        response = await client.post("/auth/register", json=payload)
        assert response.status_code == 400
        assert response.json()["error_type"] == "duplicate_email"

    async def test_register_password_mismatch(self, client):
        payload = register_payload("Jane", "jane@example.com", "StrongPass99!")
        payload["password_confirm"] = "Different99!"
        response = await client.post("/auth/register", json=payload)
        assert response.status_code == 422
        assert response.json()["error_type"] == "validation_failed"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("password", "short"),
            ("email", "not-an-email"),
            ("name", ""),
            ("name", "   "),
            ("name", "x" * 51),
        ],
    )
    async def test_register_invalid_fields(self, client, field, value):
        payload = register_payload("Jane", "jane@example.com", "StrongPass99!")
        payload[field] = value
        if field == "password":
            payload["password_confirm"] = value
        response = await client.post("/auth/register", json=payload)
        assert response.status_code == 422

    async def test_register_strips_name(self, client):
        response = await client.post(
            "/auth/register",
            json=register_payload("  Jane Doe  ", "jane@example.com", "StrongPass99!"),
        )
        assert response.status_code == 201
        assert response.json()["account"]["name"] == "Jane Doe"

    async def test_register_missing_fields(self, client):
        response = await client.post("/auth/register", json={"email": "missing@example.com"})
        assert response.status_code == 422
        assert response.json()["errors"]


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success(self, authenticated_client):
        response = await authenticated_client.post("/auth/login", json=login_body())
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["account"]["last_successful_login"] is not None

    async def test_login_is_case_insensitive_on_email(self, authenticated_client):
        response = await authenticated_client.post(
            "/auth/login", json=login_body(email=STANDARD_USER["email"].upper())
        )
        assert response.status_code == 200

    async def test_login_wrong_password(self, authenticated_client):
        response = await authenticated_client.post(
            "/auth/login", json=login_body(password="WrongPassword!")
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "invalid_credentials"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_unknown_email_matches_wrong_password(self, authenticated_client):
        """Unknown email and wrong password must be indistinguishable."""
        wrong_password = await authenticated_client.post(
            "/auth/login", json=login_body(password="WrongPassword!")
        )
        unknown_email = await authenticated_client.post(
            "/auth/login", json=login_body(email="nobody@example.com")
        )
        assert unknown_email.status_code == wrong_password.status_code == 401
        assert unknown_email.json() == wrong_password.json()

    async def test_login_token_works_for_protected_endpoint(self, authenticated_client):
        response = await authenticated_client.post("/auth/login", json=login_body())
        token = response.json()["token"]

        authenticated_client.cookies.clear()
        me = await authenticated_client.get(
            "/auth/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert me.status_code == 200
        assert me.json()["email"] == STANDARD_USER["email"]

    async def test_logout_clears_cookie(self, authenticated_client):
        response = await authenticated_client.post("/auth/logout")
        assert response.status_code == 200
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("token=")
        assert "max-age=0" in cookie

    async def test_logout_accepts_get(self, client):
        response = await client.get("/auth/logout")
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out"


# ---------------------------------------------------------------------------
# Lockout over HTTP
# ---------------------------------------------------------------------------

class TestLockout:

    async def test_fifth_failure_locks_until_admin_unlock(self, client, admin_client):
        """
        Four wrong passwords are plain failures, the fifth locks the account,
        and even the right password is refused until an administrator
        unlocks it.
        """
        register = await client.post(
            "/auth/register",
            json=register_payload("Alice", "alice@example.com", "Secret1"),
        )
        alice_id = register.json()["account"]["id"]

        for _ in range(4):
            response = await client.post("/auth/login", json=login_body("alice@example.com", "nope"))
            assert response.status_code == 401
            assert response.json()["error_type"] == "invalid_credentials"

        response = await client.post("/auth/login", json=login_body("alice@example.com", "nope"))
        assert response.status_code == 403
        assert response.json()["error_type"] == "account_locked"

        response = await client.post("/auth/login", json=login_body("alice@example.com", "Secret1"))
        assert response.status_code == 403
        assert response.json()["error_type"] == "account_locked"

        unlock = await admin_client.put(f"/auth/unlock/{alice_id}")
        assert unlock.status_code == 200
        assert "alice@example.com" in unlock.json()["message"]

        response = await client.post("/auth/login", json=login_body("alice@example.com", "Secret1"))
        assert response.status_code == 200

    async def test_locked_account_token_is_refused(self, authenticated_client):
        """An already-issued token stops working once the account locks."""
        for _ in range(5):
            await authenticated_client.post("/auth/login", json=login_body(password="nope"))

        response = await authenticated_client.get("/auth/me")
        assert response.status_code == 403
        assert response.json()["error_type"] == "account_locked"

    async def test_status_reports_failed_attempts(self, authenticated_client):
        for _ in range(2):
            await authenticated_client.post("/auth/login", json=login_body(password="nope"))

        response = await authenticated_client.get("/auth/status")
        assert response.status_code == 200
        assert response.json() == {
            "locked": False,
            "failed_attempts": 2,
            "last_successful_login": None,
        }

    async def test_unlock_unknown_account(self, admin_client):
        response = await admin_client.put(f"/auth/unlock/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error_type"] == "account_not_found"


# ---------------------------------------------------------------------------
# Current account
# ---------------------------------------------------------------------------

class TestCurrentAccount:

    async def test_me(self, authenticated_client):
        response = await authenticated_client.get("/auth/me")
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == STANDARD_USER["email"]
        assert data["role"] == "standard"
        assert "password_hash" not in data

    async def test_me_without_credentials(self, client):
        response = await client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error_type"] == "unauthenticated"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_me_with_garbage_token(self, client):
        response = await client.get(
            "/auth/me", headers={"Authorization": "Bearer totally.fake.token"}
        )
        assert response.status_code == 401

    async def test_token_cookie_authenticates(self, authenticated_client):
        """The cookie set at registration works without the header."""
        del authenticated_client.headers["Authorization"]
        response = await authenticated_client.get("/auth/me")
        assert response.status_code == 200

    async def test_token_for_deleted_account(self, authenticated_client, admin_client):
        me = await authenticated_client.get("/auth/me")
        await admin_client.delete(f"/users/{me.json()['id']}")

        response = await authenticated_client.get("/auth/me")
        assert response.status_code == 401

    async def test_update_details(self, authenticated_client):
        response = await authenticated_client.put(
            "/auth/details", json={"name": "Renamed", "email": "Renamed@Example.com"}
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["email"] == "renamed@example.com"

    async def test_update_details_partial(self, authenticated_client):
        response = await authenticated_client.put("/auth/details", json={"name": "Only Name"})
        assert response.status_code == 200
        assert response.json()["email"] == STANDARD_USER["email"]

    async def test_update_details_blank_name(self, authenticated_client):
        response = await authenticated_client.put("/auth/details", json={"name": "  "})
        assert response.status_code == 422

        me = await authenticated_client.get("/auth/me")
        assert me.json()["name"] == STANDARD_USER["name"]

    async def test_update_details_to_taken_email(self, authenticated_client, admin_client):
        response = await authenticated_client.put(
            "/auth/details", json={"email": "admin@example.com"}
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "duplicate_email"


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

class TestChangePassword:

    async def test_change_password(self, authenticated_client):
        response = await authenticated_client.put(
            "/auth/password",
            json={"current_password": STANDARD_USER["password"], "new_password": "BrandNew99!"},
        )
        assert response.status_code == 200
        assert response.json()["token"]

        old = await authenticated_client.post("/auth/login", json=login_body())
        assert old.status_code == 401
        new = await authenticated_client.post("/auth/login", json=login_body(password="BrandNew99!"))
        assert new.status_code == 200

    async def test_change_password_wrong_current(self, authenticated_client):
        response = await authenticated_client.put(
            "/auth/password",
            json={"current_password": "not-it", "new_password": "BrandNew99!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "wrong_current_password"

    async def test_change_password_too_short(self, authenticated_client):
        response = await authenticated_client.put(
            "/auth/password",
            json={"current_password": STANDARD_USER["password"], "new_password": "short"},
        )
        assert response.status_code == 422


class TestPasswordReset:

    async def test_forgot_password_is_uniform(self, authenticated_client):
        """Known and unknown emails get byte-identical answers."""
        known = await authenticated_client.post(
            "/auth/forgot-password", json={"email": STANDARD_USER["email"]}
        )
        unknown = await authenticated_client.post(
            "/auth/forgot-password", json={"email": "nobody@example.com"}
        )
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert known.json()["reset_token"] is None

    async def test_reset_flow(self, build_client):
        async with build_client(EXPOSE_RESET_TOKEN=True) as ac:
            await ac.post(
                "/auth/register",
                json=register_payload("Alice", "alice@example.com", "Secret1"),
            )
            forgot = await ac.post("/auth/forgot-password", json={"email": "alice@example.com"})
            reset_token = forgot.json()["reset_token"]
            assert len(reset_token) == 40

            reset = await ac.put(f"/auth/reset-password/{reset_token}", json={"password": "NewSecret1"})
            assert reset.status_code == 200
            assert reset.json()["account"]["email"] == "alice@example.com"
            assert reset.json()["token"]

            login = await ac.post("/auth/login", json=login_body("alice@example.com", "NewSecret1"))
            assert login.status_code == 200

            # Single use
            again = await ac.put(f"/auth/reset-password/{reset_token}", json={"password": "Another1"})
            assert again.status_code == 400
            assert again.json()["error_type"] == "invalid_or_expired_token"

    async def test_reset_keeps_locked_account_logged_out(self, build_client):
        async with build_client(EXPOSE_RESET_TOKEN=True) as ac:
            await ac.post(
                "/auth/register",
                json=register_payload("Alice", "alice@example.com", "Secret1"),
            )
            ac.cookies.clear()
            for _ in range(5):
                await ac.post("/auth/login", json=login_body("alice@example.com", "wrong"))

            forgot = await ac.post("/auth/forgot-password", json={"email": "alice@example.com"})
            reset_token = forgot.json()["reset_token"]

            reset = await ac.put(f"/auth/reset-password/{reset_token}", json={"password": "NewSecret1"})
            assert reset.status_code == 200
            assert reset.json()["account"]["email"] == "alice@example.com"
            assert reset.json()["token"] is None
            assert "set-cookie" not in reset.headers
            assert "token" not in ac.cookies

            # Still locked, even with the new password
            login = await ac.post("/auth/login", json=login_body("alice@example.com", "NewSecret1"))
            assert login.status_code == 403
            assert login.json()["error_type"] == "account_locked"

    async def test_exposed_token_only_for_known_email(self, build_client):
        async with build_client(EXPOSE_RESET_TOKEN=True) as ac:
            response = await ac.post("/auth/forgot-password", json={"email": "nobody@example.com"})
            assert response.status_code == 200
            assert response.json()["reset_token"] is None

    async def test_unknown_reset_token(self, client):
        response = await client.put(f"/auth/reset-password/{'0' * 40}", json={"password": "NewSecret1"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_or_expired_token"


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_unknown_route_keeps_error_shape(self, client):
        response = await client.get("/nowhere")
        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found", "error_type": "not_found"}
