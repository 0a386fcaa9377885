from datetime import timedelta

import pyotp
import pytest
from sqlalchemy import select

from wear_backend.auth import verify_totp
from wear_backend.extensions import db
from wear_backend.helpers import utcnow
from wear_backend.models import MAX_LOGIN_ATTEMPTS, User

PASSWORD = "secret123"


def login(client, email="shopper@example.com", password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_register_returns_user_and_token(client):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "  Shopper@Example.com ",
            "password": PASSWORD,
            "firstName": "Jane",
            "lastName": "Doe",
            "phone": "+15551234567",
        },
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    user = body["data"]["user"]
    assert user["email"] == "shopper@example.com"
    assert user["fullName"] == "Jane Doe"
    assert user["isEmailVerified"] is False
    assert user["isAdmin"] is False
    assert "password" not in user
    assert body["data"]["token"]


def test_register_rejects_duplicate_email(client, register):
    register()
    response = client.post(
        "/api/auth/register",
        json={"email": "shopper@example.com", "password": PASSWORD, "firstName": "Jo", "lastName": "Ann"},
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "User with this email already exists"


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"email": "not-an-email", "password": PASSWORD, "firstName": "Jane", "lastName": "Doe"}, "email"),
        ({"email": "a@b.co", "password": "short", "firstName": "Jane", "lastName": "Doe"}, "password"),
        ({"email": "a@b.co", "password": "nodigits", "firstName": "Jane", "lastName": "Doe"}, "password"),
        ({"email": "a@b.co", "password": PASSWORD, "firstName": "J", "lastName": "Doe"}, "firstName"),
        ({"email": "a@b.co", "password": PASSWORD, "firstName": "Jane", "lastName": "Doe", "phone": "abc"}, "phone"),
    ],
)
def test_register_validation_errors(client, payload, field):
    response = client.post("/api/auth/register", json=payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body["success"] is False
    assert field in [error["field"] for error in body["errors"]]


def test_login_success_resets_attempts(app, client, register):
    register()
    login(client, password="wrong-pass1")

    response = login(client)

    assert response.status_code == 200
    body = response.get_json()
    assert body["message"] == "Login successful"
    assert body["data"]["token"]
    assert body["data"]["user"]["lastLogin"]
    with app.app_context():
        user = db.session.scalar(select(User))
        assert user.login_attempts == 0


def test_login_unknown_email_is_invalid_credentials(client):
    response = login(client, email="ghost@example.com")

    assert response.status_code == 401
    assert response.get_json()["message"] == "Invalid credentials"


def test_login_locks_after_repeated_failures(app, client, register):
    register()
    for _ in range(MAX_LOGIN_ATTEMPTS):
        assert login(client, password="wrong-pass1").status_code == 401

    response = login(client)

    assert response.status_code == 423
    with app.app_context():
        user = db.session.scalar(select(User))
        assert user.lock_until is not None


def test_login_after_lock_expires(app, client, register):
    register()
    with app.app_context():
        user = db.session.scalar(select(User))
        user.login_attempts = MAX_LOGIN_ATTEMPTS
        user.lock_until = utcnow() - timedelta(minutes=1)
        db.session.commit()

    assert login(client, password="wrong-pass1").status_code == 401
    with app.app_context():
        user = db.session.scalar(select(User))
        assert user.login_attempts == 1
        assert user.lock_until is None

    assert login(client).status_code == 200


def test_wrong_password_while_locked_extends_lock(app, client, register):
    register()
    with app.app_context():
        user = db.session.scalar(select(User))
        user.login_attempts = MAX_LOGIN_ATTEMPTS
        user.lock_until = utcnow() + timedelta(minutes=1)
        db.session.commit()

    response = login(client, password="wrong-pass1")

    assert response.status_code == 423
    with app.app_context():
        user = db.session.scalar(select(User))
        remaining = user.lock_until - utcnow()
        assert timedelta(hours=1, minutes=59) < remaining <= timedelta(hours=2)

    # The right password does not get through an active lock either.
    assert login(client).status_code == 423


def test_login_deactivated_account(app, client, register):
    register()
    with app.app_context():
        user = db.session.scalar(select(User))
        user.is_active = False
        db.session.commit()

    response = login(client)

    assert response.status_code == 401
    assert response.get_json()["message"] == "Account is deactivated"


def test_me_requires_token(client):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.get_json()["message"] == "Not authorized, no token"


def test_me_rejects_garbage_token(client, auth_headers):
    response = client.get("/api/auth/me", headers=auth_headers("not-a-jwt"))

    assert response.status_code == 401
    assert response.get_json()["message"] == "Not authorized, token failed"


def test_me_returns_profile_with_addresses(client, user_token, auth_headers):
    response = client.get("/api/auth/me", headers=auth_headers(user_token))

    assert response.status_code == 200
    user = response.get_json()["data"]["user"]
    assert user["email"] == "shopper@example.com"
    assert user["addresses"] == []
    assert user["preferences"]["sizePreference"] == "M"


def test_deleted_user_token_reports_user_not_found(app, client, register, auth_headers):
    user, token = register()
    with app.app_context():
        db.session.delete(db.session.get(User, user["id"]))
        db.session.commit()

    response = client.get("/api/auth/me", headers=auth_headers(token))

    assert response.status_code == 401
    assert response.get_json()["message"] == "User not found"


def test_update_profile_merges_preferences(client, user_token, auth_headers):
    response = client.put(
        "/api/auth/profile",
        json={"firstName": "Janet", "preferences": {"sizePreference": "L"}},
        headers=auth_headers(user_token),
    )

    assert response.status_code == 200
    user = response.get_json()["data"]["user"]
    assert user["firstName"] == "Janet"
    assert user["preferences"]["sizePreference"] == "L"
    assert user["preferences"]["newsletter"] is True


def test_update_profile_rejects_bad_size(client, user_token, auth_headers):
    response = client.put(
        "/api/auth/profile",
        json={"preferences": {"sizePreference": "XXXL"}},
        headers=auth_headers(user_token),
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "Invalid size preference"


def test_update_profile_replaces_addresses_with_single_default(client, user_token, auth_headers):
    address = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701"}
    response = client.put(
        "/api/auth/profile/update",
        json={
            "addresses": [
                dict(address, isDefault=True),
                dict(address, street="2 Side St", isDefault=True, type="work"),
            ]
        },
        headers=auth_headers(user_token),
    )

    assert response.status_code == 200
    addresses = response.get_json()["data"]["user"]["addresses"]
    assert [item["street"] for item in addresses] == ["1 Main St", "2 Side St"]
    assert [item["isDefault"] for item in addresses] == [True, False]
    assert addresses[0]["country"] == "United States"

    response = client.put(
        "/api/auth/profile/update",
        json={"addresses": [dict(address, street="3 New St")]},
        headers=auth_headers(user_token),
    )
    addresses = response.get_json()["data"]["user"]["addresses"]
    assert [item["street"] for item in addresses] == ["3 New St"]


def test_update_profile_address_requires_city(client, user_token, auth_headers):
    response = client.put(
        "/api/auth/profile/update",
        json={"addresses": [{"street": "1 Main St", "state": "IL", "zipCode": "62701"}]},
        headers=auth_headers(user_token),
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "City is required"


def test_change_password_flow(client, user_token, auth_headers):
    headers = auth_headers(user_token)

    wrong = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "nope12345", "newPassword": "another123"},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.get_json()["message"].startswith("Current password is incorrect")

    same = client.put(
        "/api/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": PASSWORD},
        headers=headers,
    )
    assert same.status_code == 400
    assert same.get_json()["message"].startswith("New password cannot be the same")

    ok = client.put(
        "/api/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "another123"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert login(client, password="another123").status_code == 200


def test_forgot_password_is_generic_for_unknown_email(client):
    response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["message"].startswith("If an account exists")
    assert "data" not in body


def test_reset_password_with_token(app, client, register):
    register()
    forgot = client.post("/api/auth/forgot-password", json={"email": "shopper@example.com"})
    token = forgot.get_json()["data"]["resetToken"]
    with app.app_context():
        user = db.session.scalar(select(User))
        # Only the hash is stored.
        assert user.password_reset_token != token

    response = client.post("/api/auth/reset-password", json={"token": token, "password": "brandnew1"})

    assert response.status_code == 200
    assert login(client, password="brandnew1").status_code == 200

    reused = client.post("/api/auth/reset-password", json={"token": token, "password": "brandnew2"})
    assert reused.status_code == 400
    assert reused.get_json()["message"] == "Invalid or expired reset token"


def test_reset_password_rejects_expired_token(app, client, register):
    register()
    forgot = client.post("/api/auth/forgot-password", json={"email": "shopper@example.com"})
    token = forgot.get_json()["data"]["resetToken"]
    with app.app_context():
        user = db.session.scalar(select(User))
        user.password_reset_expires = utcnow() - timedelta(seconds=1)
        db.session.commit()

    response = client.post("/api/auth/reset-password", json={"token": token, "password": "brandnew1"})

    assert response.status_code == 400


def test_verify_email_with_emailed_code(client, monkeypatch):
    sent = {}

    def fake_send(email, otp):
        sent[email] = otp
        return True, None

    monkeypatch.setattr("wear_backend.routes.auth.send_verification_email", fake_send)
    client.post(
        "/api/auth/register",
        json={"email": "verify@example.com", "password": PASSWORD, "firstName": "Vera", "lastName": "Fy"},
    )
    code = sent["verify@example.com"]

    wrong_code = "000000" if code != "000000" else "111111"
    bad = client.post("/api/auth/verify-email", json={"email": "verify@example.com", "code": wrong_code})
    assert bad.status_code == 400

    response = client.post("/api/auth/verify-email", json={"email": "verify@example.com", "otp": code})
    assert response.status_code == 200
    assert response.get_json()["data"]["user"]["isEmailVerified"] is True

    again = client.post("/api/auth/verify-email", json={"email": "verify@example.com", "code": code})
    assert again.get_json()["message"] == "Email already verified"


def test_resend_verification_issues_new_code(client, register, monkeypatch):
    register()
    sent = []
    monkeypatch.setattr(
        "wear_backend.routes.auth.send_verification_email",
        lambda email, otp: sent.append((email, otp)) or (True, None),
    )

    response = client.post("/api/auth/resend-verification", json={"email": "shopper@example.com"})

    assert response.status_code == 200
    assert sent and sent[0][0] == "shopper@example.com"
    assert len(sent[0][1]) == 6


def test_two_factor_enable_and_verify(client, user_token, auth_headers):
    headers = auth_headers(user_token)

    response = client.put("/api/auth/2fa", json={"enable": True, "password": PASSWORD}, headers=headers)
    assert response.status_code == 200
    data = response.get_json()["data"]
    secret, backup_codes = data["secret"], data["backupCodes"]
    assert len(backup_codes) == 8

    code = pyotp.TOTP(secret).now()
    verified = client.post("/api/auth/2fa/verify", json={"code": code}, headers=headers)
    assert verified.status_code == 200

    backup = client.post("/api/auth/2fa/verify", json={"code": backup_codes[0]}, headers=headers)
    assert backup.status_code == 200
    assert backup.get_json()["data"]["backupCodesRemaining"] == 7

    reused = client.post("/api/auth/2fa/verify", json={"code": backup_codes[0]}, headers=headers)
    assert reused.status_code == 400

    me = client.get("/api/auth/me", headers=headers).get_json()["data"]["user"]
    assert me["twoFactorEnabled"] is True
    assert "twoFactorSecret" not in me


def test_two_factor_requires_correct_password(client, user_token, auth_headers):
    response = client.put(
        "/api/auth/2fa", json={"enable": True, "password": "wrong-pass1"}, headers=auth_headers(user_token)
    )

    assert response.status_code == 400


def test_verify_totp_window():
    secret = "JBSWY3DPEHPK3PXP"
    at = 1_700_000_000
    code = pyotp.TOTP(secret).at(at)

    assert verify_totp(secret, code, at=at)
    assert verify_totp(secret, code, at=at + 30)
    assert not verify_totp(secret, code, at=at + 120)
    assert not verify_totp(secret, "abc123", at=at)


def test_request_admin_disabled_by_default(client, register, auth_headers):
    user, token = register()

    response = client.put(f"/api/auth/users/{user['id']}/request-admin", headers=auth_headers(token))

    assert response.status_code == 403


def test_request_admin_when_enabled(app, client, register, auth_headers):
    app.config["ALLOW_ADMIN_SELF_PROMOTION"] = True
    user, token = register()
    other, _ = register(email="other@example.com")

    forbidden = client.put(f"/api/auth/users/{other['id']}/request-admin", headers=auth_headers(token))
    assert forbidden.status_code == 403

    response = client.put(f"/api/admin/users/{user['id']}/request-admin", headers=auth_headers(token))
    assert response.status_code == 200
    assert response.get_json()["data"]["user"]["isAdmin"] is True


def test_logout(client, user_token, auth_headers):
    response = client.post("/api/auth/logout", headers=auth_headers(user_token))

    assert response.status_code == 200
    assert response.get_json()["message"] == "Logged out successfully"
