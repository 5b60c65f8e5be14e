import re

import pytest

from conftest import API, PASSWORD
from home_services_api.app.core.db import get_cursor
from home_services_api.app.services.email_service import EmailService


@pytest.fixture
def sent_tokens(monkeypatch):
    """Capture the raw tokens that would be e-mailed to users."""
    tokens = {}

    def capture(kind):
        def _send(to, name, token):
            tokens[kind] = token
            return True

        return _send

    monkeypatch.setattr(EmailService, "send_verification_email", capture("verify"))
    monkeypatch.setattr(EmailService, "send_password_reset_email", capture("reset"))
    return tokens


def login(client, email, password=PASSWORD):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


def test_register_returns_customer_and_tokens(client):
    response = client.post(
        f"{API}/auth/register",
        json={"name": "  Asha Rao ", "email": "Asha@Example.com", "phone": "9876543210", "password": PASSWORD},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["name"] == "Asha Rao"
    assert body["user"]["email"] == "asha@example.com"
    assert body["user"]["role"] == "customer"
    assert body["user"]["is_email_verified"] is False
    assert body["token_type"] == "bearer"
    assert "password" not in body["user"]


def test_register_rejects_duplicate_email_and_phone(client, make_user):
    user = make_user()
    response = client.post(
        f"{API}/auth/register",
        json={"name": "Other", "email": user["email"], "phone": "9123456780", "password": PASSWORD},
    )
    assert response.status_code == 409
    response = client.post(
        f"{API}/auth/register",
        json={"name": "Other", "email": "other@example.com", "phone": user["phone"], "password": PASSWORD},
    )
    assert response.status_code == 409


def test_register_validates_phone_and_password(client):
    response = client.post(
        f"{API}/auth/register",
        json={"name": "Asha", "email": "asha@example.com", "phone": "12345", "password": "short"},
    )
    assert response.status_code == 422


def test_registration_can_be_disabled(client, admin):
    client.put(f"{API}/admin/settings", json={"allow_new_registrations": False}, headers=admin["headers"])
    response = client.post(
        f"{API}/auth/register",
        json={"name": "Late", "email": "late@example.com", "phone": "9123456780", "password": PASSWORD},
    )
    assert response.status_code == 403


def test_login_and_me(client, make_user):
    user = make_user()
    response = login(client, user["email"])
    assert response.status_code == 200
    token = response.json()["access_token"]
    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == user["email"]
    assert me.json()["last_login"] is not None


def test_login_with_wrong_password(client, make_user):
    user = make_user()
    assert login(client, user["email"], "wrong-password").status_code == 401
    assert login(client, "nobody@example.com").status_code == 401


def test_account_locks_after_repeated_failures(client, make_user):
    user = make_user()
    for _ in range(5):
        assert login(client, user["email"], "wrong-password").status_code == 401
    response = login(client, user["email"])
    assert response.status_code == 401
    assert "locked" in response.json()["detail"]


def test_me_requires_a_valid_token(client):
    assert client.get(f"{API}/auth/me").status_code == 401
    assert client.get(f"{API}/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_refresh_token_issues_new_pair(client, make_user):
    user = make_user()
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["access_token"]
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["token"]})
    assert response.status_code == 401


def test_logout(client, make_user):
    user = make_user()
    response = client.post(f"{API}/auth/logout", headers=user["headers"])
    assert response.status_code == 200


def test_change_password(client, make_user):
    user = make_user()
    response = client.put(
        f"{API}/auth/change-password",
        json={"current_password": "not-it", "new_password": "brand-new-pass"},
        headers=user["headers"],
    )
    assert response.status_code == 401
    response = client.put(
        f"{API}/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
        headers=user["headers"],
    )
    assert response.status_code == 200
    assert login(client, user["email"], "brand-new-pass").status_code == 200


def test_forgot_and_reset_password(client, make_user, sent_tokens):
    user = make_user()
    response = client.post(f"{API}/auth/forgot-password", json={"email": user["email"]})
    assert response.status_code == 200
    token = sent_tokens["reset"]

    response = client.post(f"{API}/auth/reset-password/{token}", json={"password": "reset-pass-123"})
    assert response.status_code == 200
    assert response.json()["user"]["email"] == user["email"]
    assert login(client, user["email"], "reset-pass-123").status_code == 200

    # A reset token works only once.
    response = client.post(f"{API}/auth/reset-password/{token}", json={"password": "again-pass-123"})
    assert response.status_code == 400


def test_forgot_password_for_unknown_email(client):
    response = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"})
    assert response.status_code == 404


def test_verify_email(client, sent_tokens):
    client.post(
        f"{API}/auth/register",
        json={"name": "Asha", "email": "asha@example.com", "phone": "9876543210", "password": PASSWORD},
    )
    response = client.get(f"{API}/auth/verify-email/{sent_tokens['verify']}")
    assert response.status_code == 200
    assert client.get(f"{API}/auth/verify-email/{sent_tokens['verify']}").status_code == 400
    with get_cursor() as cursor:
        row = cursor.execute("SELECT is_email_verified FROM users WHERE email = ?", ("asha@example.com",)).fetchone()
    assert row["is_email_verified"] == 1


def test_phone_otp_flow(client, make_user, sms):
    user = make_user()
    response = client.post(f"{API}/auth/send-phone-otp", headers=user["headers"])
    assert response.status_code == 200
    phone, message = sms.messages[-1]
    assert phone == user["phone"]
    otp = re.search(r"\b(\d{6})\b", message).group(1)

    wrong = "000000" if otp != "000000" else "111111"
    assert client.post(f"{API}/auth/verify-phone", json={"otp": wrong}, headers=user["headers"]).status_code == 400
    response = client.post(f"{API}/auth/verify-phone", json={"otp": otp}, headers=user["headers"])
    assert response.status_code == 200
    assert client.get(f"{API}/auth/me", headers=user["headers"]).json()["is_phone_verified"] is True


def test_phone_otp_without_sms_provider(client, make_user, monkeypatch):
    from home_services_api.app.core.config import settings

    monkeypatch.setattr(settings, "twilio_account_sid", "")
    user = make_user()
    response = client.post(f"{API}/auth/send-phone-otp", headers=user["headers"])
    assert response.status_code == 503
