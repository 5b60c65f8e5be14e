"""Shared fixtures: an isolated SQLite file per test and a TestClient.

Every test gets its own database created by ``init_db``.  Outgoing
integrations are replaced: SMTP stays unconfigured (e-mails are logged
and skipped), ``SMSService.send_sms`` records messages and
``PaymentService._razorpay_request`` answers from ``FakeRazorpay``.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from home_services_api.app.core.config import settings
from home_services_api.app.core.db import get_cursor, init_db
from home_services_api.app.core.security import ROLE_ADMIN
from home_services_api.app.main import app
from home_services_api.app.services.payment_service import PaymentService
from home_services_api.app.services.sms_service import SMSService

API = "/api/v1"
PASSWORD = "s3cret-pass"


class SMSRecorder:
    def __init__(self):
        self.messages = []

    def __call__(self, phone, message):
        self.messages.append((phone, message))
        return {"sid": f"SM{len(self.messages)}", "status": "queued"}


class FakeRazorpay:
    """Canned answers for the Razorpay endpoints the payment service calls."""

    def __init__(self):
        self.calls = []
        self.payment_status = "captured"

    def __call__(self, method, path, payload=None):
        self.calls.append((method, path, payload))
        if path == "/orders":
            return {"id": f"order_test{len(self.calls)}", "amount": payload["amount"], "status": "created"}
        if path == "/payment_links":
            return {"id": "plink_test1", "short_url": "https://rzp.io/i/test1"}
        if path.endswith("/refund"):
            return {"id": "rfnd_test1", "amount": payload["amount"], "status": "processed"}
        if path.startswith("/payments/"):
            return {"id": path.rsplit("/", 1)[-1], "status": self.payment_status, "method": "upi"}
        raise AssertionError(f"Unexpected gateway call {method} {path}")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", str(tmp_path / "test.db"))
    monkeypatch.setattr(settings, "smtp_host", "")
    monkeypatch.setattr(settings, "razorpay_key_id", "rzp_test_key")
    monkeypatch.setattr(settings, "razorpay_key_secret", "rzp_test_secret")
    monkeypatch.setattr(settings, "razorpay_webhook_secret", "whsec_test")
    monkeypatch.setattr(settings, "tax_rate", 0.18)
    init_db()
    yield settings


@pytest.fixture
def sms(monkeypatch):
    recorder = SMSRecorder()
    monkeypatch.setattr(SMSService, "send_sms", recorder)
    return recorder


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeRazorpay()
    monkeypatch.setattr(PaymentService, "_razorpay_request", fake)
    return fake


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def future_date(days=3, hours=0):
    moment = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)
    return (moment + timedelta(days=days, hours=hours)).isoformat()


@pytest.fixture
def make_user(client):
    """Register an account and return ``{"id", "email", "headers", ...}``."""
    counter = itertools.count(1)

    def _make_user(name="Test User", email=None, role=None):
        n = next(counter)
        email = email or f"user{n}@example.com"
        response = client.post(
            f"{API}/auth/register",
            json={"name": name, "email": email, "phone": f"98{n:08d}", "password": PASSWORD},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        if role == "admin":
            with get_cursor() as cursor:
                cursor.execute("UPDATE users SET role_id = ? WHERE id = ?", (ROLE_ADMIN, body["user"]["id"]))
        return {
            "id": body["user"]["id"],
            "email": email,
            "phone": body["user"]["phone"],
            "token": body["access_token"],
            "refresh_token": body["refresh_token"],
            "headers": auth_headers(body["access_token"]),
        }

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin User", email="admin@example.com", role="admin")


@pytest.fixture
def make_service(client, admin):
    def _make_service(name="Deep Home Cleaning", category="cleaning", base_price=1000, **extra):
        payload = {
            "name": name,
            "category": category,
            "description": f"{name} by trained professionals",
            "base_price": base_price,
            "duration": 120,
            "tags": ["home"],
            **extra,
        }
        response = client.post(f"{API}/services/", json=payload, headers=admin["headers"])
        assert response.status_code == 201, response.text
        return response.json()

    return _make_service


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def make_provider(client, make_user, admin):
    def _make_provider(service_ids, name="Ravi Kumar", verified=True, city="Bengaluru", **extra):
        user = make_user(name=name)
        payload = {
            "service_ids": service_ids,
            "experience": 5,
            "hourly_rate": 400,
            "service_cities": [city],
            **extra,
        }
        response = client.post(f"{API}/providers/register", json=payload, headers=user["headers"])
        assert response.status_code == 201, response.text
        user["provider_id"] = response.json()["id"]
        if verified:
            response = client.put(
                f"{API}/providers/verify/{user['provider_id']}",
                json={"is_verified": True},
                headers=admin["headers"],
            )
            assert response.status_code == 200, response.text
        return user

    return _make_provider


@pytest.fixture
def provider(make_provider, service):
    return make_provider([service["id"]])


@pytest.fixture
def customer(make_user):
    return make_user(name="Asha Rao")


@pytest.fixture
def make_booking(client):
    def _make_booking(customer, provider, service, days=3, hours=0):
        payload = {
            "provider_id": provider["provider_id"],
            "service_id": service["id"],
            "scheduled_date": future_date(days, hours),
            "address": {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"},
            "contact_phone": "9876543210",
        }
        response = client.post(f"{API}/bookings/", json=payload, headers=customer["headers"])
        assert response.status_code == 201, response.text
        return response.json()

    return _make_booking


@pytest.fixture
def booking(make_booking, customer, provider, service):
    return make_booking(customer, provider, service)


@pytest.fixture
def set_status(client):
    def _set_status(booking_id, user, *statuses):
        body = None
        for new_status in statuses:
            response = client.put(
                f"{API}/bookings/{booking_id}/status", json={"status": new_status}, headers=user["headers"]
            )
            assert response.status_code == 200, response.text
            body = response.json()
        return body

    return _set_status


@pytest.fixture
def completed_booking(booking, provider, set_status):
    return set_status(booking["id"], provider, "confirmed", "in-progress", "completed")
