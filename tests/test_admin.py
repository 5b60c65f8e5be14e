import csv
import io
from datetime import timedelta

from conftest import API, PASSWORD, future_date
from home_services_api.app.core.db import from_db_datetime, get_cursor, to_db_datetime, utcnow


def test_admin_routes_require_admin(client, customer):
    for path in ("/dashboard/stats", "/pending-approvals", "/system/health", "/system/activities", "/settings"):
        assert client.get(f"{API}/admin{path}", headers=customer["headers"]).status_code == 403
    assert client.get(f"{API}/admin/dashboard/stats").status_code == 401


def test_dashboard_stats(client, admin, booking):
    stats = client.get(f"{API}/admin/dashboard/stats", headers=admin["headers"]).json()
    assert stats["users"]["by_role"] == {"admin": 1, "customer": 1, "provider": 1}
    assert stats["users"]["active"] == 3
    assert stats["providers"] == {"total": 1, "verified": 1, "pending_verification": 0}
    assert stats["services"] == {"total": 1, "active": 1}
    assert stats["bookings"] == {"total": 1, "by_status": {"pending": 1}}
    assert stats["revenue"]["total"] == 0


def test_pending_approvals(client, admin, make_provider, service):
    waiting = make_provider([service["id"]], name="Meera Nair", verified=False)
    make_provider([service["id"]], name="Ravi Kumar")
    page = client.get(f"{API}/admin/pending-approvals", headers=admin["headers"]).json()
    assert [p["id"] for p in page["items"]] == [waiting["provider_id"]]
    assert page["pagination"]["total"] == 1


def test_system_health(client, admin, customer):
    health = client.get(f"{API}/admin/system/health", headers=admin["headers"]).json()
    assert health["status"] == "healthy"
    assert health["database"]["status"] == "ok"
    assert health["database"]["tables"]["users"] == 2
    assert health["integrations"]["payments"] is True
    assert health["integrations"]["email"] is False


def test_activities_are_filterable(client, admin, service):
    activities = client.get(
        f"{API}/admin/system/activities", params={"object_type": "service"}, headers=admin["headers"]
    ).json()
    assert activities["pagination"]["total"] == 1
    entry = activities["items"][0]
    assert entry["action"] == "create"
    assert entry["object_id"] == service["id"]
    assert entry["user_name"] == "Admin User"
    assert entry["details"] == {"name": service["name"]}


def test_announcement_to_one_role(client, admin, customer, provider):
    payload = {"title": "Diwali offers", "message": "Flat 20% off on cleaning", "user_type": "customer"}
    result = client.post(f"{API}/admin/announcement", json=payload, headers=admin["headers"]).json()
    assert result == {"successful": 1, "failed": 0, "errors": []}

    inbox = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert inbox["items"][0]["title"] == "Diwali offers"
    assert inbox["items"][0]["type"] == "system"
    provider_titles = [n["title"] for n in client.get(f"{API}/notifications/", headers=provider["headers"]).json()["items"]]
    assert "Diwali offers" not in provider_titles


def test_scheduled_announcement(client, admin, customer):
    payload = {"title": "Maintenance", "message": "Short downtime tonight", "scheduled_for": future_date(days=1)}
    result = client.post(f"{API}/admin/announcement", json=payload, headers=admin["headers"]).json()
    assert result["successful"] == 2
    assert client.get(f"{API}/notifications/", headers=customer["headers"]).json()["items"] == []

    response = client.post(f"{API}/admin/notifications/process-scheduled", headers=admin["headers"])
    assert response.json() == {"processed": 0}

    with get_cursor() as cursor:
        cursor.execute("UPDATE notifications SET scheduled_for = ?", (to_db_datetime(utcnow()),))
    response = client.post(f"{API}/admin/notifications/process-scheduled", headers=admin["headers"])
    assert response.json() == {"processed": 2}
    inbox = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert inbox["items"][0]["title"] == "Maintenance"
    assert inbox["items"][0]["status"] == "delivered"


def test_scheduled_notification_lifetime_starts_at_delivery(client, admin, customer):
    scheduled_for = future_date(days=40)
    payload = {
        "title": "Festive sale",
        "message": "Starts next month",
        "user_type": "customer",
        "scheduled_for": scheduled_for,
    }
    client.post(f"{API}/admin/announcement", json=payload, headers=admin["headers"])
    with get_cursor() as cursor:
        row = cursor.execute(
            "SELECT scheduled_for, expires_at FROM notifications WHERE title = ?", ("Festive sale",)
        ).fetchone()
    assert row["scheduled_for"] == scheduled_for
    assert from_db_datetime(row["expires_at"]) == from_db_datetime(scheduled_for) + timedelta(days=30)


def test_announcement_validation(client, admin):
    payload = {"title": "", "message": "x", "user_type": "everyone"}
    assert client.post(f"{API}/admin/announcement", json=payload, headers=admin["headers"]).status_code == 422


def test_export_json(client, admin, booking):
    body = client.get(f"{API}/admin/export", params={"data_type": "bookings"}, headers=admin["headers"]).json()
    assert body["data_type"] == "bookings"
    assert body["count"] == 1
    assert body["items"][0]["booking_number"] == booking["booking_number"]
    assert body["items"][0]["total_amount"] == 1180


def test_export_csv_omits_secrets(client, admin, customer):
    response = client.get(
        f"{API}/admin/export", params={"data_type": "users", "format": "csv"}, headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].startswith("attachment; filename=users_export_")
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [row["email"] for row in rows] == ["admin@example.com", customer["email"]]
    assert rows[0]["role"] == "admin"
    assert "password_hash" not in rows[0]


def test_export_rejects_unknown_type(client, admin):
    response = client.get(f"{API}/admin/export", params={"data_type": "payments"}, headers=admin["headers"])
    assert response.status_code == 422


def test_settings_roundtrip(client, admin, customer, provider, service, make_booking):
    settings = client.get(f"{API}/admin/settings", headers=admin["headers"]).json()
    assert settings["max_booking_days"] == 30
    assert settings["allow_new_registrations"] is True

    updated = client.put(f"{API}/admin/settings", json={"max_booking_days": 60}, headers=admin["headers"]).json()
    assert updated["max_booking_days"] == 60
    assert updated["review_edit_window"] == 7
    make_booking(customer, provider, service, days=45)

    invalid = client.put(f"{API}/admin/settings", json={"review_edit_window": 31}, headers=admin["headers"])
    assert invalid.status_code == 422
    assert client.put(f"{API}/admin/settings", json={"max_booking_days": 5}, headers=customer["headers"]).status_code == 403


def test_maintenance_mode_blocks_writes_except_for_admins(client, admin, customer):
    client.put(f"{API}/admin/settings", json={"maintenance_mode": True}, headers=admin["headers"])

    blocked = client.put(f"{API}/users/preferences", json={"theme": "dark"}, headers=customer["headers"])
    assert blocked.status_code == 503
    assert blocked.json()["detail"] == "The platform is under maintenance"
    assert client.get(f"{API}/notifications/", headers=customer["headers"]).status_code == 200
    signup = client.post(
        f"{API}/auth/register",
        json={"name": "Meera Iyer", "email": "meera@example.com", "phone": "9123456780", "password": PASSWORD},
    )
    assert signup.status_code == 503

    reopened = client.put(f"{API}/admin/settings", json={"maintenance_mode": False}, headers=admin["headers"])
    assert reopened.json()["maintenance_mode"] is False
    assert client.put(f"{API}/users/preferences", json={"theme": "dark"}, headers=customer["headers"]).status_code == 200


def test_health_checks(client):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert client.get("/health/ready").json() == {"status": "ready", "database": "ok"}
