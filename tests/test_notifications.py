import asyncio

import pytest

from conftest import API
from home_services_api.app.schemas.notification import NotificationCreate
from home_services_api.app.services.notification_service import NotificationService


@pytest.fixture
def inbox(client, booking, customer, provider, set_status):
    # Booking Created, then Booking Confirmed.
    set_status(booking["id"], provider, "confirmed")
    return client.get(f"{API}/notifications/", headers=customer["headers"]).json()


def test_inbox_lists_newest_first(inbox):
    assert [n["title"] for n in inbox["items"]] == ["Booking Confirmed", "Booking Created"]
    assert inbox["unread_count"] == 2
    assert inbox["items"][0]["status"] == "delivered"
    assert inbox["items"][0]["is_read"] is False
    assert inbox["items"][1]["data"]["service_name"] == "Deep Home Cleaning"


def test_mark_read_and_unread_filter(client, inbox, customer):
    first = inbox["items"][0]["id"]
    response = client.put(f"{API}/notifications/{first}/read", headers=customer["headers"])
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert response.json()["status"] == "read"

    unread = client.get(f"{API}/notifications/", params={"unread_only": True}, headers=customer["headers"]).json()
    assert [n["title"] for n in unread["items"]] == ["Booking Created"]
    assert unread["unread_count"] == 1


def test_mark_all_read(client, inbox, customer):
    response = client.put(f"{API}/notifications/read-all", headers=customer["headers"])
    assert response.json()["message"] == "2 notifications marked as read"
    stats = client.get(f"{API}/notifications/stats", headers=customer["headers"]).json()
    assert stats == {"total": 2, "unread": 0, "by_type": {"booking": {"count": 2, "unread": 0}}}


def test_type_filter(client, inbox, customer):
    response = client.get(f"{API}/notifications/", params={"type": "payment"}, headers=customer["headers"])
    assert response.json()["items"] == []
    assert client.get(f"{API}/notifications/", params={"type": "junk"}, headers=customer["headers"]).status_code == 422


def test_notifications_are_private(client, inbox, customer, provider):
    first = inbox["items"][0]["id"]
    assert client.put(f"{API}/notifications/{first}/read", headers=provider["headers"]).status_code == 404
    assert client.delete(f"{API}/notifications/{first}", headers=provider["headers"]).status_code == 404

    assert client.delete(f"{API}/notifications/{first}", headers=customer["headers"]).status_code == 204
    remaining = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert [n["id"] for n in remaining["items"]] == [inbox["items"][1]["id"]]


def test_notifications_require_login(client):
    assert client.get(f"{API}/notifications/").status_code == 401


def notify(recipient_id, channels):
    data = NotificationCreate(
        recipient_id=recipient_id, type="system", title="Water Supply", message="Tanker arrives at 9am.",
        channels=channels,
    )
    return asyncio.run(NotificationService.send_notification(data))


def test_sms_goes_out_when_allowed(customer, sms):
    notification = notify(customer["id"], ["in_app", "sms"])
    assert notification.status == "delivered"
    assert sms.messages == [(customer["phone"], "Water Supply\nTanker arrives at 9am.")]


def test_sms_preference_is_honoured(client, customer, sms):
    response = client.put(
        f"{API}/users/preferences", json={"notifications": {"sms": False}}, headers=customer["headers"]
    )
    assert response.status_code == 200
    notification = notify(customer["id"], ["in_app", "sms"])
    assert notification.status == "delivered"
    assert sms.messages == []
