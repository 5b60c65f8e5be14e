from conftest import API
from home_services_api.app.services.payment_service import compute_signature


def register_payload(service_ids, **extra):
    return {"service_ids": service_ids, "hourly_rate": 350, "service_cities": ["Bengaluru"], **extra}


def test_register_switches_role_and_defaults(client, make_user, service):
    user = make_user()
    response = client.post(f"{API}/providers/register", json=register_payload([service["id"]]), headers=user["headers"])
    assert response.status_code == 201
    body = response.json()
    assert body["is_verified"] is False
    assert body["is_available"] is True
    assert body["services"][0]["id"] == service["id"]
    assert body["availability"]["sunday"]["available"] is False
    assert client.get(f"{API}/auth/me", headers=user["headers"]).json()["role"] == "provider"


def test_register_twice_conflicts(client, provider, service):
    response = client.post(
        f"{API}/providers/register", json=register_payload([service["id"]]), headers=provider["headers"]
    )
    assert response.status_code == 409


def test_register_with_unknown_service(client, make_user):
    user = make_user()
    response = client.post(f"{API}/providers/register", json=register_payload([999]), headers=user["headers"])
    assert response.status_code == 400


def test_provider_routes_need_provider_role(client, make_user):
    user = make_user()
    assert client.get(f"{API}/providers/me", headers=user["headers"]).status_code == 403
    assert client.get(f"{API}/providers/dashboard/stats", headers=user["headers"]).status_code == 403


def test_listing_filters(client, make_service, make_provider):
    cleaning = make_service("Deep Home Cleaning", "cleaning", 2499)
    plumbing = make_service("Tap Repair", "plumbing", 299)
    cleaner = make_provider([cleaning["id"]], name="Clean Co", city="Bengaluru")
    plumber = make_provider([plumbing["id"]], name="Pipe Pro", city="Mumbai", verified=False)

    everyone = client.get(f"{API}/providers/").json()
    assert everyone["pagination"]["total"] == 2
    assert everyone["items"][0]["id"] == cleaner["provider_id"]

    by_category = client.get(f"{API}/providers/", params={"category": "plumbing"}).json()
    assert [p["id"] for p in by_category["items"]] == [plumber["provider_id"]]

    by_city = client.get(f"{API}/providers/", params={"city": "mumbai"}).json()
    assert [p["id"] for p in by_city["items"]] == [plumber["provider_id"]]

    verified = client.get(f"{API}/providers/", params={"verified": True}).json()
    assert [p["id"] for p in verified["items"]] == [cleaner["provider_id"]]

    by_service = client.get(f"{API}/providers/", params={"service_id": cleaning["id"]}).json()
    assert [p["name"] for p in by_service["items"]] == ["Clean Co"]


def test_unavailable_providers_are_hidden(client, provider):
    response = client.put(f"{API}/providers/settings", json={"is_available": False}, headers=provider["headers"])
    assert response.status_code == 200
    assert client.get(f"{API}/providers/").json()["pagination"]["total"] == 0
    assert client.get(f"{API}/providers/{provider['provider_id']}").status_code == 200


def test_update_profile_and_services(client, provider, make_service):
    extra = make_service("Bathroom Cleaning", "cleaning", 499)
    response = client.put(
        f"{API}/providers/profile",
        json={"experience": 8, "skills": ["descaling"], "service_ids": [extra["id"]]},
        headers=provider["headers"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["experience"] == 8
    assert body["skills"] == ["descaling"]
    assert [s["id"] for s in body["services"]] == [extra["id"]]


def test_update_availability(client, provider):
    schedule = {"monday": {"available": True, "start": "10:00", "end": "16:00"}}
    response = client.put(
        f"{API}/providers/availability", json={"availability": schedule}, headers=provider["headers"]
    )
    assert response.status_code == 200
    assert response.json()["availability"]["monday"]["start"] == "10:00"

    bad = {"monday": {"available": True, "start": "25:00", "end": "16:00"}}
    response = client.put(f"{API}/providers/availability", json={"availability": bad}, headers=provider["headers"])
    assert response.status_code == 422


def test_verification_notifies_provider(client, admin, make_user, service):
    user = make_user()
    provider_id = client.post(
        f"{API}/providers/register", json=register_payload([service["id"]]), headers=user["headers"]
    ).json()["id"]

    pending = client.get(f"{API}/admin/pending-approvals", headers=admin["headers"]).json()
    assert [p["id"] for p in pending["items"]] == [provider_id]

    response = client.put(
        f"{API}/providers/verify/{provider_id}", json={"is_verified": True, "notes": "KYC ok"}, headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.json()["is_verified"] is True

    inbox = client.get(f"{API}/notifications/", headers=user["headers"]).json()
    assert inbox["items"][0]["title"] == "Verification Update"
    assert "verified" in inbox["items"][0]["message"]


def test_verify_requires_admin(client, provider):
    response = client.put(
        f"{API}/providers/verify/{provider['provider_id']}", json={"is_verified": True}, headers=provider["headers"]
    )
    assert response.status_code == 403


def test_get_missing_provider(client):
    assert client.get(f"{API}/providers/999").status_code == 404
    assert client.get(f"{API}/providers/999/reviews").status_code == 404


def test_dashboard_and_earnings(client, provider, customer, booking, gateway, set_status):
    order = client.post(
        f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"]
    ).json()
    signature = compute_signature("rzp_test_secret", f"{order['order_id']}|pay_dash1".encode())
    response = client.post(
        f"{API}/payments/verify",
        json={
            "booking_id": booking["id"],
            "razorpay_order_id": order["order_id"],
            "razorpay_payment_id": "pay_dash1",
            "razorpay_signature": signature,
        },
        headers=customer["headers"],
    )
    assert response.json()["status"] == "confirmed"

    set_status(booking["id"], provider, "in-progress")
    stats = client.get(f"{API}/providers/dashboard/stats", headers=provider["headers"]).json()
    assert stats["total_bookings"] == 1
    assert stats["bookings_by_status"] == {"in-progress": 1}

    received = client.get(f"{API}/providers/dashboard/bookings", headers=provider["headers"]).json()
    assert [b["id"] for b in received["items"]] == [booking["id"]]

    set_status(booking["id"], provider, "completed")
    earnings = client.get(f"{API}/providers/dashboard/earnings", headers=provider["headers"]).json()
    assert earnings["total_earnings"] == booking["pricing"]["total_amount"]
    assert earnings["completed_paid_bookings"] == 1
    assert len(earnings["monthly"]) == 1
