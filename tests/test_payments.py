import json
from datetime import timedelta

import pytest

from conftest import API
from home_services_api.app.core.db import utcnow
from home_services_api.app.services.payment_service import compute_signature, to_paise


def checkout_signature(order_id, payment_id, secret="rzp_test_secret"):
    return compute_signature(secret, f"{order_id}|{payment_id}".encode())


def pay(client, booking, customer, payment_id="pay_test1"):
    order = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert order.status_code == 200, order.text
    order_id = order.json()["order_id"]
    payload = {
        "booking_id": booking["id"],
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": checkout_signature(order_id, payment_id),
    }
    return client.post(f"{API}/payments/verify", json=payload, headers=customer["headers"])


def test_to_paise():
    assert to_paise(1180) == 118000
    assert to_paise(589.5) == 58950


def test_gateway_not_configured(client, booking, customer, isolated_settings, monkeypatch):
    monkeypatch.setattr(isolated_settings, "razorpay_key_secret", "")
    response = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert response.status_code == 503
    assert response.json()["detail"] == "Payment gateway is not configured"


def test_create_order_sends_amount_in_paise(client, gateway, booking, customer):
    response = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    body = response.json()
    assert body["amount"] == 118000
    assert body["currency"] == "INR"
    assert body["key_id"] == "rzp_test_key"
    assert body["booking_number"] == booking["booking_number"]
    method, path, payload = gateway.calls[0]
    assert (method, path) == ("POST", "/orders")
    assert payload["receipt"] == booking["booking_number"]


def test_only_owner_can_pay(client, gateway, booking, provider):
    response = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=provider["headers"])
    assert response.status_code == 403
    assert gateway.calls == []


def test_verify_marks_booking_paid_and_confirmed(client, gateway, booking, customer):
    response = pay(client, booking, customer)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "confirmed"
    assert body["payment"]["status"] == "paid"
    assert body["payment"]["transaction_id"] == "pay_test1"
    assert body["payment"]["paid_amount"] == 1180
    assert body["status_history"][-1]["reason"] == "Payment completed"

    inbox = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert inbox["items"][0]["title"] == "Payment Successful"

    again = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert again.status_code == 400
    assert again.json()["detail"] == "Booking is already paid"


def test_verify_rejects_bad_signature(client, gateway, booking, customer):
    payload = {
        "booking_id": booking["id"],
        "razorpay_order_id": "order_x",
        "razorpay_payment_id": "pay_x",
        "razorpay_signature": checkout_signature("order_x", "pay_x", secret="wrong"),
    }
    response = client.post(f"{API}/payments/verify", json=payload, headers=customer["headers"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payment signature"
    assert gateway.calls == []


def test_verify_rejects_failed_gateway_payment(client, gateway, booking, customer):
    gateway.payment_status = "failed"
    response = pay(client, booking, customer)
    assert response.status_code == 400
    assert response.json()["detail"] == "Payment is failed"
    assert client.get(f"{API}/bookings/{booking['id']}", headers=customer["headers"]).json()["status"] == "pending"


def test_cannot_pay_cancelled_booking(client, gateway, booking, customer):
    client.delete(f"{API}/bookings/{booking['id']}", headers=customer["headers"])
    response = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert response.status_code == 400


def verify(client, booking_id, order_id, payment_id, customer):
    payload = {
        "booking_id": booking_id,
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": checkout_signature(order_id, payment_id),
    }
    return client.post(f"{API}/payments/verify", json=payload, headers=customer["headers"])


def test_order_only_pays_its_own_booking(client, gateway, booking, customer, make_booking, provider, service):
    other = make_booking(customer, provider, service, days=5)
    order = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    order_id = order.json()["order_id"]
    assert verify(client, booking["id"], order_id, "pay_once", customer).status_code == 200

    replay = verify(client, other["id"], order_id, "pay_once", customer)
    assert replay.status_code == 400
    assert replay.json()["detail"] == "Order does not belong to this booking"
    unpaid = client.get(f"{API}/bookings/{other['id']}", headers=customer["headers"]).json()
    assert unpaid["payment"]["status"] == "pending"
    assert unpaid["status"] == "pending"


def test_payment_id_cannot_settle_two_bookings(client, gateway, booking, customer, make_booking, provider, service):
    other = make_booking(customer, provider, service, days=5)
    assert pay(client, booking, customer, payment_id="pay_shared").status_code == 200
    response = pay(client, other, customer, payment_id="pay_shared")
    assert response.status_code == 400
    assert response.json()["detail"] == "Payment has already been recorded"


def test_unknown_order_is_rejected(client, gateway, booking, customer):
    response = verify(client, booking["id"], "order_forged", "pay_x", customer)
    assert response.status_code == 400
    assert response.json()["detail"] == "Order does not belong to this booking"
    assert gateway.calls == []


def test_cancelled_booking_cannot_be_verified(client, gateway, booking, customer):
    order_id = client.post(
        f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"]
    ).json()["order_id"]
    client.delete(f"{API}/bookings/{booking['id']}", headers=customer["headers"])
    response = verify(client, booking["id"], order_id, "pay_late", customer)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot pay for a booking that is cancelled"
    assert client.get(f"{API}/bookings/{booking['id']}", headers=customer["headers"]).json()["payment"]["status"] == "pending"


def test_payment_link(client, gateway, booking, customer):
    response = client.post(f"{API}/payments/payment-link", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert response.status_code == 200
    assert response.json() == {
        "payment_link_id": "plink_test1",
        "short_url": "https://rzp.io/i/test1",
        "amount": 1180,
        "booking_id": booking["id"],
    }
    payload = gateway.calls[0][2]
    assert payload["amount"] == 118000
    assert payload["customer"]["email"] == customer["email"]


def test_full_refund_after_early_cancellation(client, gateway, booking, customer):
    pay(client, booking, customer)
    refund_url = f"{API}/payments/refund"
    assert client.post(refund_url, json={"booking_id": booking["id"]}, headers=customer["headers"]).status_code == 400

    client.delete(f"{API}/bookings/{booking['id']}", headers=customer["headers"])
    response = client.post(refund_url, json={"booking_id": booking["id"], "reason": "Plans changed"}, headers=customer["headers"])
    assert response.status_code == 200, response.text
    assert response.json() == {
        "booking_id": booking["id"],
        "refund_id": "rfnd_test1",
        "refund_amount": 1180,
        "payment_status": "refunded",
    }
    method, path, payload = gateway.calls[-1]
    assert path == "/payments/pay_test1/refund"
    assert payload["amount"] == 118000

    again = client.post(refund_url, json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert again.json()["detail"] == "Booking has already been refunded"


def test_partial_refund_for_late_cancellation(client, gateway, customer, provider, service, make_booking):
    booking = make_booking(customer, provider, service, days=0, hours=6)
    pay(client, booking, customer)
    client.delete(f"{API}/bookings/{booking['id']}", headers=customer["headers"])
    body = client.post(f"{API}/payments/refund", json={"booking_id": booking["id"]}, headers=customer["headers"]).json()
    assert body["refund_amount"] == 590
    assert body["payment_status"] == "partially_refunded"


def test_unpaid_booking_cannot_be_refunded(client, gateway, booking, customer):
    client.delete(f"{API}/bookings/{booking['id']}", headers=customer["headers"])
    response = client.post(f"{API}/payments/refund", json={"booking_id": booking["id"]}, headers=customer["headers"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Booking has not been paid"


def test_transactions(client, gateway, booking, customer, make_booking, provider, service):
    make_booking(customer, provider, service, days=5)
    pay(client, booking, customer)
    listing = client.get(f"{API}/payments/transactions", headers=customer["headers"]).json()
    assert listing["pagination"]["total"] == 2
    paid = client.get(f"{API}/payments/transactions", params={"status": "paid"}, headers=customer["headers"]).json()
    assert [t["booking_id"] for t in paid["items"]] == [booking["id"]]
    assert paid["items"][0]["service_name"] == service["name"]
    assert client.get(f"{API}/payments/transactions", headers=provider["headers"]).json()["items"] == []


def signed_webhook(client, event, secret="whsec_test"):
    body = json.dumps(event).encode()
    return client.post(
        f"{API}/payments/webhook/razorpay",
        content=body,
        headers={"X-Razorpay-Signature": compute_signature(secret, body), "Content-Type": "application/json"},
    )


@pytest.fixture
def order_id(client, gateway, booking, customer):
    response = client.post(f"{API}/payments/create-order", json={"booking_id": booking["id"]}, headers=customer["headers"])
    return response.json()["order_id"]


def test_webhook_payment_captured(client, order_id, booking, customer):
    event = {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_hook1", "order_id": order_id, "amount": 118000, "method": "card"}}},
    }
    response = signed_webhook(client, event)
    assert response.json() == {"status": "ok", "event": "payment.captured"}
    body = client.get(f"{API}/bookings/{booking['id']}", headers=customer["headers"]).json()
    assert body["status"] == "confirmed"
    assert body["payment"]["transaction_id"] == "pay_hook1"
    assert body["payment"]["paid_amount"] == 1180


def test_webhook_payment_failed(client, order_id, booking, customer):
    event = {
        "event": "payment.failed",
        "payload": {"payment": {"entity": {"id": "pay_hook2", "order_id": order_id, "amount": 118000}}},
    }
    signed_webhook(client, event)
    body = client.get(f"{API}/bookings/{booking['id']}", headers=customer["headers"]).json()
    assert body["payment"]["status"] == "failed"
    inbox = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert inbox["items"][0]["title"] == "Payment Failed"


def test_webhook_ignores_unknown_events(client):
    assert signed_webhook(client, {"event": "order.paid", "payload": {}}).json()["event"] == "order.paid"


def test_webhook_signature_checks(client, isolated_settings, monkeypatch):
    event = {"event": "payment.captured", "payload": {}}
    assert signed_webhook(client, event, secret="forged").status_code == 400
    unsigned = client.post(f"{API}/payments/webhook/razorpay", content=b"{}")
    assert unsigned.status_code == 400

    monkeypatch.setattr(isolated_settings, "razorpay_webhook_secret", "")
    assert signed_webhook(client, event).status_code == 503


def test_payment_admin_stats(client, gateway, admin, booking, customer):
    pay(client, booking, customer)
    assert client.get(f"{API}/payments/admin/stats", headers=customer["headers"]).status_code == 403
    stats = client.get(f"{API}/payments/admin/stats", headers=admin["headers"]).json()
    assert stats["total_collected"] == 1180
    assert stats["net_revenue"] == 1180
    assert stats["platform_earnings"] == 118
    assert stats["by_status"]["paid"]["count"] == 1
    assert stats["by_method"] == [{"method": "upi", "count": 1, "amount": 1180}]


def test_transactions_date_range_is_inclusive(client, booking, customer):
    today = utcnow().date()
    url = f"{API}/payments/transactions"
    same_day = client.get(url, params={"start_date": today.isoformat(), "end_date": today.isoformat()},
                          headers=customer["headers"]).json()
    assert [t["booking_id"] for t in same_day["items"]] == [booking["id"]]

    yesterday = (today - timedelta(days=1)).isoformat()
    earlier = client.get(url, params={"end_date": yesterday}, headers=customer["headers"]).json()
    assert earlier["pagination"]["total"] == 0


@pytest.mark.parametrize(
    "event",
    [
        {"event": "payment.captured", "payload": {}},
        {"event": "payment.failed", "payload": {"payment": {}}},
        {"event": "refund.processed", "payload": {"refund": {"entity": "rfnd_1"}}},
        {"event": "payment.captured", "payload": []},
        [1, 2],
    ],
)
def test_malformed_webhook_is_rejected(client, event):
    response = signed_webhook(client, event)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid webhook payload"


def test_unhandled_webhook_event_is_acknowledged(client):
    response = signed_webhook(client, {"event": "order.paid", "payload": {}})
    assert response.json() == {"status": "ok", "event": "order.paid"}
