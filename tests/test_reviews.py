from datetime import timedelta

import pytest

from conftest import API
from home_services_api.app.core.db import get_cursor, to_db_datetime, utcnow
from home_services_api.app.services.review_service import REPORT_THRESHOLD


@pytest.fixture
def review(client, completed_booking, customer):
    payload = {
        "booking_id": completed_booking["id"],
        "rating": 4,
        "comment": "  Very thorough work  ",
        "aspects": {"punctuality": 5, "quality": 4},
    }
    response = client.post(f"{API}/reviews/", json=payload, headers=customer["headers"])
    assert response.status_code == 201, response.text
    return response.json()


def test_create_review_updates_ratings(client, review, customer, provider, service):
    assert review["comment"] == "Very thorough work"
    assert review["customer_id"] == customer["id"]
    assert review["provider_id"] == provider["provider_id"]
    assert review["service_id"] == service["id"]
    assert review["status"] == "active"

    assert client.get(f"{API}/services/{service['id']}").json()["average_rating"] == 4
    profile = client.get(f"{API}/providers/{provider['provider_id']}").json()
    assert profile["rating"] == 4
    assert profile["total_reviews"] == 1

    inbox = client.get(f"{API}/notifications/", headers=provider["headers"]).json()
    assert inbox["items"][0]["title"] == "New Review"


def test_only_completed_bookings_can_be_reviewed(client, booking, customer):
    response = client.post(f"{API}/reviews/", json={"booking_id": booking["id"], "rating": 5}, headers=customer["headers"])
    assert response.status_code == 400
    assert response.json()["detail"] == "Only completed bookings can be reviewed"


def test_review_ownership_and_duplicates(client, review, completed_booking, make_user):
    stranger = make_user()
    payload = {"booking_id": completed_booking["id"], "rating": 1}
    assert client.post(f"{API}/reviews/", json=payload, headers=stranger["headers"]).status_code == 403

    unauthenticated = client.post(f"{API}/reviews/", json=payload, headers={"Authorization": "Bearer nope"})
    assert unauthenticated.status_code == 401

    missing = client.post(f"{API}/reviews/", json={"booking_id": 999, "rating": 3}, headers=stranger["headers"])
    assert missing.status_code == 404


def test_booking_reviewed_only_once(client, review, completed_booking, customer):
    payload = {"booking_id": completed_booking["id"], "rating": 2}
    response = client.post(f"{API}/reviews/", json=payload, headers=customer["headers"])
    assert response.status_code == 400
    assert response.json()["detail"] == "This booking has already been reviewed"


def test_rating_must_be_in_range(client, completed_booking, customer):
    payload = {"booking_id": completed_booking["id"], "rating": 6}
    assert client.post(f"{API}/reviews/", json=payload, headers=customer["headers"]).status_code == 422


def test_update_within_window(client, review, customer, provider, service, make_user):
    url = f"{API}/reviews/{review['id']}"
    response = client.put(url, json={"rating": 2}, headers=customer["headers"])
    assert response.status_code == 200
    assert response.json()["rating"] == 2
    assert client.get(f"{API}/services/{service['id']}").json()["average_rating"] == 2

    assert client.put(url, json={"rating": 5}, headers=provider["headers"]).status_code == 403

    with get_cursor() as cursor:
        cursor.execute(
            "UPDATE reviews SET created_at = ? WHERE id = ?",
            (to_db_datetime(utcnow() - timedelta(days=10)), review["id"]),
        )
    assert client.put(url, json={"rating": 5}, headers=customer["headers"]).status_code == 400


def test_anonymous_reviews_are_masked_publicly(client, completed_booking, customer, service):
    payload = {"booking_id": completed_booking["id"], "rating": 5, "is_anonymous": True}
    own = client.post(f"{API}/reviews/", json=payload, headers=customer["headers"]).json()
    assert own["customer_name"] == "Asha Rao"

    listing = client.get(f"{API}/reviews/service/{service['id']}").json()
    public = listing["items"][0]
    assert public["customer_name"] == "Anonymous"
    assert public["customer_id"] is None
    assert listing["stats"]["total_reviews"] == 1
    assert listing["stats"]["distribution"]["5"] == 1

    mine = client.get(f"{API}/reviews/my-reviews", headers=customer["headers"]).json()
    assert mine["items"][0]["customer_name"] == "Asha Rao"


def test_public_listings_404_for_unknown_targets(client):
    assert client.get(f"{API}/reviews/service/999").status_code == 404
    assert client.get(f"{API}/reviews/provider/999").status_code == 404


def test_reports_flag_review_after_threshold(client, review, customer, provider, service, make_user):
    url = f"{API}/reviews/{review['id']}/report"
    assert client.post(url, json={"reason": "spam"}, headers=customer["headers"]).status_code == 400

    reporters = [make_user() for _ in range(REPORT_THRESHOLD)]
    first = client.post(url, json={"reason": "fake"}, headers=reporters[0]["headers"])
    assert first.json()["report_count"] == 1
    duplicate = client.post(url, json={"reason": "fake"}, headers=reporters[0]["headers"])
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "You have already reported this review"

    for reporter in reporters[1:]:
        body = client.post(url, json={"reason": "offensive"}, headers=reporter["headers"]).json()
    assert body["status"] == "reported"
    assert body["report_count"] == REPORT_THRESHOLD

    assert client.get(f"{API}/reviews/service/{service['id']}").json()["items"] == []
    assert client.get(f"{API}/services/{service['id']}").json()["total_reviews"] == 0


def test_invalid_report_reason(client, review, make_user):
    reporter = make_user()
    response = client.post(f"{API}/reviews/{review['id']}/report", json={"reason": "boring"}, headers=reporter["headers"])
    assert response.status_code == 422


def test_provider_responds_once(client, review, customer, provider):
    url = f"{API}/reviews/{review['id']}/respond"
    assert client.post(url, json={"response": "Thanks!"}, headers=customer["headers"]).status_code == 403

    response = client.post(url, json={"response": " Thanks for booking "}, headers=provider["headers"])
    assert response.status_code == 200
    assert response.json()["provider_response"] == "Thanks for booking"
    assert response.json()["response_date"] is not None

    assert client.post(url, json={"response": "Again"}, headers=provider["headers"]).status_code == 400

    inbox = client.get(f"{API}/notifications/", headers=customer["headers"]).json()
    assert inbox["items"][0]["title"] == "Provider Responded"


@pytest.fixture
def reported_review(client, review, make_user):
    for _ in range(REPORT_THRESHOLD):
        reporter = make_user()
        client.post(f"{API}/reviews/{review['id']}/report", json={"reason": "spam"}, headers=reporter["headers"])
    return review


def test_moderation_approve(client, admin, customer, reported_review, service):
    assert client.get(f"{API}/reviews/admin/reported", headers=customer["headers"]).status_code == 403
    reported = client.get(f"{API}/reviews/admin/reported", headers=admin["headers"]).json()
    assert [r["id"] for r in reported["items"]] == [reported_review["id"]]

    url = f"{API}/reviews/admin/{reported_review['id']}/moderate"
    body = client.put(url, json={"action": "approve"}, headers=admin["headers"]).json()
    assert body["review"]["status"] == "active"
    assert body["review"]["report_count"] == 0
    assert client.get(f"{API}/services/{service['id']}").json()["total_reviews"] == 1


def test_moderation_hide_and_delete(client, admin, reported_review, service):
    url = f"{API}/reviews/admin/{reported_review['id']}/moderate"
    assert client.put(url, json={"action": "hide"}, headers=admin["headers"]).json()["review"]["status"] == "hidden"
    assert client.put(url, json={"action": "ban"}, headers=admin["headers"]).status_code == 422

    body = client.put(url, json={"action": "delete", "reason": "Spam"}, headers=admin["headers"]).json()
    assert body["review"] is None
    assert client.put(url, json={"action": "hide"}, headers=admin["headers"]).status_code == 404


def test_delete_review(client, review, customer, provider, service):
    url = f"{API}/reviews/{review['id']}"
    assert client.delete(url, headers=provider["headers"]).status_code == 403
    assert client.delete(url, headers=customer["headers"]).json()["message"] == "Review deleted successfully"
    assert client.get(f"{API}/services/{service['id']}").json()["average_rating"] == 0


def test_ratings_average_across_reviews(client, make_user, make_booking, provider, service, set_status):
    for rating in (5, 2):
        reviewer = make_user()
        booking = make_booking(reviewer, provider, service)
        set_status(booking["id"], provider, "confirmed", "in-progress", "completed")
        payload = {"booking_id": booking["id"], "rating": rating}
        assert client.post(f"{API}/reviews/", json=payload, headers=reviewer["headers"]).status_code == 201

    profile = client.get(f"{API}/providers/{provider['provider_id']}").json()
    assert profile["rating"] == 3.5
    assert profile["total_reviews"] == 2

    by_rating = client.get(f"{API}/reviews/provider/{provider['provider_id']}", params={"rating": 5}).json()
    assert [r["rating"] for r in by_rating["items"]] == [5]
    ordered = client.get(
        f"{API}/reviews/provider/{provider['provider_id']}", params={"sort_by": "rating", "order": "asc"}
    ).json()
    assert [r["rating"] for r in ordered["items"]] == [2, 5]


def test_review_stats(client, admin, review, provider):
    client.post(f"{API}/reviews/{review['id']}/respond", json={"response": "Thank you"}, headers=provider["headers"])
    stats = client.get(f"{API}/reviews/admin/stats", headers=admin["headers"]).json()
    assert stats["total_reviews"] == 1
    assert stats["by_status"] == {"active": 1}
    assert stats["average_rating"] == 4
    assert stats["response_rate"] == 100
    assert stats["last_30_days"] == 1
