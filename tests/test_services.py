from conftest import API


def test_catalogue_is_public(client, make_service):
    make_service("Deep Home Cleaning", "cleaning", 2499)
    make_service("Tap Repair", "plumbing", 299)
    response = client.get(f"{API}/services/")
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 12, "total": 2, "pages": 1}


def test_filters_and_sorting(client, make_service):
    make_service("Deep Home Cleaning", "cleaning", 2499)
    make_service("Bathroom Cleaning", "cleaning", 499)
    make_service("Tap Repair", "plumbing", 299)

    response = client.get(f"{API}/services/", params={"category": "cleaning", "sort_by": "base_price", "order": "asc"})
    assert [s["name"] for s in response.json()["items"]] == ["Bathroom Cleaning", "Deep Home Cleaning"]

    response = client.get(f"{API}/services/", params={"min_price": 300, "max_price": 1000})
    assert [s["name"] for s in response.json()["items"]] == ["Bathroom Cleaning"]

    response = client.get(f"{API}/services/category/plumbing")
    assert [s["name"] for s in response.json()["items"]] == ["Tap Repair"]


def test_unknown_category_is_rejected(client):
    assert client.get(f"{API}/services/", params={"category": "astrology"}).status_code == 422


def test_search_ranks_name_matches_first(client, make_service):
    make_service("Sofa Cleaning", "cleaning", 799, description="Shampoo for sofas")
    make_service("Carpet Care", "cleaning", 999, description="Carpet and sofa shampoo")
    response = client.get(f"{API}/services/search", params={"q": "sofa"})
    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["Sofa Cleaning", "Carpet Care"]


def test_categories_summary(client, make_service):
    make_service("Deep Home Cleaning", "cleaning", 2000)
    make_service("Bathroom Cleaning", "cleaning", 500)
    make_service("Tap Repair", "plumbing", 300)
    response = client.get(f"{API}/services/categories")
    assert response.json()[0] == {"category": "cleaning", "count": 2, "average_price": 1250.0}


def test_get_service_and_missing(client, service):
    response = client.get(f"{API}/services/{service['id']}")
    assert response.status_code == 200
    assert response.json()["name"] == service["name"]
    assert client.get(f"{API}/services/9999").status_code == 404


def test_only_admins_manage_services(client, make_user):
    user = make_user()
    payload = {"name": "X", "category": "other", "description": "x", "base_price": 100, "duration": 30}
    assert client.post(f"{API}/services/", json=payload, headers=user["headers"]).status_code == 403
    assert client.post(f"{API}/services/", json=payload).status_code == 401


def test_create_service_validates_input(client, admin):
    payload = {"name": "X", "category": "other", "description": "x", "base_price": 0, "duration": 5}
    assert client.post(f"{API}/services/", json=payload, headers=admin["headers"]).status_code == 422


def test_update_service(client, admin, service):
    response = client.put(
        f"{API}/services/{service['id']}", json={"base_price": 1500, "tags": ["premium"]}, headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.json()["base_price"] == 1500
    assert response.json()["tags"] == ["premium"]


def test_soft_delete_hides_service(client, admin, service):
    assert client.delete(f"{API}/services/{service['id']}", headers=admin["headers"]).status_code == 204
    assert client.get(f"{API}/services/{service['id']}").status_code == 404
    assert client.get(f"{API}/services/").json()["pagination"]["total"] == 0


def test_toggle_status(client, admin, service):
    response = client.patch(f"{API}/services/{service['id']}/toggle-status", headers=admin["headers"])
    assert response.json()["is_active"] is False
    response = client.patch(f"{API}/services/{service['id']}/toggle-status", headers=admin["headers"])
    assert response.json()["is_active"] is True


def test_popular_follows_bookings(client, make_service, customer, make_provider, make_booking):
    quiet = make_service("Fan Installation", "electrical", 349)
    busy = make_service("AC Servicing", "appliance-repair", 699)
    provider = make_provider([quiet["id"], busy["id"]])
    make_booking(customer, provider, busy)
    response = client.get(f"{API}/services/popular")
    assert response.json()[0]["id"] == busy["id"]
    assert response.json()[0]["popularity"] == 1


def test_service_stats(client, admin, service):
    response = client.get(f"{API}/services/admin/stats", headers=admin["headers"])
    assert response.status_code == 200
    assert response.json()["total_services"] == 1
