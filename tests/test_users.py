from conftest import API, PASSWORD

ADDRESS = {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"}


def test_update_profile(client, make_user):
    user = make_user()
    response = client.put(
        f"{API}/users/me", json={"name": "Asha R", "gender": "female"}, headers=user["headers"]
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Asha R"
    assert response.json()["gender"] == "female"


def test_update_profile_rejects_taken_phone(client, make_user):
    first, second = make_user(), make_user()
    response = client.put(f"{API}/users/me", json={"phone": first["phone"]}, headers=second["headers"])
    assert response.status_code == 409


def test_preferences_are_merged(client, make_user):
    user = make_user()
    response = client.put(
        f"{API}/users/preferences",
        json={"theme": "dark", "notifications": {"email": False, "sms": True, "push": True}},
        headers=user["headers"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["theme"] == "dark"
    assert body["language"] == "en"
    assert body["notifications"]["email"] is False

    response = client.put(
        f"{API}/users/preferences", json={"notifications": {"sms": False}}, headers=user["headers"]
    )
    assert response.json()["notifications"] == {"email": False, "sms": False, "push": True}
    assert response.json()["theme"] == "dark"


def test_address_book(client, make_user):
    user = make_user()
    response = client.post(f"{API}/users/addresses", json=ADDRESS, headers=user["headers"])
    assert response.status_code == 201
    addresses = response.json()
    assert len(addresses) == 1 and addresses[0]["is_default"] is True

    response = client.post(
        f"{API}/users/addresses", json={**ADDRESS, "type": "work", "is_default": True}, headers=user["headers"]
    )
    addresses = response.json()
    defaults = [a for a in addresses if a["is_default"]]
    assert len(defaults) == 1 and defaults[0]["type"] == "work"

    work_id = defaults[0]["id"]
    response = client.put(
        f"{API}/users/addresses/{work_id}", json={**ADDRESS, "type": "work", "street": "1 Residency Rd"},
        headers=user["headers"],
    )
    assert any(a["street"] == "1 Residency Rd" for a in response.json())

    response = client.delete(f"{API}/users/addresses/{work_id}", headers=user["headers"])
    remaining = response.json()
    assert len(remaining) == 1 and remaining[0]["is_default"] is True

    assert client.delete(f"{API}/users/addresses/{work_id}", headers=user["headers"]).status_code == 404


def test_address_of_another_user_is_not_found(client, make_user):
    owner, other = make_user(), make_user()
    address_id = client.post(f"{API}/users/addresses", json=ADDRESS, headers=owner["headers"]).json()[0]["id"]
    response = client.put(f"{API}/users/addresses/{address_id}", json=ADDRESS, headers=other["headers"])
    assert response.status_code == 404


def test_deactivate_and_reactivate(client, make_user):
    user = make_user()
    assert client.put(f"{API}/users/deactivate", headers=user["headers"]).status_code == 200
    assert client.get(f"{API}/users/me", headers=user["headers"]).status_code == 401
    assert client.post(f"{API}/auth/login", json={"email": user["email"], "password": PASSWORD}).status_code == 401

    response = client.put(f"{API}/users/reactivate", json={"email": user["email"], "password": "wrong-pass"})
    assert response.status_code == 401
    response = client.put(f"{API}/users/reactivate", json={"email": user["email"], "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["is_active"] is True
    assert client.get(f"{API}/users/me", headers=user["headers"]).status_code == 200


def test_admin_deactivated_account_cannot_self_reactivate(client, admin, make_user):
    user = make_user()
    response = client.put(
        f"{API}/users/{user['id']}/status", json={"is_active": False, "reason": "abuse"}, headers=admin["headers"]
    )
    assert response.status_code == 200
    response = client.put(f"{API}/users/reactivate", json={"email": user["email"], "password": PASSWORD})
    assert response.status_code == 403


def test_own_stats(client, make_user):
    user = make_user()
    response = client.get(f"{API}/users/stats", headers=user["headers"])
    assert response.status_code == 200
    assert response.json()["total_bookings"] == 0


def test_admin_routes_require_admin(client, make_user):
    user = make_user()
    assert client.get(f"{API}/users/", headers=user["headers"]).status_code == 403
    assert client.get(f"{API}/users/statistics", headers=user["headers"]).status_code == 403


def test_admin_lists_and_filters_users(client, admin, make_user):
    make_user(name="Kiran Shah")
    make_user(name="Meera Iyer")
    response = client.get(f"{API}/users/", params={"search": "Kiran"}, headers=admin["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["items"][0]["name"] == "Kiran Shah"

    response = client.get(f"{API}/users/", params={"role": "admin"}, headers=admin["headers"])
    assert [u["email"] for u in response.json()["items"]] == [admin["email"]]


def test_admin_updates_role(client, admin, make_user):
    user = make_user()
    response = client.put(f"{API}/users/{user['id']}", json={"role": "admin"}, headers=admin["headers"])
    assert response.status_code == 200
    assert response.json()["role"] == "admin"


def test_admin_cannot_demote_or_delete_self(client, admin):
    response = client.put(f"{API}/users/{admin['id']}", json={"role": "customer"}, headers=admin["headers"])
    assert response.status_code == 400
    assert client.delete(f"{API}/users/{admin['id']}", headers=admin["headers"]).status_code == 400


def test_admin_self_update_with_null_role(client, admin):
    response = client.put(
        f"{API}/users/{admin['id']}", json={"name": "Head Admin", "role": None}, headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Head Admin"
    assert response.json()["role"] == "admin"


def test_admin_deletes_user_without_history(client, admin, make_user):
    user = make_user()
    assert client.delete(f"{API}/users/{user['id']}", headers=admin["headers"]).status_code == 204
    assert client.get(f"{API}/users/{user['id']}", headers=admin["headers"]).status_code == 404


def test_admin_cannot_delete_user_with_bookings(client, admin, customer, booking):
    response = client.delete(f"{API}/users/{customer['id']}", headers=admin["headers"])
    assert response.status_code == 409


def test_user_statistics(client, admin, make_user):
    make_user()
    response = client.get(f"{API}/users/statistics", headers=admin["headers"])
    assert response.status_code == 200
