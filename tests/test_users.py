import models

NEW_USER = {
    "email": "driver2@example.com",
    "password": "secret123",
    "firstName": "Said",
    "lastName": "Omari",
    "phone": "+255733333333",
    "role": "driver",
}


def test_users_require_token(client):
    assert client.get("/api/users").status_code == 401


def test_create_and_fetch_user(client, auth_headers):
    created = client.post("/api/users", json=NEW_USER, headers=auth_headers)
    assert created.status_code == 201
    user_id = created.json()["id"]
    assert created.json()["role"] == "driver"

    fetched = client.get(f"/api/users/{user_id}", headers=auth_headers)
    assert fetched.status_code == 200
    assert fetched.json()["email"] == NEW_USER["email"]
    assert client.get("/api/users/missing", headers=auth_headers).status_code == 404

    listed = client.get("/api/users", headers=auth_headers).json()
    assert {user["email"] for user in listed} == {"customer@example.com", NEW_USER["email"]}


def test_duplicate_email_rejected(client, auth_headers, customer):
    response = client.post("/api/users", json={**NEW_USER, "email": customer.email}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already exists"


def test_update_user(client, auth_headers, customer, driver):
    response = client.put(
        f"/api/users/{customer.id}",
        json={"address": "Mwanza", "latitude": -2.5164, "longitude": 32.9175},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["address"] == "Mwanza"
    assert response.json()["firstName"] == "Ada"

    taken = client.put(f"/api/users/{customer.id}", json={"email": driver.email}, headers=auth_headers)
    assert taken.status_code == 400


def test_change_password_by_id(client, auth_headers, customer):
    url = f"/api/users/{customer.id}/password"
    wrong = client.patch(url, json={"currentPassword": "nope-nope", "newPassword": "another123"}, headers=auth_headers)
    assert wrong.status_code == 400

    ok = client.patch(url, json={"currentPassword": "secret123", "newPassword": "another123"}, headers=auth_headers)
    assert ok.json() == {"message": "Password updated successfully"}


def test_delete_deactivates(client, auth_headers, driver, session_factory):
    response = client.delete(f"/api/users/{driver.id}", headers=auth_headers)

    assert response.json() == {"message": "User deactivated successfully"}
    with session_factory() as session:
        user = session.query(models.User).filter(models.User.id == driver.id).one()
        assert user.is_active is False
    assert client.post("/api/auth/login", json={"email": driver.email, "password": "secret123"}).status_code == 401


def test_users_by_role(client, auth_headers, driver):
    drivers = client.get("/api/users/role/driver", headers=auth_headers).json()
    assert [user["id"] for user in drivers] == [driver.id]

    invalid = client.get("/api/users/role/pilot", headers=auth_headers)
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid role"


def test_update_rejects_null_for_required_fields(client, auth_headers, customer):
    url = f"/api/users/{customer.id}"

    response = client.put(url, json={"firstName": None}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("firstName")
    assert client.put(url, json={"isActive": None}, headers=auth_headers).status_code == 400

    cleared = client.put(url, json={"address": None}, headers=auth_headers)
    assert cleared.status_code == 200
    assert cleared.json()["address"] is None
    assert cleared.json()["firstName"] == "Ada"
