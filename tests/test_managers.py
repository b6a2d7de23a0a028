import pytest


@pytest.fixture
def manager(client, admin_headers):
    res = client.post("/managers", json={
        "name": "Max", "email": "max@mail.com", "password": "secret123",
        "permissions": ["MANAGE_ORDERS", "MANAGE_ORDERS"],
    }, headers=admin_headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]


def test_create_manager_creates_user(client, manager):
    assert manager["is_active"] is True
    assert manager["permissions"] == ["MANAGE_ORDERS"]
    assert manager["user"]["email"] == "max@mail.com"
    assert manager["user"]["role"] == "MANAGER"
    assert "password_hash" not in manager["user"]


def test_get_manager_by_email(client, manager):
    res = client.get("/managers/email/max@mail.com")
    assert res.json()["data"]["id"] == manager["id"]
    assert client.get("/managers/email/nobody@mail.com").status_code == 404


def test_update_manager_touches_user_fields(client, manager):
    res = client.patch(f"/managers/{manager['id']}", json={"phone": "+4900"})
    assert res.json()["data"]["user"]["phone"] == "+4900"
    assert res.json()["data"]["user"]["name"] == "Max"


def test_change_password_with_wrong_current_is_unauthorized(client, manager):
    res = client.patch(f"/managers/{manager['id']}/password", json={
        "current_password": "wrong-one", "new_password": "newsecret",
    })
    assert res.status_code == 401
    assert res.json() == {"status": "fail", "message": "Current password is incorrect"}


def test_change_password(client, manager, login):
    res = client.patch(f"/managers/{manager['id']}/password", json={
        "current_password": "secret123", "new_password": "newsecret",
    })
    assert res.status_code == 200
    login("max@mail.com", "newsecret")
    old = client.post("/auth/login", data={"email": "max@mail.com", "password": "secret123"})
    assert old.status_code == 401


def test_login_stamps_last_login(client, manager, login):
    assert manager["last_login"] is None
    login("max@mail.com")
    assert client.get(f"/managers/{manager['id']}").json()["data"]["last_login"] is not None


def test_permissions_require_authentication(client, manager):
    res = client.patch(f"/managers/{manager['id']}/permissions", json={"permissions": ["MANAGE_USERS"]})
    assert res.status_code == 401


def test_plain_user_cannot_change_permissions(client, manager, make_user, login):
    make_user(email="pleb@mail.com")
    res = client.patch(
        f"/managers/{manager['id']}/permissions",
        json={"permissions": ["MANAGE_USERS"]},
        headers=login("pleb@mail.com"),
    )
    assert res.status_code == 403


def test_admin_updates_permissions_and_status(client, manager, admin_headers):
    res = client.patch(
        f"/managers/{manager['id']}/permissions",
        json={"permissions": ["MANAGE_USERS", "MANAGE_MANAGERS", "MANAGE_USERS"]},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.json()["data"]["permissions"] == ["MANAGE_USERS", "MANAGE_MANAGERS"]

    res = client.patch(f"/managers/{manager['id']}/status", json={"is_active": False}, headers=admin_headers)
    assert res.json()["data"]["is_active"] is False


def test_unknown_permission_is_rejected(client, manager, admin_headers):
    res = client.patch(
        f"/managers/{manager['id']}/permissions",
        json={"permissions": ["LAUNCH_ROCKETS"]},
        headers=admin_headers,
    )
    assert res.status_code == 400


def test_manager_with_permission_can_manage_managers(client, manager, admin_headers, login):
    other = client.post("/managers", json={
        "name": "Ola", "email": "ola@mail.com", "password": "secret123",
        "permissions": ["MANAGE_MANAGERS"],
    }, headers=admin_headers).json()["data"]
    res = client.patch(f"/managers/{manager['id']}/status", json={"is_active": False}, headers=login("ola@mail.com"))
    assert res.status_code == 200

    client.patch(f"/managers/{other['id']}/status", json={"is_active": False}, headers=admin_headers)
    res = client.patch(f"/managers/{manager['id']}/status", json={"is_active": True}, headers=login("ola@mail.com"))
    assert res.status_code == 403


def test_delete_manager_removes_user(client, manager):
    assert client.delete(f"/managers/{manager['id']}").status_code == 204
    assert client.get(f"/managers/{manager['id']}").status_code == 404
    assert client.get(f"/users/{manager['user_id']}").status_code == 404


def test_duplicate_manager_email_is_conflict(client, manager, admin_headers):
    res = client.post(
        "/managers",
        json={"name": "Twin", "email": "max@mail.com", "password": "secret123"},
        headers=admin_headers,
    )
    assert res.status_code == 400


def test_creating_manager_requires_manage_managers(client, make_user, login):
    payload = {"name": "Sly", "email": "sly@mail.com", "password": "secret123", "permissions": ["MANAGE_MANAGERS"]}
    assert client.post("/managers", json=payload).status_code == 401

    make_user(email="plain@mail.com")
    res = client.post("/managers", json=payload, headers=login("plain@mail.com"))
    assert res.status_code == 403
    assert client.get("/managers/email/sly@mail.com").status_code == 404


def test_self_registered_admin_role_grants_nothing(client, manager, make_user, login):
    user = make_user(email="mallory@mail.com", role="ADMIN")
    assert user["role"] == "USER"
    assert client.patch(f"/users/{user['id']}", json={"role": "ADMIN"}).status_code == 400
    assert client.get(f"/users/{user['id']}").json()["data"]["role"] == "USER"

    res = client.patch(
        f"/managers/{manager['id']}/permissions",
        json={"permissions": ["MANAGE_MANAGERS"]},
        headers=login("mallory@mail.com"),
    )
    assert res.status_code == 403
