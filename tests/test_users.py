def test_create_then_get_returns_same_record(client):
    payload = {
        "name": "Alice",
        "email": "alice@mail.com",
        "password": "secret123",
        "phone": "+15551234",
        "address": "12 Elm St",
    }
    res = client.post("/users", json=payload)
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "success"
    created = body["data"]
    assert created["id"]
    assert created["role"] == "USER"
    assert "password_hash" not in created and "password" not in created

    fetched = client.get(f"/users/{created['id']}").json()["data"]
    for key in ("name", "email", "phone", "address"):
        assert fetched[key] == payload[key]
    assert fetched["id"] == created["id"]


def test_list_users_carries_results_count(client, make_user):
    make_user()
    make_user()
    body = client.get("/users").json()
    assert body["status"] == "success"
    assert body["results"] == 2
    assert len(body["data"]) == 2


def test_duplicate_email_is_conflict(client, make_user):
    make_user(email="dup@mail.com")
    res = client.post("/users", json={"name": "Other", "email": "dup@mail.com", "password": "secret123"})
    assert res.status_code == 400
    assert res.json() == {"status": "fail", "message": "Email already exists"}


def test_update_changes_only_given_field(client, make_user):
    user = make_user(name="Before", phone="+1000")
    res = client.patch(f"/users/{user['id']}", json={"name": "After"})
    assert res.status_code == 200
    updated = res.json()["data"]
    assert updated["name"] == "After"
    assert updated["phone"] == "+1000"
    assert updated["email"] == user["email"]


def test_update_rejects_unknown_fields(client, make_user):
    user = make_user()
    res = client.patch(f"/users/{user['id']}", json={"password_hash": "x"})
    assert res.status_code == 400
    assert res.json()["status"] == "fail"


def test_update_to_taken_email_is_conflict(client, make_user):
    make_user(email="taken@mail.com")
    user = make_user()
    res = client.patch(f"/users/{user['id']}", json={"email": "taken@mail.com"})
    assert res.status_code == 400


def test_delete_then_get_is_not_found(client, make_user):
    user = make_user()
    assert client.delete(f"/users/{user['id']}").status_code == 204
    res = client.get(f"/users/{user['id']}")
    assert res.status_code == 404
    assert res.json() == {"status": "fail", "message": "No user found with that ID"}
    assert client.delete(f"/users/{user['id']}").status_code == 404


def test_malformed_id_is_rejected(client):
    res = client.get("/users/not-an-id")
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid id"


def test_missing_required_field_is_validation_error(client):
    res = client.post("/users", json={"name": "No Email", "password": "secret123"})
    assert res.status_code == 400
    body = res.json()
    assert body["status"] == "fail"
    assert "email" in body["message"]


def test_role_cannot_be_chosen_on_signup(client):
    res = client.post("/users", json={"name": "X", "email": "x@mail.com", "password": "secret123", "role": "ADMIN"})
    assert res.status_code == 201
    assert res.json()["data"]["role"] == "USER"


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/nowhere")
    assert res.status_code == 404
    assert res.json()["status"] == "fail"


def test_delete_user_removes_cart_and_profiles(client, db, make_user, make_cart, make_store, make_product):
    user = make_user()
    cart = make_cart(user_id=user["id"])
    client.post(f"/carts/{cart['id']}/items", json={"product_id": make_product()["id"]})
    seller = client.post("/sellers", json={"user_id": user["id"], "store_id": make_store()["id"]}).json()["data"]

    assert client.delete(f"/users/{user['id']}").status_code == 204
    assert client.get(f"/carts/{cart['id']}").status_code == 404
    assert client.get(f"/sellers/{seller['id']}").status_code == 404
    assert db["cart_items"].count_documents({"cart_id": cart["id"]}) == 0
