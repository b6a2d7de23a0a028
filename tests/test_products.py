def test_create_product_requires_existing_store(client):
    res = client.post("/products", json={
        "name": "Orphan", "standard_price": 5, "store_id": "5f5f5f5f5f5f5f5f5f5f5f5f",
    })
    assert res.status_code == 404
    assert res.json()["message"] == "No store found with that ID"


def test_create_then_get_product(client, make_store):
    store = make_store()
    payload = {
        "name": "Lamp",
        "image": "https://img/lamp.png",
        "standard_price": 30.0,
        "offer_price": 25.0,
        "description": "Desk lamp",
        "quantity": 4,
        "store_id": store["id"],
    }
    created = client.post("/products", json=payload).json()["data"]
    fetched = client.get(f"/products/{created['id']}").json()["data"]
    for key, value in payload.items():
        assert fetched[key] == value
    assert fetched["status"] == "active"
    assert fetched["categories"] == []


def test_negative_price_is_rejected(client, make_store):
    res = client.post("/products", json={"name": "Bad", "standard_price": -1, "store_id": make_store()["id"]})
    assert res.status_code == 400


def test_update_product_keeps_other_fields(client, make_product):
    product = make_product(standard_price=10.0, quantity=3)
    updated = client.patch(f"/products/{product['id']}", json={"quantity": 8}).json()["data"]
    assert updated["quantity"] == 8
    assert updated["standard_price"] == 10.0
    assert updated["name"] == product["name"]


def test_products_by_store(client, make_store, make_product):
    store = make_store()
    make_product(store_id=store["id"])
    make_product(store_id=store["id"])
    make_product()
    body = client.get(f"/products/store/{store['id']}").json()
    assert body["results"] == 2
    assert all(p["store_id"] == store["id"] for p in body["data"])


def test_store_lists_its_products(client, make_store, make_product):
    store = make_store()
    product = make_product(store_id=store["id"])
    data = client.get(f"/stores/{store['id']}").json()["data"]
    assert [p["id"] for p in data["products"]] == [product["id"]]


def test_adding_category_twice_keeps_one_link(client, make_product, make_category):
    product = make_product()
    category = make_category()
    url = f"/products/{product['id']}/categories/{category['id']}"
    assert client.post(url).status_code == 200
    res = client.post(url)
    assert res.status_code == 200
    categories = res.json()["data"]["categories"]
    assert [c["id"] for c in categories] == [category["id"]]

    listed = client.get(f"/categories/{category['id']}/products").json()["data"]
    assert [p["id"] for p in listed] == [product["id"]]


def test_remove_category_from_product(client, make_product, make_category):
    product = make_product()
    keep, drop = make_category(), make_category()
    client.post(f"/products/{product['id']}/categories/{keep['id']}")
    client.post(f"/products/{product['id']}/categories/{drop['id']}")

    res = client.delete(f"/products/{product['id']}/categories/{drop['id']}")
    assert res.status_code == 200
    assert [c["id"] for c in res.json()["data"]["categories"]] == [keep["id"]]


def test_category_link_requires_both_sides(client, make_product, make_category):
    product = make_product()
    category = make_category()
    missing = "5f5f5f5f5f5f5f5f5f5f5f5f"
    assert client.post(f"/products/{missing}/categories/{category['id']}").status_code == 404
    assert client.post(f"/products/{product['id']}/categories/{missing}").status_code == 404


def test_deleting_category_unlinks_products(client, make_product, make_category):
    product = make_product()
    category = make_category()
    client.post(f"/products/{product['id']}/categories/{category['id']}")
    assert client.delete(f"/categories/{category['id']}").status_code == 204
    assert client.get(f"/products/{product['id']}").json()["data"]["categories"] == []


def test_delete_product_then_get_is_not_found(client, make_product):
    product = make_product()
    assert client.delete(f"/products/{product['id']}").status_code == 204
    assert client.get(f"/products/{product['id']}").status_code == 404


def test_category_crud(client, make_category):
    category = make_category(name="Books", image="https://img/books.png")
    assert client.get(f"/categories/{category['id']}").json()["data"]["name"] == "Books"
    updated = client.patch(f"/categories/{category['id']}", json={"topic": "reading"}).json()["data"]
    assert updated["topic"] == "reading"
    assert updated["image"] == "https://img/books.png"
    assert client.get("/categories").json()["results"] == 1


def test_store_status_and_update(client, make_store):
    store = make_store(email="shop@mail.com")
    res = client.patch(f"/stores/{store['id']}/status", json={"status": "suspended"})
    assert res.json()["data"]["status"] == "suspended"
    res = client.patch(f"/stores/{store['id']}", json={"description": "Updated"})
    data = res.json()["data"]
    assert data["description"] == "Updated"
    assert data["status"] == "suspended"
    assert data["email"] == "shop@mail.com"
