import pytest


@pytest.fixture
def headers(user_token, auth_headers):
    return auth_headers(user_token)


def test_cart_requires_login(client):
    assert client.get("/api/cart").status_code == 401


def test_empty_cart(client, headers):
    response = client.get("/api/cart", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["data"] == {"items": [], "subtotalCents": 0, "totalItems": 0}


def test_add_merges_same_product_and_size(client, make_product, headers):
    product_id = make_product()

    client.post("/api/cart", json={"productId": product_id, "quantity": 1, "size": "M"}, headers=headers)
    client.post("/api/cart/add", json={"productId": product_id, "quantity": 2, "size": "M"}, headers=headers)
    response = client.post("/api/cart", json={"productId": product_id, "size": "L"}, headers=headers)

    assert response.status_code == 200
    cart = response.get_json()["data"]
    assert [(item["size"], item["quantity"]) for item in cart["items"]] == [("M", 3), ("L", 1)]
    assert cart["totalItems"] == 4
    assert cart["subtotalCents"] == 4 * 4999


def test_add_validates_input(client, headers):
    missing = client.post("/api/cart", json={"quantity": 1}, headers=headers)
    assert missing.status_code == 400
    assert missing.get_json()["message"] == "Product ID is required"

    zero = client.post("/api/cart", json={"productId": 1, "quantity": 0}, headers=headers)
    assert zero.status_code == 400

    unknown = client.post("/api/cart", json={"productId": 999, "quantity": 1}, headers=headers)
    assert unknown.status_code == 404


def test_overlong_size_is_rejected(client, make_product, headers):
    product_id = make_product()

    added = client.post(
        "/api/cart", json={"productId": product_id, "quantity": 1, "size": "S" * 21}, headers=headers
    )
    assert added.status_code == 400
    assert added.get_json()["message"] == "Size must be at most 20 characters"

    synced = client.post(
        "/api/cart/sync",
        json={"guestCartItems": [{"productId": product_id, "quantity": 1, "size": "S" * 21}]},
        headers=headers,
    )
    assert synced.status_code == 200
    assert synced.get_json()["data"]["items"] == []


def test_update_quantity_and_remove_with_zero(client, make_product, headers):
    product_id = make_product()
    client.post("/api/cart", json={"productId": product_id, "quantity": 1}, headers=headers)

    updated = client.put("/api/cart", json={"productId": product_id, "quantity": 5}, headers=headers)
    assert updated.get_json()["data"]["items"][0]["quantity"] == 5

    negative = client.put("/api/cart/update", json={"productId": product_id, "quantity": -1}, headers=headers)
    assert negative.status_code == 400

    removed = client.put("/api/cart/update", json={"productId": product_id, "quantity": 0}, headers=headers)
    assert removed.get_json()["data"]["items"] == []

    missing = client.put("/api/cart", json={"productId": product_id, "quantity": 1}, headers=headers)
    assert missing.status_code == 404


def test_remove_single_size_line(client, make_product, headers):
    product_id = make_product()
    client.post("/api/cart", json={"productId": product_id, "size": "S"}, headers=headers)
    client.post("/api/cart", json={"productId": product_id, "size": "M"}, headers=headers)

    response = client.delete(f"/api/cart/{product_id}?size=S", headers=headers)

    assert response.status_code == 200
    assert [item["size"] for item in response.get_json()["data"]["items"]] == ["M"]
    assert client.delete(f"/api/cart/{product_id}", headers=headers).status_code == 404


def test_clear_cart(client, make_product, headers):
    client.post("/api/cart", json={"productId": make_product()}, headers=headers)
    client.post("/api/cart", json={"productId": make_product()}, headers=headers)

    response = client.delete("/api/cart/clear", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["data"]["items"] == []


def test_sync_guest_cart(client, make_product, headers):
    product_id = make_product()
    other_id = make_product()
    client.post("/api/cart", json={"productId": product_id, "quantity": 1}, headers=headers)

    response = client.post(
        "/api/cart/sync",
        json={
            "guestCartItems": [
                {"productId": product_id, "quantity": 2},
                {"id": other_id, "quantity": 1, "size": "L"},
                {"productId": 999, "quantity": 1},
                {"productId": other_id, "quantity": 0},
                "garbage",
            ]
        },
        headers=headers,
    )

    assert response.status_code == 200
    items = response.get_json()["data"]["items"]
    assert [(item["productId"], item["size"], item["quantity"]) for item in items] == [
        (product_id, None, 3),
        (other_id, "L", 1),
    ]


def test_sync_requires_list(client, headers):
    response = client.post("/api/cart/sync", json={"guestCartItems": {}}, headers=headers)

    assert response.status_code == 400
    assert response.get_json()["message"] == "Guest cart items must be an array"
