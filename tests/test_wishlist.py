import pytest

from wear_backend.extensions import db
from wear_backend.models import Product


@pytest.fixture
def headers(user_token, auth_headers):
    return auth_headers(user_token)


def test_add_and_list_wishlist(client, make_product, headers):
    product_id = make_product(slug="wrap-dress")

    added = client.post("/api/wishlist", json={"productSlug": "wrap-dress"}, headers=headers)
    assert added.status_code == 201
    assert added.get_json()["data"]["productId"] == product_id

    listing = client.get("/api/wishlist", headers=headers).get_json()
    assert listing["count"] == 1
    assert listing["data"][0]["product"]["slug"] == "wrap-dress"


def test_add_duplicate_and_inactive(client, make_product, headers):
    product_id = make_product()
    inactive_id = make_product(is_active=False)
    client.post("/api/wishlist", json={"productId": product_id}, headers=headers)

    duplicate = client.post("/api/wishlist", json={"productId": product_id}, headers=headers)
    assert duplicate.status_code == 400
    assert duplicate.get_json()["message"] == "Product is already in your wishlist"

    inactive = client.post("/api/wishlist", json={"productId": inactive_id}, headers=headers)
    assert inactive.status_code == 404

    missing = client.post("/api/wishlist", json={}, headers=headers)
    assert missing.status_code == 400


def test_listing_hides_products_deactivated_later(app, client, make_product, headers):
    product_id = make_product()
    client.post("/api/wishlist", json={"productId": product_id}, headers=headers)
    with app.app_context():
        db.session.get(Product, product_id).is_active = False
        db.session.commit()

    listing = client.get("/api/wishlist", headers=headers).get_json()

    assert listing["count"] == 0
    assert listing["data"] == []


def test_check_and_remove(client, make_product, headers):
    product_id = make_product()
    client.post("/api/wishlist", json={"productId": product_id}, headers=headers)

    status = client.get(f"/api/wishlist/check/{product_id}", headers=headers).get_json()["data"]
    assert status["isInWishlist"] is True
    assert status["addedAt"].endswith("Z")

    removed = client.delete(f"/api/wishlist/{product_id}", headers=headers)
    assert removed.status_code == 200

    status = client.get(f"/api/wishlist/check/{product_id}", headers=headers).get_json()["data"]
    assert status == {"isInWishlist": False, "addedAt": None}

    assert client.delete(f"/api/wishlist/{product_id}", headers=headers).status_code == 404


def test_clear_wishlist(client, make_product, headers):
    for _ in range(2):
        client.post("/api/wishlist", json={"productId": make_product()}, headers=headers)

    response = client.delete("/api/wishlist", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["data"]["deletedCount"] == 2
    assert client.get("/api/wishlist", headers=headers).get_json()["count"] == 0
