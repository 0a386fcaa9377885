def test_create_collection_with_ordered_products(client, make_product, admin_token, auth_headers):
    first = make_product()
    second = make_product()

    response = client.post(
        "/api/collections",
        json={
            "name": "Summer Edit",
            "collectionType": "manual",
            "sortOrder": 2,
            "productIds": [second, first, 9999],
        },
        headers=auth_headers(admin_token),
    )

    assert response.status_code == 201
    collection = response.get_json()["data"]["collection"]
    assert collection["slug"] == "summer-edit"
    assert collection["sortOrder"] == 2
    assert [item["id"] for item in collection["products"]] == [second, first]
    assert [item["position"] for item in collection["products"]] == [0, 1]


def test_create_collection_validation(client, admin_token, auth_headers):
    headers = auth_headers(admin_token)

    bad_type = client.post(
        "/api/collections", json={"name": "Edit", "collectionType": "random"}, headers=headers
    )
    assert bad_type.status_code == 400
    assert bad_type.get_json()["message"] == "Invalid collectionType"

    client.post("/api/collections", json={"name": "Edit"}, headers=headers)
    duplicate = client.post("/api/collections", json={"name": "Edit"}, headers=headers)
    assert duplicate.status_code == 400


def test_list_collections_sorted_and_filtered(client, admin_token, auth_headers):
    headers = auth_headers(admin_token)
    client.post("/api/collections", json={"name": "Second", "sortOrder": 2}, headers=headers)
    client.post("/api/collections", json={"name": "First", "sortOrder": 1}, headers=headers)
    client.post("/api/collections", json={"name": "Archived", "sortOrder": 0, "isActive": False}, headers=headers)

    everything = client.get("/api/collections").get_json()["data"]
    assert [item["name"] for item in everything["collections"]] == ["Archived", "First", "Second"]
    assert everything["pagination"]["totalCollections"] == 3

    active = client.get("/api/collections?active=true").get_json()["data"]["collections"]
    assert [item["name"] for item in active] == ["First", "Second"]


def test_add_and_remove_collection_product(client, make_product, admin_token, auth_headers):
    headers = auth_headers(admin_token)
    product_id = make_product()
    collection_id = client.post("/api/collections", json={"name": "Basics"}, headers=headers).get_json()[
        "data"
    ]["collection"]["id"]

    added = client.post(
        f"/api/collections/{collection_id}/products/{product_id}",
        json={"position": 3},
        headers=headers,
    )
    assert added.status_code == 200

    collection = client.get("/api/collections/basics").get_json()["data"]["collection"]
    assert [(item["id"], item["position"]) for item in collection["products"]] == [(product_id, 3)]

    filtered = client.get(f"/api/products?collectionId={collection_id}").get_json()["data"]["products"]
    assert [item["id"] for item in filtered] == [product_id]

    removed = client.delete(f"/api/collections/{collection_id}/products/{product_id}", headers=headers)
    assert removed.status_code == 200
    collection = client.get(f"/api/collections/{collection_id}").get_json()["data"]["collection"]
    assert collection["products"] == []


def test_add_missing_product_to_collection(client, admin_token, auth_headers):
    headers = auth_headers(admin_token)
    collection_id = client.post("/api/collections", json={"name": "Basics"}, headers=headers).get_json()[
        "data"
    ]["collection"]["id"]

    response = client.post(f"/api/collections/{collection_id}/products/404", headers=headers)

    assert response.status_code == 404
    assert response.get_json()["message"] == "Product not found"


def test_update_collection_replaces_products(client, make_product, admin_token, auth_headers):
    headers = auth_headers(admin_token)
    first = make_product()
    second = make_product()
    collection_id = client.post(
        "/api/collections", json={"name": "Basics", "productIds": [first]}, headers=headers
    ).get_json()["data"]["collection"]["id"]

    response = client.put(
        f"/api/collections/{collection_id}",
        json={"description": "Everyday pieces", "productIds": [second]},
        headers=headers,
    )

    assert response.status_code == 200
    collection = response.get_json()["data"]["collection"]
    assert collection["description"] == "Everyday pieces"
    assert [item["id"] for item in collection["products"]] == [second]


def test_delete_collection(client, admin_token, auth_headers):
    headers = auth_headers(admin_token)
    collection_id = client.post("/api/collections", json={"name": "Basics"}, headers=headers).get_json()[
        "data"
    ]["collection"]["id"]

    response = client.delete(f"/api/collections/{collection_id}", headers=headers)

    assert response.status_code == 200
    assert client.get(f"/api/collections/{collection_id}").status_code == 404
