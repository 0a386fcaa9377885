from sqlalchemy.exc import OperationalError

import wear_backend.routes.categories as categories
import wear_backend.routes.health as health


def test_health_reports_connected_database(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["database"]["status"] == "connected"
    assert body["database"]["responseTime"].endswith("ms")
    assert body["timestamp"].endswith("Z")
    assert body["server"]["uptime"] >= 0


def test_api_health_alias(client):
    assert client.get("/api/health").status_code == 200


def test_health_reports_unreachable_database(client, monkeypatch):
    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(health, "ping_database", broken_ping)

    response = client.get("/health")

    assert response.status_code == 503
    body = response.get_json()
    assert body["status"] == "unhealthy"
    assert body["database"]["status"] == "disconnected"


def test_database_status_includes_pool(client):
    response = client.get("/api/health/db")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "connected"
    assert body["pool"]["type"]


def test_unknown_route_uses_json_envelope(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "message": "Route not found"}


def test_wrong_method_uses_json_envelope(client):
    response = client.patch("/api/products")

    assert response.status_code == 405
    assert response.get_json()["message"] == "Method not allowed"


def test_database_error_outside_health_is_500(client, monkeypatch):
    def broken_counts():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(categories, "build_category_product_counts", broken_counts)

    response = client.get("/api/categories")

    assert response.status_code == 500
    assert response.get_json() == {"success": False, "message": "Database error"}
