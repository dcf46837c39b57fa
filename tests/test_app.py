from bson.errors import InvalidDocument
from pymongo.errors import ServerSelectionTimeoutError


def test_index(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "Hello from plantNet Server.."


def test_health_reports_store(client):
    assert client.get("/health").get_json() == {"status": "ok", "database": "connected"}


def test_unknown_route_is_json(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.get_json() == {"message": "Not found."}


def test_storage_failure_is_service_unavailable(app, client, monkeypatch):
    catalog = app.extensions["plantnet"]["catalog"]

    def unavailable():
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(catalog, "list_plants", unavailable)

    response = client.get("/plants")

    assert response.status_code == 503
    assert response.get_json() == {"message": "Storage unavailable."}


def test_cors_allows_configured_origin_with_credentials(client):
    response = client.get("/plants", headers={"Origin": "http://localhost:5173"})

    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_wrong_method_is_json(client):
    response = client.get("/orders")

    assert response.status_code == 405
    assert response.is_json
    assert "message" in response.get_json()


def test_unencodable_document_is_bad_request(app, client, monkeypatch):
    catalog = app.extensions["plantnet"]["catalog"]

    def too_large(plant_data):
        raise OverflowError("MongoDB can only handle up to 8-byte ints")

    monkeypatch.setattr(catalog, "add_plant", too_large)

    response = client.post("/add-plant", json={"name": "Cactus", "price": 2**70})

    assert response.status_code == 400
    assert response.get_json()["message"].startswith("Document cannot be stored")


def test_invalid_document_is_bad_request(app, client, monkeypatch):
    orders = app.extensions["plantnet"]["orders"]

    def invalid(order_data):
        raise InvalidDocument("key '$price' must not start with '$'")

    monkeypatch.setattr(orders, "create_order", invalid)

    response = client.post("/orders", json={"$price": 3})

    assert response.status_code == 400
    assert response.is_json


def test_unexpected_error_is_json_server_error(app, client, monkeypatch):
    users = app.extensions["plantnet"]["users"]

    def broken(email):
        raise RuntimeError("boom")

    monkeypatch.setattr(users, "get_role", broken)

    response = client.get("/user-role/fern@example.com")

    assert response.status_code == 500
    assert response.get_json() == {"message": "Internal server error."}
