import pytest

from app import close_app, create_app
from config.settings import Settings
from services.dashboard import DashboardSession


@pytest.fixture
def app(gateway, clock):
    settings = Settings(_env_file=None)
    session = DashboardSession(gateway, settings=settings, clock=clock)
    app = create_app(session, settings=settings)
    app.config["TESTING"] = True
    yield app
    close_app(app)


@pytest.fixture
def client(app):
    return app.test_client()


def _create(client, **overrides):
    payload = {
        "title": "No dial tone",
        "type": "Repair",
        "customer_name": "Acme",
        "ticket_number": "T-1",
        "tasks": ["Call", "Fix"],
    }
    payload.update(overrides)
    return client.post("/api/orders", json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_create_order(client, remote):
    response = _create(client)

    assert response.status_code == 201
    data = response.get_json()
    assert data["success"] is True
    assert data["order"]["details"]["customerName"] == "Acme"
    assert data["order"]["status"] == "unassigned"
    assert data["order"]["id"] in remote.orders


def test_create_order_validation_error(client, remote):
    response = _create(client, customer_name="")

    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"] == {"field": "customer_name"}
    assert remote.orders == {}


def test_non_object_body_is_rejected(client):
    response = client.post("/api/orders", data="nope", content_type="text/plain")
    assert response.status_code == 400


def test_order_workflow(client):
    order = _create(client).get_json()["order"]
    order_id = order["id"]

    response = client.post(f"/api/orders/{order_id}/assign", json={"agent": "Admin"})
    assert response.status_code == 200
    assert response.get_json()["order"]["status"] == "in-progress"

    for task in order["tasks"]:
        response = client.post(f"/api/orders/{order_id}/tasks/{task['id']}/toggle")
        assert response.status_code == 200
    assert response.get_json()["order"]["status"] == "completed"

    stats = client.get("/api/stats").get_json()
    assert stats["total_orders"] == 1
    assert stats["completed_orders"] == 1
    assert stats["pending_orders"] == 0

    response = client.patch(f"/api/orders/{order_id}/details", json={"note": "done"})
    assert response.get_json()["order"]["details"]["note"] == "done"

    assert client.delete(f"/api/orders/{order_id}").status_code == 200
    assert client.get("/api/orders").get_json()["orders"] == []


def test_unknown_order_is_404(client):
    response = client.delete("/api/orders/order-missing")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "not_found"


def test_board_columns_and_query(client):
    _create(client, ticket_number="T-2", assigned_to="Admin")
    _create(client, ticket_number="T-1")

    board = client.get("/api/board").get_json()
    assert [column["key"] for column in board["columns"]] == ["unassigned", "in-progress"]
    assert board["visible_orders"] == 2

    board = client.get("/api/board?show_completed=true&agent=Admin").get_json()
    assert [column["key"] for column in board["columns"]] == ["in-progress", "completed"]
    assert board["columns"][0]["count"] == 1


def test_board_rejects_bad_sort(client):
    response = client.get("/api/board?sort_by=color")
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "validation_error"


def test_remote_outage_reports_local_save(client, remote):
    remote.fail = True

    response = _create(client)

    assert response.status_code == 202
    data = response.get_json()
    assert data["success"] is False
    assert data["degraded"] is True
    assert client.get("/health").get_json()["status"] == "degraded"


def test_departments_include_counters(client):
    _create(client, assigned_to="Admin")

    departments = client.get("/api/departments").get_json()["departments"]

    admin = departments[0]["agents"][0]
    assert admin["name"] == "Admin"
    assert admin["total_orders"] == 1
