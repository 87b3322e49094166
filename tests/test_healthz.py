from fastapi.testclient import TestClient

from jobengine.v1.core.exceptions import StoreIOError


def test_health_check_success(client: TestClient):
    """Test health check endpoint returns correct format."""
    response = client.get("/v1/healthz")

    assert response.status_code == 200

    data = response.json()
    assert data["ok"] is True
    assert "data" in data

    health_data = data["data"]
    assert health_data["ok"] is True
    assert health_data["version"] == "1.0.0"
    assert health_data["store"]["connected"] is True
    assert health_data["store"]["response_time_ms"] is not None


def test_health_check_reports_dispatcher(client: TestClient):
    response = client.get("/v1/healthz")

    dispatcher = response.json()["data"]["dispatcher"]
    assert dispatcher["running"] is False
    assert dispatcher["in_flight"] == 0
    assert "maintenance_cleanup" in dispatcher["registered_handlers"]


def test_health_check_store_unavailable(client: TestClient, app, monkeypatch):
    async def broken_list_due(now, batch_size):
        raise StoreIOError("Job store list_due failed")

    monkeypatch.setattr(app.state.job_service.store, "list_due", broken_list_due)

    response = client.get("/v1/healthz")

    assert response.status_code == 200
    health_data = response.json()["data"]
    assert health_data["ok"] is False
    assert health_data["store"] == {
        "connected": False,
        "response_time_ms": None,
        "error": "Job store list_due failed",
    }


def test_health_check_response_structure(client: TestClient):
    """Test health check response envelope structure."""
    response = client.get("/v1/healthz")

    data = response.json()

    # Check response envelope structure
    required_keys = ["ok", "data", "message", "request_id"]
    for key in required_keys:
        assert key in data

    # Check that request ID is present in headers
    assert "X-Request-ID" in response.headers
