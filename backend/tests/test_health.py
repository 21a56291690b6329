from slotwise.api.routes import health
from slotwise.db import bootstrap


def test_health_endpoints(client):
    live = client.get("/api/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/api/health/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert "database" in payload
    assert payload["calendar"]["days"][0] == "Monday"
    assert "7:00-7:55" in payload["calendar"]["slots"]
    assert payload["database"]["missing_tables"] == []


def test_startup_schema_check_uses_the_test_engine(client, engine):
    assert bootstrap.engine is engine
    assert health.engine is engine
