"""
Tests for the FastAPI status application.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from api.auth import rate_limiter
from api.config import config as api_config
from api.main import app
from scheduler.change_detector import ChangeDetector
from scheduler.models import SchedulerConfig
from scheduler.scheduler_service import SchedulerService
from tracker.exceptions import StorageUnavailable

API_KEY = "tw_test_key"
AUTH = {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def api_keys():
    """Accept the test key and start every test with a fresh rate limit."""
    rate_limiter.reset()
    with patch.object(api_config, "api_keys", API_KEY):
        yield


@pytest.fixture
def service(sample_target, memory_store, make_fetch, oracle_page):
    """Service with one target whose page now shows the April release."""
    detector = ChangeDetector(memory_store, make_fetch(oracle_page("April 2024")))
    dispatcher = AsyncMock()
    service = SchedulerService(SchedulerConfig(), [sample_target], detector, dispatcher)
    with patch("api.main.service", service):
        yield service


def test_health_check_without_service(client):
    """Health is reported even before targets are loaded."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["target_count"] == 0


def test_health_check(client, service):
    """Health reports target count and store availability."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["target_count"] == 1
    assert data["state_store_status"] == "healthy"


def test_targets_require_auth(client, service):
    """Target endpoints need a bearer token."""
    response = client.get("/targets")
    assert response.status_code in (401, 403)


def test_invalid_api_key(client, service):
    """Unknown keys are rejected."""
    response = client.get("/targets", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid API key"


def test_list_targets(client, service, memory_store):
    """Targets are listed with their stored values."""
    memory_store.save("oracle-cpu", "January 2024")

    response = client.get("/targets", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    target = data["targets"][0]
    assert target["id"] == "oracle-cpu"
    assert target["rule_kind"] == "regex"
    assert target["stored_value"] == "January 2024"
    assert "X-RateLimit-Remaining" in response.headers


def test_get_target(client, service):
    """A single target includes its extraction rule."""
    response = client.get("/targets/oracle-cpu", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["extraction_rule"]["kind"] == "regex"
    assert data["timeout_ms"] == 5000
    assert data["stored_value"] is None


def test_target_not_found(client, service):
    """Unknown target ids are 404."""
    response = client.get("/targets/missing", headers=AUTH)
    assert response.status_code == 404
    assert "missing" in response.json()["error"]


def test_run_target(client, service, memory_store):
    """Triggering a cycle returns its result and updates the store."""
    memory_store.save("oracle-cpu", "January 2024")

    response = client.post("/targets/oracle-cpu/run", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "changed"
    assert data["previous_value"] == "January 2024"
    assert data["current_value"] == "April 2024"
    assert memory_store.load("oracle-cpu").value == "April 2024"
    service.dispatcher.dispatch.assert_called_once()
    assert service.statuses["oracle-cpu"].last_value == "April 2024"


def test_reset_state(client, service, memory_store):
    """Deleting state makes the next cycle a first run."""
    memory_store.save("oracle-cpu", "January 2024")

    response = client.delete("/targets/oracle-cpu/state", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["deleted"] is True
    assert data["previous"]["value"] == "January 2024"
    assert memory_store.load("oracle-cpu") is None

    response = client.post("/targets/oracle-cpu/run", headers=AUTH)
    assert response.json()["first_run"] is True


def test_reset_corrupt_state(client, sample_target, file_store, make_fetch, oracle_page):
    """A corrupt record can still be reset and the next cycle is a first run."""
    file_store.state_dir.mkdir(parents=True)
    file_store.path_for("oracle-cpu").write_text("{truncated", encoding="utf-8")
    detector = ChangeDetector(file_store, make_fetch(oracle_page("April 2024")))
    service = SchedulerService(SchedulerConfig(), [sample_target], detector, AsyncMock())

    with patch("api.main.service", service):
        assert client.get("/targets/oracle-cpu", headers=AUTH).status_code == 503

        response = client.delete("/targets/oracle-cpu/state", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["deleted"] is True
        assert data["previous"] is None
        assert not file_store.path_for("oracle-cpu").exists()

        response = client.post("/targets/oracle-cpu/run", headers=AUTH)
        assert response.json()["first_run"] is True


def test_storage_unavailable(client, service, memory_store):
    """Store failures surface as 503."""
    with patch.object(memory_store, "load", side_effect=StorageUnavailable("corrupt record")):
        response = client.get("/targets/oracle-cpu", headers=AUTH)

    assert response.status_code == 503
    assert response.json()["error"] == "State store unavailable"


def test_rate_limit(client, service):
    """Requests beyond the limit are refused."""
    with patch.object(rate_limiter, "rate_limit", 2):
        assert client.get("/targets", headers=AUTH).status_code == 200
        assert client.get("/targets", headers=AUTH).status_code == 200
        response = client.get("/targets", headers=AUTH)

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_scheduler_status(client, service):
    """Scheduler status lists per-target statuses."""
    response = client.get("/scheduler", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["targets"][0]["target_id"] == "oracle-cpu"
