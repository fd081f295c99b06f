import pytest
from fastapi.testclient import TestClient

from formbridge.api import deps
from formbridge.api.main import create_app
from formbridge.config import settings
from formbridge.exceptions import ApiError
from formbridge.properties import PropertiesStore

from fakes import FakeTypeformClient, make_form, make_response


@pytest.fixture
def api_client(make_processor, memory_store, test_settings):
    def _build(client):
        app = create_app()
        app.dependency_overrides[deps.get_processor] = lambda: make_processor(client)
        app.dependency_overrides[deps.get_store] = lambda: memory_store
        app.dependency_overrides[deps.get_properties] = lambda: PropertiesStore(test_settings.properties_path)
        return TestClient(app)

    return _build


def test_health(api_client):
    resp = api_client(FakeTypeformClient()).get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": settings.app.version}


def test_process_survey_and_read_index(api_client):
    client = api_client(
        FakeTypeformClient(forms=[make_form("ABC123", "Sprint 3")], responses={"ABC123": [make_response("t1")]})
    )
    resp = client.post("/surveys/process", json={"input": "https://form.typeform.com/to/ABC123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["response_count"] == 1

    index = client.get("/surveys/index").json()
    assert [(e["form_id"], e["status"]) for e in index] == [("ABC123", "Complete")]


def test_invalid_input_is_422(api_client):
    resp = api_client(FakeTypeformClient()).post("/surveys/process", json={"input": "not a form!!"})
    assert resp.status_code == 422


def test_exhausted_retries_are_502(api_client):
    resp = api_client(FakeTypeformClient(failures={"ABC123": -1})).post("/surveys/process", json={"input": "ABC123"})
    assert resp.status_code == 502
    assert resp.json()["error"] == "processing_failed"


def test_list_failure_is_502(api_client):
    client = FakeTypeformClient()
    client.list_error = ApiError(503, "unavailable")
    resp = api_client(client).post("/surveys/process-all")
    assert resp.status_code == 502
    assert resp.json()["error"] == "provider_error"


def test_process_known_summary(api_client):
    resp = api_client(FakeTypeformClient()).post("/surveys/process-known")
    assert resp.status_code == 200
    assert resp.json()["processed"] == 2
    assert resp.json()["succeeded"] == 2


def test_token_update_and_masked_settings(api_client, monkeypatch, test_settings):
    monkeypatch.setattr(settings, "known_surveys", test_settings.known_surveys)
    client = api_client(FakeTypeformClient())
    assert client.get("/settings").json()["token_configured"] is False

    resp = client.put("/settings/token", json={"token": "tfp_abcdefghijklmnop1234"})
    assert resp.status_code == 200

    body = client.get("/settings").json()
    assert body["token_configured"] is True
    assert body["token"] == "tfp_abcdef...1234"
    assert [s["id"] for s in body["known_surveys"]] == ["KNOWN1", "KNOWN2"]


def test_logs_endpoint(api_client, memory_store):
    client = api_client(FakeTypeformClient(forms=[make_form("ABC123")]))
    client.post("/surveys/process", json={"input": "ABC123"})
    logs = client.get("/logs", params={"limit": 1}).json()
    assert len(logs) == 1
    assert logs[0]["level"] in {"INFO", "WARNING", "ERROR", "SUCCESS"}


def test_bearer_guard(api_client, monkeypatch):
    monkeypatch.setattr(settings.security, "api_token", "secret")
    client = api_client(FakeTypeformClient())

    assert client.get("/surveys/index").status_code == 401
    assert client.get("/surveys/index", headers={"Authorization": "Bearer secret"}).status_code == 200
    assert client.get("/health").status_code == 200
