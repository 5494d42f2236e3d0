from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from upsell_navigator.adapters.crew.client import CrewClient
from upsell_navigator.app.api.app import create_app
from upsell_navigator.app.api.middleware import CORS_HEADERS

FILES = {
    "participantes.csv": ("participantes.csv", b"Name (Original Name),Duration\nAna,3\n", "text/csv"),
    "chat.txt": ("chat.txt", b"Ana: oi\n", "text/plain"),
    "transcricao.txt": ("transcricao.txt", b"Bem-vindos\n", "text/plain"),
}
FORM = {"live_name": "Webinar Elite", "sales_result": "7 vendas"}


def _crew_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/kickoff":
        return httpx.Response(200, json={"run_id": "run-1"})
    if request.url.path == "/status/run-1":
        return httpx.Response(200, json={"state": "RUNNING"})
    return httpx.Response(404, text="unknown task")


@pytest.fixture
def recording(crew_transport):
    return crew_transport(_crew_handler)


@pytest.fixture
def api(settings, runs, recording):
    client = CrewClient.from_settings(settings, transport=recording.transport)
    app = create_app(settings, runs_repo=runs, crew_client=client)
    with TestClient(app) as test_client:
        yield test_client


def _submit(api: TestClient):
    return api.post("/v1/analyses", data=FORM, files=FILES)


def test_health(api) -> None:
    assert api.get("/v1/health").json() == {"status": "ok"}


def test_submission_creates_run(api, recording) -> None:
    response = _submit(api)

    assert response.status_code == 201
    body = response.json()
    assert body["run_id"] == "run-1"
    assert body["status"] == "submitted"
    assert body["progress"] == 0
    assert recording.json_bodies()[0]["participants_csv"] == "Name,Duration\nAna,3\n"
    assert api.get("/v1/analyses/run-1").json()["live_name"] == "Webinar Elite"


def test_submission_missing_file_is_400(api, recording, runs) -> None:
    files = {name: part for name, part in FILES.items() if name != "chat.txt"}

    response = api.post("/v1/analyses", data=FORM, files=files)

    assert response.status_code == 400
    assert "chat_txt is required" in response.json()["problems"]
    assert recording.requests == []
    assert runs.list_recent() == []


def test_submission_remote_refusal_is_502(settings, runs, crew_transport) -> None:
    recording = crew_transport(lambda request: httpx.Response(401, text="bad token"))
    client = CrewClient.from_settings(settings, transport=recording.transport)
    app = create_app(settings, runs_repo=runs, crew_client=client)

    with TestClient(app) as api:
        response = _submit(api)

    assert response.status_code == 502
    assert response.json()["status"] == 401
    assert response.json()["details"] == "bad token"
    assert runs.list_recent() == []


def test_webhook_lifecycle(api) -> None:
    _submit(api)

    completed = api.post(
        "/crewai-webhook",
        json={"run_id": "run-1", "status": "completed", "report_url": "A", "report_metadata": {"url": "B"}},
    )
    stale = api.post("/crewai-webhook", json={"run_id": "run-1", "status": "processing", "progress": 60})

    assert completed.status_code == 200
    assert completed.json()["success"] is True
    assert completed.json()["data"]["report_url"] == "A"
    assert stale.status_code == 200
    assert stale.json()["data"]["status"] == "completed"
    assert stale.json()["data"]["progress"] == 100


def test_webhook_missing_run_id_is_400(api) -> None:
    response = api.post("/crewai-webhook", json={"status": "completed"})

    assert response.status_code == 400
    assert response.json()["error"] == "run_id is required"


def test_webhook_invalid_json_is_400(api) -> None:
    response = api.post(
        "/crewai-webhook", content=b"not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 400


def test_webhook_unknown_run_is_404(api) -> None:
    response = api.post("/crewai-webhook", json={"run_id": "ghost", "status": "completed"})

    assert response.status_code == 404
    assert response.json()["run_id"] == "ghost"


def test_status_relay_accepts_run_id_alias(api, recording) -> None:
    response = api.get("/crewai-status", params={"run_id": "run-1"}, headers={"x-user-authorization": "scope"})

    assert response.status_code == 200
    assert response.json() == {"state": "RUNNING"}
    assert recording.requests[-1].headers["X-User-Authorization"] == "scope"


def test_status_relay_passes_remote_error_through(api) -> None:
    response = api.get("/crewai-status", params={"task_id": "missing"})

    assert response.status_code == 404
    assert response.json() == {
        "error": "Failed to fetch status from analysis service",
        "status": 404,
        "details": "unknown task",
    }


def test_status_relay_without_identifier_is_400(api, recording) -> None:
    response = api.get("/crewai-status")

    assert response.status_code == 400
    assert recording.requests == []


@pytest.mark.parametrize("path", ["/crewai-webhook", "/crewai-status", "/v1/analyses"])
def test_options_answers_with_cors_headers(api, path) -> None:
    response = api.options(path)

    assert response.status_code == 200
    for header, value in CORS_HEADERS.items():
        assert response.headers[header] == value


def test_cross_origin_responses_carry_allow_origin(api) -> None:
    origin = {"Origin": "https://app.example.test"}

    assert api.get("/v1/health", headers=origin).headers["Access-Control-Allow-Origin"] == "*"
    rejected = api.post("/crewai-webhook", json={}, headers=origin)
    assert rejected.status_code == 400
    assert rejected.headers["Access-Control-Allow-Origin"] == "*"


def test_browser_preflight_is_answered(api) -> None:
    response = api.options(
        "/crewai-status",
        headers={
            "Origin": "https://app.example.test",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "x-user-authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "GET" in response.headers["Access-Control-Allow-Methods"]
    assert "x-user-authorization" in response.headers["Access-Control-Allow-Headers"]


class BrokenRuns:
    def get(self, run_id: str):
        raise RuntimeError("store exploded")


def test_unhandled_error_is_structured_and_carries_allow_origin(settings, recording) -> None:
    client = CrewClient.from_settings(settings, transport=recording.transport)
    app = create_app(settings, runs_repo=BrokenRuns(), crew_client=client)

    with TestClient(app, raise_server_exceptions=False) as api:
        response = api.post(
            "/crewai-webhook",
            json={"run_id": "run-1", "status": "processing"},
            headers={"Origin": "https://app.example.test"},
        )

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "store exploded"}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_webhook_with_overflowing_progress_still_applies_status(api) -> None:
    _submit(api)

    response = api.post(
        "/crewai-webhook",
        content=b'{"run_id": "run-1", "status": "processing", "progress": 1e400}',
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "processing"
    assert response.json()["data"]["progress"] == 0


def test_list_recent_runs(api, runs, make_record) -> None:
    runs.create(make_record("run-old", created_at="2019-01-01T00:00:00"))
    runs.create(make_record("run-new", created_at="2021-01-01T00:00:00"))

    response = api.get("/v1/analyses", params={"limit": 1})

    assert [item["run_id"] for item in response.json()] == ["run-new"]
    assert api.get("/v1/analyses", params={"limit": 0}).status_code == 422


def test_webhook_response_is_json_serializable(api) -> None:
    _submit(api)
    body = api.post("/crewai-webhook", json={"run_id": "run-1", "status": "failed", "error": {"x": 1}}).json()

    assert json.loads(body["data"]["error_message"]) == {"x": 1}
