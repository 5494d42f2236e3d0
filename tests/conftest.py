import json
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest
from freezegun import freeze_time

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from upsell_navigator.adapters.crew.client import CrewClient  # noqa: E402
from upsell_navigator.app.models.config import ServiceSettings  # noqa: E402
from upsell_navigator.persistence.dynamo_runs import AnalysisRunRecord  # noqa: E402
from upsell_navigator.persistence.memory_runs import InMemoryRuns  # noqa: E402

DEFAULT_ENV = {
    "AWS_ACCESS_KEY_ID": "test-access-key",
    "AWS_SECRET_ACCESS_KEY": "test-secret-key",
    "AWS_SESSION_TOKEN": "test-session",
    "AWS_DEFAULT_REGION": "us-east-1",
    "CLOUDWATCH_METRICS_ENABLED": "false",
}

CREW_BASE = "https://crew.example.test"


@pytest.fixture(scope="session")
def project_root() -> Path:
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    for key, value in DEFAULT_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("RUNS_TABLE", "SETTINGS_FILE", "CREW_API_BASE", "PUBLIC_BASE_URL"):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def freezer():
    with freeze_time("2020-01-01T00:00:00Z") as frozen_datetime:
        yield frozen_datetime


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings(
        crew_api_base=CREW_BASE,
        crew_bearer_token="test-token",
        public_base_url="https://navigator.example.test",
    )


@pytest.fixture
def runs() -> InMemoryRuns:
    return InMemoryRuns()


class RecordingTransport:
    """Captures outbound requests and answers them with a scripted handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._handler(request)

    def json_bodies(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def crew_transport() -> Callable[..., RecordingTransport]:
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> RecordingTransport:
        return RecordingTransport(handler)

    return factory


@pytest.fixture
def make_client(settings: ServiceSettings):
    def factory(recording: RecordingTransport) -> CrewClient:
        return CrewClient.from_settings(settings, transport=recording.transport)

    return factory


def _build_record(run_id: str = "run-1", **overrides) -> AnalysisRunRecord:
    data = {
        "id": f"id-{run_id}",
        "run_id": run_id,
        "live_name": "Webinar Elite",
        "sales_result": "7 vendas",
        "status": "submitted",
        "progress": 0,
        "created_at": "2020-01-01T00:00:00",
        "updated_at": "2020-01-01T00:00:00",
    }
    data.update(overrides)
    return AnalysisRunRecord(**data)


@pytest.fixture
def make_record() -> Callable[..., AnalysisRunRecord]:
    return _build_record
