"""Tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeExecutor, FakeProvider
from application.api import dependencies
from application.api.api_server import app
from domain.context.memory.runtime_memory import RuntimeMemory
from domain.models.workflow_state import ProjectContext
from domain.orchestration.core.step_coordinator import StepCoordinator
from domain.streaming.stream_decoder import GenerationOptions
from domain.streaming.stream_events import MessageStop, TextDelta
from infrastructure.config.settings import AgentSettings, get_settings


class StaticProjectProvider:
    async def get(self, project_path):
        return ProjectContext(project_path=project_path, tech_stack=["Python"], test_framework="pytest")

    async def read_files(self, project_path, relative_paths):
        return {}


WORKFLOW = {
    "id": "feature",
    "name": "Feature",
    "steps": [
        {"id": "plan", "name": "Plan", "prompt": "Plan {{requirement}}", "description": "Make a plan"},
        {"id": "implement", "name": "Implement", "prompt": "Implement using {{previous_output}}"},
    ],
}


@pytest.fixture
def provider():
    return FakeProvider([TextDelta(text="Step "), TextDelta(text="result"), MessageStop()])


@pytest.fixture
def client(provider):
    memory = RuntimeMemory()
    project_provider = StaticProjectProvider()
    coordinator = StepCoordinator(
        provider=provider,
        tool_executor_factory=lambda project_path: FakeExecutor(),
        options=GenerationOptions(model="test-model"),
        project_provider=project_provider,
    )
    app.dependency_overrides[dependencies.get_runtime_memory] = lambda: memory
    app.dependency_overrides[dependencies.get_project_provider] = lambda: project_provider
    app.dependency_overrides[dependencies.get_step_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_session(client):
    response = client.post(
        "/api/v1/workflow/sessions",
        json={"workflow": WORKFLOW, "projectPath": "/work/demo", "inputs": {"requirement": "login"}},
    )
    assert response.status_code == 200
    return response.json()["sessionId"]


def read_events(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_execute_step_streams_ndjson_and_records_turn(client, provider):
    session_id = create_session(client)

    response = client.post(f"/api/v1/workflow/sessions/{session_id}/steps/plan/execute", json={})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = read_events(response)
    assert [event["type"] for event in events] == ["task_info", "preparing", "chunk", "chunk", "done"]
    assert events[0]["data"] == {"stepName": "Plan", "description": "Make a plan", "projectPath": "demo"}
    assert "Plan login" in provider.stream_calls[0]["prompt"]

    session = client.get(f"/api/v1/workflow/sessions/{session_id}").json()
    output = session["outputs"][0]
    assert output["stepId"] == "plan"
    assert output["conversations"][0]["response"] == "Step result"
    assert session["projectContext"]["techStack"] == ["Python"]


def test_continuation_applies_to_one_turn_only(client, provider):
    session_id = create_session(client)
    base = f"/api/v1/workflow/sessions/{session_id}/steps"

    client.post(f"{base}/plan/execute", json={"inputs": {"continuationInput": "fix A"}})
    client.post(f"{base}/plan/execute", json={"inputs": {"continuationInput": "fix B"}})
    client.post(f"{base}/plan/execute", json={})
    client.post(f"{base}/implement/execute", json={})

    prompts = [call["prompt"] for call in provider.stream_calls]
    assert "# New request" not in prompts[0]
    assert prompts[1].endswith("# New request\nfix B")
    assert "# New request" not in prompts[2]
    assert "# New request" not in prompts[3]

    session = client.get(f"/api/v1/workflow/sessions/{session_id}").json()
    plan, implement = session["outputs"]
    assert [turn["userInput"] for turn in plan["conversations"]] == [None, "fix B", None]
    assert implement["conversations"][0]["userInput"] is None
    assert "continuationInput" not in session["inputs"]


def test_completed_step_feeds_next_step(client, provider):
    session_id = create_session(client)
    client.post(f"/api/v1/workflow/sessions/{session_id}/steps/plan/execute", json={})

    completed = client.post(f"/api/v1/workflow/sessions/{session_id}/steps/plan/complete")
    assert completed.json()["completed"] is True

    provider.events = [TextDelta(text="code"), MessageStop()]
    client.post(f"/api/v1/workflow/sessions/{session_id}/steps/implement/execute", json={})

    prompt = provider.stream_calls[1]["prompt"]
    assert "Implement using Step result" in prompt
    assert "# Previous steps" in prompt


def test_completed_step_cannot_execute_again(client):
    session_id = create_session(client)
    client.post(f"/api/v1/workflow/sessions/{session_id}/steps/plan/complete")

    response = client.post(f"/api/v1/workflow/sessions/{session_id}/steps/plan/execute", json={})

    assert response.status_code == 409


def test_unknown_session_and_step(client):
    assert client.get("/api/v1/workflow/sessions/nope").status_code == 404

    session_id = create_session(client)
    response = client.post(f"/api/v1/workflow/sessions/{session_id}/steps/deploy/execute", json={})
    assert response.status_code == 404


def test_render_prompt(client, provider):
    response = client.post(
        "/api/v1/workflow/render-prompt",
        json={
            "step": WORKFLOW["steps"][0],
            "context": {"workflow": WORKFLOW, "projectPath": "/work/demo", "inputs": {"requirement": "search"}},
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert "Plan search" in body["prompt"]
    assert body["length"] == len(body["prompt"])
    assert provider.stream_calls == []


def test_scan_project(client):
    response = client.post("/api/v1/project/scan", json={"projectPath": "/work/demo"})

    assert response.json()["testFramework"] == "pytest"


def test_missing_credential_returns_503(monkeypatch):
    settings = AgentSettings(_env_file=None, anthropic_auth_token=None)
    monkeypatch.setattr(dependencies, "_coordinator", None)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_project_provider] = lambda: StaticProjectProvider()
    try:
        response = TestClient(app).post(
            "/api/v1/workflow/render-prompt",
            json={
                "step": WORKFLOW["steps"][0],
                "context": {"workflow": WORKFLOW, "projectPath": "/work/demo"},
            },
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "ANTHROPIC_API_KEY" in response.json()["detail"]
