"""HTTP surface tests with fake provider, capability and GitHub transport."""

import json

import pytest
from fastapi.testclient import TestClient

from backend.web.main import create_app
from core.generation.loop import CREATED_MESSAGE, UPDATED_MESSAGE
from core.review.github import GitHubClient
from fakes.capability import ScriptedCapability, text_step, tool_step
from fakes.github import github_transport
from fakes.sandbox import FakeProvider


def _events(response) -> list[dict]:
    lines = response.text.splitlines()
    assert lines[-1] == "[DONE]"
    return [json.loads(line) for line in lines[:-1]]


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def capability():
    return ScriptedCapability([tool_step(0, "Creating the page"), text_step("Finished")])


@pytest.fixture
def client(settings, provider, capability):
    app = create_app(
        settings=settings,
        provider=provider,
        capability=capability,
        github=GitHubClient(transport=github_transport()),
    )
    with TestClient(app) as c:
        yield c


def _generate(client, **body) -> tuple[str, list[dict]]:
    response = client.post("/api/generate", json=body)
    assert response.status_code == 200
    events = _events(response)
    ready = [e for e in events if "sandboxId" in e]
    return (ready[0]["sandboxId"] if ready else None), events


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestGenerate:
    def test_stream_headers_and_events(self, client):
        response = client.post("/api/generate", json={"prompt": "build a todo app"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"

        events = _events(response)
        assert sum(1 for e in events if "sandboxId" in e) == 1
        assert [e for e in events if e.get("type") == "complete"] == [{"type": "complete", "content": CREATED_MESSAGE}]
        assert events[-1]["type"] == "complete"

    def test_missing_prompt_is_rejected(self, client):
        response = client.post("/api/generate", json={"prompt": "  "})
        assert response.status_code == 400
        assert response.json() == {"error": "Prompt is required"}

        response = client.post("/api/generate", json={})
        assert response.status_code == 400

    def test_malformed_body_is_rejected(self, client):
        response = client.post("/api/generate", content="not json", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_update_replays_existing_logs(self, client, capability):
        sandbox_id, _ = _generate(client, prompt="build a todo app")

        capability.script = [text_step("Recolored")]
        _, events = _generate(client, prompt="make it blue", sandboxId=sandbox_id)

        assert events[:3] == [
            {"log": "Connecting to existing sandbox..."},
            {"log": "Connected to sandbox..."},
            {"existingLogs": ["Creating the page", "Finished", CREATED_MESSAGE]},
        ]
        assert events[-1] == {"type": "complete", "content": UPDATED_MESSAGE}

    def test_session_id_is_accepted_for_sandbox_id(self, client, capability):
        sandbox_id, _ = _generate(client, prompt="build a todo app")

        capability.script = [text_step("Recolored")]
        _, events = _generate(client, prompt="make it blue", sessionId=sandbox_id)

        assert {"existingLogs": ["Creating the page", "Finished", CREATED_MESSAGE]} in events
        assert events[-1] == {"type": "complete", "content": UPDATED_MESSAGE}

    def test_unknown_sandbox_streams_error(self, client):
        _, events = _generate(client, prompt="hi", sandboxId="app-missing")
        assert events[-1]["type"] == "complete"
        assert events[-1]["error"] is True

    def test_concurrent_generation_conflict(self, client):
        service = client.app.state.generation_service
        service.is_running = lambda sandbox_id: True

        response = client.post("/api/generate", json={"prompt": "x", "sandboxId": "app-1"})

        assert response.status_code == 409
        assert "already running" in response.json()["error"]


class TestProjects:
    def test_project_lifecycle(self, client, provider):
        sandbox_id, _ = _generate(client, prompt="build a todo app")
        provider.handles[sandbox_id].files.update(
            {
                "/app/package.json": "{}",
                "/app/src/pages/index.astro": "<h1>Todo</h1>",
                "/app/src/Layout.astro": "<slot />",
            }
        )

        listed = client.get("/api/projects").json()["projects"]
        assert [p["id"] for p in listed] == [sandbox_id]
        assert listed[0]["description"] == "build a todo app"

        project = client.get(f"/api/projects/{sandbox_id}").json()["project"]
        assert project["sandboxId"] == sandbox_id
        assert project["previewUrl"] == f"https://preview-{sandbox_id}.example.test"
        assert project["sessionToken"] == "tok"

        state = client.get(f"/api/projects/{sandbox_id}/state").json()["state"]
        assert state["status"] == "completed"
        assert state["conversationHistory"][0] == {"type": "user_text", "text": "build a todo app"}

        tree = client.get(f"/api/projects/{sandbox_id}/files").json()["files"]
        assert [(n["name"], n["type"]) for n in tree] == [("src", "directory"), ("package.json", "file")]
        assert [n["name"] for n in tree[0]["children"]] == ["pages", "Layout.astro"]

        file = client.get(f"/api/projects/{sandbox_id}/file", params={"path": "/app/src/pages/index.astro"}).json()
        assert file == {"path": "/app/src/pages/index.astro", "content": "<h1>Todo</h1>"}

        assert client.delete(f"/api/projects/{sandbox_id}").json() == {"success": True}
        assert provider.deleted == [sandbox_id]
        assert client.get("/api/projects").json()["projects"] == []
        assert sandbox_id not in client.app.state.sandbox_cache

    def test_unknown_project_is_404(self, client):
        response = client.get("/api/projects/app-missing")
        assert response.status_code == 404
        assert "app-missing" in response.json()["error"]

    def test_state_of_unknown_project_is_default(self, client):
        state = client.get("/api/projects/app-missing/state").json()["state"]
        assert state["status"] == "idle"
        assert state["conversationHistory"] == []

    def test_missing_file_is_404(self, client):
        sandbox_id, _ = _generate(client, prompt="x")
        response = client.get(f"/api/projects/{sandbox_id}/file", params={"path": "/app/nope.txt"})
        assert response.status_code == 404

    def test_deleting_already_gone_sandbox_succeeds(self, client):
        assert client.delete("/api/projects/app-gone").json() == {"success": True}


class TestReviews:
    def test_missing_pr_url(self, client):
        response = client.post("/api/reviews", json={})
        assert response.status_code == 400

    def test_invalid_pr_url_streams_error(self, client, provider):
        response = client.post("/api/reviews", json={"prUrl": "https://example.com/nope"})
        events = _events(response)
        assert events[-1]["type"] == "complete" and events[-1]["error"] is True
        assert provider.created == []

    def test_review_streams_analysis(self, client, provider, capability):
        original_create = provider.create

        async def create_with_clone(spec):
            handle = await original_create(spec)
            handle.process_script["clone-repository"] = ["completed"]
            return handle

        provider.create = create_with_clone
        capability.script = [text_step("LGTM")]

        events = _events(client.post("/api/reviews", json={"prUrl": "https://github.com/acme/site/pull/7"}))

        logs = [e["log"] for e in events if "log" in e]
        assert "LGTM" in logs
        assert events[-1] == {"type": "complete", "content": "🎉 Analysis complete!"}
        assert len(provider.deleted) == 1
