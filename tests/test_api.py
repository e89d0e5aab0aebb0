"""
Tests for the FastAPI endpoints.
"""

import json
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport
from starlette.websockets import WebSocketDisconnect

from app.api.deps import get_invoker, get_session_manager
from app.engine.session import SessionManager
from app.main import app
from app.workflows.demo import DEMO_WORKFLOW_ID

from conftest import FakeInvoker, FakeSessionFactory


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker({
        "Coordinator Agent": "research notes",
        "ghost-writer": RuntimeError("model unavailable"),
    })


@pytest.fixture
def client(fake_invoker, session_factory):
    """Test client with the LLM and browser replaced by fakes."""
    manager = SessionManager(session_factory, {"browser-agent", "navigate_to_url"})
    app.dependency_overrides[get_invoker] = lambda: fake_invoker
    app.dependency_overrides[get_session_manager] = lambda: manager
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def read_events(response):
    """Parse an SSE body into a list of event dicts."""
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


STREAM_REQUEST = {
    "goal": "Explain tides",
    "nodes": [
        {"id": "goal_node", "type": "goalNode", "data": {}, "position": {"x": 0, "y": 0}},
        {"id": "a", "type": "customAgentNode", "data": {"agentName": "Coordinator Agent", "task": "Research"}},
        {"id": "d", "type": "delayNode", "data": {"delayMs": 10}},
    ],
    "edges": [
        {"id": "e1", "source": "goal_node", "target": "a"},
        {"id": "e2", "source": "a", "target": "d"},
    ],
}


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["demo_workflow"] == DEMO_WORKFLOW_ID
        assert "endpoints" in data

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["websocket_connections"] == 0


class TestToolsEndpoints:
    """Tests for tools endpoints."""

    def test_list_tools(self, client):
        response = client.get("/tools")
        assert response.status_code == 200

        data = response.json()
        tools = {t["name"]: t for t in data["tools"]}
        assert data["total"] == len(tools)
        assert "calculator" in tools
        assert tools["navigate_to_url"]["requires_session"] is True

    def test_get_tool(self, client):
        response = client.get("/tools/calculator")
        assert response.status_code == 200
        assert response.json()["parameters"]["required"] == ["expression"]

    def test_get_nonexistent_tool(self, client):
        assert client.get("/tools/nonexistent_tool").status_code == 404


class TestAgentEndpoints:
    """Tests for agent endpoints."""

    def test_list_agents(self, client):
        response = client.get("/agents")
        assert response.status_code == 200

        names = [a["name"] for a in response.json()["agents"]]
        assert "Coordinator Agent" in names
        assert "non-api-agent" in names

        api_names = [a["name"] for a in client.get("/agents?api_only=true").json()["agents"]]
        assert "non-api-agent" not in api_names

    def test_get_agent(self, client):
        response = client.get("/agents/Coordinator Agent")
        assert response.status_code == 200

        data = response.json()
        assert data["tools"] == ["delegate_task"]
        assert "systemPrompt" in data

    def test_agent_lifecycle(self, client):
        agent = {
            "name": "test-translator",
            "model": "gpt-4o-mini",
            "systemPrompt": "Translate to French.",
        }
        response = client.post("/agents", json=agent)
        assert response.status_code == 201
        assert response.json()["systemPrompt"] == "Translate to French."

        assert client.post("/agents", json=agent).status_code == 409

        renamed = dict(agent, name="test-translator-fr", description="French only")
        response = client.put("/agents/test-translator", json=renamed)
        assert response.status_code == 200
        assert client.get("/agents/test-translator").status_code == 404

        assert client.delete("/agents/test-translator-fr").status_code == 204
        assert client.delete("/agents/test-translator-fr").status_code == 404

    def test_invalid_agent(self, client):
        response = client.post("/agents", json={"name": "x", "model": "m", "systemPrompt": "p"})
        assert response.status_code == 422

    def test_agent_logs(self, client):
        client.post(f"/workflows/{DEMO_WORKFLOW_ID}/run")

        response = client.get("/agents/Coordinator Agent/logs")
        assert response.status_code == 200

        entries = response.json()
        assert entries
        assert entries[0]["agentName"] == "Coordinator Agent"
        assert entries[0]["status"] == "success"
        assert entries[0]["totalTokens"] == 15

        assert client.get("/agents/logs").status_code == 200
        assert client.get("/agents/nobody/logs").status_code == 404


class TestAgentRun:
    """Tests for running a single agent."""

    def test_run_agent(self, client, fake_invoker):
        response = client.post("/agents/Coordinator Agent/run", json={"input": "Who built the trams?"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        assert read_events(response) == [
            {"type": "chunk", "content": "research notes"},
            {
                "type": "usage",
                "usage": {"inputTokens": 10, "outputTokens": 5, "totalTokens": 15},
            },
        ]
        # The input is sent as-is, not wrapped in the workflow step prompt
        assert fake_invoker.calls == [("Coordinator Agent", "Who built the trams?")]

        entry = client.get("/agents/Coordinator Agent/logs").json()[0]
        assert entry["status"] == "success"
        assert entry["totalTokens"] == 15

    def test_run_agent_without_api_access(self, client, fake_invoker):
        response = client.post("/agents/non-api-agent/run", json={"input": "Summarize this"})
        assert response.status_code == 403
        assert response.json()["detail"] == "API access is not enabled for this agent"
        assert fake_invoker.calls == []

    def test_run_unknown_agent(self, client):
        assert client.post("/agents/nobody/run", json={"input": "Hi"}).status_code == 404

    def test_run_agent_validation(self, client):
        assert client.post("/agents/Coordinator Agent/run", json={"input": ""}).status_code == 422

    def test_browser_session_released(self, client, session_factory):
        response = client.post("/agents/browser-agent/run", json={"input": "Open example.com"})

        assert read_events(response)[0] == {"type": "chunk", "content": "browser-agent done"}
        assert session_factory.created == ["session-1"]
        assert session_factory.destroyed == ["session-1"]

    def test_failed_run_releases_session_and_logs(self, client, session_factory):
        client.post("/agents", json={
            "name": "ghost-writer",
            "model": "gpt-4o-mini",
            "systemPrompt": "Write.",
            "tools": ["navigate_to_url"],
        })
        try:
            response = client.post("/agents/ghost-writer/run", json={"input": "Write"})

            assert response.status_code == 200
            assert read_events(response) == [{"type": "error", "error": "model unavailable"}]
            assert session_factory.destroyed == session_factory.created == ["session-1"]

            entry = client.get("/agents/ghost-writer/logs").json()[0]
            assert entry["status"] == "error"
            assert entry["errorDetails"] == "model unavailable"
        finally:
            client.delete("/agents/ghost-writer")

    def test_memory_continues_conversation(self, client, fake_invoker):
        body = {"input": "Hello there", "sessionId": f"chat-{uuid4()}"}

        first = read_events(client.post("/agents/Realtime Voice Agent/run", json=body))
        assert {"type": "log", "content": "History saved."} in first

        client.post("/agents/Realtime Voice Agent/run", json=dict(body, input="And again"))

        assert fake_invoker.contexts[0].history == []
        assert fake_invoker.contexts[1].history == [
            {"role": "user", "content": "Hello there"},
            {"role": "assistant", "content": "Realtime Voice Agent done"},
        ]

    def test_no_memory_without_session_id(self, client, fake_invoker):
        events = read_events(client.post("/agents/Realtime Voice Agent/run", json={"input": "Hi"}))

        assert [e["type"] for e in events] == ["chunk", "usage"]
        assert fake_invoker.contexts[0].history == []


class TestWorkflowEndpoints:
    """Tests for workflow CRUD endpoints."""

    def test_demo_workflow_registered(self, client):
        response = client.get(f"/workflows/{DEMO_WORKFLOW_ID}")
        assert response.status_code == 200

        data = response.json()
        assert data["node_count"] == 3
        assert data["warnings"] == []
        assert data["mermaid_diagram"].startswith("graph TD")

    def test_workflow_lifecycle(self, client):
        response = client.post("/workflows", json={
            "name": "Tide Explainer",
            "description": "Explains tides",
            "goal": "Explain tides",
            "nodes": STREAM_REQUEST["nodes"],
            "edges": STREAM_REQUEST["edges"],
        })
        assert response.status_code == 201

        created = response.json()
        workflow_id = created["workflow_id"]
        assert workflow_id.startswith("tide-explainer")
        assert created["nodes"][0]["position"] == {"x": 0, "y": 0}

        listed = [w["workflow_id"] for w in client.get("/workflows").json()["workflows"]]
        assert workflow_id in listed

        response = client.put(f"/workflows/{workflow_id}", json={"goal": "Explain ocean tides"})
        assert response.status_code == 200
        assert response.json()["goal"] == "Explain ocean tides"
        assert response.json()["name"] == "Tide Explainer"

        assert client.delete(f"/workflows/{workflow_id}").status_code == 204
        assert client.get(f"/workflows/{workflow_id}").status_code == 404

    def test_create_invalid_workflow(self, client):
        response = client.post("/workflows", json={
            "name": "Broken",
            "description": "Two nodes share an id",
            "goal": "Anything",
            "nodes": [{"id": "a", "data": {}}, {"id": "a", "data": {}}],
            "edges": [],
        })
        assert response.status_code == 400

    def test_get_nonexistent_workflow(self, client):
        assert client.get("/workflows/nonexistent").status_code == 404


class TestRunEndpoints:
    """Tests for running workflows."""

    def test_run_saved_workflow(self, client, fake_invoker):
        response = client.post(f"/workflows/{DEMO_WORKFLOW_ID}/run")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "completed"
        assert data["visited"] == ["research", "pause", "summarize"]
        assert data["output"] == "non-api-agent done"
        assert 'Previous Step Result: "Delayed for 250ms."' in fake_invoker.prompts[-1]

        run = client.get(f"/workflows/runs/{data['execution_id']}").json()
        assert run["status"] == "completed"
        assert run["workflow_id"] == DEMO_WORKFLOW_ID
        assert len(run["steps"]) == 3

    def test_run_with_goal_override(self, client, fake_invoker):
        response = client.post(
            f"/workflows/{DEMO_WORKFLOW_ID}/run",
            json={"goal": "Explain the Porto funicular"},
        )
        assert response.status_code == 200
        assert 'Overall Goal: "Explain the Porto funicular"' in fake_invoker.prompts[0]

    def test_failed_run_is_reported(self, client):
        workflow_id = client.post("/workflows", json={
            "name": "Failing Flow",
            "description": "Uses an agent that does not exist",
            "goal": "Anything",
            "enable_api_access": True,
            "nodes": [{"id": "a", "type": "customAgentNode", "data": {"agentName": "ghost"}}],
            "edges": [{"source": "goal_node", "target": "a"}],
        }).json()["workflow_id"]

        response = client.post(f"/workflows/{workflow_id}/run")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "failed"
        assert data["error"] == "Agent definition for 'ghost' not found."

    def test_run_nonexistent_workflow(self, client):
        assert client.post("/workflows/nonexistent/run").status_code == 404

    def test_run_without_api_access(self, client, fake_invoker):
        workflow_id = client.post("/workflows", json={
            "name": "Private Flow",
            "description": "Only runnable from the editor",
            "goal": "Anything",
            "enable_api_access": False,
            "nodes": [{"id": "a", "type": "customAgentNode", "data": {"agentName": "Coordinator Agent"}}],
            "edges": [{"source": "goal_node", "target": "a"}],
        }).json()["workflow_id"]

        response = client.post(f"/workflows/{workflow_id}/run")

        assert response.status_code == 403
        assert response.json()["detail"] == "API access is not enabled for this workflow"
        assert fake_invoker.calls == []
        runs = client.get(f"/workflows/runs?workflow_id={workflow_id}").json()
        assert runs["total"] == 0

    def test_list_runs(self, client):
        client.post(f"/workflows/{DEMO_WORKFLOW_ID}/run")

        data = client.get(f"/workflows/runs?workflow_id={DEMO_WORKFLOW_ID}").json()
        assert data["total"] >= 1
        assert all(r["workflow_id"] == DEMO_WORKFLOW_ID for r in data["runs"])

        assert client.get("/workflows/runs/nonexistent").status_code == 404


class TestRunStream:
    """Tests for the SSE endpoint."""

    def test_stream_events(self, client):
        response = client.post("/workflows/run-stream", json=STREAM_REQUEST)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        assert read_events(response) == [
            {"type": "node-executing", "nodeId": "a"},
            {"type": "node-finished", "nodeId": "a", "content": "research notes"},
            {"type": "node-executing", "nodeId": "d"},
            {"type": "node-finished", "nodeId": "d", "content": "Delayed for 10ms."},
            {"type": "final-response", "content": "Delayed for 10ms."},
        ]

        run = client.get(f"/workflows/runs/{response.headers['x-execution-id']}").json()
        assert run["status"] == "completed"

    def test_stream_error_event(self, client):
        request = dict(STREAM_REQUEST, nodes=[
            {"id": "a", "type": "customAgentNode", "data": {"agentName": "ghost-writer"}},
        ], edges=[{"source": "goal_node", "target": "a"}])
        client.post("/agents", json={
            "name": "ghost-writer",
            "model": "gpt-4o-mini",
            "systemPrompt": "Write.",
        })

        events = read_events(client.post("/workflows/run-stream", json=request))

        assert events[0] == {"type": "node-executing", "nodeId": "a"}
        assert events[-1] == {
            "type": "error",
            "error": "Error in agent step 'ghost-writer': model unavailable",
        }
        client.delete("/agents/ghost-writer")

    def test_stream_validation(self, client):
        assert client.post("/workflows/run-stream", json=dict(STREAM_REQUEST, goal="")).status_code == 422

        duplicate = dict(STREAM_REQUEST, nodes=STREAM_REQUEST["nodes"] + [STREAM_REQUEST["nodes"][1]])
        assert client.post("/workflows/run-stream", json=duplicate).status_code == 400


class TestWebSocket:
    """Tests for the WebSocket endpoints."""

    def test_websocket_run(self, client):
        with client.websocket_connect(f"/ws/run/{DEMO_WORKFLOW_ID}") as ws:
            ws.send_json({"action": "start"})

            started = ws.receive_json()
            assert started["type"] == "started"

            events = []
            while not events or events[-1]["type"] not in ("final-response", "error"):
                events.append(ws.receive_json())

        assert events[0] == {"type": "node-executing", "nodeId": "research"}
        assert events[-1] == {"type": "final-response", "content": "non-api-agent done"}

    def test_websocket_requires_start(self, client):
        with client.websocket_connect(f"/ws/run/{DEMO_WORKFLOW_ID}") as ws:
            ws.send_json({"action": "stop"})
            assert ws.receive_json() == {"type": "error", "error": "Expected 'start' action"}

    def test_websocket_unknown_workflow(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/run/nonexistent") as ws:
                ws.receive_json()

    def test_websocket_subscribe(self, client):
        execution_id = client.post(f"/workflows/{DEMO_WORKFLOW_ID}/run").json()["execution_id"]

        with client.websocket_connect(f"/ws/subscribe/{execution_id}") as ws:
            messages = [ws.receive_json()]
            while messages[-1]["type"] != "completed":
                messages.append(ws.receive_json())

        assert messages[0]["type"] == "current_state"
        assert [m["node_id"] for m in messages if m["type"] == "step"] == [
            "research",
            "pause",
            "summarize",
        ]
        assert messages[-1]["status"] == "completed"


# ============================================================
# Async Tests (for async endpoints)
# ============================================================

@pytest.mark.asyncio
async def test_stream_with_async_client(fake_invoker):
    """The SSE endpoint also works through an ASGI transport."""
    app.dependency_overrides[get_invoker] = lambda: fake_invoker
    app.dependency_overrides[get_session_manager] = lambda: SessionManager(FakeSessionFactory())
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/workflows/run-stream", json=STREAM_REQUEST)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert read_events(response)[-1]["type"] == "final-response"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
