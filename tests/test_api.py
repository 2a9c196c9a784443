"""Tests for synapse/api.py using FastAPI's TestClient."""

import json

import pytest
from fastapi.testclient import TestClient

from synapse.api import create_app
from synapse.session import ACTIVE, COMPLETED, IDLE, SessionStore
from synapse.sources.registry import SourceRegistry
from tests.conftest import AgentFactoryStub

PROBLEM = "Should we migrate the monolith to microservices?"


def _parse_sse(body: str) -> list[dict]:
    frames = []
    for block in body.strip().split("\n\n"):
        data = next((line[len("data: "):] for line in block.splitlines() if line.startswith("data: ")), None)
        if data is not None:
            frames.append(json.loads(data))
    return frames


@pytest.fixture
def factory() -> AgentFactoryStub:
    return AgentFactoryStub()


@pytest.fixture
def client(app_config, store: SessionStore, factory) -> TestClient:
    app_config.defaults.turns_per_agent = 1
    app_config.defaults.max_rounds = 1
    app_config.defaults.max_passes = 2
    app = create_app(config=app_config, store=store, agent_factory=factory, registry=SourceRegistry([]))
    return TestClient(app)


def _create(client: TestClient) -> str:
    response = client.post(
        "/api/debates",
        json={"problem": PROBLEM, "api_keys": {"anthropic": "sk-ant", "openai": ["sk-oai"]}},
    )
    assert response.status_code == 201
    return response.json()["session_id"]


def test_create_debate_stores_request_keys(client, store):
    session_id = _create(client)

    session = store.get(session_id)
    assert session.problem == PROBLEM
    assert session.api_keys == {"anthropic": ["sk-ant"], "openai": ["sk-oai"]}


def test_create_debate_rejects_empty_problem(client):
    response = client.post("/api/debates", json={"problem": ""})
    assert response.status_code == 422


def test_create_debate_rejects_blank_problem(client):
    response = client.post("/api/debates", json={"problem": "   "})
    assert response.status_code == 400


def test_unknown_session_is_404(client):
    assert client.get("/api/debates/nope/stream").status_code == 404
    assert client.post("/api/debates/nope/pause").status_code == 404
    assert client.get("/api/debates/nope/replay").status_code == 404


def test_stream_emits_a_pass_and_waits_for_continue(client, store):
    session_id = _create(client)

    response = client.get(f"/api/debates/{session_id}/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-accel-buffering"] == "no"
    frames = _parse_sse(response.text)
    types = [f["type"] for f in frames]
    assert types[0] == "debate:start"
    assert "round:complete" in types
    assert frames[-1]["type"] == "turn:pause"
    assert frames[-1]["data"]["reason"] == "awaiting_continue"
    assert store.get(session_id).status == IDLE


def test_stream_twice_is_conflict(client):
    session_id = _create(client)
    client.get(f"/api/debates/{session_id}/stream")

    assert client.get(f"/api/debates/{session_id}/stream").status_code == 409


def test_continue_before_stream_is_conflict(client):
    session_id = _create(client)

    assert client.post(f"/api/debates/{session_id}/continue", json={}).status_code == 409


def test_continue_with_message_reaches_synthesis(client, store):
    session_id = _create(client)
    client.get(f"/api/debates/{session_id}/stream")

    response = client.post(
        f"/api/debates/{session_id}/continue", json={"message": "What about the data migration?"}
    )

    frames = _parse_sse(response.text)
    types = [f["type"] for f in frames]
    assert types[0] == "user:intervention"
    assert frames[0]["data"]["content"] == "What about the data migration?"
    assert types[-2:] == ["debate:summary", "debate:end"]
    assert store.get(session_id).status == COMPLETED

    again = client.post(f"/api/debates/{session_id}/continue", json={})
    assert again.status_code == 409


def test_intervene_requires_a_running_debate(client):
    session_id = _create(client)

    response = client.post(f"/api/debates/{session_id}/intervene", json={"message": "Hello"})

    assert response.status_code == 409


def test_intervene_queues_while_running(client, store):
    session_id = _create(client)
    store.update(session_id, status=ACTIVE)

    response = client.post(f"/api/debates/{session_id}/intervene", json={"message": "Consider cost"})

    assert response.status_code == 200
    assert store.has_pending_interventions(session_id)


def test_intervene_rejects_overlong_message(client, store):
    session_id = _create(client)
    store.update(session_id, status=ACTIVE)

    response = client.post(f"/api/debates/{session_id}/intervene", json={"message": "x" * 1001})

    assert response.status_code == 422


def test_react_tallies_emoji(client):
    session_id = _create(client)

    client.post(f"/api/debates/{session_id}/react", json={"message_id": "msg-0-gpt-mini", "emoji": "👍"})
    response = client.post(
        f"/api/debates/{session_id}/react", json={"message_id": "msg-0-gpt-mini", "emoji": "👍"}
    )

    assert response.json() == {"message_id": "msg-0-gpt-mini", "reactions": {"👍": 2}}


def test_pause_only_while_running(client, store):
    session_id = _create(client)
    assert client.post(f"/api/debates/{session_id}/pause").status_code == 409

    store.update(session_id, status=ACTIVE)
    assert client.post(f"/api/debates/{session_id}/pause").status_code == 200
    assert store.is_paused(session_id)


def test_replay_returns_recorded_events(client):
    session_id = _create(client)
    client.get(f"/api/debates/{session_id}/stream")

    response = client.get(f"/api/debates/{session_id}/replay")

    body = response.json()
    assert body["problem"] == PROBLEM
    assert body["events"][0]["event"]["type"] == "debate:start"
    assert all(e["elapsed_ms"] >= 0 for e in body["events"])
    assert all(e["event"]["type"] != "heartbeat" for e in body["events"])


def test_no_keys_streams_a_fatal_error(client, store):
    response = client.post("/api/debates", json={"problem": PROBLEM})
    session_id = response.json()["session_id"]

    frames = _parse_sse(client.get(f"/api/debates/{session_id}/stream").text)

    assert len(frames) == 1
    assert frames[0]["type"] == "error"
    assert frames[0]["data"]["fatal"] is True
    assert store.get(session_id).status == "error"


def _completed(client: TestClient) -> str:
    session_id = _create(client)
    client.get(f"/api/debates/{session_id}/stream")
    client.post(f"/api/debates/{session_id}/continue", json={"message": "What about the data migration?"})
    return session_id


def test_followup_answered_by_the_synthesizer(client, store, factory):
    session_id = _completed(client)
    session = store.get(session_id)
    assert session.status == COMPLETED

    response = client.post(f"/api/debates/{session_id}/followup", json={"question": "  Why billing first?  "})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = _parse_sse(response.text)
    assert [f["type"] for f in frames][-1] == "followup:done"
    assert any(f["type"] == "followup:chunk" for f in frames)
    assert frames[-1]["data"]["agent_id"] == session.summary_agent_id
    prompt = factory.built[session.summary_agent_id].calls[-1][-1]["content"]
    assert "FOLLOW-UP QUESTION: Why billing first?" in prompt
    assert session.transcript in prompt


def test_followup_falls_back_when_synthesizer_cannot_be_rebuilt(client, store, factory):
    session_id = _completed(client)
    synthesizer = store.get(session_id).summary_agent_id
    factory.unbuildable.add(synthesizer)

    frames = _parse_sse(client.post(f"/api/debates/{session_id}/followup", json={"question": "And then?"}).text)

    assert frames[-1]["type"] == "followup:done"
    assert frames[-1]["data"]["agent_id"] != synthesizer


def test_followup_before_the_verdict_is_rejected(client):
    session_id = _create(client)
    client.get(f"/api/debates/{session_id}/stream")

    response = client.post(f"/api/debates/{session_id}/followup", json={"question": "Why?"})

    assert response.status_code == 400


def test_followup_question_validation(client):
    session_id = _completed(client)
    url = f"/api/debates/{session_id}/followup"

    assert client.post(url, json={"question": ""}).status_code == 422
    assert client.post(url, json={"question": "   "}).status_code == 400
    assert client.post(url, json={"question": "x" * 2001}).status_code == 422
    assert client.post(url, json={"question": "x" * 2000}).status_code == 200
    assert client.post("/api/debates/nope/followup", json={"question": "Why?"}).status_code == 404
