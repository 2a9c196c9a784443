"""HTTP API: create a debate, stream it over Server-Sent Events, steer it while it runs.

    POST /api/debates                   create a session
    GET  /api/debates/{id}/stream       first pass (SSE)
    POST /api/debates/{id}/continue     next pass, optionally with a user message (SSE)
    POST /api/debates/{id}/intervene    queue a user message into the running pass
    POST /api/debates/{id}/react        tally an emoji reaction on a message
    POST /api/debates/{id}/pause        stop the running pass at the next turn boundary
    GET  /api/debates/{id}/replay       every recorded event with its elapsed time
    POST /api/debates/{id}/followup     ask the moderator a question after the verdict (SSE)
"""

import logging
from collections.abc import AsyncIterator

import click
import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from synapse.cancellation import CancellationToken
from synapse.debate import AgentFactory, followup_agent, run_debate, run_followup
from synapse.events import DEBATE_END, HEARTBEAT, Event, encode_sse, error_event
from synapse.orchestrator import Orchestrator
from synapse.providers.registry import build_agent
from synapse.session import (
    ACTIVE,
    COMPLETED,
    ERROR,
    IDLE,
    MAX_MESSAGE_CHARS,
    MAX_PROBLEM_CHARS,
    MAX_QUESTION_CHARS,
    DebateSession,
    SessionStore,
)
from synapse.sources.registry import SourceRegistry
from synapse.streaming import with_heartbeat

logger = logging.getLogger(__name__)
router = APIRouter()

_SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class CreateDebateRequest(BaseModel):
    problem: str = Field(..., min_length=1, max_length=MAX_PROBLEM_CHARS)
    api_keys: dict[str, str | list[str]] = Field(
        default_factory=dict, description="Per-provider keys overriding the server's own"
    )


class InterveneRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)


class ContinueRequest(BaseModel):
    message: str | None = Field(None, max_length=MAX_MESSAGE_CHARS)


class ReactRequest(BaseModel):
    message_id: str = Field(..., min_length=1, max_length=200)
    emoji: str = Field(..., min_length=1, max_length=16)


class FollowupRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=MAX_QUESTION_CHARS)


def _normalize_keys(raw: dict[str, str | list[str]]) -> dict[str, list[str]]:
    keys: dict[str, list[str]] = {}
    for provider, value in raw.items():
        values = value.split(",") if isinstance(value, str) else value
        cleaned = [v.strip() for v in values if v and v.strip()]
        if cleaned:
            keys[provider] = cleaned
    return keys


def _session_or_404(request: Request, session_id: str) -> DebateSession:
    session = request.app.state.store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


async def _sse(request: Request, session_id: str, token: CancellationToken, events: AsyncIterator[Event]):
    """Encode a debate's events as SSE frames, keeping the session status in step."""
    store: SessionStore = request.app.state.store
    defaults = request.app.state.config.defaults
    final_status = IDLE
    try:
        async for event in with_heartbeat(events, defaults.heartbeat_interval_sec, defaults.idle_timeout_sec):
            if event.type != HEARTBEAT:
                store.record_event(session_id, event)
            if event.type == DEBATE_END:
                final_status = COMPLETED
            elif event.is_fatal:
                final_status = ERROR
            yield encode_sse(event)
    except Exception as exc:
        logger.exception("Debate stream failed for session %s", session_id)
        final_status = ERROR
        yield encode_sse(error_event(f"Debate failed: {exc}", fatal=True))
    finally:
        token.cancel()
        store.update(session_id, status=final_status)


def _stream_response(request: Request, session: DebateSession) -> StreamingResponse:
    app_state = request.app.state
    token = CancellationToken()
    events = run_debate(
        session.id,
        session.problem,
        app_state.orchestrator,
        app_state.store,
        factory=app_state.agent_factory,
        registry=app_state.registry,
        api_keys=session.api_keys,
        token=token,
    )
    return StreamingResponse(
        _sse(request, session.id, token, events),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.post("/debates", status_code=201)
async def create_debate(body: CreateDebateRequest, request: Request) -> dict:
    try:
        session = request.app.state.store.create(body.problem.strip(), _normalize_keys(body.api_keys))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"session_id": session.id}


@router.get("/debates/{session_id}/stream")
async def stream_debate(session_id: str, request: Request) -> StreamingResponse:
    session = _session_or_404(request, session_id)
    if session.status == ACTIVE:
        raise HTTPException(status_code=409, detail="Debate is already streaming")
    if session.state is not None:
        raise HTTPException(status_code=409, detail="Debate already started; use /continue")
    request.app.state.store.update(session_id, status=ACTIVE)
    return _stream_response(request, session)


@router.post("/debates/{session_id}/continue")
async def continue_debate(session_id: str, body: ContinueRequest, request: Request) -> StreamingResponse:
    session = _session_or_404(request, session_id)
    if session.status == ACTIVE:
        raise HTTPException(status_code=409, detail="Debate is already streaming")
    if session.state is None:
        raise HTTPException(status_code=409, detail="Debate has not started; use /stream")
    if session.state.finished:
        raise HTTPException(status_code=409, detail="Debate has already concluded")

    store: SessionStore = request.app.state.store
    store.update(session_id, status=ACTIVE)
    if body.message and body.message.strip():
        store.push_intervention(session_id, body.message)
    return _stream_response(request, session)


@router.post("/debates/{session_id}/intervene")
async def intervene(session_id: str, body: InterveneRequest, request: Request) -> dict:
    _session_or_404(request, session_id)
    try:
        queued = request.app.state.store.push_intervention(session_id, body.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not queued:
        raise HTTPException(status_code=409, detail="Debate is not running")
    return {"queued": True}


@router.post("/debates/{session_id}/react")
async def react(session_id: str, body: ReactRequest, request: Request) -> dict:
    _session_or_404(request, session_id)
    store: SessionStore = request.app.state.store
    store.add_reaction(session_id, body.message_id, body.emoji)
    return {"message_id": body.message_id, "reactions": store.reactions(session_id)[body.message_id]}


@router.post("/debates/{session_id}/pause")
async def pause(session_id: str, request: Request) -> dict:
    session = _session_or_404(request, session_id)
    if session.status != ACTIVE:
        raise HTTPException(status_code=409, detail="Debate is not running")
    request.app.state.store.set_paused(session_id, True)
    return {"paused": True}


@router.get("/debates/{session_id}/replay")
async def replay(session_id: str, request: Request) -> dict:
    session = _session_or_404(request, session_id)
    return {
        "session_id": session_id,
        "problem": session.problem,
        "status": session.status,
        "events": [
            {"event": r.event, "elapsed_ms": r.elapsed_ms}
            for r in request.app.state.store.replay_events(session_id)
        ],
    }


@router.post("/debates/{session_id}/followup")
async def followup(session_id: str, body: FollowupRequest, request: Request) -> StreamingResponse:
    session = _session_or_404(request, session_id)
    if session.status != COMPLETED:
        raise HTTPException(status_code=400, detail="Debate has not concluded yet")
    if not session.transcript:
        raise HTTPException(status_code=400, detail="No debate transcript available")
    question = body.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")

    app_state = request.app.state
    agent = followup_agent(session.summary_agent_id, app_state.config, app_state.agent_factory, session.api_keys)
    if agent is None:
        raise HTTPException(status_code=400, detail="No agents available")

    token = CancellationToken()
    defaults = app_state.config.defaults
    events = run_followup(agent, session.problem, session.transcript, question, app_state.config, token)

    async def frames():
        try:
            async for event in with_heartbeat(events, defaults.heartbeat_interval_sec, defaults.idle_timeout_sec):
                yield encode_sse(event)
        finally:
            token.cancel()

    return StreamingResponse(frames(), media_type="text/event-stream", headers=_SSE_HEADERS)


def create_app(
    config: AppConfig | None = None,
    store: SessionStore | None = None,
    agent_factory: AgentFactory = build_agent,
    registry: SourceRegistry | None = None,
) -> FastAPI:
    """Application factory.

    Args:
        config: Loaded settings (loads config/settings.yaml if None).
        store: Session store (a fresh in-memory store if None).
        agent_factory: Builds an agent client from a profile; swapped out in tests.
        registry: Knowledge sources (the default httpx adapters if None).
    """
    config = config or load_config()
    store = store or SessionStore(config.defaults.session_ttl_sec)

    application = FastAPI(title="Synapse API", description="Live multi-agent debate", version="0.1.0")
    application.state.config = config
    application.state.store = store
    application.state.orchestrator = Orchestrator(config, store)
    application.state.agent_factory = agent_factory
    application.state.registry = registry
    application.include_router(router, prefix="/api", tags=["Debates"])

    logger.info("API initialized (%d provider(s) with keys)", len(config.available_providers))
    return application


@click.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def serve(host: str, port: int, verbose: bool) -> None:
    """Serve the Synapse HTTP API."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


if __name__ == "__main__":
    serve()
