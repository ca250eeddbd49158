"""Tracking API endpoints - the server end of the tracking channel."""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from sessionlogs.config import get_settings
from sessionlogs.errors import ParseError, SessionStateError, UserResolutionError
from sessionlogs.sessions import SessionContext, SessionCoordinator
from sessionlogs.storage import StorageBackend, build_storage
from sessionlogs.tracking import Priority, generate_snippet, render_config_tag

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/tracking", tags=["Tracking"])


# =============================================================================
# In-memory Session Registry
# =============================================================================

_sessions: dict[str, SessionCoordinator] = {}
_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Storage backend shared by every session of this process."""
    global _storage
    if _storage is None:
        _storage = build_storage(get_settings())
    return _storage


def get_coordinator(session_id: str) -> SessionCoordinator:
    coordinator = _sessions.get(session_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return coordinator


# =============================================================================
# Request/Response Models
# =============================================================================


class StartSessionRequest(BaseModel):
    """Request to open a tracked session."""

    user: Optional[str] = Field(None, description="User provided by the host authentication layer")


class StartSessionResponse(BaseModel):
    """Client configuration for a new session."""

    session_id: str
    config: dict = Field(..., description="Configuration document read by the client")
    config_tag: str = Field(..., description="Configuration tag to embed in the page")


class PushRequest(BaseModel):
    """A single push from the tracking client."""

    name: str = Field(..., description="Channel identifier")
    value: Any = Field(None, description="Snapshot, last event or browser descriptor")
    priority: Priority = Field(Priority.VALUE, description="Push priority")


class PushResponse(BaseModel):
    """Acknowledgement of a push."""

    success: bool
    session_id: str
    name: str


class EndSessionRequest(BaseModel):
    """Request to close a session."""

    browser_data: Optional[dict] = Field(None, description="Browser descriptor, if not pushed earlier")


class EndSessionResponse(BaseModel):
    """Summary of a closed session."""

    session_id: str
    user: Optional[str] = None
    stored: bool
    inputs: int = 0
    errors: int = 0
    outputs: int = 0
    duration_seconds: Optional[float] = None


class SessionStatusResponse(BaseModel):
    """Live view of an open session."""

    session_id: str
    user: Optional[str]
    state: str
    mode: str
    inputs: int
    errors: int
    outputs: int
    last_event: Optional[dict] = None


class SnippetResponse(BaseModel):
    """Generated client snippet."""

    format: str
    snippet: str


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/sessions", response_model=StartSessionResponse)
async def start_session(
    body: Optional[StartSessionRequest] = None,
    storage: StorageBackend = Depends(get_storage),
):
    """
    Open a session and return its client configuration.

    The session id is derived from the start timestamp; the configuration
    document is what the page embeds for the tracking client.
    """
    body = body or StartSessionRequest()
    coordinator = SessionCoordinator.from_settings(get_settings(), storage)
    try:
        config = coordinator.start(SessionContext(user=body.user))
    except UserResolutionError as e:
        raise HTTPException(status_code=500, detail=str(e))

    _sessions[config.session_id] = coordinator
    logger.info("Tracked session opened", session_id=config.session_id, user=coordinator.user)

    return StartSessionResponse(
        session_id=config.session_id,
        config=config.to_payload(),
        config_tag=render_config_tag(config),
    )


@router.post("/sessions/{session_id}/inputs", response_model=PushResponse)
async def push_input(session_id: str, body: PushRequest):
    """
    Receive a push from the tracking client.

    Snapshots replace the previous snapshot of their category, so a
    redelivered push is harmless.
    """
    coordinator = get_coordinator(session_id)
    try:
        coordinator.receive(body.name, body.value, priority=body.priority)
    except ParseError as e:
        logger.warning("Push rejected", session_id=session_id, name=body.name, error=str(e))
        raise HTTPException(status_code=422, detail=str(e))
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return PushResponse(success=True, session_id=session_id, name=body.name)


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session(session_id: str):
    """Current state and snapshot sizes of an open session."""
    coordinator = get_coordinator(session_id)
    last_event = coordinator.last_event
    if last_event is not None:
        last_event = {**last_event, "timestamp": last_event["timestamp"].isoformat()}

    return SessionStatusResponse(
        session_id=session_id,
        user=coordinator.user,
        state=coordinator.state.value,
        mode=coordinator.mode.value,
        inputs=len(coordinator.snapshot("input")),
        errors=len(coordinator.snapshot("error")),
        outputs=len(coordinator.snapshot("output")),
        last_event=last_event,
    )


@router.post("/sessions/{session_id}/end", response_model=EndSessionResponse)
async def end_session(session_id: str, body: Optional[EndSessionRequest] = None):
    """
    Close a session and write its record to storage.

    Storage failures are logged, never retried; `stored` reports the outcome.
    """
    coordinator = get_coordinator(session_id)
    body = body or EndSessionRequest()
    try:
        record = coordinator.end(browser_data=body.browser_data)
    finally:
        _sessions.pop(session_id, None)

    if record is None:
        return EndSessionResponse(session_id=session_id, user=coordinator.user, stored=coordinator.stored)

    return EndSessionResponse(
        session_id=session_id,
        user=record.user,
        stored=coordinator.stored,
        inputs=len(record.inputs),
        errors=len(record.errors),
        outputs=len(record.outputs),
        duration_seconds=record.duration_seconds,
    )


@router.get("/snippet", response_model=SnippetResponse)
async def get_snippet(
    format: str = Query("inline", description="Snippet format: inline"),
    base_url: str = Query("", description="Origin of the tracking API"),
):
    """Generate the JavaScript tracking client to embed in pages."""
    if format != "inline":
        raise HTTPException(status_code=400, detail=f"Unsupported snippet format: {format}")
    return SnippetResponse(format=format, snippet=generate_snippet(format, base_url=base_url))
