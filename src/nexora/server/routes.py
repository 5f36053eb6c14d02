"""API routes for the Nexora server."""

import asyncio
import json
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from nexora.chat.engine import ChatEngine, SendInProgressError
from nexora.chat.schema import ChatSession, Message, Tier


class ChatStreamRequest(BaseModel):
    """Request body for the streaming chat endpoint."""

    message: str
    tier: Tier | None = None
    specialist_mode: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    tier: Tier
    api_ready: bool


class SessionSummary(BaseModel):
    id: str
    title: str
    last_modified: int
    message_count: int


class SessionListResponse(BaseModel):
    active_id: str | None
    sessions: list[SessionSummary]


class RenameRequest(BaseModel):
    title: str


class UsageResponse(BaseModel):
    """Pro tier usage window."""

    count: int
    cap: int
    remaining: int
    reset_time: int


def _update_payload(engine: ChatEngine, message: Message) -> str:
    """Serialize the visible state of an in-flight message."""
    progress = engine.state.progress
    return json.dumps(
        {
            "id": message.id,
            "text": message.text,
            "stream_state": message.stream_state.value if message.stream_state else None,
            "progress": (
                {"steps": list(progress.steps), "percentage": progress.percentage}
                if progress is not None
                else None
            ),
            "specialist_mode": engine.state.specialist_mode,
        }
    )


def create_router(engine: ChatEngine) -> APIRouter:
    """Create API router bound to a chat engine.

    Args:
        engine: Chat engine serving every request

    Returns:
        Configured API router
    """
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        from nexora import __version__

        return HealthResponse(
            status="healthy",
            version=__version__,
            tier=engine.tier,
            api_ready=engine.state.api_ready,
        )

    @router.post("/chat/stream")
    async def chat_stream(request: ChatStreamRequest) -> EventSourceResponse:
        """Send a message and stream the reply as Server-Sent Events.

        Events: ``update`` after each visible change, then ``done`` with the
        final message, or ``rejected`` (rate limit, missing credential,
        empty input) / ``error``.
        """
        if engine.state.is_loading:
            raise HTTPException(status_code=409, detail="A message is already being generated")

        queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()

        def on_update(message: Message) -> None:
            queue.put_nowait(("update", _update_payload(engine, message)))

        async def event_generator() -> Any:
            """Generate SSE events."""
            task = asyncio.create_task(
                engine.send(
                    request.message,
                    specialist_mode=request.specialist_mode,
                    on_update=on_update,
                    tier=request.tier,
                )
            )
            task.add_done_callback(lambda _t: queue.put_nowait(("", "")))

            while True:
                event, data = await queue.get()
                if not event:
                    break
                yield {"event": event, "data": data}

            try:
                result = task.result()
            except SendInProgressError as e:
                yield {"event": "error", "data": str(e)}
                return

            if result is None:
                yield {"event": "rejected", "data": engine.state.last_notice or ""}
                return
            yield {"event": "done", "data": result.model_dump_json(exclude_none=True)}

        return EventSourceResponse(event_generator())

    @router.post("/chat/stop")
    async def chat_stop() -> dict[str, bool]:
        """Stop reading the in-flight reply."""
        engine.stop()
        return {"stopped": True}

    @router.get("/sessions/{tier}", response_model=SessionListResponse)
    async def list_sessions(tier: Tier) -> SessionListResponse:
        sessions = engine.sessions.sessions(tier)
        return SessionListResponse(
            active_id=engine.sessions.active_id(tier),
            sessions=[
                SessionSummary(
                    id=s.id,
                    title=s.title,
                    last_modified=s.last_modified,
                    message_count=len(s.messages),
                )
                for s in sessions
            ],
        )

    @router.get("/sessions/{tier}/{session_id}", response_model=ChatSession)
    async def get_session(tier: Tier, session_id: str) -> ChatSession:
        session = engine.sessions.find(tier, session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    @router.patch("/sessions/{tier}/{session_id}", response_model=SessionSummary)
    async def rename_session(tier: Tier, session_id: str, request: RenameRequest) -> SessionSummary:
        if engine.sessions.find(tier, session_id) is None:
            raise HTTPException(status_code=404, detail="Session not found")
        session = engine.sessions.rename(tier, session_id, request.title)
        return SessionSummary(
            id=session.id,
            title=session.title,
            last_modified=session.last_modified,
            message_count=len(session.messages),
        )

    @router.delete("/sessions/{tier}/{session_id}")
    async def delete_session(tier: Tier, session_id: str) -> dict[str, Any]:
        if not engine.sessions.delete(tier, session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return {"deleted": session_id, "active_id": engine.sessions.active_id(tier)}

    @router.delete("/sessions/{tier}")
    async def clear_sessions(tier: Tier) -> dict[str, bool]:
        engine.sessions.clear_all(tier)
        return {"cleared": True}

    @router.get("/usage", response_model=UsageResponse)
    async def usage() -> UsageResponse:
        """Pro tier usage in the current window."""
        limiter = engine.rate_limiter
        return UsageResponse(
            count=limiter.state.count,
            cap=limiter.cap,
            remaining=limiter.remaining(),
            reset_time=limiter.state.reset_time,
        )

    return router
