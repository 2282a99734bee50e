"""
Tutorial API — the control surface the rendering layer drives.

Endpoints:
    POST /v1/tutorial/start           → Fetch credential, connect, go live
    POST /v1/tutorial/pause           → Pause (mic off, engine cancelled)
    POST /v1/tutorial/resume          → Resume with an activity-aware message
    POST /v1/tutorial/end             → Tear down and save
    POST /v1/tutorial/restart         → Start over (first 5 minutes only)
    POST /v1/tutorial/topics/dismiss  → Hide the topic selector
    POST /v1/tutorial/visuals/{index}/dismiss → Hide a displayed visual
    GET  /v1/tutorial/state           → Snapshot of the session
    GET  /v1/tutorial/events          → SSE stream of UI events
    GET  /v1/tutorial/metrics         → In-process counters and histograms
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, AsyncGenerator

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from lyceum.core.errors import RealtimeConnectionError, RestartUnavailableError
from lyceum.core.event_bus import TUTORIAL_EVENTS
from lyceum.core.metrics import metrics

if TYPE_CHECKING:
    from lyceum.core.event_bus import EventBus
    from lyceum.session.orchestrator import TutorialSession

logger = logging.getLogger(__name__)


def create_tutorial_router(
    session: "TutorialSession",
    event_bus: "EventBus",
) -> APIRouter:
    """Create the tutorial control router."""

    router = APIRouter(prefix="/v1/tutorial", tags=["tutorial"])

    # ─── Lifecycle ────────────────────────────────────────────

    @router.post("/start")
    async def start() -> JSONResponse:
        try:
            snapshot = await session.start()
        except RealtimeConnectionError as e:
            return JSONResponse(
                {"error": str(e), "state": session.snapshot()}, status_code=502
            )
        return JSONResponse(snapshot)

    @router.post("/end")
    async def end() -> JSONResponse:
        await session.end()
        return JSONResponse(session.snapshot())

    @router.post("/restart")
    async def restart() -> JSONResponse:
        try:
            snapshot = await session.restart()
        except RestartUnavailableError as e:
            return JSONResponse({"error": str(e)}, status_code=409)
        except RealtimeConnectionError as e:
            return JSONResponse(
                {"error": str(e), "state": session.snapshot()}, status_code=502
            )
        return JSONResponse(snapshot)

    # ─── Pause / Resume ───────────────────────────────────────

    @router.post("/pause")
    async def pause() -> JSONResponse:
        paused = session.pause()
        return JSONResponse(
            {"paused": paused, "state": session.snapshot()},
            status_code=200 if paused else 409,
        )

    @router.post("/resume")
    async def resume() -> JSONResponse:
        resumed = session.resume()
        return JSONResponse(
            {"resumed": resumed, "state": session.snapshot()},
            status_code=200 if resumed else 409,
        )

    @router.post("/topics/dismiss")
    async def dismiss_topics() -> JSONResponse:
        session.dismiss_topic_selector()
        return JSONResponse({"status": "dismissed"})

    @router.post("/visuals/{index}/dismiss")
    async def dismiss_visual(index: int) -> JSONResponse:
        if not session.dismiss_visual(index):
            return JSONResponse({"error": "No such visual"}, status_code=404)
        return JSONResponse({"status": "dismissed", "index": index})

    # ─── Views ────────────────────────────────────────────────

    @router.get("/state")
    async def state() -> JSONResponse:
        return JSONResponse(session.snapshot())

    @router.get("/metrics")
    async def get_metrics() -> JSONResponse:
        return JSONResponse(metrics.snapshot())

    @router.get("/events")
    async def events() -> StreamingResponse:
        """
        SSE stream of UI events (state, transcript, topics, visual, error).

        The first event is always the current state snapshot.
        """
        return StreamingResponse(
            _sse_generator(session, event_bus),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    return router


# ─── SSE Helpers ──────────────────────────────────────────────


def _format_sse(event_type: str, data: object) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


async def _sse_generator(
    session: "TutorialSession", event_bus: "EventBus"
) -> AsyncGenerator[str, None]:
    queue = event_bus.subscribe(TUTORIAL_EVENTS)
    try:
        yield _format_sse("state", session.snapshot())
        async for event in event_bus.listen(queue):
            yield _format_sse(event.get("type", "message"), event.get("data"))
        yield _format_sse("done", {})
    finally:
        event_bus.unsubscribe(TUTORIAL_EVENTS, queue)
