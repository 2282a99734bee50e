"""
Lyceum — live voice tutorial orchestrator.

Serves the tutorial control surface for a single learner on this machine:
the rendering layer drives start/pause/resume/end over HTTP and follows
the session over SSE, while audio runs peer-to-peer with the engine.

Run: uv run uvicorn lyceum.main:app --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from lyceum import __version__
from lyceum.core.config import config
from lyceum.core.event_bus import TUTORIAL_EVENTS, EventBus
from lyceum.core.logging import setup_logging
from lyceum.http.tutorial import create_tutorial_router
from lyceum.realtime.transport import RealtimeConnector
from lyceum.services.backend import BackendClient
from lyceum.session.orchestrator import TutorialSession

# --- Setup ---
setup_logging()
logger = logging.getLogger("lyceum")


def create_app(session: TutorialSession | None = None) -> FastAPI:
    """Build the app around one TutorialSession (a fresh one by default)."""
    event_bus = session.bus if session is not None else EventBus()
    if session is None:
        session = TutorialSession(
            connector=RealtimeConnector(config.realtime),
            backend=BackendClient(config.api),
            bus=event_bus,
        )

    app = FastAPI(title="Lyceum", version=__version__)
    app.state.session = session
    app.include_router(create_tutorial_router(session, event_bus))

    @app.on_event("startup")
    async def startup():
        logger.info(
            "Lyceum %s ready (model=%s, voice=%s, backend=%s)",
            __version__,
            config.realtime.model,
            config.realtime.voice,
            config.api.base_url,
        )

    @app.on_event("shutdown")
    async def shutdown():
        # Component disposal: a live session is ended and saved
        await session.shutdown()
        event_bus.publish_end(TUTORIAL_EVENTS)

    @app.get("/health")
    async def health():
        return JSONResponse(
            {
                "status": "ok",
                "version": __version__,
                "session": session.state.status.value,
            }
        )

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
