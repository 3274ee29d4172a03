from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse

from backend import RelayBackend, get_relay_backend
from constants import CORS_ALLOW_ORIGINS, LOG_FILE, LOG_LEVEL, RELAY_HEARTBEAT_SECONDS
from exceptions import register_exception_handlers
from logging_config import get_logger, setup_logging
from routers.relay import relay_router
from streaming import room_event_stream

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Relay")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(relay_router)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.get("/api/relay/rooms/{room_id}/events")
    async def room_events(room_id: str, request: Request, backend: RelayBackend = Depends(get_relay_backend)):
        """Server-Sent Events feed for one room.

        First frame: `{"type": "connected", "roomId": ...}`. Every later frame is
        a message accepted by the room. Comment pings keep idle connections open.
        """
        backend.require_room(room_id)
        return EventSourceResponse(
            room_event_stream(request, backend, room_id),
            ping=RELAY_HEARTBEAT_SECONDS,
            headers={"Cache-Control": "no-store, no-cache", "X-Accel-Buffering": "no"},
        )

    logger.info("FastAPI application initialized")
    return app


app = create_app()
