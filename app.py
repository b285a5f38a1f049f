import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from connection import Connection, ConnectionState
from constants import (
    ALLOWED_ORIGINS,
    HEARTBEAT_INTERVAL_MS,
    LOG_FILE,
    LOG_LEVEL,
    MESSAGE_COOLDOWN_MS,
    PORT,
    UPLOAD_CLEANUP_INTERVAL_MS,
    UPLOAD_DIR,
)
from heartbeat import LivenessMonitor
from logging_config import get_logger, setup_logging
from origin_gate import OriginGate
from pipeline import MessagePipeline
from room_directory import RoomDirectory
from routers.uploads import uploads_router
from upload_store import UploadCleaner, UploadStore

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def read_frame(websocket: WebSocket) -> Optional[str]:
    """Next text payload from the peer; raises WebSocketDisconnect once it has gone away.

    Binary frames are decoded as UTF-8 and go through the same pipeline.
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        return message["bytes"].decode("utf-8", errors="replace")
    return None


async def websocket_endpoint(websocket: WebSocket):
    """Room chat socket.

    Inbound frames: ``{"type": "join", "room": ...}``, ``{"type": "chat", "payload": {...}}``
    and ``{"type": "pong"}`` in reply to a server ``{"type": "ping"}``.
    """
    state = websocket.app.state
    if not state.origin_gate.admits(websocket.headers.get("origin")):
        await state.origin_gate.reject(websocket)
        return

    await websocket.accept()
    connection = Connection(websocket, clock=state.clock)
    directory: RoomDirectory = state.directory
    directory.register(connection)
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(f"WebSocket connection {connection.connection_id} opened from {client_host}")

    try:
        while True:
            data = await read_frame(websocket)
            # terminated by the liveness monitor while we were waiting
            if connection.state is not ConnectionState.OPEN:
                break
            if data is None:
                continue
            await state.pipeline.handle(connection, data)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected for connection {connection.connection_id} (code {e.code})")
    except Exception as e:
        logger.error(f"WebSocket error on connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        room_id = connection.room
        directory.unregister(connection)
        logger.info(f"Connection {connection.connection_id} closed (room: {room_id})")
        await connection.terminate(code=1000)


def create_app(
    allowed_origins: Iterable[str] = ALLOWED_ORIGINS,
    *,
    upload_dir: Union[str, Path] = UPLOAD_DIR,
    cooldown_ms: int = MESSAGE_COOLDOWN_MS,
    heartbeat_interval_ms: int = HEARTBEAT_INTERVAL_MS,
    cleanup_interval_ms: int = UPLOAD_CLEANUP_INTERVAL_MS,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    directory = RoomDirectory()
    origin_gate = OriginGate(allowed_origins)
    upload_store = UploadStore(upload_dir)
    upload_store.ensure_dir()
    monitor = LivenessMonitor(directory, interval_ms=heartbeat_interval_ms)
    cleaner = UploadCleaner(upload_store, interval_ms=cleanup_interval_ms)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor.start()
        cleaner.start()
        logger.info(f"Allowing connections from: {', '.join(origin_gate.allowed_origins)}")
        try:
            yield
        finally:
            await monitor.stop()
            await cleaner.stop()

    app = FastAPI(lifespan=lifespan)
    app.state.directory = directory
    app.state.origin_gate = origin_gate
    app.state.pipeline = MessagePipeline(directory, cooldown_ms=cooldown_ms)
    app.state.monitor = monitor
    app.state.upload_store = upload_store
    app.state.upload_cleaner = cleaner
    app.state.clock = clock

    # CORS applies to the HTTP routes; the socket is gated by OriginGate.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origin_gate.allowed_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(uploads_router)
    app.mount("/uploads", StaticFiles(directory=str(upload_store.directory)), name="uploads")
    app.add_api_websocket_route("/", websocket_endpoint)

    logger.info(f"Application initialized (port {PORT}, uploads in {upload_store.directory})")
    return app


app = create_app()
