from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, NOTIFY_STREAMER_OF_WAITING_VIEWERS, OUTBOX_SIZE, SOCKET_PATH
from coordinator import RoomCoordinator
from hub import SignalingHub
from logging_config import get_logger, setup_logging
from routers.rooms import health_router, rooms_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The hub owns the room table; routes reach it through app.state
    coordinator = RoomCoordinator(notify_streamer_of_waiting_viewers=NOTIFY_STREAMER_OF_WAITING_VIEWERS)
    hub = SignalingHub(coordinator, outbox_size=OUTBOX_SIZE)
    app.state.hub = hub
    await hub.start()
    try:
        yield
    finally:
        await hub.stop()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(rooms_router)
app.include_router(health_router)

logger.info(f"FastAPI application initialized, signaling socket at {SOCKET_PATH}")


@app.websocket(SOCKET_PATH)
async def signaling_socket(websocket: WebSocket):
    """Signaling endpoint: one WebSocket per browser tab.

    Frames are JSON objects {"event": ..., "data": ...}. The connection id is
    sent to the client in the first "connected" event.
    """
    hub: SignalingHub = websocket.app.state.hub
    await websocket.accept()
    connection_id = hub.register(websocket.send_json)
    logger.info(f"User connected: {connection_id}")

    try:
        message_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break
            # Binary frames carry the same JSON, UTF-8 encoded
            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            hub.handle_text(connection_id, data)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        await hub.unregister(connection_id)
        logger.info(f"User disconnected: {connection_id}")
