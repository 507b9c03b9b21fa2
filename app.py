from contextlib import asynccontextmanager
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import RoomRegistry
from connections import ConnectionRegistry
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from event_keys import CONNECTED
from lifecycle import SignalingHub
from logging_config import get_logger, setup_logging
from rate_limiter import RateLimiter
from relay import SignalRouter
from routers.status import status_router
from sweeper import ExpirySweeper
from transport import WebSocketTransport

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

# Room and connection state lives in this process only; nothing is shared between instances
transport = WebSocketTransport()
router = SignalRouter(transport)
rate_limiter = RateLimiter()
connection_registry = ConnectionRegistry()
room_registry = RoomRegistry(router, rate_limiter)
hub = SignalingHub(room_registry, router, rate_limiter, connection_registry)
sweeper = ExpirySweeper(room_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper.start()
    logger.info("Signal relay started")
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("Signal relay stopped")


app = FastAPI(lifespan=lifespan)

# Configure CORS for the health endpoint
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.hub = hub
app.state.room_registry = room_registry

app.include_router(status_router)

logger.info("FastAPI application initialized")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Signaling WebSocket.

    Client frames: {"event": "<command>", "data": {...}, "ack": <optional id>}
    Commands with a response are answered with {"event": "ack", "ack": <id>, "data": {...}}.
    """
    address = websocket.client.host if websocket.client else "unknown"
    connection_id = hub.connect(address)
    if connection_id is None:
        await websocket.close(code=1008, reason="Too many connections")
        return

    try:
        await websocket.accept()
        transport.register(connection_id, websocket)
        transport.deliver(connection_id, CONNECTED, {"id": connection_id})

        message_count = 0
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break

            message_count += 1
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug(f"Ignoring non-JSON frame #{message_count} from connection {connection_id}")
                continue
            if not isinstance(message, dict):
                logger.debug(f"Ignoring non-object frame #{message_count} from connection {connection_id}")
                continue

            event = message.get("event")
            logger.debug(f"Received {event} (#{message_count}) from connection {connection_id}")
            response = hub.handle(connection_id, event, message.get("data"))
            if response is not None:
                transport.send_ack(connection_id, message.get("ack"), response)

    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        # Cleanup on disconnect
        await transport.unregister(connection_id)
        hub.disconnect(connection_id)
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")
