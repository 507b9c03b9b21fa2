import asyncio
import json
from typing import Any, Dict, Optional

from fastapi import WebSocket

from event_keys import ACK
from logging_config import get_logger

logger = get_logger(__name__)


class _Outbox:
    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None


class WebSocketTransport:
    """Delivers JSON frames to connected WebSockets.

    `deliver` only enqueues; a writer task per connection drains the queue, so
    callers never wait on the network and frames to one client keep their order.
    """

    def __init__(self):
        # Format: {connection_id: outbox}
        self._outboxes: Dict[str, _Outbox] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        outbox = _Outbox(websocket, asyncio.get_running_loop())
        outbox.task = asyncio.create_task(self._writer(connection_id, outbox))
        self._outboxes[connection_id] = outbox
        logger.debug(f"Registered connection {connection_id} with transport")

    async def unregister(self, connection_id: str):
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is None:
            return
        # Frames still queued for a closing socket are dropped
        outbox.task.cancel()
        try:
            await outbox.task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Unregistered connection {connection_id} from transport")

    def deliver(self, connection_id: str, event: str, payload: Any):
        self._enqueue(connection_id, {"event": event, "data": payload})

    def send_ack(self, connection_id: str, ack_id: Any, payload: dict):
        self._enqueue(connection_id, {"event": ACK, "ack": ack_id, "data": payload})

    def _enqueue(self, connection_id: str, frame: dict):
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping {frame['event']} for unknown connection {connection_id}")
            return
        outbox.loop.call_soon_threadsafe(outbox.queue.put_nowait, json.dumps(frame))

    async def _writer(self, connection_id: str, outbox: _Outbox):
        while True:
            text = await outbox.queue.get()
            try:
                await outbox.websocket.send_text(text)
            except Exception as e:
                # Dead socket: the receive loop will notice and run disconnect cleanup
                logger.warning(f"Error sending to connection {connection_id}: {e}")
                break

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def __len__(self):
        return len(self._outboxes)
