import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Set

from pydantic import ValidationError

from errors import MissingParams, RateLimited, SignalingError
from event_keys import (
    CREATE_ROOM,
    ERR_RATE_LIMIT,
    ERR_SERVER,
    ERROR,
    JOIN_ROOM,
    LEAVE_ROOM,
    SIGNAL,
    TRANSFER_COMPLETE,
)
from logging_config import get_logger
from schemas.signaling import (
    CreateRoomRequest,
    CreateRoomResponse,
    ErrorResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    LeaveRoomRequest,
    SignalRequest,
    TransferCompleteRequest,
    TransferCompleteResponse,
)

logger = get_logger(__name__)


@dataclass
class ConnectionState:
    connection_id: str
    address: str
    rooms: Set[str] = field(default_factory=set)


class SignalingHub:
    """Drives the registries from transport events: connect, message, disconnect.

    Keeps connection id -> (address, rooms touched) so a disconnect only visits
    the rooms that connection was part of.
    """

    def __init__(self, registry, router, rate_limiter, connection_registry):
        self.registry = registry
        self.router = router
        self.rate_limiter = rate_limiter
        self.connection_registry = connection_registry
        self._connections: Dict[str, ConnectionState] = {}
        self._lock = threading.Lock()
        self._handlers = {
            CREATE_ROOM: self._create_room,
            JOIN_ROOM: self._join_room,
            SIGNAL: self._signal,
            TRANSFER_COMPLETE: self._transfer_complete,
            LEAVE_ROOM: self._leave_room,
        }
        registry.add_close_listener(self._room_closed)

    def connect(self, address: str) -> Optional[str]:
        """Admit a new connection from `address`. Returns its id, or None if rejected."""
        connection_id = uuid.uuid4().hex
        if not self.connection_registry.admit(address, connection_id):
            self.connection_registry.release(address, connection_id)
            logger.warning(f"Connection from {address} rejected: too many connections")
            return None
        with self._lock:
            self._connections[connection_id] = ConnectionState(connection_id, address)
        logger.info(f"Connection {connection_id} opened from {address}")
        return connection_id

    def disconnect(self, connection_id: str):
        with self._lock:
            state = self._connections.pop(connection_id, None)
        if state is None:
            return
        self.registry.remove_connection(connection_id, state.rooms)
        self.rate_limiter.discard(connection_id)
        self.connection_registry.release(state.address, connection_id)
        logger.info(f"Connection {connection_id} closed ({len(state.rooms)} rooms touched)")

    def handle(self, connection_id: str, event: str, data: Any) -> Optional[dict]:
        """Process one client command. Returns the ack payload, or None when there is none."""
        if not isinstance(event, str):
            logger.debug(f"Ignoring frame with non-string event from connection {connection_id}")
            return None
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"Ignoring unknown event {event!r} from connection {connection_id}")
            return None
        if not self.is_connected(connection_id):
            logger.debug(f"Ignoring {event} from closed connection {connection_id}")
            return None

        try:
            return handler(connection_id, data if data is not None else {})
        except ValidationError as e:
            logger.debug(f"Invalid {event} payload from {connection_id}: {e.error_count()} errors")
            return ErrorResponse(error=MissingParams.code).model_dump(by_alias=True)
        except SignalingError as e:
            return ErrorResponse(error=e.code).model_dump(by_alias=True)
        except Exception as e:
            logger.error(f"Error handling {event} from connection {connection_id}: {e}", exc_info=True)
            return ErrorResponse(error=ERR_SERVER).model_dump(by_alias=True)

    def is_connected(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def tracked_rooms(self, connection_id: str) -> FrozenSet[str]:
        with self._lock:
            state = self._connections.get(connection_id)
            return frozenset(state.rooms) if state is not None else frozenset()

    def _room_closed(self, code: str, members: FrozenSet[str]):
        with self._lock:
            for connection_id in members:
                state = self._connections.get(connection_id)
                if state is not None:
                    state.rooms.discard(code)

    def _track(self, connection_id: str, code: str):
        with self._lock:
            state = self._connections.get(connection_id)
            if state is not None:
                state.rooms.add(code)
        # The room may have closed before it was tracked; its close listener has already run
        if self.registry.get_room(code) is None:
            self._untrack(connection_id, code)

    def _untrack(self, connection_id: str, code: str):
        with self._lock:
            state = self._connections.get(connection_id)
            if state is not None:
                state.rooms.discard(code)

    def _create_room(self, connection_id: str, data: Any) -> dict:
        request = CreateRoomRequest.model_validate(data)
        grant = self.registry.create_room(
            connection_id,
            ttl_minutes=request.ttl_minutes,
            max_peers=request.max_peers,
            usage_limit=request.usage_limit,
        )
        self._track(connection_id, grant.code)
        return CreateRoomResponse(
            code=grant.code,
            token=grant.token,
            ttl_minutes=grant.ttl_minutes,
            max_peers=grant.max_peers,
            usage_left=grant.usage_left,
        ).model_dump(by_alias=True)

    def _join_room(self, connection_id: str, data: Any) -> dict:
        request = JoinRoomRequest.model_validate(data)
        host_id = self.registry.join_room(connection_id, request.code, request.token)
        self._track(connection_id, request.code)
        return JoinRoomResponse(host_id=host_id).model_dump(by_alias=True)

    def _signal(self, connection_id: str, data: Any) -> None:
        try:
            request = SignalRequest.model_validate(data)
        except ValidationError:
            logger.debug(f"Dropped malformed signal from connection {connection_id}")
            return None
        if not self.rate_limiter.try_consume(connection_id):
            self.router.send(connection_id, ERROR, {"error": ERR_RATE_LIMIT})
            return None
        self.router.relay(connection_id, request.code, request.to, request.data)
        return None

    def _transfer_complete(self, connection_id: str, data: Any) -> dict:
        request = TransferCompleteRequest.model_validate(data)
        if not self.rate_limiter.try_consume(connection_id):
            raise RateLimited()
        usage_left = self.registry.record_usage(request.code, connection_id)
        return TransferCompleteResponse(usage_left=usage_left).model_dump(by_alias=True)

    def _leave_room(self, connection_id: str, data: Any) -> dict:
        request = LeaveRoomRequest.model_validate(data)
        self.registry.leave_room(connection_id, request.code)
        self._untrack(connection_id, request.code)
        return {"ok": True}
