import threading
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from event_keys import SIGNAL
from logging_config import get_logger

logger = get_logger(__name__)


class SignalRouter:
    """Routes events to connections through a transport.

    Each room has a channel: the set of connection ids subscribed to it. The
    room registry keeps channels in step with room membership; the router only
    reads them to decide who receives what.

    The transport is anything with `deliver(connection_id, event, payload)`.
    Delivery is fire-and-forget: failures are logged here and never reach the caller.
    """

    def __init__(self, transport):
        self.transport = transport
        self._channels: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def subscribe(self, code: str, connection_id: str):
        with self._lock:
            self._channels.setdefault(code, set()).add(connection_id)

    def unsubscribe(self, code: str, connection_id: str):
        with self._lock:
            members = self._channels.get(code)
            if members is None:
                return
            members.discard(connection_id)
            if not members:
                del self._channels[code]

    def close_channel(self, code: str) -> FrozenSet[str]:
        """Drop the channel and return whoever was subscribed."""
        with self._lock:
            return frozenset(self._channels.pop(code, ()))

    def subscribers(self, code: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._channels.get(code, ()))

    def is_subscribed(self, code: str, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._channels.get(code, ())

    def relay(self, sender_id: str, code: str, target_id: Optional[str], data: Any) -> bool:
        """Forward an opaque signaling payload. Returns False when dropped."""
        members = self.subscribers(code)
        if sender_id not in members:
            # Not a member: drop without telling the sender anything about the room
            logger.debug(f"Dropped signal from non-member {sender_id} for room {code}")
            return False

        payload = {"from": sender_id, "data": data}
        if target_id is not None:
            if target_id == sender_id or target_id not in members:
                logger.debug(f"Dropped signal from {sender_id} to unknown target {target_id} in room {code}")
                return False
            self.send(target_id, SIGNAL, payload)
        else:
            self.deliver(members - {sender_id}, SIGNAL, payload)
        logger.debug(f"Relayed signal from {sender_id} in room {code} (target={target_id or 'room'})")
        return True

    def broadcast_to_room(self, code: str, event: str, payload: dict, exclude: Optional[Iterable[str]] = None):
        targets = self.subscribers(code)
        if exclude:
            targets = targets - set(exclude)
        self.deliver(targets, event, payload)

    def deliver(self, targets: Iterable[str], event: str, payload: dict):
        for connection_id in targets:
            self.send(connection_id, event, payload)

    def send(self, connection_id: str, event: str, payload: dict):
        try:
            self.transport.deliver(connection_id, event, payload)
        except Exception as e:
            logger.warning(f"Error delivering {event} to connection {connection_id}: {e}")
