import threading
from typing import Dict, Set

from constants import MAX_CONNECTIONS_PER_IP
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Tracks live connection ids per source address to cap concurrent connections."""

    def __init__(self, max_per_address: int = MAX_CONNECTIONS_PER_IP):
        self.max_per_address = max_per_address
        self._by_address: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def admit(self, address: str, connection_id: str) -> bool:
        """Register the connection. False means the address is over its cap;
        the entry is still recorded and the caller must release it."""
        with self._lock:
            connections = self._by_address.setdefault(address, set())
            connections.add(connection_id)
            count = len(connections)
        if count > self.max_per_address:
            logger.warning(f"Address {address} exceeded connection cap ({count}/{self.max_per_address})")
            return False
        logger.debug(f"Admitted connection {connection_id} from {address} ({count}/{self.max_per_address})")
        return True

    def release(self, address: str, connection_id: str):
        with self._lock:
            connections = self._by_address.get(address)
            if connections is None:
                return
            connections.discard(connection_id)
            if not connections:
                del self._by_address[address]

    def count(self, address: str) -> int:
        with self._lock:
            return len(self._by_address.get(address, ()))

    def total(self) -> int:
        with self._lock:
            return sum(len(connections) for connections in self._by_address.values())
