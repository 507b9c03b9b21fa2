import math
import secrets
import string
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Set, Tuple

from constants import (
    DEFAULT_MAX_PEERS,
    DEFAULT_TTL_MINUTES,
    MAX_PEERS_LIMIT,
    MAX_TTL_MINUTES,
    PRESENCE_BROADCAST,
    ROOM_CODE_LENGTH,
    ROOM_TOKEN_BYTES,
)
from errors import InvalidToken, RateLimited, RoomFull, RoomNotFound
from event_keys import HOST_LEFT, PEER_JOINED, PEER_LEFT, REASON_TTL, REASON_USAGE_EXHAUSTED, ROOM_EXPIRED
from logging_config import get_logger

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_letters + string.digits

# (targets, event, payload) queued under the lock and delivered after it is released
Notification = Tuple[FrozenSet[str], str, dict]


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_room_token(nbytes: int = ROOM_TOKEN_BYTES) -> str:
    return secrets.token_urlsafe(nbytes)


@dataclass
class Room:
    code: str
    host_id: str
    token: str
    created_at: float
    ttl_minutes: float
    max_peers: int
    usage_left: Optional[int] = None
    peers: Set[str] = field(default_factory=set)

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_minutes * 60

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def is_full(self) -> bool:
        return len(self.peers) >= self.max_peers

    def members(self) -> FrozenSet[str]:
        return frozenset(self.peers | {self.host_id})

    def has_member(self, connection_id: str) -> bool:
        return connection_id == self.host_id or connection_id in self.peers


class RoomGrant(NamedTuple):
    code: str
    token: str
    ttl_minutes: float
    max_peers: int
    usage_left: Optional[int]


def clamp_options(ttl_minutes=None, max_peers=None, usage_limit=None) -> Tuple[float, int, Optional[int]]:
    ttl = DEFAULT_TTL_MINUTES if ttl_minutes is None else ttl_minutes
    ttl = min(max(1, ttl), MAX_TTL_MINUTES)
    peers = DEFAULT_MAX_PEERS if max_peers is None else math.floor(max_peers)
    peers = min(max(1, peers), MAX_PEERS_LIMIT)
    usage = None
    if usage_limit is not None and usage_limit > 0:
        usage = math.floor(usage_limit)
        if usage < 1:
            usage = None
    return ttl, peers, usage


class RoomRegistry:
    """Authoritative room code -> Room map.

    All room state and channel subscriptions change under one lock. Notifications
    produced by an operation are collected while the lock is held and delivered
    through the router once it is released, so no caller waits on a transport.
    """

    def __init__(self, router, rate_limiter, clock: Callable[[], float] = time.time,
                 presence_broadcast: str = PRESENCE_BROADCAST):
        self.router = router
        self.rate_limiter = rate_limiter
        self._clock = clock
        self.presence_broadcast = presence_broadcast
        self._rooms: Dict[str, Room] = {}
        # (code, members) of rooms destroyed but not yet reported to close listeners
        self._closed: List[Tuple[str, FrozenSet[str]]] = []
        self._close_listeners: List[Callable[[str, FrozenSet[str]], None]] = []
        self._lock = threading.Lock()
        logger.info(f"Initializing RoomRegistry (presence notifications to: {presence_broadcast})")

    def create_room(self, requester_id: str, ttl_minutes=None, max_peers=None, usage_limit=None) -> RoomGrant:
        ttl, peers, usage = clamp_options(ttl_minutes, max_peers, usage_limit)
        if not self.rate_limiter.try_consume(requester_id):
            raise RateLimited()

        token = generate_room_token()
        with self._lock:
            code = generate_room_code()
            while code in self._rooms:
                code = generate_room_code()
            room = Room(
                code=code,
                host_id=requester_id,
                token=token,
                created_at=self._clock(),
                ttl_minutes=ttl,
                max_peers=peers,
                usage_left=usage,
            )
            self._rooms[code] = room
            self.router.subscribe(code, requester_id)

        logger.info(f"Room {code} created by {requester_id}: ttl={ttl}m, max_peers={peers}, usage_limit={usage}")
        return RoomGrant(code, token, ttl, peers, usage)

    def join_room(self, requester_id: str, code: str, token: str) -> str:
        """Add the requester as a peer. Returns the host id."""
        if not self.rate_limiter.try_consume(requester_id):
            raise RateLimited()

        notifications: List[Notification] = []
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                raise RoomNotFound()
            if room.is_expired(self._clock()):
                # Past its TTL but not swept yet
                raise RoomNotFound()
            if not secrets.compare_digest(str(token).encode(), room.token.encode()):
                logger.warning(f"Join rejected for {requester_id}: invalid token for room {code}")
                raise InvalidToken()
            if room.has_member(requester_id):
                return room.host_id
            if room.is_full():
                logger.info(f"Join rejected for {requester_id}: room {code} is full ({len(room.peers)}/{room.max_peers})")
                raise RoomFull()

            room.peers.add(requester_id)
            self.router.subscribe(code, requester_id)
            notifications.append(
                (self._presence_targets(room, requester_id), PEER_JOINED, {"peerId": requester_id, "code": code})
            )
            host_id = room.host_id

        logger.info(f"Peer {requester_id} joined room {code}")
        self._dispatch(notifications)
        return host_id

    def leave_room(self, requester_id: str, code: str):
        with self._lock:
            notifications = self._leave_locked(requester_id, code)
        self._dispatch(notifications)

    def remove_connection(self, requester_id: str, codes: Optional[Iterable[str]] = None):
        """Apply leave semantics to every room the connection touched.

        With no `codes`, every room is scanned.
        """
        notifications: List[Notification] = []
        with self._lock:
            targets = list(self._rooms) if codes is None else list(codes)
            for code in targets:
                notifications.extend(self._leave_locked(requester_id, code))
        self._dispatch(notifications)

    def record_usage(self, code: str, requester_id: Optional[str] = None) -> Optional[int]:
        """Count one completed transfer. Returns the usage left, or None when untracked."""
        notifications: List[Notification] = []
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                return None
            if requester_id is not None and not room.has_member(requester_id):
                logger.debug(f"Ignored usage report from non-member {requester_id} for room {code}")
                return None
            if room.usage_left is None:
                return None

            room.usage_left = max(0, room.usage_left - 1)
            usage_left = room.usage_left
            if usage_left == 0:
                notifications.append(self._destroy_locked(room, ROOM_EXPIRED, {"code": code, "reason": REASON_USAGE_EXHAUSTED}))

        if usage_left == 0:
            logger.info(f"Room {code} exhausted its usage limit")
        self._dispatch(notifications)
        return usage_left

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        notifications: List[Notification] = []
        expired: List[str] = []
        with self._lock:
            for room in list(self._rooms.values()):
                if room.is_expired(now):
                    expired.append(room.code)
                    notifications.append(self._destroy_locked(room, ROOM_EXPIRED, {"code": room.code, "reason": REASON_TTL}))

        if expired:
            logger.info(f"Swept {len(expired)} expired rooms: {expired}")
        self._dispatch(notifications)
        return expired

    def get_room(self, code: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(code)

    def is_member(self, code: str, connection_id: str) -> bool:
        with self._lock:
            room = self._rooms.get(code)
            return room is not None and room.has_member(connection_id)

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def _leave_locked(self, requester_id: str, code: str) -> List[Notification]:
        room = self._rooms.get(code)
        if room is None:
            return []

        if requester_id == room.host_id:
            logger.info(f"Host {requester_id} left room {code}, closing it")
            # The departing host is not told about its own departure
            members, event, payload = self._destroy_locked(room, HOST_LEFT, {"code": code})
            return [(members - {requester_id}, event, payload)]

        if requester_id in room.peers:
            room.peers.discard(requester_id)
            self.router.unsubscribe(code, requester_id)
            logger.info(f"Peer {requester_id} left room {code}")
            return [(self._presence_targets(room, requester_id), PEER_LEFT, {"peerId": requester_id, "code": code})]

        return []

    def _destroy_locked(self, room: Room, event: str, payload: dict) -> Notification:
        # Popping under the lock makes destruction happen exactly once per room
        del self._rooms[room.code]
        members = self.router.close_channel(room.code) | room.members()
        self._closed.append((room.code, members))
        logger.info(f"Room {room.code} destroyed ({event})")
        return members, event, payload

    def _presence_targets(self, room: Room, subject_id: str) -> FrozenSet[str]:
        if self.presence_broadcast == "room":
            return room.members() - {subject_id}
        return frozenset({room.host_id})

    def add_close_listener(self, listener: Callable[[str, FrozenSet[str]], None]):
        """Register `listener(code, members)`, called once for every destroyed room."""
        self._close_listeners.append(listener)

    def _dispatch(self, notifications: List[Notification]):
        for targets, event, payload in notifications:
            self.router.deliver(targets, event, payload)

        with self._lock:
            closed, self._closed = self._closed, []
        for code, members in closed:
            for listener in self._close_listeners:
                try:
                    listener(code, members)
                except Exception as e:
                    logger.error(f"Error in close listener for room {code}: {e}", exc_info=True)
