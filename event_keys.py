# Client -> server commands
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
SIGNAL = "signal"
TRANSFER_COMPLETE = "transfer-complete"
LEAVE_ROOM = "leave-room"

# Server -> client events
CONNECTED = "connected"
ACK = "ack"
ERROR = "error"
PEER_JOINED = "peer-joined"
PEER_LEFT = "peer-left"
HOST_LEFT = "host-left"
ROOM_EXPIRED = "room-expired"

# room-expired reasons
REASON_TTL = "ttl"
REASON_USAGE_EXHAUSTED = "usage_exhausted"

# Error codes surfaced in acks
ERR_RATE_LIMIT = "rate_limit"
ERR_ROOM_NOT_FOUND = "room_not_found"
ERR_INVALID_TOKEN = "invalid_token"
ERR_MAX_PEERS = "max_peers_reached"
ERR_MISSING_PARAMS = "missing_params"
ERR_SERVER = "server_error"

# **Frame shapes**
# - client: {"event": "join-room", "data": {"code": ..., "token": ...}, "ack": 7}
# - server: {"event": "peer-joined", "data": {"peerId": ..., "code": ...}}
# - server ack: {"event": "ack", "ack": 7, "data": {"ok": true, ...}}
