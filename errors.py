from event_keys import (
    ERR_INVALID_TOKEN,
    ERR_MAX_PEERS,
    ERR_MISSING_PARAMS,
    ERR_RATE_LIMIT,
    ERR_ROOM_NOT_FOUND,
    ERR_SERVER,
)


class SignalingError(Exception):
    """Base class for errors reported back to the requesting client."""

    code = ERR_SERVER

    def __init__(self, message: str = None):
        super().__init__(message or self.code)


class RateLimited(SignalingError):
    code = ERR_RATE_LIMIT


class RoomNotFound(SignalingError):
    code = ERR_ROOM_NOT_FOUND


class InvalidToken(SignalingError):
    code = ERR_INVALID_TOKEN


class RoomFull(SignalingError):
    code = ERR_MAX_PEERS


class MissingParams(SignalingError):
    code = ERR_MISSING_PARAMS
