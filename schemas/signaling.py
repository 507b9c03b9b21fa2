from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SignalingModel(BaseModel):
    # Wire names are camelCase (ttlMinutes, maxPeers, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class CreateRoomRequest(SignalingModel):
    ttl_minutes: Optional[float] = None
    max_peers: Optional[float] = None
    usage_limit: Optional[float] = None

class CreateRoomResponse(SignalingModel):
    ok: bool = True
    code: str
    token: str
    ttl_minutes: float
    max_peers: int
    usage_left: Optional[int] = None

class JoinRoomRequest(SignalingModel):
    code: str = Field(min_length=1)
    token: str = Field(min_length=1)

class JoinRoomResponse(SignalingModel):
    ok: bool = True
    host_id: str

class SignalRequest(SignalingModel):
    code: str = Field(min_length=1)
    to: Optional[str] = None
    data: Any

class TransferCompleteRequest(SignalingModel):
    code: str = Field(min_length=1)

class TransferCompleteResponse(SignalingModel):
    ok: bool = True
    usage_left: Optional[int] = None

class LeaveRoomRequest(SignalingModel):
    code: str = Field(min_length=1)

class ErrorResponse(SignalingModel):
    ok: bool = False
    error: str

class HealthResponse(SignalingModel):
    status: str
    rooms: int
    connections: int
    timestamp: str
