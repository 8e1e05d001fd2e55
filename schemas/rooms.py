from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from constants import MAX_ROOM_CODE_LENGTH


class Role(str, Enum):
    STREAMER = "streamer"
    VIEWER = "viewer"


class RoomState(str, Enum):
    PARTIAL = "partial"  # only one of the two roles present
    ACTIVE = "active"  # streamer and at least one viewer


class ClientMessage(BaseModel):
    """Envelope of every frame a client sends: {"event": ..., "data": ...}"""
    event: str = Field(min_length=1)
    data: Any = None


class JoinRoomRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    room: str = Field(min_length=1, max_length=MAX_ROOM_CODE_LENGTH, validation_alias=AliasChoices("room", "roomId"))
    role: Role


class SignalRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    to: str = Field(min_length=1)
    signal: Any = None
    room: str = Field(min_length=1, max_length=MAX_ROOM_CODE_LENGTH, validation_alias=AliasChoices("room", "roomId"))


class LeaveRoomRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    room: str = Field(min_length=1, max_length=MAX_ROOM_CODE_LENGTH, validation_alias=AliasChoices("room", "roomId"))

    @model_validator(mode="before")
    @classmethod
    def accept_bare_room_code(cls, data: Any) -> Any:
        # Browsers send leave-room with just the room code as payload
        if isinstance(data, str):
            return {"room": data}
        return data


class RoomDetailsResponse(BaseModel):
    room_id: str
    has_streamer: bool
    viewer_count: int
    state: RoomState


class RoomListResponse(BaseModel):
    count: int
    rooms: list[RoomDetailsResponse]


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
