from fastapi import APIRouter, Depends, HTTPException, Request

from coordinator import RoomSnapshot
from hub import SignalingHub
from logging_config import get_logger
from schemas.rooms import HealthResponse, RoomDetailsResponse, RoomListResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
health_router = APIRouter(tags=["health"])


def get_hub(request: Request) -> SignalingHub:
    return request.app.state.hub


def to_details(snapshot: RoomSnapshot) -> RoomDetailsResponse:
    return RoomDetailsResponse(
        room_id=snapshot.code,
        has_streamer=snapshot.has_streamer,
        viewer_count=snapshot.viewer_count,
        state=snapshot.state,
    )


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(hub: SignalingHub = Depends(get_hub)):
    rooms = [to_details(snapshot) for snapshot in hub.coordinator.list_rooms()]
    logger.debug(f"Listing {len(rooms)} rooms")
    return RoomListResponse(count=len(rooms), rooms=rooms)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request, hub: SignalingHub = Depends(get_hub)):
    """
    Live state of one room.

    Returns:
    - room_id: Room code
    - has_streamer: Whether a streamer is connected
    - viewer_count: Number of viewers in the room
    - state: "partial" (one role missing) or "active"
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room details request for {room_id} from {client_host}")

    snapshot = hub.coordinator.get_room(room_id)
    if snapshot is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return to_details(snapshot)


@health_router.get("/health", response_model=HealthResponse)
async def health(hub: SignalingHub = Depends(get_hub)):
    return HealthResponse(status="ok", rooms=len(hub.coordinator), connections=hub.connection_count)
