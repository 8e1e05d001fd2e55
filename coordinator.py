from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from constants import MAX_ROOM_CODE_LENGTH
from errors import MalformedRequest, RoleConflict, UnroutableSignal
from logging_config import get_logger
from schemas.rooms import Role, RoomState

logger = get_logger(__name__)

# Address a viewer uses for the streamer of its room
STREAMER_ADDRESS = "streamer"

# Server -> client event names
STREAMER_JOINED = "streamer-joined"
VIEWER_JOINED = "viewer-joined"
SIGNAL = "signal"
STREAMER_SIGNAL = "streamer-signal"
VIEWER_DISCONNECTED = "viewer-disconnected"
STREAMER_DISCONNECTED = "streamer-disconnected"
ERROR = "error"


@dataclass(frozen=True)
class Delivery:
    """One event to send to one connection."""
    to: str
    event: str
    data: Any = None
    code: Optional[str] = None

    def to_message(self) -> dict:
        message = {"event": self.event, "data": self.data}
        if self.code is not None:
            message["code"] = self.code
        return message


@dataclass(frozen=True)
class Membership:
    room: str
    role: Role


@dataclass
class Room:
    code: str
    streamer: Optional[str] = None
    viewers: Set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return self.streamer is None and not self.viewers

    @property
    def state(self) -> RoomState:
        if self.streamer is not None and self.viewers:
            return RoomState.ACTIVE
        return RoomState.PARTIAL


@dataclass(frozen=True)
class RoomSnapshot:
    code: str
    has_streamer: bool
    viewer_count: int
    state: RoomState


class RoomCoordinator:
    """
    Room table and routing rules for streamer/viewer signaling.

    Every operation is synchronous and returns the deliveries it produced;
    the caller is responsible for serializing calls and for sending.
    A room entry exists only while it has a streamer or a viewer, and
    each connection holds at most one membership, tracked in a reverse
    index next to the room table.
    """

    def __init__(self, notify_streamer_of_waiting_viewers: bool = True):
        self.notify_streamer_of_waiting_viewers = notify_streamer_of_waiting_viewers
        self._rooms: Dict[str, Room] = {}
        self._memberships: Dict[str, Membership] = {}
        logger.info(f"Initializing RoomCoordinator (notify_streamer_of_waiting_viewers={notify_streamer_of_waiting_viewers})")

    def join(self, room: str, role, connection_id: str) -> List[Delivery]:
        room = _validate_room(room)
        role = _validate_role(role)
        logger.info(f"{connection_id} joining room {room} as '{role.value}'")

        current = self._memberships.get(connection_id)
        if current == Membership(room, role):
            logger.debug(f"{connection_id} is already {role.value} of room {room}, nothing to do")
            return []

        entry = self._rooms.get(room)
        if role is Role.STREAMER and entry is not None and entry.streamer not in (None, connection_id):
            logger.warning(f"Join rejected: room {room} already has streamer {entry.streamer}")
            raise RoleConflict("Room already has a streamer")

        deliveries: List[Delivery] = []
        if current is not None:
            logger.info(f"{connection_id} switching from {current.role.value} of {current.room} to {role.value} of {room}")
            deliveries.extend(self._teardown(connection_id))

        entry = self._rooms.get(room)
        if entry is None:
            entry = self._rooms[room] = Room(room)
            logger.debug(f"Created room {room}")

        if role is Role.STREAMER:
            entry.streamer = connection_id
            waiting = sorted(entry.viewers)
            deliveries.extend(Delivery(viewer_id, STREAMER_JOINED) for viewer_id in waiting)
            if self.notify_streamer_of_waiting_viewers:
                deliveries.extend(Delivery(connection_id, VIEWER_JOINED, {"viewerId": viewer_id}) for viewer_id in waiting)
            logger.debug(f"Streamer {connection_id} joined room {room} with {len(waiting)} waiting viewers")
        else:
            entry.viewers.add(connection_id)
            if entry.streamer is not None:
                deliveries.append(Delivery(entry.streamer, VIEWER_JOINED, {"viewerId": connection_id}))
            logger.debug(f"Viewer {connection_id} joined room {room} (viewers: {len(entry.viewers)}, streamer present: {entry.streamer is not None})")

        self._memberships[connection_id] = Membership(room, role)
        return deliveries

    def signal(self, to: str, payload: Any, room: str, sender: str) -> List[Delivery]:
        """Relay an opaque handshake payload. Unroutable signals are dropped."""
        try:
            delivery = self._route(to, payload, room, sender)
        except UnroutableSignal as e:
            logger.debug(f"Dropped signal from {sender} to {to} in room {room}: {e.message}")
            return []
        logger.debug(f"Signal from {sender} to {to} in room {room}")
        return [delivery]

    def leave(self, room: str, connection_id: str) -> List[Delivery]:
        room = _validate_room(room)
        membership = self._memberships.get(connection_id)
        if membership is None or membership.room != room:
            logger.debug(f"{connection_id} is not in room {room}, leave ignored")
            return []
        logger.info(f"{connection_id} leaving room {room}")
        return self._teardown(connection_id)

    def disconnect(self, connection_id: str) -> List[Delivery]:
        if connection_id not in self._memberships:
            return []
        logger.info(f"{connection_id} disconnected from room {self._memberships[connection_id].room}")
        return self._teardown(connection_id)

    def get_room(self, code: str) -> Optional[RoomSnapshot]:
        entry = self._rooms.get(code)
        if entry is None:
            return None
        return _snapshot(entry)

    def list_rooms(self) -> List[RoomSnapshot]:
        return [_snapshot(entry) for entry in self._rooms.values()]

    def membership(self, connection_id: str) -> Optional[Membership]:
        return self._memberships.get(connection_id)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def _route(self, to: str, payload: Any, room: str, sender: str) -> Delivery:
        entry = self._rooms.get(room)
        if to == STREAMER_ADDRESS:
            if entry is None or entry.streamer is None:
                raise UnroutableSignal(f"room {room} has no streamer")
            return Delivery(entry.streamer, SIGNAL, {"from": sender, "signal": payload})

        # Only the streamer addresses connections directly, and only its own viewers
        if entry is None or entry.streamer != sender:
            raise UnroutableSignal(f"{sender} is not the streamer of room {room}")
        if to not in entry.viewers:
            raise UnroutableSignal(f"{to} is not a viewer of room {room}")
        return Delivery(to, STREAMER_SIGNAL, payload)

    def _teardown(self, connection_id: str) -> List[Delivery]:
        membership = self._memberships.pop(connection_id)
        entry = self._rooms[membership.room]
        deliveries: List[Delivery] = []

        if entry.streamer == connection_id:
            viewers = sorted(entry.viewers)
            deliveries.extend(Delivery(viewer_id, STREAMER_DISCONNECTED) for viewer_id in viewers)
            # Viewers go back to waiting outside the room and must join again
            for viewer_id in viewers:
                self._memberships.pop(viewer_id, None)
            del self._rooms[entry.code]
            logger.info(f"Streamer {connection_id} left, room {entry.code} closed ({len(viewers)} viewers notified)")
            return deliveries

        entry.viewers.discard(connection_id)
        if entry.streamer is not None:
            deliveries.append(Delivery(entry.streamer, VIEWER_DISCONNECTED, {"viewerId": connection_id}))
        if entry.is_empty():
            del self._rooms[entry.code]
            logger.info(f"Room {entry.code} is empty, removed")
        else:
            logger.debug(f"Viewer {connection_id} removed from room {entry.code} ({len(entry.viewers)} viewers left)")
        return deliveries


def _validate_room(room) -> str:
    if not isinstance(room, str) or not room.strip():
        raise MalformedRequest("Room code is required")
    room = room.strip()
    if len(room) > MAX_ROOM_CODE_LENGTH:
        raise MalformedRequest(f"Room code must be at most {MAX_ROOM_CODE_LENGTH} characters")
    return room


def _validate_role(role) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise MalformedRequest(f"Invalid role: {role!r}") from None


def _snapshot(entry: Room) -> RoomSnapshot:
    return RoomSnapshot(
        code=entry.code,
        has_streamer=entry.streamer is not None,
        viewer_count=len(entry.viewers),
        state=entry.state,
    )
