"""
Single-consumer actor around the RoomCoordinator.

WebSocket handlers never touch the room table. They turn client frames into
commands on one asyncio queue, and one consumer task applies the commands to
the coordinator in arrival order and hands the resulting deliveries to
per-connection outboxes. Each outbox is drained by its own writer task, so a
slow client never stalls the room table.
"""
import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

from pydantic import ValidationError

from constants import OUTBOX_SIZE
from coordinator import ERROR, Delivery, RoomCoordinator
from errors import CoordinatorError, MalformedRequest
from logging_config import get_logger
from schemas.rooms import ClientMessage, JoinRoomRequest, LeaveRoomRequest, SignalRequest

logger = get_logger(__name__)

Send = Callable[[dict], Awaitable[None]]

# Client -> server event names
JOIN_ROOM = "join-room"
SIGNAL = "signal"
LEAVE_ROOM = "leave-room"
PING = "ping"
EVENT_ALIASES = {"join": JOIN_ROOM, "leave": LEAVE_ROOM}

# Server -> client events answered by the hub itself
CONNECTED = "connected"
PONG = "pong"


class Command(NamedTuple):
    requester: str
    handler: Callable[..., List[Delivery]]
    args: tuple


class Connection:
    """One client transport session with a bounded outbox."""

    def __init__(self, connection_id: str, send: Send, outbox_size: int = OUTBOX_SIZE):
        self.connection_id = connection_id
        self._send = send
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._writer = asyncio.create_task(self._write())

    def enqueue(self, message: dict) -> bool:
        try:
            self.outbox.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for connection {self.connection_id}, dropping '{message.get('event')}' event")
            return False

    async def close(self):
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass

    async def _write(self):
        while True:
            message = await self.outbox.get()
            try:
                await self._send(message)
            except Exception as e:
                # Socket is going away, the reader side will unregister it
                logger.warning(f"Error sending '{message.get('event')}' to connection {self.connection_id}: {e}")
            finally:
                self.outbox.task_done()


class SignalingHub:
    def __init__(self, coordinator: RoomCoordinator, outbox_size: int = OUTBOX_SIZE):
        self.coordinator = coordinator
        self.outbox_size = outbox_size
        self._connections: Dict[str, Connection] = {}
        self._inbox: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self):
        if self._consumer is not None and not self._consumer.done():
            return
        self._inbox = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        logger.info("Signaling hub started")

    async def stop(self):
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        for connection_id in list(self._connections):
            await self._connections.pop(connection_id).close()
        logger.info("Signaling hub stopped")

    def register(self, send: Send) -> str:
        """Open a session for a new transport and return its connection id."""
        connection_id = str(uuid.uuid4())
        connection = Connection(connection_id, send, self.outbox_size)
        self._connections[connection_id] = connection
        connection.enqueue({"event": CONNECTED, "data": {"connectionId": connection_id}})
        logger.info(f"Connection {connection_id} registered (connections: {len(self._connections)})")
        return connection_id

    async def unregister(self, connection_id: str):
        connection = self._connections.pop(connection_id, None)
        try:
            self.submit(connection_id, self.coordinator.disconnect, connection_id)
        finally:
            if connection is not None:
                await connection.close()
        logger.info(f"Connection {connection_id} unregistered (connections: {len(self._connections)})")

    def submit(self, requester: str, handler: Callable[..., List[Delivery]], *args: Any):
        if self._inbox is None:
            raise RuntimeError("SignalingHub is not started")
        self._inbox.put_nowait(Command(requester, handler, args))

    def handle_text(self, connection_id: str, raw: Union[str, bytes]):
        """Validate one client frame (text, or UTF-8 bytes) and queue the matching coordinator call."""
        try:
            handler, args = self._parse(connection_id, raw)
        except MalformedRequest as e:
            logger.warning(f"Malformed frame from {connection_id}: {e.message}")
            # Queued so the error keeps its place among this client's other replies
            self.submit(connection_id, _reject, e)
            return
        self.submit(connection_id, handler, *args)

    async def join(self):
        """Wait until every queued command has been applied and every outbox flushed."""
        if self._inbox is not None:
            await self._inbox.join()
        for connection in list(self._connections.values()):
            await connection.outbox.join()

    def _parse(self, connection_id: str, raw: Union[str, bytes]):
        try:
            frame = json.loads(raw)
        except (ValueError, RecursionError):
            # ValueError covers bad JSON and non UTF-8 bytes, RecursionError absurd nesting
            raise MalformedRequest("Frame is not valid JSON") from None

        try:
            message = ClientMessage.model_validate(frame)
            event = EVENT_ALIASES.get(message.event, message.event)
            if event == JOIN_ROOM:
                request = JoinRoomRequest.model_validate(message.data)
                return self.coordinator.join, (request.room, request.role, connection_id)
            if event == SIGNAL:
                request = SignalRequest.model_validate(message.data)
                return self.coordinator.signal, (request.to, request.signal, request.room, connection_id)
            if event == LEAVE_ROOM:
                request = LeaveRoomRequest.model_validate(message.data)
                return self.coordinator.leave, (request.room, connection_id)
            if event == PING:
                return _pong, (connection_id,)
        except ValidationError as e:
            raise MalformedRequest(_describe(e)) from None
        raise MalformedRequest(f"Unknown event: {message.event}")

    async def _consume(self):
        while True:
            command = await self._inbox.get()
            try:
                deliveries = command.handler(*command.args)
            except CoordinatorError as e:
                deliveries = [Delivery(command.requester, ERROR, e.message, code=e.code.value)]
            except Exception as e:
                logger.error(f"Error handling command from {command.requester}: {e}", exc_info=True)
                deliveries = []
            try:
                self._dispatch(deliveries)
            finally:
                self._inbox.task_done()

    def _dispatch(self, deliveries: List[Delivery]):
        for delivery in deliveries:
            connection = self._connections.get(delivery.to)
            if connection is None:
                logger.debug(f"Connection {delivery.to} is gone, dropping '{delivery.event}' event")
                continue
            connection.enqueue(delivery.to_message())


def _reject(error: CoordinatorError) -> List[Delivery]:
    raise error


def _pong(connection_id: str) -> List[Delivery]:
    return [Delivery(connection_id, PONG)]


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "data"
    return f"{location}: {first.get('msg')}"
