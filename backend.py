import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Set

from constants import RELAY_CODE_ALPHABET, RELAY_CODE_LENGTH, RELAY_SIDES
from exceptions import BadRequestError, RoomFullError, RoomNotFoundError
from logging_config import get_logger

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Message:
    id: str
    from_side: str
    text: str
    at: int
    sign_gloss: Optional[str] = None

    def to_dict(self) -> dict:
        """Wire form shared by the HTTP responses and the push stream."""
        data = {"id": self.id, "from": self.from_side, "text": self.text, "at": self.at}
        if self.sign_gloss is not None:
            data["signGloss"] = self.sign_gloss
        return data


class Subscriber(Protocol):
    """Anything that can receive a room's messages.

    `deliver` is called while the room is locked, so it must hand the message
    off (e.g. to a queue) and return without waiting on the client. Raising
    deregisters the subscriber.
    """

    def deliver(self, message: Message) -> None:
        ...


@dataclass
class Room:
    room_id: str
    code: str
    created_at: int
    messages: List[Message] = field(default_factory=list)
    sides: Set[str] = field(default_factory=set)
    subscribers: Dict[str, Subscriber] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "room_id": self.room_id,
                "code": self.code,
                "created_at": self.created_at,
                "sides": sorted(self.sides),
                "message_count": len(self.messages),
                "subscriber_count": len(self.subscribers),
                "is_full": len(self.sides) >= len(RELAY_SIDES),
            }


@dataclass
class JoinResult:
    room_id: str
    side: str
    code: str


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class RelayBackend:
    """In-memory room registry, message exchange and subscriber fan-out.

    Rooms live until the process exits. Registry maps are guarded by one lock;
    each room guards its own messages, sides and subscribers.
    """

    def __init__(
        self,
        code_alphabet: str = RELAY_CODE_ALPHABET,
        code_length: int = RELAY_CODE_LENGTH,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.code_alphabet = code_alphabet
        self.code_length = code_length
        self.rng = rng or random.SystemRandom()
        self.clock = clock
        self.rooms: Dict[str, Room] = {}
        self.code_to_room_id: Dict[str, str] = {}
        self.lock = threading.RLock()
        logger.info(f"Initializing RelayBackend (code length {code_length}, alphabet size {len(code_alphabet)})")

    def generate_code(self) -> str:
        return "".join(self.rng.choice(self.code_alphabet) for _ in range(self.code_length))

    def _unique_code(self) -> str:
        # Caller holds self.lock
        code = self.generate_code()
        while code in self.code_to_room_id:
            logger.debug(f"Join code {code} already in use, drawing another")
            code = self.generate_code()
        return code

    def create_room(self) -> Room:
        with self.lock:
            room_id = uuid.uuid4().hex
            code = self._unique_code()
            room = Room(room_id=room_id, code=code, created_at=self.clock())
            self.rooms[room_id] = room
            self.code_to_room_id[code] = room_id
            live = len(self.rooms)
        logger.info(f"Room {room_id} created with code {code} ({live} live rooms)")
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        with self.lock:
            return self.rooms.get(room_id)

    def require_room(self, room_id: str) -> Room:
        room = self.get_room(room_id)
        if room is None:
            logger.debug(f"Room {room_id} not found")
            raise RoomNotFoundError("Room not found.")
        return room

    def join_room(self, code: str) -> JoinResult:
        normalized = normalize_code(code)
        with self.lock:
            room_id = self.code_to_room_id.get(normalized)
            room = self.rooms.get(room_id) if room_id else None
        if room is None:
            logger.info(f"Join failed: code {normalized!r} does not match a live room")
            raise RoomNotFoundError("Invalid or expired code.")

        with room.lock:
            free = [side for side in RELAY_SIDES if side not in room.sides]
            if not free:
                logger.info(f"Join failed: room {room.room_id} already has both sides")
                raise RoomFullError("Room already has two participants.")
            side = free[0]
            room.sides.add(side)
        logger.info(f"Side {side} joined room {room.room_id}")
        return JoinResult(room_id=room.room_id, side=side, code=room.code)

    def send_message(self, room_id: str, from_side: str, text: str, sign_gloss: Optional[str] = None) -> Message:
        room = self.require_room(room_id)
        if from_side not in RELAY_SIDES:
            raise BadRequestError("Invalid from. Use 'A' or 'B'.")
        # only text is trimmed, the gloss is stored as sent
        text = (text or "").strip()
        if not text:
            raise BadRequestError("Message text must not be empty.")

        with room.lock:
            at = self.clock()
            if room.messages and at < room.messages[-1].at:
                # wall clock stepped backwards
                at = room.messages[-1].at
            message = Message(id=uuid.uuid4().hex, from_side=from_side, text=text, at=at, sign_gloss=sign_gloss)
            room.messages.append(message)
            logger.debug(f"Message {message.id} from {from_side} appended to room {room_id} (#{len(room.messages)})")
            self._fan_out(room, message)
        return message

    def _fan_out(self, room: Room, message: Message) -> None:
        subscribers = list(room.subscribers.items())
        delivered = 0
        for handle, subscriber in subscribers:
            try:
                subscriber.deliver(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Delivery to subscriber {handle} in room {room.room_id} failed, unsubscribing: {e}")
                room.subscribers.pop(handle, None)
        logger.debug(f"Message {message.id} delivered to {delivered}/{len(subscribers)} subscribers in room {room.room_id}")

    def get_messages(self, room_id: str) -> List[Message]:
        room = self.require_room(room_id)
        with room.lock:
            return list(room.messages)

    def subscribe(self, room_id: str, subscriber: Subscriber) -> Callable[[], None]:
        """Register `subscriber` for the room's new messages and return its unsubscribe handle.

        An unknown room yields a no-op handle; callers check the room first.
        """
        room = self.get_room(room_id)
        if room is None:
            logger.debug(f"Subscribe ignored: room {room_id} not found")
            return lambda: None

        handle = uuid.uuid4().hex
        with room.lock:
            room.subscribers[handle] = subscriber
            count = len(room.subscribers)
        logger.debug(f"Subscriber {handle} added to room {room_id} ({count} live)")

        def unsubscribe() -> None:
            with room.lock:
                removed = room.subscribers.pop(handle, None)
                remaining = len(room.subscribers)
            if removed is not None:
                logger.debug(f"Subscriber {handle} removed from room {room_id} ({remaining} live)")

        return unsubscribe

    def subscriber_count(self, room_id: str) -> int:
        room = self.require_room(room_id)
        with room.lock:
            return len(room.subscribers)


relay_backend = RelayBackend()


def get_relay_backend() -> RelayBackend:
    return relay_backend
