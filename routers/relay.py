from fastapi import APIRouter, Depends, Request

from backend import RelayBackend, get_relay_backend
from exceptions import BadRequestError
from logging_config import get_logger
from schemas.relay import (
    CreateRoomResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    MessageResponse,
    MessagesResponse,
    RoomDetailsResponse,
    SendMessageRequest,
)

logger = get_logger(__name__)

relay_router = APIRouter(prefix="/api/relay/rooms", tags=["relay"])


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@relay_router.post("", response_model=CreateRoomResponse)
async def create_room(request: Request, backend: RelayBackend = Depends(get_relay_backend)):
    # Response: { "roomId": "...", "code": "K7QX2M" } - no history, clients fetch /messages separately
    logger.info(f"Room creation request from {client_host(request)}")
    room = backend.create_room()
    return CreateRoomResponse(room_id=room.room_id, code=room.code)


@relay_router.post("/join", response_model=JoinRoomResponse)
async def join_room(join_request: JoinRoomRequest, request: Request, backend: RelayBackend = Depends(get_relay_backend)):
    # Body: { "code": "k7qx2m" } - case and surrounding whitespace are ignored
    code = (join_request.code or "").strip()
    if not code:
        raise BadRequestError("Missing code.")
    logger.info(f"Join request with code {code!r} from {client_host(request)}")
    result = backend.join_room(code)
    return JoinRoomResponse(room_id=result.room_id, side=result.side, code=result.code)


@relay_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, backend: RelayBackend = Depends(get_relay_backend)):
    """
    Room summary for clients that want to show pairing state.

    Returns roomId, code, createdAt, occupied sides, message and live
    subscriber counts, and whether both sides are taken.
    """
    room = backend.require_room(room_id)
    return RoomDetailsResponse(**room.snapshot())


@relay_router.post("/{room_id}/send", response_model=MessageResponse, response_model_exclude_none=True)
async def send_message(room_id: str, send_request: SendMessageRequest, backend: RelayBackend = Depends(get_relay_backend)):
    # Body: { "from": "A" | "B", "text": "...", "signGloss": "optional" }
    message = backend.send_message(room_id, send_request.from_side, send_request.text, send_request.sign_gloss)
    logger.debug(f"Side {message.from_side} sent message {message.id} to room {room_id}")
    return message.to_dict()


@relay_router.get("/{room_id}/messages", response_model=MessagesResponse, response_model_exclude_none=True)
async def list_messages(room_id: str, backend: RelayBackend = Depends(get_relay_backend)):
    messages = backend.get_messages(room_id)
    return {"messages": [m.to_dict() for m in messages]}
