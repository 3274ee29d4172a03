from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RelayModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomResponse(RelayModel):
    room_id: str
    code: str


class JoinRoomRequest(RelayModel):
    code: Optional[str] = None


class JoinRoomResponse(RelayModel):
    room_id: str
    side: Literal["A", "B"]
    code: str


class SendMessageRequest(RelayModel):
    from_side: Literal["A", "B"] = Field(alias="from")
    text: str = ""
    sign_gloss: Optional[str] = None


class MessageResponse(RelayModel):
    id: str
    from_side: Literal["A", "B"] = Field(alias="from")
    text: str
    sign_gloss: Optional[str] = None
    at: int


class MessagesResponse(RelayModel):
    messages: List[MessageResponse]


class RoomDetailsResponse(RelayModel):
    room_id: str
    code: str
    created_at: int
    sides: List[Literal["A", "B"]]
    message_count: int
    subscriber_count: int
    is_full: bool
