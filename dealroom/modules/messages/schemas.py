"""Room chat Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dealroom.models.enums import MessageType


class SendMessage(BaseModel):
    content: str = Field("", max_length=10_000)
    message_type: MessageType = MessageType.TEXT
    attachment_url: str | None = Field(None, max_length=1000)
    attachment_name: str | None = Field(None, max_length=500)
    mentions: list[uuid.UUID] | None = None

    @model_validator(mode="after")
    def _content_or_attachment(self) -> "SendMessage":
        if not self.content.strip() and not self.attachment_url:
            raise ValueError("content or attachment_url is required")
        return self


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    message_type: MessageType
    attachment_url: str | None
    attachment_name: str | None
    mentions: list[uuid.UUID]
    created_at: datetime
