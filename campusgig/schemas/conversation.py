"""Pydantic v2 schemas for conversations and messages."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from campusgig.schemas.common import UserSummary, enum_value


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    worker_id: uuid.UUID
    created_at: datetime


class MessageCreate(BaseModel):
    # Length and emptiness are checked after trimming by the message store.
    content: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    kind: str
    content: str
    created_at: datetime

    @field_validator("kind", mode="before")
    @classmethod
    def serialize_kind(cls, v: object) -> object:
        return enum_value(v)

    @computed_field
    @property
    def is_system(self) -> bool:
        return self.kind != "user_text"


class ApplicantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation: ConversationResponse
    worker: UserSummary
    last_message: MessageResponse | None
    message_count: int
