"""Pydantic v2 schemas for the inbox and notification views."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from campusgig.schemas.common import enum_value


class ThreadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: uuid.UUID
    job_id: uuid.UUID
    job_title: str
    other_user_id: uuid.UUID
    other_user_name: str
    last_message: str
    last_message_kind: str
    last_message_at: datetime
    last_message_from_me: bool
    message_count: int
    is_job_owner: bool

    @field_validator("last_message_kind", mode="before")
    @classmethod
    def serialize_kind(cls, v: object) -> object:
        return enum_value(v)


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message_id: int
    conversation_id: uuid.UUID
    job_id: uuid.UUID
    job_title: str
    sender_id: uuid.UUID
    sender_name: str
    kind: str
    content: str
    created_at: datetime
    read: bool = False

    @field_validator("kind", mode="before")
    @classmethod
    def serialize_kind(cls, v: object) -> object:
        return enum_value(v)


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
