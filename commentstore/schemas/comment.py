"""
Comment Pydantic schemas.
Length limits come from the model so the API, the service and the DDL agree.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, computed_field, field_validator

from commentstore.models.comment import (
    AUTHOR_EMAIL_MAX_LENGTH,
    AUTHOR_IP_MAX_LENGTH,
    AUTHOR_NAME_MAX_LENGTH,
    AUTHOR_URL_MAX_LENGTH,
    MODERATION_REASON_MAX_LENGTH,
    NIL_UUID,
    TITLE_MAX_LENGTH,
    ModerationStatus,
)


def _nil_to_none(value: uuid.UUID | None) -> uuid.UUID | None:
    if value == NIL_UUID:
        return None
    return value


class CommentCreate(BaseModel):
    id: uuid.UUID | None = None
    parent_id: uuid.UUID | None = None
    site_id: uuid.UUID
    feature_id: uuid.UUID
    module_id: uuid.UUID
    content_id: uuid.UUID
    user_id: uuid.UUID = NIL_UUID
    title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    body: str | None = None
    author_name: str | None = Field(default=None, max_length=AUTHOR_NAME_MAX_LENGTH)
    author_email: str | None = Field(default=None, max_length=AUTHOR_EMAIL_MAX_LENGTH)
    author_url: str | None = Field(default=None, max_length=AUTHOR_URL_MAX_LENGTH)
    author_ip: str | None = Field(default=None, max_length=AUTHOR_IP_MAX_LENGTH)
    moderation_status: ModerationStatus | None = None

    @field_validator("parent_id", "id")
    @classmethod
    def normalize_empty_identifier(cls, v: uuid.UUID | None) -> uuid.UUID | None:
        """The nil UUID is the legacy spelling of 'no value'."""
        return _nil_to_none(v)

    @field_validator("site_id", "feature_id", "module_id", "content_id")
    @classmethod
    def require_identifier(cls, v: uuid.UUID) -> uuid.UUID:
        if v == NIL_UUID:
            raise ValueError("must not be the empty identifier")
        return v


class CommentImport(CommentCreate):
    """A comment carried over from another system, optionally with its original timestamps."""

    created_at: datetime | None = None
    last_modified_at: datetime | None = None


class CommentUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    body: str | None = None
    author_name: str | None = Field(default=None, max_length=AUTHOR_NAME_MAX_LENGTH)
    author_email: str | None = Field(default=None, max_length=AUTHOR_EMAIL_MAX_LENGTH)
    author_url: str | None = Field(default=None, max_length=AUTHOR_URL_MAX_LENGTH)

    # Moderation fields change only through the moderation endpoint
    model_config = {"extra": "forbid"}


class CommentModerate(BaseModel):
    status: ModerationStatus
    moderator_id: uuid.UUID
    reason: str | None = Field(default=None, max_length=MODERATION_REASON_MAX_LENGTH)


class CommentReparent(BaseModel):
    parent_id: uuid.UUID | None = None

    @field_validator("parent_id")
    @classmethod
    def normalize_empty_parent(cls, v: uuid.UUID | None) -> uuid.UUID | None:
        return _nil_to_none(v)


class CommentRead(BaseModel):
    id: uuid.UUID
    parent_id: uuid.UUID | None
    site_id: uuid.UUID
    feature_id: uuid.UUID
    module_id: uuid.UUID
    content_id: uuid.UUID
    user_id: uuid.UUID
    title: str | None
    body: str | None
    author_name: str | None
    author_email: str | None
    author_url: str | None
    author_ip: str | None
    created_at: datetime
    last_modified_at: datetime
    moderation_status: ModerationStatus
    moderated_by: uuid.UUID | None
    moderation_reason: str | None

    model_config = {"from_attributes": True}

    @field_validator("created_at", "last_modified_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Stored timestamps are UTC; SQLite hands them back without an offset."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CommentThreadRead(BaseModel):
    parent: CommentRead | None = None
    comment: CommentRead
    children: list[CommentRead] = []


class ModerationStats(BaseModel):
    site_id: uuid.UUID
    pending: int = 0
    approved: int = 0
    spam: int = 0
    rejected: int = 0

    @computed_field  # type: ignore[misc]
    @property
    def total(self) -> int:
        return self.pending + self.approved + self.spam + self.rejected
