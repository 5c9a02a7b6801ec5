"""
Comment ORM model.
Threaded, moderated comments attached to a content item within a site/feature/module.
Mapped onto the legacy mp_Comments table: snake_case attributes, original column names.
Replies point at their parent by id only; trees are walked by indexed lookups,
never through loaded object graphs.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from commentstore.db.base import Base

# Legacy "no value" identifier, accepted on input wherever a UUID is optional.
NIL_UUID = uuid.UUID(int=0)

TITLE_MAX_LENGTH = 255
AUTHOR_NAME_MAX_LENGTH = 50
AUTHOR_EMAIL_MAX_LENGTH = 100
AUTHOR_URL_MAX_LENGTH = 255
AUTHOR_IP_MAX_LENGTH = 50
MODERATION_REASON_MAX_LENGTH = 255


class ModerationStatus(enum.IntEnum):
    """Publication eligibility of a comment. Any value may move to any other."""

    PENDING = 0
    APPROVED = 1
    SPAM = 2
    REJECTED = 3


class Comment(Base):
    __tablename__ = "mp_Comments"

    id: Mapped[uuid.UUID] = mapped_column(
        "Guid",
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        "ParentGuid",
        Uuid,
        ForeignKey("mp_Comments.Guid", ondelete="RESTRICT"),
        nullable=True,
    )
    site_id: Mapped[uuid.UUID] = mapped_column("SiteGuid", Uuid, nullable=False)
    feature_id: Mapped[uuid.UUID] = mapped_column("FeatureGuid", Uuid, nullable=False)
    module_id: Mapped[uuid.UUID] = mapped_column("ModuleGuid", Uuid, nullable=False)
    content_id: Mapped[uuid.UUID] = mapped_column("ContentGuid", Uuid, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        "UserGuid",
        Uuid,
        nullable=False,
        default=NIL_UUID,
    )
    title: Mapped[str | None] = mapped_column(
        "Title", String(TITLE_MAX_LENGTH), nullable=True
    )
    body: Mapped[str | None] = mapped_column("UserComment", Text, nullable=True)
    author_name: Mapped[str | None] = mapped_column(
        "UserName", String(AUTHOR_NAME_MAX_LENGTH), nullable=True
    )
    author_email: Mapped[str | None] = mapped_column(
        "UserEmail", String(AUTHOR_EMAIL_MAX_LENGTH), nullable=True
    )
    author_url: Mapped[str | None] = mapped_column(
        "UserUrl", String(AUTHOR_URL_MAX_LENGTH), nullable=True
    )
    author_ip: Mapped[str | None] = mapped_column(
        "UserIp", String(AUTHOR_IP_MAX_LENGTH), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        "CreatedUtc",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_modified_at: Mapped[datetime] = mapped_column(
        "LastModUtc",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    moderation_status: Mapped[int] = mapped_column(
        "ModerationStatus",
        SmallInteger,
        nullable=False,
        server_default=str(int(ModerationStatus.APPROVED)),
    )
    moderated_by: Mapped[uuid.UUID | None] = mapped_column(
        "ModeratedBy", Uuid, nullable=True
    )
    moderation_reason: Mapped[str | None] = mapped_column(
        "ModerationReason", String(MODERATION_REASON_MAX_LENGTH), nullable=True
    )

    @property
    def status(self) -> ModerationStatus:
        return ModerationStatus(self.moderation_status)

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == NIL_UUID

    def __repr__(self) -> str:
        return (
            f"<Comment id={self.id} content_id={self.content_id} "
            f"parent_id={self.parent_id} status={self.moderation_status}>"
        )


# Declared against the mapped columns so each dialect quotes the mixed-case names
Comment.__table__.append_constraint(
    CheckConstraint(
        Comment.__mapper__.c.moderation_status.in_([int(s) for s in ModerationStatus]),
        name="moderation_status_valid",
    )
)
Index("IX_mp_Comments_ContentGuid", Comment.content_id)
Index("IX_mp_Comments_SiteGuid", Comment.site_id)
Index("IX_mp_Comments_ParentGuid", Comment.parent_id)
Index("IX_mp_Comments_CreatedUtc", Comment.created_at)
Index(
    "IX_mp_Comments_Content_Status_Date",
    Comment.content_id,
    Comment.moderation_status,
    Comment.created_at,
)
Index("IX_mp_Comments_Parent_Date", Comment.parent_id, Comment.created_at)
