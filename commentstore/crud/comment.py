"""
Comment CRUD operations.
Every list query here is shaped to be answered from one of the comments indexes.
"""
from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from commentstore.crud.base import CRUDBase
from commentstore.models.comment import Comment, ModerationStatus


class CRUDComment(CRUDBase[Comment]):

    async def list_by_content(
        self,
        db: AsyncSession,
        *,
        content_id: uuid.UUID,
        status: ModerationStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[Comment], int]:
        """Oldest first. Served by IX_mp_Comments_Content_Status_Date."""
        query = select(Comment).where(Comment.content_id == content_id)
        count_query = (
            select(func.count())
            .select_from(Comment)
            .where(Comment.content_id == content_id)
        )
        if status is not None:
            query = query.where(Comment.moderation_status == int(status))
            count_query = count_query.where(Comment.moderation_status == int(status))

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(Comment.created_at.asc(), Comment.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_children(
        self,
        db: AsyncSession,
        *,
        parent_id: uuid.UUID | None,
        content_id: uuid.UUID | None = None,
        status: ModerationStatus | None = None,
    ) -> list[Comment]:
        """
        Direct replies to ``parent_id``, oldest first.
        With ``parent_id=None`` returns the top-level comments of ``content_id``.
        """
        if parent_id is None:
            query = select(Comment).where(
                Comment.parent_id.is_(None),
                Comment.content_id == content_id,
            )
        else:
            query = select(Comment).where(Comment.parent_id == parent_id)
            if content_id is not None:
                query = query.where(Comment.content_id == content_id)
        if status is not None:
            query = query.where(Comment.moderation_status == int(status))

        result = await db.execute(
            query.order_by(Comment.created_at.asc(), Comment.id.asc())
        )
        return list(result.scalars().all())

    async def has_children(self, db: AsyncSession, comment_id: uuid.UUID) -> bool:
        result = await db.execute(
            select(Comment.id).where(Comment.parent_id == comment_id).limit(1)
        )
        return result.first() is not None

    async def get_parent_id(
        self, db: AsyncSession, comment_id: uuid.UUID
    ) -> uuid.UUID | None:
        """Parent of one comment without loading the row; None for top level or unknown ids."""
        result = await db.execute(
            select(Comment.parent_id).where(Comment.id == comment_id)
        )
        return result.scalar_one_or_none()

    async def list_by_site(
        self,
        db: AsyncSession,
        *,
        site_id: uuid.UUID,
        status: ModerationStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[Comment], int]:
        """Newest first, for moderation queues and site reports."""
        query = select(Comment).where(Comment.site_id == site_id)
        count_query = (
            select(func.count()).select_from(Comment).where(Comment.site_id == site_id)
        )
        if status is not None:
            query = query.where(Comment.moderation_status == int(status))
            count_query = count_query.where(Comment.moderation_status == int(status))

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def count_by_status(
        self, db: AsyncSession, *, site_id: uuid.UUID
    ) -> dict[ModerationStatus, int]:
        result = await db.execute(
            select(Comment.moderation_status, func.count())
            .where(Comment.site_id == site_id)
            .group_by(Comment.moderation_status)
        )
        counts = {status: 0 for status in ModerationStatus}
        for status_value, count in result.all():
            counts[ModerationStatus(status_value)] = count
        return counts


crud_comment = CRUDComment(Comment)
