"""
Comment business logic service.
Validates input, enforces the reply-tree and moderation rules, stamps timestamps
and translates storage failures into the store's exception types.

Each mutating method runs every check before it writes, then writes inside a
SAVEPOINT. The caller's session owns the transaction (see get_db / session_scope):
a failed write undoes only its own savepoint, and nothing else in the caller's
unit of work is rolled back or expired.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from commentstore.core.config import settings
from commentstore.core.exceptions import (
    ConflictException,
    NotFoundException,
    StorageUnavailableException,
    ValidationException,
)
from commentstore.crud.comment import crud_comment
from commentstore.models.comment import NIL_UUID, Comment, ModerationStatus
from commentstore.schemas.comment import (
    CommentCreate,
    CommentImport,
    CommentModerate,
    CommentReparent,
    CommentUpdate,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _validate(schema: type[SchemaT], obj_in: BaseModel | dict[str, Any]) -> SchemaT:
    """Run ``obj_in`` through ``schema``, reporting failures as ValidationException."""
    if isinstance(obj_in, BaseModel):
        data = obj_in.model_dump(exclude_unset=True)
    else:
        data = obj_in
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        raise ValidationException(f"Invalid {schema.__name__} payload", errors=errors) from exc


def _validate_status(status: ModerationStatus | int | None) -> ModerationStatus | None:
    if status is None:
        return None
    try:
        return ModerationStatus(status)
    except ValueError:
        raise ValidationException(f"Invalid moderation status: {status!r}") from None


def _validate_window(skip: int, limit: int) -> None:
    if skip < 0:
        raise ValidationException("skip must not be negative")
    if limit < 1:
        raise ValidationException("limit must be at least 1")


def _normalize_parent(parent_id: uuid.UUID | None) -> uuid.UUID | None:
    return None if parent_id == NIL_UUID else parent_id


def _scope_of(obj: Comment | CommentCreate) -> tuple[uuid.UUID, ...]:
    return (obj.site_id, obj.feature_id, obj.module_id, obj.content_id)


class CommentService:
    """
    Operations on threaded, moderated comments.

    ``default_status`` is the moderation status given to new comments that do
    not carry one; sites that pre-moderate pass ModerationStatus.PENDING.
    ``clock`` returns the current UTC time.
    """

    def __init__(
        self,
        *,
        default_status: ModerationStatus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.default_status = (
            settings.default_moderation_status if default_status is None else default_status
        )
        self._clock = clock or utcnow

    def _now(self) -> datetime:
        return _as_utc(self._clock())

    def _next_modified_at(self, comment: Comment) -> datetime:
        """Current time, never earlier than the stored last_modified_at."""
        now = self._now()
        previous = comment.last_modified_at
        if previous is not None and _as_utc(previous) > now:
            return _as_utc(previous)
        return now

    @asynccontextmanager
    async def _storage_errors(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            logger.warning("Constraint violation during %s: %s", action, exc.orig)
            raise ConflictException(
                f"Could not {action}: the change violates a comment constraint"
            ) from exc
        except (OperationalError, InterfaceError, PoolTimeoutError, TimeoutError) as exc:
            logger.error("Storage unavailable during %s: %s", action, exc)
            raise StorageUnavailableException() from exc

    @staticmethod
    def _assert_same_scope(parent: Comment, child: Comment | CommentCreate) -> None:
        if _scope_of(parent) != _scope_of(child):
            raise ValidationException(
                f"Parent comment '{parent.id}' belongs to a different site, feature, "
                "module or content item"
            )

    async def _get_or_404(self, db: AsyncSession, comment_id: uuid.UUID) -> Comment:
        comment = await crud_comment.get(db, comment_id)
        if comment is None:
            raise NotFoundException("Comment", str(comment_id))
        return comment

    # ── Create / read ─────────────────────────────────────────────────────────

    async def create_comment(
        self,
        db: AsyncSession,
        *,
        comment_in: CommentCreate | dict[str, Any],
    ) -> Comment:
        """
        Insert a comment.
        A reply's parent must already exist and share its content scope.
        """
        comment_in = _validate(CommentCreate, comment_in)

        async with self._storage_errors("create comment"):
            if comment_in.id is not None and await crud_comment.get(db, comment_in.id):
                raise ConflictException(f"Comment with id '{comment_in.id}' already exists")

            if comment_in.parent_id is not None:
                parent = await crud_comment.get(db, comment_in.parent_id)
                if parent is None:
                    raise ConflictException(
                        f"Parent comment '{comment_in.parent_id}' does not exist"
                    )
                self._assert_same_scope(parent, comment_in)

            status = comment_in.moderation_status
            if status is None:
                status = self.default_status
            now = self._now()

            data = comment_in.model_dump(exclude={"id", "moderation_status"})
            data.update(
                id=comment_in.id or uuid.uuid4(),
                moderation_status=int(status),
                created_at=now,
                last_modified_at=now,
            )
            async with db.begin_nested():
                comment = await crud_comment.create_from_dict(db, obj_in=data)

        logger.info(
            "Comment created: id=%s content_id=%s parent_id=%s status=%s",
            comment.id,
            comment.content_id,
            comment.parent_id,
            ModerationStatus(comment.moderation_status).name,
        )
        return comment

    async def get_comment(self, db: AsyncSession, *, comment_id: uuid.UUID) -> Comment:
        """Fetch one comment. Parent and replies are not loaded."""
        async with self._storage_errors("load comment"):
            return await self._get_or_404(db, comment_id)

    async def get_comment_thread_context(
        self, db: AsyncSession, *, comment_id: uuid.UUID
    ) -> tuple[Comment | None, Comment, list[Comment]]:
        """(parent, comment, direct replies) for callers that explicitly want the neighbourhood."""
        async with self._storage_errors("load comment thread"):
            comment = await self._get_or_404(db, comment_id)
            parent = None
            if comment.parent_id is not None:
                parent = await crud_comment.get(db, comment.parent_id)
            children = await crud_comment.list_children(db, parent_id=comment.id)
        return parent, comment, children

    async def list_children(
        self,
        db: AsyncSession,
        *,
        parent_id: uuid.UUID | None,
        content_id: uuid.UUID | None = None,
        status: ModerationStatus | int | None = None,
    ) -> list[Comment]:
        """
        Direct replies, oldest first. Callers recurse to build deeper trees.
        ``parent_id=None`` (or the nil UUID) asks for the top-level comments of
        ``content_id``, which is then required.
        """
        parent_id = _normalize_parent(parent_id)
        status = _validate_status(status)
        if parent_id is None and content_id is None:
            raise ValidationException("content_id is required to list top-level comments")

        async with self._storage_errors("list replies"):
            return await crud_comment.list_children(
                db, parent_id=parent_id, content_id=content_id, status=status
            )

    async def list_by_content(
        self,
        db: AsyncSession,
        *,
        content_id: uuid.UUID,
        status: ModerationStatus | int | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[Comment], int]:
        """Comments on a content item, oldest first, with the total across pages."""
        status = _validate_status(status)
        _validate_window(skip, limit)
        async with self._storage_errors("list comments"):
            return await crud_comment.list_by_content(
                db, content_id=content_id, status=status, skip=skip, limit=limit
            )

    async def list_by_site(
        self,
        db: AsyncSession,
        *,
        site_id: uuid.UUID,
        status: ModerationStatus | int | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[Comment], int]:
        """Site-wide listing, newest first. With status=PENDING this is the moderation queue."""
        status = _validate_status(status)
        _validate_window(skip, limit)
        async with self._storage_errors("list site comments"):
            return await crud_comment.list_by_site(
                db, site_id=site_id, status=status, skip=skip, limit=limit
            )

    async def count_by_status(
        self, db: AsyncSession, *, site_id: uuid.UUID
    ) -> dict[ModerationStatus, int]:
        async with self._storage_errors("count site comments"):
            return await crud_comment.count_by_status(db, site_id=site_id)

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def update_comment(
        self,
        db: AsyncSession,
        *,
        comment_id: uuid.UUID,
        comment_in: CommentUpdate | dict[str, Any],
    ) -> Comment:
        """Edit text fields. Only fields explicitly provided change; last_modified_at always does."""
        comment_in = _validate(CommentUpdate, comment_in)

        async with self._storage_errors("update comment"):
            comment = await self._get_or_404(db, comment_id)
            data = comment_in.model_dump(exclude_unset=True)
            data["last_modified_at"] = self._next_modified_at(comment)
            async with db.begin_nested():
                comment = await crud_comment.update(db, db_obj=comment, obj_in=data)

        logger.debug("Comment updated: id=%s fields=%s", comment_id, sorted(data))
        return comment

    async def moderate_comment(
        self,
        db: AsyncSession,
        *,
        comment_id: uuid.UUID,
        status: ModerationStatus | int,
        moderator_id: uuid.UUID,
        reason: str | None = None,
    ) -> Comment:
        """
        Re-classify a comment. Every status may move to every other status,
        including itself; repeating a decision only advances last_modified_at.
        """
        decision = _validate(
            CommentModerate,
            {"status": status, "moderator_id": moderator_id, "reason": reason},
        )

        async with self._storage_errors("moderate comment"):
            comment = await self._get_or_404(db, comment_id)
            previous = ModerationStatus(comment.moderation_status)
            changes = {
                "moderation_status": int(decision.status),
                "moderated_by": decision.moderator_id,
                "moderation_reason": decision.reason,
                "last_modified_at": self._next_modified_at(comment),
            }
            async with db.begin_nested():
                comment = await crud_comment.update(db, db_obj=comment, obj_in=changes)

        logger.info(
            "Comment moderated: id=%s %s -> %s by=%s",
            comment_id,
            previous.name,
            decision.status.name,
            decision.moderator_id,
        )
        return comment

    async def reparent_comment(
        self,
        db: AsyncSession,
        *,
        comment_id: uuid.UUID,
        new_parent_id: uuid.UUID | None,
    ) -> Comment:
        """
        Move a comment under another parent (or to top level with None).
        This is how callers clear a comment's replies before deleting it.
        """
        new_parent_id = _validate(CommentReparent, {"parent_id": new_parent_id}).parent_id

        async with self._storage_errors("move comment"):
            comment = await self._get_or_404(db, comment_id)
            if new_parent_id == comment.parent_id:
                return comment

            if new_parent_id is not None:
                if new_parent_id == comment.id:
                    raise ConflictException("A comment cannot be its own parent")
                parent = await crud_comment.get(db, new_parent_id)
                if parent is None:
                    raise ConflictException(f"Parent comment '{new_parent_id}' does not exist")
                self._assert_same_scope(parent, comment)
                await self._assert_not_descendant(db, ancestor_id=comment.id, start=parent)

            changes = {
                "parent_id": new_parent_id,
                "last_modified_at": self._next_modified_at(comment),
            }
            async with db.begin_nested():
                comment = await crud_comment.update(db, db_obj=comment, obj_in=changes)

        logger.info("Comment moved: id=%s new_parent_id=%s", comment_id, new_parent_id)
        return comment

    async def _assert_not_descendant(
        self, db: AsyncSession, *, ancestor_id: uuid.UUID, start: Comment
    ) -> None:
        """Walk up from ``start`` one indexed lookup at a time looking for ``ancestor_id``."""
        seen: set[uuid.UUID] = {start.id}
        cursor = start.parent_id
        while cursor is not None:
            if cursor == ancestor_id:
                raise ConflictException(
                    "Cannot move a comment underneath one of its own replies"
                )
            if cursor in seen:
                logger.error("Existing reply cycle detected at comment %s", cursor)
                raise ConflictException(f"Comment '{cursor}' is part of a reply cycle")
            seen.add(cursor)
            cursor = await crud_comment.get_parent_id(db, cursor)

    async def delete_comment(self, db: AsyncSession, *, comment_id: uuid.UUID) -> None:
        """
        Remove a comment that has no replies.
        Replies must be moved or deleted first; the foreign key's ON DELETE
        RESTRICT rejects the delete if one is inserted concurrently.
        """
        async with self._storage_errors("delete comment"):
            comment = await self._get_or_404(db, comment_id)
            if await crud_comment.has_children(db, comment_id):
                raise ConflictException(
                    f"Comment '{comment_id}' has replies; move or delete them first"
                )
            content_id = comment.content_id
            async with db.begin_nested():
                await crud_comment.remove(db, db_obj=comment)

        logger.info("Comment deleted: id=%s content_id=%s", comment_id, content_id)

    # ── Bulk import ───────────────────────────────────────────────────────────

    async def import_comments(
        self,
        db: AsyncSession,
        *,
        items: Sequence[CommentImport | dict[str, Any]],
    ) -> list[Comment]:
        """
        Insert a batch of comments, parents before replies.

        Replies may reference parents in the same batch (by the ids supplied in
        the batch) or comments already stored. Original timestamps are kept
        when provided. The batch is rejected as a whole on any error.
        """
        batch = [_validate(CommentImport, item) for item in items]
        if not batch:
            return []

        now = self._now()
        rows: dict[uuid.UUID, dict[str, Any]] = {}
        by_id: dict[uuid.UUID, CommentImport] = {}
        for position, item in enumerate(batch):
            comment_id = item.id or uuid.uuid4()
            if comment_id in by_id:
                raise ValidationException(
                    f"Duplicate comment id '{comment_id}' at position {position}"
                )
            by_id[comment_id] = item
            rows[comment_id] = self._import_row(comment_id, item, now)

        ordered = _parents_first(by_id)

        async with self._storage_errors("import comments"):
            clashes = await crud_comment.get_many(db, by_id)
            if clashes:
                clash = next(iter(clashes))
                raise ConflictException(f"Comment with id '{clash}' already exists")

            outside = {
                item.parent_id
                for item in batch
                if item.parent_id is not None and item.parent_id not in by_id
            }
            stored_parents = await crud_comment.get_many(db, outside)
            missing = outside - stored_parents.keys()
            if missing:
                raise ConflictException(
                    f"Parent comment '{sorted(missing)[0]}' does not exist"
                )

            for comment_id in ordered:
                item = by_id[comment_id]
                if item.parent_id is None:
                    continue
                parent = stored_parents.get(item.parent_id)
                if parent is None:
                    parent_item = by_id[item.parent_id]
                    if _scope_of(parent_item) != _scope_of(item):
                        raise ValidationException(
                            f"Comment '{comment_id}' and its parent '{item.parent_id}' "
                            "belong to different content scopes"
                        )
                else:
                    self._assert_same_scope(parent, item)

            async with db.begin_nested():
                comments = await crud_comment.create_many(
                    db, objs_in=[rows[comment_id] for comment_id in ordered]
                )

        logger.info("Imported %d comments", len(comments))
        return comments

    def _import_row(
        self, comment_id: uuid.UUID, item: CommentImport, now: datetime
    ) -> dict[str, Any]:
        created_at = _as_utc(item.created_at) if item.created_at else now
        last_modified_at = (
            _as_utc(item.last_modified_at) if item.last_modified_at else created_at
        )
        if last_modified_at < created_at:
            raise ValidationException(
                f"Comment '{comment_id}' was last modified before it was created"
            )
        status = item.moderation_status
        if status is None:
            status = self.default_status

        row = item.model_dump(
            exclude={"id", "moderation_status", "created_at", "last_modified_at"}
        )
        row.update(
            id=comment_id,
            moderation_status=int(status),
            created_at=created_at,
            last_modified_at=last_modified_at,
        )
        return row


def _parents_first(by_id: dict[uuid.UUID, CommentImport]) -> list[uuid.UUID]:
    """
    Order batch ids so every in-batch parent precedes its replies, keeping the
    input order otherwise. Raises ValidationException if the batch has a cycle.
    """
    replies: dict[uuid.UUID, list[uuid.UUID]] = {comment_id: [] for comment_id in by_id}
    waiting: dict[uuid.UUID, int] = {}
    for comment_id, item in by_id.items():
        if item.parent_id is not None and item.parent_id in by_id:
            replies[item.parent_id].append(comment_id)
            waiting[comment_id] = 1
        else:
            waiting[comment_id] = 0

    ready = [comment_id for comment_id in by_id if waiting[comment_id] == 0]
    ordered: list[uuid.UUID] = []
    while ready:
        comment_id = ready.pop(0)
        ordered.append(comment_id)
        for reply_id in replies[comment_id]:
            waiting[reply_id] -= 1
            if waiting[reply_id] == 0:
                ready.append(reply_id)

    if len(ordered) != len(by_id):
        stuck = next(comment_id for comment_id in by_id if waiting[comment_id])
        raise ValidationException(f"Reply cycle in import batch involving '{stuck}'")
    return ordered


comment_service = CommentService()
