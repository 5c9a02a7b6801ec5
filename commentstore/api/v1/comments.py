"""
Comment routes.
/api/v1/comments, /api/v1/contents/{content_id}/comments, /api/v1/sites/{site_id}/comments
"""
import uuid

from fastapi import APIRouter, Query, Request, status

from commentstore.core.config import settings
from commentstore.core.dependencies import Comments, DBSession
from commentstore.core.limiter import limiter
from commentstore.models.comment import ModerationStatus
from commentstore.schemas.comment import (
    CommentCreate,
    CommentImport,
    CommentModerate,
    CommentRead,
    CommentReparent,
    CommentThreadRead,
    CommentUpdate,
    ModerationStats,
)
from commentstore.schemas.pagination import PaginatedResponse, page_to_offset

router = APIRouter(tags=["Comments"])

PageQuery = Query(default=1, ge=1)
SizeQuery = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)


@router.post(
    "/comments",
    response_model=CommentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a comment",
)
@limiter.limit(settings.RATE_LIMIT_COMMENT_CREATE)
async def create_comment(
    request: Request,
    comment_in: CommentCreate,
    db: DBSession,
    service: Comments,
) -> CommentRead:
    if comment_in.author_ip is None and request.client is not None:
        comment_in.author_ip = request.client.host
    comment = await service.create_comment(db, comment_in=comment_in)
    return CommentRead.model_validate(comment)


@router.post(
    "/comments/import",
    response_model=list[CommentRead],
    status_code=status.HTTP_201_CREATED,
    summary="Import a batch of comments, parents before replies",
)
async def import_comments(
    items: list[CommentImport],
    db: DBSession,
    service: Comments,
) -> list[CommentRead]:
    comments = await service.import_comments(db, items=items)
    return [CommentRead.model_validate(c) for c in comments]


@router.get(
    "/comments/{comment_id}",
    response_model=CommentRead,
    summary="Get a comment",
)
async def get_comment(
    comment_id: uuid.UUID,
    db: DBSession,
    service: Comments,
) -> CommentRead:
    comment = await service.get_comment(db, comment_id=comment_id)
    return CommentRead.model_validate(comment)


@router.get(
    "/comments/{comment_id}/thread",
    response_model=CommentThreadRead,
    summary="Get a comment with its parent and direct replies",
)
async def get_comment_thread(
    comment_id: uuid.UUID,
    db: DBSession,
    service: Comments,
) -> CommentThreadRead:
    parent, comment, children = await service.get_comment_thread_context(
        db, comment_id=comment_id
    )
    return CommentThreadRead(
        parent=CommentRead.model_validate(parent) if parent is not None else None,
        comment=CommentRead.model_validate(comment),
        children=[CommentRead.model_validate(c) for c in children],
    )


@router.get(
    "/comments/{comment_id}/children",
    response_model=list[CommentRead],
    summary="List direct replies to a comment",
)
async def list_children(
    comment_id: uuid.UUID,
    db: DBSession,
    service: Comments,
    moderation_status: ModerationStatus | None = Query(default=None, alias="status"),
) -> list[CommentRead]:
    comments = await service.list_children(
        db, parent_id=comment_id, status=moderation_status
    )
    return [CommentRead.model_validate(c) for c in comments]


@router.patch(
    "/comments/{comment_id}",
    response_model=CommentRead,
    summary="Edit a comment's text fields",
)
async def update_comment(
    comment_id: uuid.UUID,
    comment_in: CommentUpdate,
    db: DBSession,
    service: Comments,
) -> CommentRead:
    comment = await service.update_comment(db, comment_id=comment_id, comment_in=comment_in)
    return CommentRead.model_validate(comment)


@router.post(
    "/comments/{comment_id}/moderation",
    response_model=CommentRead,
    summary="Record a moderation decision",
)
async def moderate_comment(
    comment_id: uuid.UUID,
    decision: CommentModerate,
    db: DBSession,
    service: Comments,
) -> CommentRead:
    comment = await service.moderate_comment(
        db,
        comment_id=comment_id,
        status=decision.status,
        moderator_id=decision.moderator_id,
        reason=decision.reason,
    )
    return CommentRead.model_validate(comment)


@router.post(
    "/comments/{comment_id}/parent",
    response_model=CommentRead,
    summary="Move a comment under another parent, or to top level",
)
async def reparent_comment(
    comment_id: uuid.UUID,
    body: CommentReparent,
    db: DBSession,
    service: Comments,
) -> CommentRead:
    comment = await service.reparent_comment(
        db, comment_id=comment_id, new_parent_id=body.parent_id
    )
    return CommentRead.model_validate(comment)


@router.delete(
    "/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment that has no replies",
)
async def delete_comment(
    comment_id: uuid.UUID,
    db: DBSession,
    service: Comments,
) -> None:
    await service.delete_comment(db, comment_id=comment_id)


@router.get(
    "/contents/{content_id}/comments",
    response_model=PaginatedResponse[CommentRead],
    summary="List comments on a content item, oldest first",
)
async def list_content_comments(
    content_id: uuid.UUID,
    db: DBSession,
    service: Comments,
    moderation_status: ModerationStatus | None = Query(default=None, alias="status"),
    page: int = PageQuery,
    size: int = SizeQuery,
) -> PaginatedResponse[CommentRead]:
    comments, total = await service.list_by_content(
        db,
        content_id=content_id,
        status=moderation_status,
        skip=page_to_offset(page, size),
        limit=size,
    )
    return PaginatedResponse(
        items=[CommentRead.model_validate(c) for c in comments],
        total=total,
        page=page,
        size=size,
    )


@router.get(
    "/contents/{content_id}/comments/top-level",
    response_model=list[CommentRead],
    summary="List the top-level comments of a content item",
)
async def list_top_level_comments(
    content_id: uuid.UUID,
    db: DBSession,
    service: Comments,
    moderation_status: ModerationStatus | None = Query(default=None, alias="status"),
) -> list[CommentRead]:
    comments = await service.list_children(
        db, parent_id=None, content_id=content_id, status=moderation_status
    )
    return [CommentRead.model_validate(c) for c in comments]


@router.get(
    "/sites/{site_id}/comments",
    response_model=PaginatedResponse[CommentRead],
    summary="List a site's comments, newest first",
)
async def list_site_comments(
    site_id: uuid.UUID,
    db: DBSession,
    service: Comments,
    moderation_status: ModerationStatus | None = Query(default=None, alias="status"),
    page: int = PageQuery,
    size: int = SizeQuery,
) -> PaginatedResponse[CommentRead]:
    comments, total = await service.list_by_site(
        db,
        site_id=site_id,
        status=moderation_status,
        skip=page_to_offset(page, size),
        limit=size,
    )
    return PaginatedResponse(
        items=[CommentRead.model_validate(c) for c in comments],
        total=total,
        page=page,
        size=size,
    )


@router.get(
    "/sites/{site_id}/comments/stats",
    response_model=ModerationStats,
    summary="Count a site's comments per moderation status",
)
async def site_moderation_stats(
    site_id: uuid.UUID,
    db: DBSession,
    service: Comments,
) -> ModerationStats:
    counts = await service.count_by_status(db, site_id=site_id)
    return ModerationStats(
        site_id=site_id,
        pending=counts[ModerationStatus.PENDING],
        approved=counts[ModerationStatus.APPROVED],
        spam=counts[ModerationStatus.SPAM],
        rejected=counts[ModerationStatus.REJECTED],
    )
