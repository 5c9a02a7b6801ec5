"""
FastAPI dependency injection functions.
Provides the database session and the comment service to route handlers.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from commentstore.db.session import get_db
from commentstore.services.comment_service import CommentService, comment_service

# Re-export get_db so routes can import from one place
__all__ = ["get_db", "get_comment_service", "DBSession", "Comments"]


def get_comment_service() -> CommentService:
    """Overridable in tests or per deployment (e.g. a pre-moderating default status)."""
    return comment_service


DBSession = Annotated[AsyncSession, Depends(get_db)]
Comments = Annotated[CommentService, Depends(get_comment_service)]
