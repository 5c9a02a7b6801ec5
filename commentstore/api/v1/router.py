"""
Aggregates all v1 API routers into a single APIRouter.
"""
from __future__ import annotations

from fastapi import APIRouter

from commentstore.api.v1 import comments

api_router = APIRouter()

api_router.include_router(comments.router)
