"""
SQLAlchemy declarative base and shared metadata.
Every mapped table inherits from Base so Alembic and the DDL helpers see one MetaData.
"""
from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Matches the existing mp_Comments schema: PK_mp_Comments, FK_mp_Comments_mp_Comments_ParentGuid
NAMING_CONVENTION: dict[str, str] = {
    "ix": "IX_%(table_name)s_%(column_0_name)s",
    "uq": "UQ_%(table_name)s_%(column_0_name)s",
    "ck": "CK_%(table_name)s_%(constraint_name)s",
    "fk": "FK_%(table_name)s_%(referred_table_name)s_%(column_0_name)s",
    "pk": "PK_%(table_name)s",
}


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
