"""
ORM model package. Import all models here so Alembic autogenerate
can discover every table through the shared Base metadata.
"""
from commentstore.models.comment import Comment, ModerationStatus  # noqa: F401
