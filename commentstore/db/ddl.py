"""
Schema DDL helpers.

Alembic (``alembic/versions``) is the deployment path. These helpers build the
same schema from the ORM metadata for tests and tooling, and render it as SQL
text so DBAs can review what a given backend will receive.
"""
from __future__ import annotations

from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateIndex, CreateTable, DropIndex, DropTable

import commentstore.models  # noqa: F401  registers every table on Base.metadata
from commentstore.db.base import Base

_DIALECTS: dict[str, type[Dialect]] = {
    "postgresql": postgresql.dialect,
    "sqlite": sqlite.dialect,
    "mssql": mssql.dialect,
    "mysql": mysql.dialect,
}


def _get_dialect(name: str) -> Dialect:
    try:
        return _DIALECTS[name]()
    except KeyError:
        supported = ", ".join(sorted(_DIALECTS))
        raise ValueError(f"Unsupported dialect {name!r}; expected one of: {supported}") from None


def _statement(clause: object, dialect: Dialect) -> str:
    return str(clause.compile(dialect=dialect)).strip() + ";"  # type: ignore[attr-defined]


def render_create_sql(dialect_name: str = "postgresql") -> str:
    """CREATE TABLE plus every CREATE INDEX, in dependency order."""
    dialect = _get_dialect(dialect_name)
    statements: list[str] = []
    for table in Base.metadata.sorted_tables:
        statements.append(_statement(CreateTable(table), dialect))
        for index in sorted(table.indexes, key=lambda ix: ix.name or ""):
            statements.append(_statement(CreateIndex(index), dialect))
    return "\n\n".join(statements) + "\n"


def render_drop_sql(dialect_name: str = "postgresql") -> str:
    """The rollback counterpart of render_create_sql."""
    dialect = _get_dialect(dialect_name)
    statements: list[str] = []
    for table in reversed(Base.metadata.sorted_tables):
        for index in sorted(table.indexes, key=lambda ix: ix.name or ""):
            statements.append(_statement(DropIndex(index), dialect))
        statements.append(_statement(DropTable(table), dialect))
    return "\n\n".join(statements) + "\n"


def _create_all(connection: Connection) -> None:
    Base.metadata.create_all(connection)


def _drop_all(connection: Connection) -> None:
    Base.metadata.drop_all(connection)


async def create_schema(connection: AsyncConnection) -> None:
    """Create every table and index that does not exist yet."""
    await connection.run_sync(_create_all)


async def drop_schema(connection: AsyncConnection) -> None:
    await connection.run_sync(_drop_all)
