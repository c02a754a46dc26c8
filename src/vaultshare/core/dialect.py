"""Dialect-aware SQL helpers — idempotent marker inserts."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite' or 'postgresql'."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name in ("postgresql", "postgres"):
        return "postgresql"
    return name


async def insert_or_ignore(
    session: AsyncSession,
    dialect: str,
    model: type,
    rows: list[dict[str, Any]],
    conflict_keys: list[str],
) -> int:
    """Insert *rows* into *model*'s table, skipping keys that already exist.

    Returns the number of rows actually inserted.

    - SQLite/PostgreSQL: INSERT ... ON CONFLICT DO NOTHING
    """
    if not rows:
        return 0
    if dialect not in SUPPORTED_DIALECTS:
        msg = f"Unsupported dialect: {dialect!r}. Expected one of {SUPPORTED_DIALECTS}."
        raise ValueError(msg)

    from sqlalchemy.dialects import sqlite as sqlite_dialect

    dialect_module = sqlite_dialect
    if dialect == "postgresql":
        from sqlalchemy.dialects import postgresql as pg_dialect

        dialect_module = pg_dialect

    # Pending ORM rows must reach the table before the conflict check
    await session.flush()
    table = model.__table__  # type: ignore[attr-defined]
    stmt = dialect_module.insert(table).values(rows)
    stmt = stmt.on_conflict_do_nothing(index_elements=conflict_keys)

    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[return-value]
