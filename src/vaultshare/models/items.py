"""Item model — files and folders in an owner's hierarchy.

Provides ``ItemBase`` (non-table) and ``Item`` (concrete table).
Subclass ``ItemBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name per deployment.

The envelope columns (``encrypted_data``, ``iv``, ``wrapped_key``) are
opaque: they are stored and returned verbatim, never interpreted.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class ItemBase(SQLModel):
    """Base fields for a file or folder. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)
    name: str = Field(default="")
    size_bytes: int = Field(default=0)
    mime_type: str | None = Field(default=None)
    is_folder: bool = Field(default=False)
    parent_id: str | None = Field(default=None, index=True)
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    encrypted_data: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    iv: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    wrapped_key: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Item(ItemBase, table=True):
    """Default item table — ``vault_items``."""

    __tablename__ = "vault_items"
