"""Grant model — one row per (item, recipient) sharing relationship.

The ``item_name``/``item_size``/``item_type``/``parent_id`` columns are a
display snapshot of the item taken at share time and refreshed on
rename/move.  They are a cache, not authoritative.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel

PERMISSION_VIEW = "view"
"""The only permission level a grant can carry."""


class GrantBase(SQLModel):
    """Base fields for a grant record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    item_id: str = Field(index=True)
    recipient_id: str = Field(index=True)
    granted_by: str = Field(index=True)
    item_name: str = Field(default="")
    item_size: int = Field(default=0)
    item_type: str | None = Field(default=None)
    parent_id: str | None = Field(default=None)
    permission: str = Field(default=PERMISSION_VIEW)
    wrapped_key: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Grant(GrantBase, table=True):
    """Default grant table — ``vault_grants``."""

    __tablename__ = "vault_grants"
    __table_args__ = (UniqueConstraint("item_id", "recipient_id", name="uq_vault_grants_pair"),)
