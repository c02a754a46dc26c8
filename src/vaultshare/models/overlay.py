"""Visibility overlay models — per-(item, recipient) markers on top of a grant.

- ``OwnerTombstone``: the owner moved the source item to their trash.
- ``RecipientTombstone``: the recipient moved their view into their trash.
- ``HiddenMarker``: the recipient dismissed the share permanently.

Each pair is unique per table.  Rows are inserted with dialect-aware
``ON CONFLICT`` statements so marking twice is a no-op.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class OwnerTombstoneBase(SQLModel):
    """Owner trashed the source item; hides it from one recipient."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    item_id: str = Field(index=True)
    recipient_id: str = Field(index=True)
    deleted_by_owner_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class OwnerTombstone(OwnerTombstoneBase, table=True):
    """Default owner tombstone table — ``vault_owner_tombstones``."""

    __tablename__ = "vault_owner_tombstones"
    __table_args__ = (
        UniqueConstraint("item_id", "recipient_id", name="uq_vault_owner_tombstones_pair"),
    )


class RecipientTombstoneBase(SQLModel):
    """Recipient trashed their view of a shared item."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    item_id: str = Field(index=True)
    recipient_id: str = Field(index=True)
    trashed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    is_deleted: bool = Field(default=False)


class RecipientTombstone(RecipientTombstoneBase, table=True):
    """Default recipient tombstone table — ``vault_recipient_tombstones``."""

    __tablename__ = "vault_recipient_tombstones"
    __table_args__ = (
        UniqueConstraint("item_id", "recipient_id", name="uq_vault_recipient_tombstones_pair"),
    )


class HiddenMarkerBase(SQLModel):
    """Recipient hid a share forever."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    item_id: str = Field(index=True)
    recipient_id: str = Field(index=True)
    hidden_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class HiddenMarker(HiddenMarkerBase, table=True):
    """Default hidden marker table — ``vault_hidden_markers``."""

    __tablename__ = "vault_hidden_markers"
    __table_args__ = (
        UniqueConstraint("item_id", "recipient_id", name="uq_vault_hidden_markers_pair"),
    )
