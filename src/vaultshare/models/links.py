"""ShareLink model — time-limited token access to one file.

Anyone holding the token can read the file's envelope until the link
expires or its creator revokes it.  ``shared_key`` is an opaque key copy
for the token holder.  Expired and revoked links are kept so their
creator can still list them; they go away with the item.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareLinkBase(SQLModel):
    """Base fields for a share link. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    item_id: str = Field(index=True)
    token: str
    created_by: str = Field(index=True)
    expires_at: datetime = Field(
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    revoked_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    shared_key: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class ShareLink(ShareLinkBase, table=True):
    """Default share link table — ``vault_share_links``."""

    __tablename__ = "vault_share_links"
    __table_args__ = (UniqueConstraint("token", name="uq_vault_share_links_token"),)
