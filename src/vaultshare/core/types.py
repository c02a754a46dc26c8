"""Result types: ItemInfo, GrantInfo, SharedItemInfo, ShareLinkInfo, Envelope, PropagationResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass
class ItemInfo:
    """File/folder metadata as seen by its owner."""

    id: str
    owner_id: str
    name: str
    is_folder: bool
    parent_id: str | None = None
    size_bytes: int = 0
    mime_type: str | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class GrantInfo:
    """Grant metadata."""

    id: str
    item_id: str
    recipient_id: str
    granted_by: str
    item_name: str
    permission: str
    item_size: int = 0
    item_type: str | None = None
    parent_id: str | None = None
    created_at: datetime | None = None


@dataclass
class SharedItemInfo:
    """A grant plus its overlay state for one recipient."""

    grant: GrantInfo
    owner_tombstoned: bool = False
    recipient_trashed: bool = False
    hidden: bool = False
    marked_at: datetime | None = None

    @property
    def item_id(self) -> str:
        return self.grant.item_id

    @property
    def visible(self) -> bool:
        return not (self.owner_tombstoned or self.recipient_trashed or self.hidden)


@dataclass
class ShareLinkInfo:
    """Share link metadata as seen by its creator."""

    id: str
    item_id: str
    token: str
    created_by: str
    expires_at: datetime
    revoked_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Envelope:
    """Opaque encrypted payload and the wrapped key for one caller."""

    item_id: str
    name: str
    mime_type: str | None
    encrypted_data: bytes | None
    iv: bytes | None
    wrapped_key: bytes | None
    shared_key: bytes | None = None
    """Key copy carried by a share link; None for owner and grant reads."""
    expires_at: datetime | None = None


@dataclass
class PropagationResult:
    """Result of a Propagation Engine transition.

    ``affected`` counts the (item, recipient) pairs whose state changed,
    or items for owner-only transitions that touch no recipients.
    """

    success: bool
    message: str
    affected: int = 0
    item_ids: list[str] = field(default_factory=list)
    recipient_ids: list[str] = field(default_factory=list)
