"""Identity normalization and row-to-info conversion helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .types import GrantInfo, ItemInfo, ShareLinkInfo

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase
    from vaultshare.models.links import ShareLinkBase


def normalize_identity(identity: str | None) -> str:
    """Lower-case and strip an email-like identity.

    Identities are compared case-insensitively everywhere and stored
    lower-cased.  Raises ``ValueError`` for an empty identity.
    """
    if identity is None:
        raise ValueError("identity is required")
    normalized = identity.strip().lower()
    if not normalized:
        raise ValueError("identity is required")
    return normalized


def unique_ids(ids: Iterable[str]) -> list[str]:
    """De-duplicate *ids*, preserving order and dropping empties."""
    return list(dict.fromkeys(i for i in ids if i))


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; SQLite returns stored timestamps without a zone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def item_to_info(item: ItemBase) -> ItemInfo:
    return ItemInfo(
        id=item.id,
        owner_id=item.owner_id,
        name=item.name,
        is_folder=item.is_folder,
        parent_id=item.parent_id,
        size_bytes=item.size_bytes,
        mime_type=item.mime_type,
        is_deleted=item.is_deleted,
        deleted_at=item.deleted_at,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def grant_to_info(grant: GrantBase) -> GrantInfo:
    return GrantInfo(
        id=grant.id,
        item_id=grant.item_id,
        recipient_id=grant.recipient_id,
        granted_by=grant.granted_by,
        item_name=grant.item_name,
        permission=grant.permission,
        item_size=grant.item_size,
        item_type=grant.item_type,
        parent_id=grant.parent_id,
        created_at=grant.created_at,
    )


def link_to_info(link: ShareLinkBase) -> ShareLinkInfo:
    return ShareLinkInfo(
        id=link.id,
        item_id=link.item_id,
        token=link.token,
        created_by=link.created_by,
        expires_at=as_utc(link.expires_at),
        revoked_at=as_utc(link.revoked_at) if link.revoked_at is not None else None,
        created_at=link.created_at,
    )
