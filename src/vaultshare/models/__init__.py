"""SQLModel database models for vaultshare."""

from vaultshare.models.grants import PERMISSION_VIEW, Grant, GrantBase
from vaultshare.models.items import Item, ItemBase
from vaultshare.models.links import ShareLink, ShareLinkBase
from vaultshare.models.overlay import (
    HiddenMarker,
    HiddenMarkerBase,
    OwnerTombstone,
    OwnerTombstoneBase,
    RecipientTombstone,
    RecipientTombstoneBase,
)

__all__ = [
    "PERMISSION_VIEW",
    "Grant",
    "GrantBase",
    "HiddenMarker",
    "HiddenMarkerBase",
    "Item",
    "ItemBase",
    "OwnerTombstone",
    "OwnerTombstoneBase",
    "RecipientTombstone",
    "RecipientTombstoneBase",
    "ShareLink",
    "ShareLinkBase",
]
