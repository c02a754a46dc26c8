"""Sharing core — item tree, grant ledger, visibility overlay, propagation."""

from vaultshare.core.engine import PropagationEngine
from vaultshare.core.exceptions import (
    AlreadySharedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RecipientMustPurgeFirstError,
    ShareLinkExpiredError,
    ShareLinkRevokedError,
    ShareLinkUnavailableError,
    StorageFailureError,
    VaultError,
)
from vaultshare.core.grants import GrantLedger
from vaultshare.core.guard import ConsistencyGuard
from vaultshare.core.links import ShareLinkLedger
from vaultshare.core.overlay import VisibilityOverlay
from vaultshare.core.tree import ItemTreeService
from vaultshare.core.types import (
    Envelope,
    GrantInfo,
    ItemInfo,
    PropagationResult,
    ShareLinkInfo,
    SharedItemInfo,
)

__all__ = [
    "AlreadySharedError",
    "ConsistencyGuard",
    "Envelope",
    "ForbiddenError",
    "GrantInfo",
    "GrantLedger",
    "InvalidStateError",
    "ItemInfo",
    "ItemTreeService",
    "NotFoundError",
    "PropagationEngine",
    "PropagationResult",
    "RecipientMustPurgeFirstError",
    "ShareLinkExpiredError",
    "ShareLinkInfo",
    "ShareLinkLedger",
    "ShareLinkRevokedError",
    "ShareLinkUnavailableError",
    "SharedItemInfo",
    "StorageFailureError",
    "VaultError",
    "VisibilityOverlay",
]
