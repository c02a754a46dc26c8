"""vaultshare: sharing and visibility for an encrypted file vault.

Owners share items, trash and restore them; recipients trash, restore,
purge, or hide their view.  Every transition is one transaction.
"""

__version__ = "0.1.0"

from vaultshare._vault import SharingVault
from vaultshare.config import VaultConfig
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
from vaultshare.core.types import (
    Envelope,
    GrantInfo,
    ItemInfo,
    PropagationResult,
    ShareLinkInfo,
    SharedItemInfo,
)
from vaultshare.events import EventBus, EventType, VisibilityEvent

__all__ = [
    "AlreadySharedError",
    "Envelope",
    "EventBus",
    "EventType",
    "ForbiddenError",
    "GrantInfo",
    "InvalidStateError",
    "ItemInfo",
    "NotFoundError",
    "PropagationEngine",
    "PropagationResult",
    "RecipientMustPurgeFirstError",
    "ShareLinkExpiredError",
    "ShareLinkInfo",
    "ShareLinkRevokedError",
    "ShareLinkUnavailableError",
    "SharedItemInfo",
    "SharingVault",
    "StorageFailureError",
    "VaultConfig",
    "VaultError",
    "VisibilityEvent",
    "__version__",
]
