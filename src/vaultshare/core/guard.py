"""ConsistencyGuard — validation run before any mutating transition.

Every check here either passes or raises; none of them write, except
the lazy removal of orphaned recipient tombstones during re-share checks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import (
    AlreadySharedError,
    ForbiddenError,
    RecipientMustPurgeFirstError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.items import ItemBase

    from .grants import GrantLedger
    from .overlay import VisibilityOverlay

logger = logging.getLogger(__name__)


class ConsistencyGuard:
    """Ownership, self-share, duplicate-grant, and re-share checks.

    Identities passed in are expected to be normalized already.
    """

    def __init__(self, overlay: VisibilityOverlay) -> None:
        self._overlay = overlay

    @staticmethod
    def require_owner(item: ItemBase, caller_id: str) -> None:
        """Raise ``ForbiddenError`` unless *caller_id* owns *item*."""
        if item.owner_id.lower() != caller_id.lower():
            raise ForbiddenError(f"{caller_id} does not own item {item.id}")

    @staticmethod
    def require_owner_or_recipient(item: ItemBase, caller_id: str, recipient_id: str) -> None:
        """Owners may act on any recipient; a recipient only on themselves."""
        caller = caller_id.lower()
        if caller not in (item.owner_id.lower(), recipient_id.lower()):
            raise ForbiddenError(
                f"{caller_id} may not change the share of item {item.id} with {recipient_id}"
            )

    @staticmethod
    def require_distinct(owner_id: str, recipient_id: str) -> None:
        if owner_id.lower() == recipient_id.lower():
            raise ForbiddenError("Cannot share an item with its owner")

    async def check_reshare(
        self,
        session: AsyncSession,
        ledger: GrantLedger,
        item_id: str,
        recipient_id: str,
    ) -> None:
        """Refuse a share the recipient has not cleared.

        - A live recipient tombstone (trashed, with a grant) blocks with
          ``RecipientMustPurgeFirstError``.
        - An existing grant fails with ``AlreadySharedError``.
        - A recipient tombstone without a grant is orphaned and removed.
        """
        grant = await ledger.get_grant(session, item_id, recipient_id)
        tombstone = await self._overlay.get_recipient_tombstone(session, item_id, recipient_id)

        if tombstone is not None and grant is not None and not tombstone.is_deleted:
            raise RecipientMustPurgeFirstError(item_id, recipient_id)
        if grant is not None:
            raise AlreadySharedError(f"Item {item_id} is already shared with {recipient_id}")
        if tombstone is not None:
            logger.warning(
                "Removing orphaned recipient tombstone for %s / %s",
                item_id,
                recipient_id,
            )
            await self._overlay.clear_recipient_tombstone(session, item_id, recipient_id)
