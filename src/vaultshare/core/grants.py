"""GrantLedger — grant CRUD with full overlay cleanup.

Stateless service that receives the grant model at construction
and a session at call time, following the ItemTreeService pattern.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from vaultshare.models.grants import PERMISSION_VIEW

from .exceptions import AlreadySharedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase

    from .guard import ConsistencyGuard
    from .overlay import VisibilityOverlay

logger = logging.getLogger(__name__)

PERMISSIONS = (PERMISSION_VIEW,)


class GrantLedger:
    """Records of "owner shared item X with recipient Y".

    Constructor receives the concrete grant model so callers can use
    custom SQLModel subclasses with different table names.
    """

    def __init__(
        self,
        grant_model: type[GrantBase],
        overlay: VisibilityOverlay,
        guard: ConsistencyGuard,
    ) -> None:
        self._grant_model = grant_model
        self._overlay = overlay
        self._guard = guard

    @property
    def grant_model(self) -> type[GrantBase]:
        return self._grant_model

    async def create_grant(
        self,
        session: AsyncSession,
        item: ItemBase,
        granted_by: str,
        recipient_id: str,
        *,
        permission: str = PERMISSION_VIEW,
        wrapped_key: bytes | None = None,
        parent_trashed: bool | None = None,
    ) -> GrantBase:
        """Create a grant after the guard checks. Flushes but does not commit.

        Raises ``ForbiddenError`` if *granted_by* does not own *item* or
        equals *recipient_id*, ``RecipientMustPurgeFirstError`` if the
        recipient still has the item in their trash, and
        ``AlreadySharedError`` if the pair is already granted.

        When the parent folder's grant to the same recipient is in that
        recipient's trash, the new grant starts trashed too.
        *parent_trashed* lets the caller pass that fact when it already
        knows it.
        """
        if permission not in PERMISSIONS:
            raise ValueError(f"Invalid permission: {permission!r}. Must be one of {PERMISSIONS}.")

        self._guard.require_owner(item, granted_by)
        self._guard.require_distinct(item.owner_id, recipient_id)
        await self._guard.check_reshare(session, self, item.id, recipient_id)

        # Orphans from an earlier failed cleanup must not hide the fresh grant.
        stale = await self._overlay.clear_pairs(session, [item.id], recipient_id)
        if stale:
            logger.warning(
                "Cleared %d stale markers before sharing %s with %s", stale, item.id, recipient_id
            )

        grant = self._grant_model(
            item_id=item.id,
            recipient_id=recipient_id,
            granted_by=item.owner_id,
            item_name=item.name,
            item_size=item.size_bytes,
            item_type="folder" if item.is_folder else item.mime_type,
            parent_id=item.parent_id,
            permission=permission,
            wrapped_key=wrapped_key,
        )
        session.add(grant)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise AlreadySharedError(f"Item {item.id} is already shared with {recipient_id}") from exc

        if parent_trashed is None:
            parent_trashed = item.parent_id is not None and await self._parent_in_trash(
                session, item.parent_id, recipient_id
            )
        if parent_trashed:
            await self._overlay.mark_recipient_tombstone(session, item.id, recipient_id)
            logger.debug("Parent of %s is in %s's trash; new grant starts trashed", item.id, recipient_id)

        return grant

    async def _parent_in_trash(
        self,
        session: AsyncSession,
        parent_id: str,
        recipient_id: str,
    ) -> bool:
        """True if the recipient's grant on *parent_id* sits in their trash.

        A tombstone on a parent the recipient holds no grant on is
        orphaned; it is deleted here rather than inherited.
        """
        if not await self._overlay.has_recipient_tombstone(session, parent_id, recipient_id):
            return False
        if await self.get_grant(session, parent_id, recipient_id) is not None:
            return True
        logger.warning(
            "Orphaned recipient tombstone on %s for %s; cleared instead of inherited",
            parent_id,
            recipient_id,
        )
        await self._overlay.clear_recipient_tombstone(session, parent_id, recipient_id)
        return False

    async def get_grant(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> GrantBase | None:
        model = self._grant_model
        result = await session.execute(
            select(model).where(model.item_id == item_id, model.recipient_id == recipient_id)
        )
        return result.scalar_one_or_none()

    async def delete_grant(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> int:
        """Delete one grant and every marker for its pair. Idempotent."""
        return await self.delete_grants(session, [item_id], recipient_id)

    async def delete_grants(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str | None = None,
    ) -> int:
        """Delete grants on *item_ids* for one recipient (or all) with their markers.

        Returns the number of grants removed.
        """
        if not item_ids:
            return 0
        model = self._grant_model
        stmt = delete(model).where(model.item_id.in_(item_ids))  # type: ignore[attr-defined]
        if recipient_id is not None:
            stmt = stmt.where(model.recipient_id == recipient_id)
        result = await session.execute(stmt)
        await self._overlay.clear_pairs(session, item_ids, recipient_id)
        return result.rowcount  # type: ignore[return-value]

    async def recipient_item_ids(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> list[str]:
        """Subset of *item_ids* that *recipient_id* holds a grant on, in input order."""
        if not item_ids:
            return []
        model = self._grant_model
        result = await session.execute(
            select(model.item_id).where(  # type: ignore[arg-type]
                model.item_id.in_(item_ids),  # type: ignore[attr-defined]
                model.recipient_id == recipient_id,
            )
        )
        held = set(result.scalars().all())
        return [i for i in item_ids if i in held]

    async def list_recipients(self, session: AsyncSession, item_id: str) -> list[str]:
        model = self._grant_model
        result = await session.execute(
            select(model.recipient_id).where(model.item_id == item_id).order_by(model.created_at)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def list_grants_for(self, session: AsyncSession, item_id: str) -> list[GrantBase]:
        """List all grants on an item."""
        model = self._grant_model
        result = await session.execute(
            select(model).where(model.item_id == item_id).order_by(model.created_at)
        )
        return list(result.scalars().all())

    async def list_grants_by_recipient(
        self,
        session: AsyncSession,
        recipient_id: str,
    ) -> list[GrantBase]:
        """List all grants held by a recipient, whatever their overlay state."""
        model = self._grant_model
        result = await session.execute(
            select(model).where(model.recipient_id == recipient_id).order_by(model.created_at)
        )
        return list(result.scalars().all())

    async def list_grants_by_owner(self, session: AsyncSession, owner_id: str) -> list[GrantBase]:
        """List all grants an owner has given out."""
        model = self._grant_model
        result = await session.execute(
            select(model).where(model.granted_by == owner_id).order_by(model.created_at)
        )
        return list(result.scalars().all())

    async def refresh_metadata(self, session: AsyncSession, item: ItemBase) -> int:
        """Copy the item's display fields onto every grant of it.

        This is the only mutation a grant ever sees.  Returns the number
        of grants refreshed.
        """
        grants = await self.list_grants_for(session, item.id)
        for grant in grants:
            grant.item_name = item.name
            grant.item_size = item.size_bytes
            grant.item_type = "folder" if item.is_folder else item.mime_type
            grant.parent_id = item.parent_id
        if grants:
            await session.flush()
            logger.debug("Refreshed %d grant snapshots for %s", len(grants), item.id)
        return len(grants)
