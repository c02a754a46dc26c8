"""VisibilityOverlay — owner/recipient tombstones and hidden markers.

Stateless service that receives the grant and marker models at
construction and a session at call time.  Every mark/clear is
idempotent: calling it twice leaves the same rows as calling it once.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, update
from sqlmodel import select

from .dialect import insert_or_ignore
from .types import SharedItemInfo
from .utils import grant_to_info, unique_ids

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase
    from vaultshare.models.overlay import (
        HiddenMarkerBase,
        OwnerTombstoneBase,
        RecipientTombstoneBase,
    )

logger = logging.getLogger(__name__)

_PAIR = ["item_id", "recipient_id"]


class VisibilityOverlay:
    """Marker sets layered on top of grants to compute visibility."""

    def __init__(
        self,
        grant_model: type[GrantBase],
        owner_tombstone_model: type[OwnerTombstoneBase],
        recipient_tombstone_model: type[RecipientTombstoneBase],
        hidden_model: type[HiddenMarkerBase],
        dialect: str = "sqlite",
    ) -> None:
        self._grant_model = grant_model
        self._owner_model = owner_tombstone_model
        self._recipient_model = recipient_tombstone_model
        self._hidden_model = hidden_model
        self.dialect = dialect

    @property
    def owner_model(self) -> type[OwnerTombstoneBase]:
        return self._owner_model

    @property
    def recipient_model(self) -> type[RecipientTombstoneBase]:
        return self._recipient_model

    @property
    def hidden_model(self) -> type[HiddenMarkerBase]:
        return self._hidden_model

    # ------------------------------------------------------------------
    # Owner tombstones
    # ------------------------------------------------------------------

    async def mark_owner_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_ids: list[str],
    ) -> int:
        """Hide *item_id* from each recipient because the owner trashed it."""
        now = datetime.now(UTC)
        rows: list[dict[str, Any]] = [
            {
                "id": str(uuid.uuid4()),
                "item_id": item_id,
                "recipient_id": recipient_id,
                "deleted_by_owner_at": now,
            }
            for recipient_id in unique_ids(recipient_ids)
        ]
        return await insert_or_ignore(session, self.dialect, self._owner_model, rows, _PAIR)

    async def clear_owner_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_ids: list[str] | None = None,
    ) -> int:
        """Remove owner tombstones on *item_id*; all recipients when *recipient_ids* is None."""
        model = self._owner_model
        stmt = delete(model).where(model.item_id == item_id)
        if recipient_ids is not None:
            if not recipient_ids:
                return 0
            stmt = stmt.where(model.recipient_id.in_(recipient_ids))  # type: ignore[attr-defined]
        result = await session.execute(stmt)
        return result.rowcount  # type: ignore[return-value]

    async def has_owner_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> bool:
        model = self._owner_model
        result = await session.execute(
            select(model.id).where(model.item_id == item_id, model.recipient_id == recipient_id)  # type: ignore[arg-type]
        )
        return result.first() is not None

    # ------------------------------------------------------------------
    # Recipient tombstones
    # ------------------------------------------------------------------

    async def mark_recipient_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> int:
        return await self.mark_recipient_tombstones(session, [item_id], recipient_id)

    async def mark_recipient_tombstones(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> int:
        """Move each item into *recipient_id*'s trash.

        A tombstone previously flagged ``is_deleted`` is revived rather
        than duplicated.
        """
        item_ids = unique_ids(item_ids)
        if not item_ids:
            return 0
        model = self._recipient_model
        now = datetime.now(UTC)
        rows: list[dict[str, Any]] = [
            {
                "id": str(uuid.uuid4()),
                "item_id": item_id,
                "recipient_id": recipient_id,
                "trashed_at": now,
                "is_deleted": False,
            }
            for item_id in item_ids
        ]
        inserted = await insert_or_ignore(session, self.dialect, model, rows, _PAIR)
        revived = await session.execute(
            update(model)
            .where(
                model.item_id.in_(item_ids),  # type: ignore[attr-defined]
                model.recipient_id == recipient_id,
                model.is_deleted.is_(True),  # type: ignore[attr-defined]
            )
            .values(is_deleted=False, trashed_at=now)
        )
        return inserted + (revived.rowcount or 0)

    async def clear_recipient_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> int:
        return await self.clear_recipient_tombstones(session, [item_id], recipient_id)

    async def clear_recipient_tombstones(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> int:
        if not item_ids:
            return 0
        model = self._recipient_model
        result = await session.execute(
            delete(model).where(
                model.item_id.in_(item_ids),  # type: ignore[attr-defined]
                model.recipient_id == recipient_id,
            )
        )
        return result.rowcount  # type: ignore[return-value]

    async def get_recipient_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> RecipientTombstoneBase | None:
        model = self._recipient_model
        result = await session.execute(
            select(model).where(model.item_id == item_id, model.recipient_id == recipient_id)
        )
        return result.scalar_one_or_none()

    async def has_recipient_tombstone(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> bool:
        """True if *recipient_id* holds *item_id* in their trash (not purged)."""
        tombstone = await self.get_recipient_tombstone(session, item_id, recipient_id)
        return tombstone is not None and not tombstone.is_deleted

    # ------------------------------------------------------------------
    # Hidden markers
    # ------------------------------------------------------------------

    async def mark_hidden(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> int:
        rows: list[dict[str, Any]] = [
            {
                "id": str(uuid.uuid4()),
                "item_id": item_id,
                "recipient_id": recipient_id,
                "hidden_at": datetime.now(UTC),
            }
        ]
        return await insert_or_ignore(session, self.dialect, self._hidden_model, rows, _PAIR)

    async def clear_hidden(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_ids: list[str],
    ) -> int:
        """Un-hide *item_id* for each of *recipient_ids*."""
        if not recipient_ids:
            return 0
        model = self._hidden_model
        result = await session.execute(
            delete(model).where(
                model.item_id == item_id,
                model.recipient_id.in_(recipient_ids),  # type: ignore[attr-defined]
            )
        )
        return result.rowcount  # type: ignore[return-value]

    async def clear_hidden_many(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> int:
        """Un-hide each of *item_ids* for one recipient."""
        if not item_ids:
            return 0
        model = self._hidden_model
        result = await session.execute(
            delete(model).where(
                model.item_id.in_(item_ids),  # type: ignore[attr-defined]
                model.recipient_id == recipient_id,
            )
        )
        return result.rowcount  # type: ignore[return-value]

    async def is_hidden(self, session: AsyncSession, item_id: str, recipient_id: str) -> bool:
        model = self._hidden_model
        result = await session.execute(
            select(model.id).where(model.item_id == item_id, model.recipient_id == recipient_id)  # type: ignore[arg-type]
        )
        return result.first() is not None

    async def hidden_item_ids(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> set[str]:
        """Subset of *item_ids* that *recipient_id* has hidden."""
        if not item_ids:
            return set()
        model = self._hidden_model
        result = await session.execute(
            select(model.item_id).where(  # type: ignore[arg-type]
                model.item_id.in_(item_ids),  # type: ignore[attr-defined]
                model.recipient_id == recipient_id,
            )
        )
        return set(result.scalars().all())

    # ------------------------------------------------------------------
    # Pair cleanup
    # ------------------------------------------------------------------

    async def clear_pairs(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str | None = None,
    ) -> int:
        """Delete every marker on *item_ids*, for one recipient or all.

        Used when grants are deleted so no marker outlives its grant.
        """
        if not item_ids:
            return 0
        total = 0
        for model in (self._owner_model, self._recipient_model, self._hidden_model):
            stmt = delete(model).where(model.item_id.in_(item_ids))  # type: ignore[attr-defined]
            if recipient_id is not None:
                stmt = stmt.where(model.recipient_id == recipient_id)
            result = await session.execute(stmt)
            total += result.rowcount or 0
        return total

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def list_visible(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        """Grants for *recipient_id* with no owner tombstone, recipient tombstone, or hidden marker.

        This is the single query backing "Shared with me".
        """
        g = self._grant_model
        ot = self._owner_model
        rt = self._recipient_model
        hm = self._hidden_model
        query = (
            select(g)
            .outerjoin(ot, and_(ot.item_id == g.item_id, ot.recipient_id == g.recipient_id))
            .outerjoin(rt, and_(rt.item_id == g.item_id, rt.recipient_id == g.recipient_id))
            .outerjoin(hm, and_(hm.item_id == g.item_id, hm.recipient_id == g.recipient_id))
            .where(
                g.recipient_id == recipient_id,
                ot.id.is_(None),  # type: ignore[union-attr]
                rt.id.is_(None),  # type: ignore[union-attr]
                hm.id.is_(None),  # type: ignore[union-attr]
            )
            .order_by(g.created_at)
        )
        result = await session.execute(query)
        return [SharedItemInfo(grant=grant_to_info(grant)) for grant in result.scalars().all()]

    async def list_trashed(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        """Grants *recipient_id* has moved into their own trash."""
        g = self._grant_model
        rt = self._recipient_model
        result = await session.execute(
            select(g, rt.trashed_at)  # type: ignore[call-overload]
            .join(rt, and_(rt.item_id == g.item_id, rt.recipient_id == g.recipient_id))
            .where(g.recipient_id == recipient_id, rt.is_deleted.is_(False))  # type: ignore[attr-defined]
            .order_by(rt.trashed_at)
        )
        return [
            SharedItemInfo(grant=grant_to_info(grant), recipient_trashed=True, marked_at=trashed_at)
            for grant, trashed_at in result.all()
        ]

    async def list_hidden(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        """Grants *recipient_id* has hidden forever."""
        g = self._grant_model
        hm = self._hidden_model
        result = await session.execute(
            select(g, hm.hidden_at)  # type: ignore[call-overload]
            .join(hm, and_(hm.item_id == g.item_id, hm.recipient_id == g.recipient_id))
            .where(g.recipient_id == recipient_id)
            .order_by(hm.hidden_at)
        )
        return [
            SharedItemInfo(grant=grant_to_info(grant), hidden=True, marked_at=hidden_at)
            for grant, hidden_at in result.all()
        ]

    async def list_owner_tombstoned(
        self,
        session: AsyncSession,
        recipient_id: str,
    ) -> list[SharedItemInfo]:
        """Grants hidden from *recipient_id* because the owner trashed the source."""
        g = self._grant_model
        ot = self._owner_model
        result = await session.execute(
            select(g, ot.deleted_by_owner_at)  # type: ignore[call-overload]
            .join(ot, and_(ot.item_id == g.item_id, ot.recipient_id == g.recipient_id))
            .where(g.recipient_id == recipient_id)
            .order_by(ot.deleted_by_owner_at)
        )
        return [
            SharedItemInfo(grant=grant_to_info(grant), owner_tombstoned=True, marked_at=deleted_at)
            for grant, deleted_at in result.all()
        ]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def purge_orphans(
        self,
        session: AsyncSession,
        item_model: type[ItemBase],
    ) -> dict[str, int]:
        """Delete markers that no longer describe a real state.

        - owner tombstones whose item is gone or not owner-trashed
        - any marker without a grant for its pair
        - recipient tombstones already flagged ``is_deleted``
        """
        g = self._grant_model
        counts: dict[str, int] = {}

        ot = self._owner_model
        live_trashed = select(item_model.id).where(item_model.is_deleted.is_(True))  # type: ignore[arg-type,attr-defined]
        result = await session.execute(
            delete(ot)
            .where(ot.item_id.not_in(live_trashed))  # type: ignore[attr-defined]
            .execution_options(synchronize_session=False)
        )
        counts["stale_owner_tombstones"] = result.rowcount or 0

        for key, model in (
            ("orphan_owner_tombstones", self._owner_model),
            ("orphan_recipient_tombstones", self._recipient_model),
            ("orphan_hidden_markers", self._hidden_model),
        ):
            has_grant = (
                select(g.id)  # type: ignore[arg-type]
                .where(g.item_id == model.item_id, g.recipient_id == model.recipient_id)
                .correlate(model)
                .exists()
            )
            result = await session.execute(
                delete(model).where(~has_grant).execution_options(synchronize_session=False)
            )
            counts[key] = result.rowcount or 0

        rt = self._recipient_model
        result = await session.execute(
            delete(rt)
            .where(rt.is_deleted.is_(True))  # type: ignore[attr-defined]
            .execution_options(synchronize_session=False)
        )
        counts["purged_recipient_tombstones"] = result.rowcount or 0

        removed = sum(counts.values())
        if removed:
            logger.warning("Removed %d orphaned overlay rows: %s", removed, counts)
        return counts
