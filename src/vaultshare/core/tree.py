"""ItemTreeService — item lookup, subtree expansion, ancestor checks."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from .exceptions import ForbiddenError, InvalidStateError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.items import ItemBase

logger = logging.getLogger(__name__)


class ItemTreeService:
    """Reads and writes the owner-side file/folder hierarchy.

    Receives the concrete item model at construction so callers can
    use custom SQLModel subclasses with different table names.
    Flushes but never commits.
    """

    def __init__(self, item_model: type[ItemBase]) -> None:
        self._item_model = item_model

    @property
    def item_model(self) -> type[ItemBase]:
        return self._item_model

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_item(
        self,
        session: AsyncSession,
        item_id: str,
        *,
        lock: bool = False,
    ) -> ItemBase | None:
        """Get an item by id, including owner-trashed items.

        With *lock*, the row is selected ``FOR UPDATE`` on backends that
        support row locks so concurrent transitions on one item serialize.
        """
        model = self._item_model
        query = select(model).where(model.id == item_id)
        if lock:
            query = query.with_for_update()
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def require_item(
        self,
        session: AsyncSession,
        item_id: str,
        *,
        lock: bool = False,
    ) -> ItemBase:
        item = await self.get_item(session, item_id, lock=lock)
        if item is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return item

    async def get_items(self, session: AsyncSession, item_ids: list[str]) -> list[ItemBase]:
        """Fetch several items in one query, in the order of *item_ids*."""
        if not item_ids:
            return []
        model = self._item_model
        result = await session.execute(select(model).where(model.id.in_(item_ids)))  # type: ignore[union-attr]
        by_id = {item.id: item for item in result.scalars().all()}
        return [by_id[i] for i in item_ids if i in by_id]

    async def list_children(
        self,
        session: AsyncSession,
        parent_id: str | None,
        owner_id: str,
        *,
        include_deleted: bool = False,
    ) -> list[ItemBase]:
        """List direct children of *parent_id* (``None`` for the owner's root)."""
        model = self._item_model
        conditions = [model.owner_id == owner_id]
        if parent_id is None:
            conditions.append(model.parent_id.is_(None))  # type: ignore[union-attr]
        else:
            conditions.append(model.parent_id == parent_id)
        if not include_deleted:
            conditions.append(model.is_deleted.is_(False))  # type: ignore[attr-defined]
        result = await session.execute(select(model).where(*conditions).order_by(model.name))
        return list(result.scalars().all())

    async def list_trash(self, session: AsyncSession, owner_id: str) -> list[ItemBase]:
        """List owner-trashed items with no owner-trashed ancestor.

        An item trashed on its own and later enclosed by a trashed folder
        higher up (with live folders in between) belongs to that folder's
        entry, not to a separate one.
        """
        model = self._item_model
        result = await session.execute(
            select(model).where(model.owner_id == owner_id, model.is_deleted.is_(True))  # type: ignore[attr-defined]
        )
        top_level: list[ItemBase] = []
        for item in result.scalars().all():
            if item.parent_id is not None and await self.is_descendant_owner_deleted(
                session, item.parent_id
            ):
                continue
            top_level.append(item)
        return top_level

    # ------------------------------------------------------------------
    # Tree traversal
    # ------------------------------------------------------------------

    async def resolve_subtree(self, session: AsyncSession, root_id: str) -> list[str]:
        """Breadth-first expansion of *root_id* and every descendant.

        Includes owner-trashed items.  Children owned by someone other
        than the root's owner are skipped.  Each id is visited at most
        once, so malformed (cyclic) data yields a partial result instead
        of looping.  Returns ``[]`` if the root does not exist.
        """
        model = self._item_model
        root = await self.get_item(session, root_id)
        if root is None:
            return []

        owner_id = root.owner_id
        ordered = [root.id]
        seen = {root.id}
        frontier = [root.id]

        while frontier:
            result = await session.execute(
                select(model.id, model.owner_id).where(model.parent_id.in_(frontier))  # type: ignore[union-attr,arg-type]
            )
            next_frontier: list[str] = []
            for child_id, child_owner in result.all():
                if child_id in seen:
                    logger.warning("Cycle in item tree under %s at %s", root_id, child_id)
                    continue
                if child_owner != owner_id:
                    logger.warning(
                        "Item %s under %s is owned by %s, not %s; skipped",
                        child_id,
                        root_id,
                        child_owner,
                        owner_id,
                    )
                    continue
                seen.add(child_id)
                ordered.append(child_id)
                next_frontier.append(child_id)
            frontier = next_frontier

        return ordered

    async def is_descendant_owner_deleted(self, session: AsyncSession, item_id: str) -> bool:
        """True if the item or any of its ancestors is owner-trashed."""
        model = self._item_model
        seen: set[str] = set()
        current: str | None = item_id

        while current is not None:
            if current in seen:
                logger.warning("Cycle in ancestor chain of %s at %s", item_id, current)
                return False
            seen.add(current)
            result = await session.execute(
                select(model.is_deleted, model.parent_id).where(model.id == current)  # type: ignore[arg-type]
            )
            row = result.first()
            if row is None:
                return False
            is_deleted, parent_id = row
            if is_deleted:
                return True
            current = parent_id

        return False

    async def is_ancestor(self, session: AsyncSession, ancestor_id: str, item_id: str) -> bool:
        """True if *ancestor_id* is *item_id* or one of its ancestors."""
        model = self._item_model
        seen: set[str] = set()
        current: str | None = item_id

        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            result = await session.execute(select(model.parent_id).where(model.id == current))  # type: ignore[arg-type]
            current = result.scalar_one_or_none()

        return False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def require_parent_folder(
        self,
        session: AsyncSession,
        parent_id: str,
        owner_id: str,
    ) -> ItemBase:
        """Validate that *parent_id* is a live folder owned by *owner_id*."""
        parent = await self.require_item(session, parent_id)
        if parent.owner_id != owner_id:
            raise ForbiddenError(f"Folder {parent_id} is not owned by {owner_id}")
        if not parent.is_folder:
            raise InvalidStateError(f"Parent is not a folder: {parent_id}")
        if await self.is_descendant_owner_deleted(session, parent_id):
            raise InvalidStateError(f"Folder is in trash: {parent_id}")
        return parent

    async def create_item(
        self,
        session: AsyncSession,
        owner_id: str,
        name: str,
        *,
        parent_id: str | None = None,
        is_folder: bool = False,
        size_bytes: int = 0,
        mime_type: str | None = None,
        encrypted_data: bytes | None = None,
        iv: bytes | None = None,
        wrapped_key: bytes | None = None,
        item_id: str | None = None,
    ) -> ItemBase:
        """Create an item row. Flushes but does not commit."""
        if parent_id is not None:
            await self.require_parent_folder(session, parent_id, owner_id)

        values: dict[str, object] = {
            "owner_id": owner_id,
            "name": name,
            "parent_id": parent_id,
            "is_folder": is_folder,
            "size_bytes": 0 if is_folder else size_bytes,
            "mime_type": mime_type,
            "encrypted_data": encrypted_data,
            "iv": iv,
            "wrapped_key": wrapped_key,
        }
        if item_id is not None:
            values["id"] = item_id
        item = self._item_model(**values)
        session.add(item)
        await session.flush()
        return item

    async def set_owner_deleted(
        self,
        session: AsyncSession,
        item: ItemBase,
        deleted: bool,
    ) -> bool:
        """Set the owner soft-delete flag. Returns True if it changed."""
        if item.is_deleted == deleted:
            return False
        now = datetime.now(UTC)
        item.is_deleted = deleted
        item.deleted_at = now if deleted else None
        item.updated_at = now
        session.add(item)
        await session.flush()
        return True

    async def delete_items(self, session: AsyncSession, item_ids: list[str]) -> int:
        """Hard-delete item rows, deepest first. Returns the number removed."""
        items = await self.get_items(session, item_ids)
        for item in reversed(items):
            await session.delete(item)
        await session.flush()
        return len(items)
