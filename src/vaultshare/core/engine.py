"""PropagationEngine — the sharing and visibility state machine.

Stateless: holds only configuration (dialect, models) and composed
services.  Sessions are provided per operation; every method flushes
but never commits, so one call is one unit of work inside the
caller's transaction.  ``SharingVault`` opens that transaction.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .exceptions import InvalidStateError, NotFoundError
from .grants import GrantLedger
from .guard import ConsistencyGuard
from .links import ShareLinkLedger
from .overlay import VisibilityOverlay
from .tree import ItemTreeService
from .types import Envelope, PropagationResult
from .utils import (
    as_utc,
    grant_to_info,
    item_to_info,
    link_to_info,
    normalize_identity,
    unique_ids,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase
    from vaultshare.models.links import ShareLinkBase
    from vaultshare.models.overlay import (
        HiddenMarkerBase,
        OwnerTombstoneBase,
        RecipientTombstoneBase,
    )

    from .types import GrantInfo, ItemInfo, ShareLinkInfo, SharedItemInfo

logger = logging.getLogger(__name__)


class PropagationEngine:
    """Named transitions over items, grants, and overlay markers.

    Each public transition resolves its target set through the item
    tree, consults the guard before writing, and then applies every
    grant/marker change for that set.  Identities are normalized here,
    so callers may pass them in any case.
    """

    def __init__(
        self,
        dialect: str = "sqlite",
        item_model: type[ItemBase] | None = None,
        grant_model: type[GrantBase] | None = None,
        owner_tombstone_model: type[OwnerTombstoneBase] | None = None,
        recipient_tombstone_model: type[RecipientTombstoneBase] | None = None,
        hidden_model: type[HiddenMarkerBase] | None = None,
        share_link_model: type[ShareLinkBase] | None = None,
    ) -> None:
        from vaultshare.models.grants import Grant
        from vaultshare.models.items import Item
        from vaultshare.models.links import ShareLink
        from vaultshare.models.overlay import HiddenMarker, OwnerTombstone, RecipientTombstone

        self.dialect = dialect
        self._item_model: type[ItemBase] = item_model or Item  # type: ignore[assignment]

        # Composed services
        self.tree = ItemTreeService(self._item_model)
        self.overlay = VisibilityOverlay(
            grant_model or Grant,  # type: ignore[arg-type]
            owner_tombstone_model or OwnerTombstone,  # type: ignore[arg-type]
            recipient_tombstone_model or RecipientTombstone,  # type: ignore[arg-type]
            hidden_model or HiddenMarker,  # type: ignore[arg-type]
            dialect,
        )
        self.guard = ConsistencyGuard(self.overlay)
        self.ledger = GrantLedger(grant_model or Grant, self.overlay, self.guard)  # type: ignore[arg-type]
        self.links = ShareLinkLedger(share_link_model or ShareLink)  # type: ignore[arg-type]

    @property
    def item_model(self) -> type[ItemBase]:
        return self._item_model

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned_item(self, session: AsyncSession, item_id: str, owner_id: str) -> ItemBase:
        item = await self.tree.require_item(session, item_id, lock=True)
        self.guard.require_owner(item, owner_id)
        return item

    async def _held_grant(self, session: AsyncSession, item_id: str, recipient_id: str) -> GrantBase:
        grant = await self.ledger.get_grant(session, item_id, recipient_id)
        if grant is None:
            raise NotFoundError(f"Item {item_id} is not shared with {recipient_id}")
        return grant

    async def _recipient_subtree(
        self,
        session: AsyncSession,
        item: ItemBase,
        recipient_id: str,
    ) -> list[str]:
        """Item plus descendants that *recipient_id* holds grants on."""
        if not item.is_folder:
            return [item.id]
        subtree = await self.tree.resolve_subtree(session, item.id)
        return await self.ledger.recipient_item_ids(session, subtree, recipient_id)

    # ------------------------------------------------------------------
    # Item boundary (upload / folder creation)
    # ------------------------------------------------------------------

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
        recipient_keys: dict[str, bytes] | None = None,
        item_id: str | None = None,
    ) -> PropagationResult:
        """Create an item; inside a shared folder it is granted to the folder's recipients.

        *recipient_keys* maps a recipient to their wrapped copy of the new
        item's key.  Recipients of the parent whose folder grant sits in
        their trash get the new grant already trashed.
        """
        owner_id = normalize_identity(owner_id)
        keys = {normalize_identity(k): v for k, v in (recipient_keys or {}).items()}

        item = await self.tree.create_item(
            session,
            owner_id,
            name,
            parent_id=parent_id,
            is_folder=is_folder,
            size_bytes=size_bytes,
            mime_type=mime_type,
            encrypted_data=encrypted_data,
            iv=iv,
            wrapped_key=wrapped_key,
            item_id=item_id,
        )

        recipients: list[str] = []
        if parent_id is not None:
            recipients = await self.ledger.list_recipients(session, parent_id)
            for recipient_id in recipients:
                await self.ledger.create_grant(
                    session,
                    item,
                    owner_id,
                    recipient_id,
                    wrapped_key=keys.get(recipient_id),
                )

        logger.info("Created %s %s for %s", "folder" if is_folder else "file", item.id, owner_id)
        return PropagationResult(
            success=True,
            message=f"Created {item.name}",
            affected=len(recipients),
            item_ids=[item.id],
            recipient_ids=recipients,
        )

    async def rename_item(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        name: str,
    ) -> PropagationResult:
        """Rename an item and refresh every grant's metadata snapshot."""
        owner_id = normalize_identity(owner_id)
        if not name.strip():
            raise ValueError("name is required")
        item = await self._owned_item(session, item_id, owner_id)
        item.name = name
        item.updated_at = datetime.now(UTC)
        session.add(item)
        refreshed = await self.ledger.refresh_metadata(session, item)
        return PropagationResult(
            success=True,
            message=f"Renamed {item_id}",
            affected=refreshed,
            item_ids=[item.id],
            recipient_ids=await self.ledger.list_recipients(session, item.id),
        )

    async def move_item(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        new_parent_id: str | None,
    ) -> PropagationResult:
        """Move an item under *new_parent_id* (``None`` for the owner's root)."""
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        if new_parent_id is not None:
            await self.tree.require_parent_folder(session, new_parent_id, owner_id)
            if await self.tree.is_ancestor(session, item.id, new_parent_id):
                raise InvalidStateError(f"Cannot move {item_id} into itself or a descendant")
        item.parent_id = new_parent_id
        item.updated_at = datetime.now(UTC)
        session.add(item)
        refreshed = await self.ledger.refresh_metadata(session, item)
        return PropagationResult(
            success=True,
            message=f"Moved {item_id}",
            affected=refreshed,
            item_ids=[item.id],
            recipient_ids=await self.ledger.list_recipients(session, item.id),
        )

    # ------------------------------------------------------------------
    # Owner transitions
    # ------------------------------------------------------------------

    async def share(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        recipient_id: str,
        *,
        wrapped_key: bytes | None = None,
        permission: str = "view",
    ) -> PropagationResult:
        """Grant *recipient_id* access to one item.

        Folders are not expanded: descendants become visible through
        their own grants, created when they are shared or uploaded.
        """
        owner_id = normalize_identity(owner_id)
        recipient_id = normalize_identity(recipient_id)
        item = await self._owned_item(session, item_id, owner_id)
        self.guard.require_distinct(owner_id, recipient_id)
        if await self.tree.is_descendant_owner_deleted(session, item.id):
            raise InvalidStateError(f"Item {item_id} is in the owner's trash")

        await self.ledger.create_grant(
            session,
            item,
            owner_id,
            recipient_id,
            permission=permission,
            wrapped_key=wrapped_key,
        )
        logger.info("Shared %s with %s", item.id, recipient_id)
        return PropagationResult(
            success=True,
            message=f"Shared {item.name} with {recipient_id}",
            affected=1,
            item_ids=[item.id],
            recipient_ids=[recipient_id],
        )

    async def _owner_trash_one(self, session: AsyncSession, item: ItemBase) -> tuple[bool, int, list[str]]:
        changed = await self.tree.set_owner_deleted(session, item, True)
        recipients = await self.ledger.list_recipients(session, item.id)
        marked = await self.overlay.mark_owner_tombstone(session, item.id, recipients)
        return changed, marked, recipients

    async def trash_subtree(
        self,
        session: AsyncSession,
        root_id: str,
        owner_id: str,
    ) -> PropagationResult:
        """Owner-trash *root_id* and every descendant, tombstoning each for its recipients."""
        owner_id = normalize_identity(owner_id)
        await self._owned_item(session, root_id, owner_id)
        subtree = await self.tree.resolve_subtree(session, root_id)
        return await self._owner_trash(session, subtree)

    async def trash(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        """Move an item to the owner's trash; its subtree too unless *recursive* is False."""
        if recursive:
            return await self.trash_subtree(session, item_id, owner_id)
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        return await self._owner_trash(session, [item.id])

    async def _owner_trash(self, session: AsyncSession, item_ids: list[str]) -> PropagationResult:
        changed_ids: list[str] = []
        recipients: list[str] = []
        affected = 0
        for item in await self.tree.get_items(session, item_ids):
            changed, marked, item_recipients = await self._owner_trash_one(session, item)
            if changed:
                changed_ids.append(item.id)
            affected += marked
            recipients.extend(item_recipients)

        logger.info("Owner-trashed %d items, %d recipient tombstones", len(changed_ids), affected)
        return PropagationResult(
            success=True,
            message=f"{len(item_ids)} item(s) moved to trash",
            affected=affected,
            item_ids=item_ids,
            recipient_ids=unique_ids(recipients),
        )

    async def restore(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        """Restore an item from the owner's trash and lift its owner tombstones."""
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        if item.parent_id is not None and await self.tree.is_descendant_owner_deleted(
            session, item.parent_id
        ):
            raise InvalidStateError(f"Containing folder of {item_id} is in trash; restore it first")

        item_ids = await self.tree.resolve_subtree(session, item.id) if recursive else [item.id]
        recipients: list[str] = []
        affected = 0
        for target in await self.tree.get_items(session, item_ids):
            await self.tree.set_owner_deleted(session, target, False)
            recipients.extend(await self.ledger.list_recipients(session, target.id))
            affected += await self.overlay.clear_owner_tombstone(session, target.id)

        logger.info("Restored %d items for %s, %d tombstones lifted", len(item_ids), owner_id, affected)
        return PropagationResult(
            success=True,
            message=f"{len(item_ids)} item(s) restored",
            affected=affected,
            item_ids=item_ids,
            recipient_ids=unique_ids(recipients),
        )

    async def permanently_delete(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
    ) -> PropagationResult:
        """Irreversibly delete a trashed item, its subtree, and every grant and link to them.

        The item itself or one of its ancestors must be in the owner's trash.
        """
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        if not await self.tree.is_descendant_owner_deleted(session, item.id):
            raise InvalidStateError(f"Item {item_id} is not in trash")

        subtree = await self.tree.resolve_subtree(session, item.id)
        recipients: list[str] = []
        for target_id in subtree:
            recipients.extend(await self.ledger.list_recipients(session, target_id))
        revoked = await self.ledger.delete_grants(session, subtree)
        severed = await self.links.delete_links(session, subtree)
        deleted = await self.tree.delete_items(session, subtree)

        logger.info(
            "Permanently deleted %d items, revoked %d grants and %d links", deleted, revoked, severed
        )
        return PropagationResult(
            success=True,
            message=f"{deleted} item(s) permanently deleted",
            affected=revoked,
            item_ids=subtree,
            recipient_ids=unique_ids(recipients),
        )

    async def empty_trash(self, session: AsyncSession, owner_id: str) -> PropagationResult:
        """Permanently delete everything in the owner's trash."""
        owner_id = normalize_identity(owner_id)
        item_ids: list[str] = []
        recipients: list[str] = []
        affected = 0
        for item in await self.tree.list_trash(session, owner_id):
            result = await self.permanently_delete(session, item.id, owner_id)
            item_ids.extend(result.item_ids)
            recipients.extend(result.recipient_ids)
            affected += result.affected
        return PropagationResult(
            success=True,
            message=f"Permanently deleted {len(item_ids)} items from trash",
            affected=affected,
            item_ids=item_ids,
            recipient_ids=unique_ids(recipients),
        )

    async def unshare_all(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = False,
    ) -> PropagationResult:
        """Revoke every grant on the item (and its descendants when *recursive*)."""
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        item_ids = await self.tree.resolve_subtree(session, item.id) if recursive else [item.id]
        recipients: list[str] = []
        for target_id in item_ids:
            recipients.extend(await self.ledger.list_recipients(session, target_id))
        revoked = await self.ledger.delete_grants(session, item_ids)

        logger.info("Revoked all %d grants on %s (recursive=%s)", revoked, item.id, recursive)
        return PropagationResult(
            success=True,
            message=f"Removed {revoked} share(s)",
            affected=revoked,
            item_ids=item_ids,
            recipient_ids=unique_ids(recipients),
        )

    # ------------------------------------------------------------------
    # Owner or recipient
    # ------------------------------------------------------------------

    async def unshare(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
        caller_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        """Remove one recipient's grant; for folders, their descendant grants too.

        The owner may remove any recipient; a recipient may remove only
        themselves.  Removing a pair that is not shared is a no-op.
        """
        recipient_id = normalize_identity(recipient_id)
        caller_id = normalize_identity(caller_id)
        item = await self.tree.require_item(session, item_id, lock=True)
        self.guard.require_owner_or_recipient(item, caller_id, recipient_id)

        if recursive and item.is_folder:
            item_ids = await self.tree.resolve_subtree(session, item.id)
        else:
            item_ids = [item.id]
        revoked = await self.ledger.delete_grants(session, item_ids, recipient_id)

        logger.info("Unshared %s from %s (%d grants)", item.id, recipient_id, revoked)
        return PropagationResult(
            success=True,
            message=f"Removed {revoked} share(s)",
            affected=revoked,
            item_ids=item_ids,
            recipient_ids=[recipient_id],
        )

    # ------------------------------------------------------------------
    # Recipient transitions
    # ------------------------------------------------------------------

    async def recipient_trash(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> PropagationResult:
        """Move a shared item, and this recipient's descendant grants, into their trash.

        Descendants the recipient has hidden stay hidden and out of the trash.
        """
        recipient_id = normalize_identity(recipient_id)
        item = await self.tree.require_item(session, item_id, lock=True)
        await self._held_grant(session, item.id, recipient_id)
        if await self.overlay.is_hidden(session, item.id, recipient_id):
            raise InvalidStateError(f"Item {item_id} is hidden for {recipient_id}")

        item_ids = await self._recipient_subtree(session, item, recipient_id)
        hidden = await self.overlay.hidden_item_ids(session, item_ids, recipient_id)
        item_ids = [i for i in item_ids if i not in hidden]
        marked = await self.overlay.mark_recipient_tombstones(session, item_ids, recipient_id)

        logger.info("%s trashed %s (%d grants)", recipient_id, item.id, marked)
        return PropagationResult(
            success=True,
            message=f"{len(item_ids)} shared item(s) moved to trash",
            affected=marked,
            item_ids=item_ids,
            recipient_ids=[recipient_id],
        )

    async def recipient_restore(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> PropagationResult:
        """Bring a shared item, and this recipient's descendant grants, back from their trash."""
        recipient_id = normalize_identity(recipient_id)
        item = await self.tree.require_item(session, item_id, lock=True)
        await self._held_grant(session, item.id, recipient_id)

        item_ids = await self._recipient_subtree(session, item, recipient_id)
        cleared = await self.overlay.clear_recipient_tombstones(session, item_ids, recipient_id)

        logger.info("%s restored %s (%d grants)", recipient_id, item.id, cleared)
        return PropagationResult(
            success=True,
            message=f"{len(item_ids)} shared item(s) restored",
            affected=cleared,
            item_ids=item_ids,
            recipient_ids=[recipient_id],
        )

    async def recipient_permanently_delete(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> PropagationResult:
        """Discard a trashed share, and everything inside it, for this recipient only."""
        recipient_id = normalize_identity(recipient_id)
        item = await self.tree.require_item(session, item_id, lock=True)
        await self._held_grant(session, item.id, recipient_id)
        if not await self.overlay.has_recipient_tombstone(session, item.id, recipient_id):
            raise InvalidStateError(f"Item {item_id} is not in {recipient_id}'s trash")

        if item.is_folder:
            item_ids = await self.tree.resolve_subtree(session, item.id)
        else:
            item_ids = [item.id]
        revoked = await self.ledger.delete_grants(session, item_ids, recipient_id)

        logger.info("%s permanently deleted share %s (%d grants)", recipient_id, item.id, revoked)
        return PropagationResult(
            success=True,
            message=f"{revoked} shared item(s) permanently deleted",
            affected=revoked,
            item_ids=item_ids,
            recipient_ids=[recipient_id],
        )

    async def hide(
        self,
        session: AsyncSession,
        item_id: str,
        recipient_id: str,
    ) -> PropagationResult:
        """Hide a share from *recipient_id* forever, independent of trash."""
        recipient_id = normalize_identity(recipient_id)
        await self._held_grant(session, item_id, recipient_id)
        marked = await self.overlay.mark_hidden(session, item_id, recipient_id)
        return PropagationResult(
            success=True,
            message="Share hidden",
            affected=marked,
            item_ids=[item_id],
            recipient_ids=[recipient_id],
        )

    async def unhide_many(
        self,
        session: AsyncSession,
        item_ids: list[str],
        recipient_id: str,
    ) -> PropagationResult:
        recipient_id = normalize_identity(recipient_id)
        item_ids = unique_ids(item_ids)
        cleared = await self.overlay.clear_hidden_many(session, item_ids, recipient_id)
        return PropagationResult(
            success=True,
            message=f"{cleared} share(s) unhidden",
            affected=cleared,
            item_ids=item_ids,
            recipient_ids=[recipient_id],
        )

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    async def read_envelope(
        self,
        session: AsyncSession,
        item_id: str,
        caller_id: str,
    ) -> Envelope:
        """Return the ciphertext with the wrapped key that belongs to *caller_id*."""
        caller_id = normalize_identity(caller_id)
        item = await self.tree.require_item(session, item_id)

        if item.owner_id == caller_id:
            wrapped_key = item.wrapped_key
        else:
            grant = await self.ledger.get_grant(session, item.id, caller_id)
            if grant is None:
                raise NotFoundError(f"Item not found: {item_id}")
            if await self.overlay.has_owner_tombstone(session, item.id, caller_id):
                raise NotFoundError(f"Item not found: {item_id}")
            wrapped_key = grant.wrapped_key

        if item.is_folder:
            raise InvalidStateError("Cannot read the envelope of a folder")

        return Envelope(
            item_id=item.id,
            name=item.name,
            mime_type=item.mime_type,
            encrypted_data=item.encrypted_data,
            iv=item.iv,
            wrapped_key=wrapped_key,
        )

    # ------------------------------------------------------------------
    # Share links
    # ------------------------------------------------------------------

    async def create_share_link(
        self,
        session: AsyncSession,
        item_id: str,
        owner_id: str,
        expires_at: datetime,
        *,
        shared_key: bytes | None = None,
    ) -> ShareLinkInfo:
        """Create a token link to one of the owner's files, valid until *expires_at*."""
        owner_id = normalize_identity(owner_id)
        item = await self._owned_item(session, item_id, owner_id)
        if await self.tree.is_descendant_owner_deleted(session, item.id):
            raise InvalidStateError(f"Item {item_id} is in the owner's trash")

        link = await self.links.create_link(session, item, owner_id, expires_at, shared_key=shared_key)
        logger.info("Created share link %s to %s, expires %s", link.id, item.id, link.expires_at)
        return link_to_info(link)

    async def list_share_links(
        self,
        session: AsyncSession,
        owner_id: str,
        item_id: str | None = None,
    ) -> list[ShareLinkInfo]:
        owner_id = normalize_identity(owner_id)
        links = await self.links.list_links(session, owner_id, item_id)
        return [link_to_info(link) for link in links]

    async def revoke_share_link(
        self,
        session: AsyncSession,
        link_id: str,
        owner_id: str,
    ) -> PropagationResult:
        """Revoke a link its creator made. Revoking twice is a no-op."""
        owner_id = normalize_identity(owner_id)
        link = await self.links.get_link(session, link_id)
        if link is None or link.created_by != owner_id:
            raise NotFoundError(f"Share link not found: {link_id}")

        revoked = await self.links.revoke(session, link)
        if revoked:
            logger.info("Revoked share link %s to %s", link.id, link.item_id)
        return PropagationResult(
            success=True,
            message="Share link revoked",
            affected=1 if revoked else 0,
            item_ids=[link.item_id],
        )

    async def access_share_link(self, session: AsyncSession, token: str) -> Envelope:
        """Resolve a link token to the file's envelope and the link's key copy.

        Raises ``NotFoundError`` for an unknown token or a file in the
        owner's trash, and a ``ShareLinkUnavailableError`` subclass once
        the link is revoked or expired.
        """
        link = await self.links.get_by_token(session, token)
        if link is None:
            raise NotFoundError("Share link not found")
        self.links.check_usable(link)

        item = await self.tree.get_item(session, link.item_id)
        if item is None or await self.tree.is_descendant_owner_deleted(session, item.id):
            raise NotFoundError("Share link not found")
        if item.is_folder:
            raise InvalidStateError("Folder links are not supported")

        return Envelope(
            item_id=item.id,
            name=item.name,
            mime_type=item.mime_type,
            encrypted_data=item.encrypted_data,
            iv=item.iv,
            wrapped_key=item.wrapped_key,
            shared_key=link.shared_key,
            expires_at=as_utc(link.expires_at),
        )

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def get_item_info(self, session: AsyncSession, item_id: str) -> ItemInfo | None:
        item = await self.tree.get_item(session, item_id)
        return item_to_info(item) if item is not None else None

    async def list_children(
        self,
        session: AsyncSession,
        owner_id: str,
        parent_id: str | None = None,
    ) -> list[ItemInfo]:
        owner_id = normalize_identity(owner_id)
        items = await self.tree.list_children(session, parent_id, owner_id)
        return [item_to_info(i) for i in items]

    async def list_owner_trash(self, session: AsyncSession, owner_id: str) -> list[ItemInfo]:
        owner_id = normalize_identity(owner_id)
        return [item_to_info(i) for i in await self.tree.list_trash(session, owner_id)]

    async def list_visible(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        return await self.overlay.list_visible(session, normalize_identity(recipient_id))

    async def list_trashed_shares(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        return await self.overlay.list_trashed(session, normalize_identity(recipient_id))

    async def list_hidden_shares(self, session: AsyncSession, recipient_id: str) -> list[SharedItemInfo]:
        return await self.overlay.list_hidden(session, normalize_identity(recipient_id))

    async def list_owner_tombstoned(
        self,
        session: AsyncSession,
        recipient_id: str,
    ) -> list[SharedItemInfo]:
        return await self.overlay.list_owner_tombstoned(session, normalize_identity(recipient_id))

    async def list_grants_for(self, session: AsyncSession, item_id: str) -> list[GrantInfo]:
        return [grant_to_info(g) for g in await self.ledger.list_grants_for(session, item_id)]

    async def list_grants_by_recipient(self, session: AsyncSession, recipient_id: str) -> list[GrantInfo]:
        grants = await self.ledger.list_grants_by_recipient(session, normalize_identity(recipient_id))
        return [grant_to_info(g) for g in grants]

    async def list_grants_by_owner(self, session: AsyncSession, owner_id: str) -> list[GrantInfo]:
        grants = await self.ledger.list_grants_by_owner(session, normalize_identity(owner_id))
        return [grant_to_info(g) for g in grants]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reconcile(self, session: AsyncSession) -> dict[str, int]:
        """Remove overlay rows and share links left behind by earlier failures."""
        counts = await self.overlay.purge_orphans(session, self._item_model)
        counts["orphan_share_links"] = await self.links.purge_orphans(session, self._item_model)
        return counts
