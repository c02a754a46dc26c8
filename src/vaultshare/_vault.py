"""SharingVault — async facade running each transition in its own transaction."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vaultshare.core.dialect import get_dialect
from vaultshare.core.engine import PropagationEngine
from vaultshare.core.exceptions import StorageFailureError
from vaultshare.core.utils import normalize_identity
from vaultshare.events import EventBus, EventType, VisibilityEvent

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from vaultshare.config import VaultConfig
    from vaultshare.core.types import (
        Envelope,
        GrantInfo,
        ItemInfo,
        PropagationResult,
        SharedItemInfo,
        ShareLinkInfo,
    )
    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase
    from vaultshare.models.links import ShareLinkBase
    from vaultshare.models.overlay import (
        HiddenMarkerBase,
        OwnerTombstoneBase,
        RecipientTombstoneBase,
    )

logger = logging.getLogger(__name__)


class SharingVault:
    """Transactional entry point for the sharing state machine.

    Every public method opens one session, runs one engine call,
    commits on success and rolls back on any exception.  Mutating
    methods emit a ``VisibilityEvent`` only after the commit::

        engine = create_async_engine("postgresql+asyncpg://...")
        vault = SharingVault(engine=engine)
        await vault.create_tables()
        result = await vault.share(item_id, "alice@x.com", "bob@x.com")

    Storage errors are rolled back and re-raised as
    ``StorageFailureError``; guard failures propagate unchanged.
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        dialect: str = "sqlite",
        item_model: type[ItemBase] | None = None,
        grant_model: type[GrantBase] | None = None,
        owner_tombstone_model: type[OwnerTombstoneBase] | None = None,
        recipient_tombstone_model: type[RecipientTombstoneBase] | None = None,
        hidden_model: type[HiddenMarkerBase] | None = None,
        share_link_model: type[ShareLinkBase] | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if engine is not None:
            if session_factory is not None:
                raise ValueError("Provide engine or session_factory, not both")
            session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            dialect = get_dialect(engine)
        elif session_factory is None:
            raise ValueError("Provide engine or session_factory")

        self._db_engine = engine
        self._owns_engine = False
        self._session_factory = session_factory
        self._event_bus = event_bus or EventBus()
        self._engine = PropagationEngine(
            dialect=dialect,
            item_model=item_model,
            grant_model=grant_model,
            owner_tombstone_model=owner_tombstone_model,
            recipient_tombstone_model=recipient_tombstone_model,
            hidden_model=hidden_model,
            share_link_model=share_link_model,
        )

    @classmethod
    async def from_config(cls, config: VaultConfig, *, event_bus: EventBus | None = None) -> SharingVault:
        """Create an engine from *config* and return a vault that disposes it on close."""
        engine = create_async_engine(config.database_url, echo=config.echo)
        vault = cls(
            engine=engine,
            item_model=config.item_model,
            grant_model=config.grant_model,
            owner_tombstone_model=config.owner_tombstone_model,
            recipient_tombstone_model=config.recipient_tombstone_model,
            hidden_model=config.hidden_model,
            share_link_model=config.share_link_model,
            event_bus=event_bus,
        )
        vault._owns_engine = True
        if config.create_tables:
            await vault.create_tables()
        return vault

    @property
    def propagation(self) -> PropagationEngine:
        return self._engine

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_tables(self) -> None:
        """Create the vault tables if they do not exist."""
        if self._db_engine is None:
            raise ValueError("create_tables requires an engine")
        engine = self._engine
        models = [
            engine.item_model,
            engine.ledger.grant_model,
            engine.overlay.owner_model,
            engine.overlay.recipient_model,
            engine.overlay.hidden_model,
            engine.links.link_model,
        ]
        async with self._db_engine.begin() as conn:
            for model in models:
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )

    async def close(self) -> None:
        """Dispose the database engine if this vault created it."""
        if self._owns_engine and self._db_engine is not None:
            await self._db_engine.dispose()
            self._owns_engine = False

    # ------------------------------------------------------------------
    # Session management (one transaction per operation)
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("Transaction rolled back after storage error", exc_info=True)
            raise StorageFailureError(str(exc)) from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _emit(self, event: VisibilityEvent) -> None:
        await self._event_bus.emit(event)

    async def _mutate(
        self,
        event_type: EventType,
        actor_id: str,
        method: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> PropagationResult:
        async with self._transaction() as session:
            result = await method(session, *args, **kwargs)
        await self._emit(
            VisibilityEvent(
                event_type=event_type,
                item_ids=tuple(result.item_ids),
                recipient_ids=tuple(result.recipient_ids),
                actor_id=normalize_identity(actor_id),
            )
        )
        return result

    async def _read(self, method: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        async with self._transaction() as session:
            return await method(session, *args, **kwargs)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def create_item(
        self,
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
        return await self._mutate(
            EventType.ITEM_CREATED,
            owner_id,
            self._engine.create_item,
            owner_id,
            name,
            parent_id=parent_id,
            is_folder=is_folder,
            size_bytes=size_bytes,
            mime_type=mime_type,
            encrypted_data=encrypted_data,
            iv=iv,
            wrapped_key=wrapped_key,
            recipient_keys=recipient_keys,
            item_id=item_id,
        )

    async def create_folder(
        self,
        owner_id: str,
        name: str,
        *,
        parent_id: str | None = None,
        item_id: str | None = None,
    ) -> PropagationResult:
        return await self.create_item(owner_id, name, parent_id=parent_id, is_folder=True, item_id=item_id)

    async def rename_item(self, item_id: str, owner_id: str, name: str) -> PropagationResult:
        return await self._mutate(
            EventType.ITEM_UPDATED, owner_id, self._engine.rename_item, item_id, owner_id, name
        )

    async def move_item(
        self,
        item_id: str,
        owner_id: str,
        new_parent_id: str | None,
    ) -> PropagationResult:
        return await self._mutate(
            EventType.ITEM_UPDATED, owner_id, self._engine.move_item, item_id, owner_id, new_parent_id
        )

    # ------------------------------------------------------------------
    # Owner transitions
    # ------------------------------------------------------------------

    async def share(
        self,
        item_id: str,
        owner_id: str,
        recipient_id: str,
        *,
        wrapped_key: bytes | None = None,
        permission: str = "view",
    ) -> PropagationResult:
        return await self._mutate(
            EventType.SHARED,
            owner_id,
            self._engine.share,
            item_id,
            owner_id,
            recipient_id,
            wrapped_key=wrapped_key,
            permission=permission,
        )

    async def trash(
        self,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        return await self._mutate(
            EventType.OWNER_TRASHED, owner_id, self._engine.trash, item_id, owner_id, recursive=recursive
        )

    async def trash_subtree(self, root_id: str, owner_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.OWNER_TRASHED, owner_id, self._engine.trash_subtree, root_id, owner_id
        )

    async def restore(
        self,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        return await self._mutate(
            EventType.OWNER_RESTORED, owner_id, self._engine.restore, item_id, owner_id, recursive=recursive
        )

    async def permanently_delete(self, item_id: str, owner_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.OWNER_PURGED, owner_id, self._engine.permanently_delete, item_id, owner_id
        )

    async def empty_trash(self, owner_id: str) -> PropagationResult:
        return await self._mutate(EventType.OWNER_PURGED, owner_id, self._engine.empty_trash, owner_id)

    async def unshare_all(
        self,
        item_id: str,
        owner_id: str,
        *,
        recursive: bool = False,
    ) -> PropagationResult:
        return await self._mutate(
            EventType.UNSHARED, owner_id, self._engine.unshare_all, item_id, owner_id, recursive=recursive
        )

    async def unshare(
        self,
        item_id: str,
        recipient_id: str,
        caller_id: str,
        *,
        recursive: bool = True,
    ) -> PropagationResult:
        return await self._mutate(
            EventType.UNSHARED,
            caller_id,
            self._engine.unshare,
            item_id,
            recipient_id,
            caller_id,
            recursive=recursive,
        )

    # ------------------------------------------------------------------
    # Recipient transitions
    # ------------------------------------------------------------------

    async def recipient_trash(self, item_id: str, recipient_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.RECIPIENT_TRASHED, recipient_id, self._engine.recipient_trash, item_id, recipient_id
        )

    async def recipient_restore(self, item_id: str, recipient_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.RECIPIENT_RESTORED, recipient_id, self._engine.recipient_restore, item_id, recipient_id
        )

    async def recipient_permanently_delete(self, item_id: str, recipient_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.RECIPIENT_PURGED,
            recipient_id,
            self._engine.recipient_permanently_delete,
            item_id,
            recipient_id,
        )

    async def hide(self, item_id: str, recipient_id: str) -> PropagationResult:
        return await self._mutate(EventType.HIDDEN, recipient_id, self._engine.hide, item_id, recipient_id)

    async def unhide_many(self, item_ids: list[str], recipient_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.UNHIDDEN, recipient_id, self._engine.unhide_many, item_ids, recipient_id
        )

    # ------------------------------------------------------------------
    # Share links
    # ------------------------------------------------------------------

    async def create_share_link(
        self,
        item_id: str,
        owner_id: str,
        expires_at: datetime,
        *,
        shared_key: bytes | None = None,
    ) -> ShareLinkInfo:
        async with self._transaction() as session:
            link = await self._engine.create_share_link(
                session, item_id, owner_id, expires_at, shared_key=shared_key
            )
        await self._emit(
            VisibilityEvent(
                event_type=EventType.LINK_CREATED,
                item_ids=(link.item_id,),
                actor_id=normalize_identity(owner_id),
            )
        )
        return link

    async def revoke_share_link(self, link_id: str, owner_id: str) -> PropagationResult:
        return await self._mutate(
            EventType.LINK_REVOKED, owner_id, self._engine.revoke_share_link, link_id, owner_id
        )

    async def list_share_links(self, owner_id: str, item_id: str | None = None) -> list[ShareLinkInfo]:
        return await self._read(self._engine.list_share_links, owner_id, item_id)

    async def access_share_link(self, token: str) -> Envelope:
        """Anonymous read through a link token."""
        return await self._read(self._engine.access_share_link, token)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_envelope(self, item_id: str, caller_id: str) -> Envelope:
        return await self._read(self._engine.read_envelope, item_id, caller_id)

    async def get_item(self, item_id: str) -> ItemInfo | None:
        return await self._read(self._engine.get_item_info, item_id)

    async def list_children(self, owner_id: str, parent_id: str | None = None) -> list[ItemInfo]:
        return await self._read(self._engine.list_children, owner_id, parent_id)

    async def list_owner_trash(self, owner_id: str) -> list[ItemInfo]:
        return await self._read(self._engine.list_owner_trash, owner_id)

    async def list_visible(self, recipient_id: str) -> list[SharedItemInfo]:
        """The "Shared with me" view."""
        return await self._read(self._engine.list_visible, recipient_id)

    async def list_trashed_shares(self, recipient_id: str) -> list[SharedItemInfo]:
        return await self._read(self._engine.list_trashed_shares, recipient_id)

    async def list_hidden_shares(self, recipient_id: str) -> list[SharedItemInfo]:
        return await self._read(self._engine.list_hidden_shares, recipient_id)

    async def list_owner_tombstoned(self, recipient_id: str) -> list[SharedItemInfo]:
        return await self._read(self._engine.list_owner_tombstoned, recipient_id)

    async def list_grants_for(self, item_id: str) -> list[GrantInfo]:
        return await self._read(self._engine.list_grants_for, item_id)

    async def list_grants_by_recipient(self, recipient_id: str) -> list[GrantInfo]:
        return await self._read(self._engine.list_grants_by_recipient, recipient_id)

    async def list_grants_by_owner(self, owner_id: str) -> list[GrantInfo]:
        return await self._read(self._engine.list_grants_by_owner, owner_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reconcile(self) -> dict[str, int]:
        """Remove orphaned overlay rows; returns counts per category."""
        async with self._transaction() as session:
            counts = await self._engine.reconcile(session)
        await self._emit(VisibilityEvent(event_type=EventType.RECONCILED))
        return counts
