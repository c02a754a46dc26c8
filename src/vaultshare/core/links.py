"""ShareLinkLedger — time-limited public links to single files.

Stateless service that receives the link model at construction and a
session at call time, following the GrantLedger pattern.  Ownership is
checked by the caller.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from .exceptions import (
    InvalidStateError,
    ShareLinkExpiredError,
    ShareLinkRevokedError,
    StorageFailureError,
)
from .utils import as_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vaultshare.models.items import ItemBase
    from vaultshare.models.links import ShareLinkBase

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24
"""Random bytes per token; ``token_urlsafe`` encodes them as 32 characters."""

_TOKEN_ATTEMPTS = 5


class ShareLinkLedger:
    """Create, list, revoke, and resolve share links."""

    def __init__(self, link_model: type[ShareLinkBase]) -> None:
        self._link_model = link_model

    @property
    def link_model(self) -> type[ShareLinkBase]:
        return self._link_model

    async def create_link(
        self,
        session: AsyncSession,
        item: ItemBase,
        created_by: str,
        expires_at: datetime,
        *,
        shared_key: bytes | None = None,
    ) -> ShareLinkBase:
        """Create a link to *item* valid until *expires_at*.

        Naive datetimes are taken as UTC.  Raises ``ValueError`` unless
        *expires_at* is in the future and ``InvalidStateError`` for
        folders.  Flushes but does not commit.
        """
        expires_at = as_utc(expires_at)
        if expires_at <= datetime.now(UTC):
            raise ValueError("expires_at must be in the future")
        if item.is_folder:
            raise InvalidStateError("Share links are supported for files only")

        link = self._link_model(
            item_id=item.id,
            token=await self._unused_token(session),
            created_by=created_by,
            expires_at=expires_at,
            shared_key=shared_key,
        )
        session.add(link)
        await session.flush()
        return link

    async def _unused_token(self, session: AsyncSession) -> str:
        for _ in range(_TOKEN_ATTEMPTS):
            token = secrets.token_urlsafe(TOKEN_BYTES)
            if await self.get_by_token(session, token) is None:
                return token
            logger.warning("Share link token collision; drawing another")
        raise StorageFailureError("Could not allocate a unique share link token")

    async def get_link(self, session: AsyncSession, link_id: str) -> ShareLinkBase | None:
        model = self._link_model
        result = await session.execute(select(model).where(model.id == link_id))
        return result.scalar_one_or_none()

    async def get_by_token(self, session: AsyncSession, token: str) -> ShareLinkBase | None:
        model = self._link_model
        result = await session.execute(select(model).where(model.token == token))
        return result.scalar_one_or_none()

    async def list_links(
        self,
        session: AsyncSession,
        created_by: str,
        item_id: str | None = None,
    ) -> list[ShareLinkBase]:
        """Links created by *created_by*, newest first, optionally for one item."""
        model = self._link_model
        query = select(model).where(model.created_by == created_by)
        if item_id is not None:
            query = query.where(model.item_id == item_id)
        result = await session.execute(query.order_by(model.created_at.desc()))  # type: ignore[attr-defined]
        return list(result.scalars().all())

    async def revoke(self, session: AsyncSession, link: ShareLinkBase) -> bool:
        """Stamp ``revoked_at``. Returns False if the link was already revoked."""
        if link.revoked_at is not None:
            return False
        link.revoked_at = datetime.now(UTC)
        session.add(link)
        await session.flush()
        return True

    @staticmethod
    def check_usable(link: ShareLinkBase) -> None:
        """Raise if *link* was revoked or has expired."""
        if link.revoked_at is not None:
            raise ShareLinkRevokedError(f"Share link {link.id} was revoked")
        if as_utc(link.expires_at) <= datetime.now(UTC):
            raise ShareLinkExpiredError(f"Share link {link.id} expired")

    async def delete_links(self, session: AsyncSession, item_ids: list[str]) -> int:
        """Delete every link to *item_ids*. Returns the number removed."""
        if not item_ids:
            return 0
        model = self._link_model
        result = await session.execute(
            delete(model).where(model.item_id.in_(item_ids))  # type: ignore[attr-defined]
        )
        return result.rowcount or 0

    async def purge_orphans(self, session: AsyncSession, item_model: type[ItemBase]) -> int:
        """Delete links whose item no longer exists."""
        model = self._link_model
        result = await session.execute(
            delete(model)
            .where(model.item_id.not_in(select(item_model.id)))  # type: ignore[attr-defined,arg-type]
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount or 0
        if removed:
            logger.warning("Removed %d share links to missing items", removed)
        return removed
