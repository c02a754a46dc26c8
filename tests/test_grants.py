"""Tests for GrantLedger and ConsistencyGuard."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from vaultshare.core.exceptions import (
    AlreadySharedError,
    ForbiddenError,
    RecipientMustPurgeFirstError,
)
from vaultshare.core.grants import GrantLedger
from vaultshare.core.guard import ConsistencyGuard
from vaultshare.core.overlay import VisibilityOverlay
from vaultshare.models import Grant, HiddenMarker, Item, OwnerTombstone, RecipientTombstone

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

ALICE = "alice@x.com"
BOB = "bob@x.com"
CAROL = "carol@x.com"


@pytest.fixture
def overlay() -> VisibilityOverlay:
    return VisibilityOverlay(Grant, OwnerTombstone, RecipientTombstone, HiddenMarker, "sqlite")


@pytest.fixture
def guard(overlay: VisibilityOverlay) -> ConsistencyGuard:
    return ConsistencyGuard(overlay)


@pytest.fixture
def ledger(overlay: VisibilityOverlay, guard: ConsistencyGuard) -> GrantLedger:
    return GrantLedger(Grant, overlay, guard)


async def _item(
    session: AsyncSession,
    item_id: str,
    *,
    parent_id: str | None = None,
    is_folder: bool = False,
) -> Item:
    item = Item(
        id=item_id,
        owner_id=ALICE,
        name=f"{item_id}.pdf",
        size_bytes=10,
        mime_type="application/pdf",
        parent_id=parent_id,
        is_folder=is_folder,
    )
    session.add(item)
    await session.flush()
    return item


# ---------------------------------------------------------------------------
# create_grant
# ---------------------------------------------------------------------------


class TestCreateGrant:
    async def test_snapshot_fields(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        grant = await ledger.create_grant(async_session, item, ALICE, BOB, wrapped_key=b"k")

        assert grant.item_id == "f1"
        assert grant.recipient_id == BOB
        assert grant.granted_by == ALICE
        assert grant.item_name == "f1.pdf"
        assert grant.item_size == 10
        assert grant.item_type == "application/pdf"
        assert grant.permission == "view"
        assert grant.wrapped_key == b"k"

    async def test_folder_item_type(self, ledger: GrantLedger, async_session: AsyncSession):
        folder = await _item(async_session, "d1", is_folder=True)
        grant = await ledger.create_grant(async_session, folder, ALICE, BOB)
        assert grant.item_type == "folder"

    async def test_invalid_permission(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        with pytest.raises(ValueError, match="Invalid permission"):
            await ledger.create_grant(async_session, item, ALICE, BOB, permission="edit")

    async def test_non_owner_forbidden(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        with pytest.raises(ForbiddenError):
            await ledger.create_grant(async_session, item, CAROL, BOB)

    async def test_self_share_forbidden(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        with pytest.raises(ForbiddenError, match="its owner"):
            await ledger.create_grant(async_session, item, ALICE, ALICE)

    async def test_duplicate_is_already_shared(
        self, ledger: GrantLedger, async_session: AsyncSession
    ):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        with pytest.raises(AlreadySharedError) as exc_info:
            await ledger.create_grant(async_session, item, ALICE, BOB)
        assert exc_info.value.informational is True

    async def test_inherits_parent_trashed_state(
        self, ledger: GrantLedger, overlay: VisibilityOverlay, async_session: AsyncSession
    ):
        folder = await _item(async_session, "d1", is_folder=True)
        await ledger.create_grant(async_session, folder, ALICE, BOB)
        await overlay.mark_recipient_tombstone(async_session, "d1", BOB)

        child = await _item(async_session, "f2", parent_id="d1")
        await ledger.create_grant(async_session, child, ALICE, BOB)
        assert await overlay.has_recipient_tombstone(async_session, "f2", BOB) is True

    async def test_parent_trashed_for_other_recipient_only(
        self, ledger: GrantLedger, overlay: VisibilityOverlay, async_session: AsyncSession
    ):
        folder = await _item(async_session, "d1", is_folder=True)
        await ledger.create_grant(async_session, folder, ALICE, BOB)
        await ledger.create_grant(async_session, folder, ALICE, CAROL)
        await overlay.mark_recipient_tombstone(async_session, "d1", BOB)

        child = await _item(async_session, "f2", parent_id="d1")
        await ledger.create_grant(async_session, child, ALICE, CAROL)
        assert await overlay.has_recipient_tombstone(async_session, "f2", CAROL) is False

    async def test_orphaned_parent_tombstone_not_inherited(
        self,
        ledger: GrantLedger,
        overlay: VisibilityOverlay,
        async_session: AsyncSession,
        caplog: pytest.LogCaptureFixture,
    ):
        await _item(async_session, "d1", is_folder=True)
        await overlay.mark_recipient_tombstone(async_session, "d1", BOB)

        child = await _item(async_session, "f2", parent_id="d1")
        with caplog.at_level(logging.WARNING, logger="vaultshare.core.grants"):
            await ledger.create_grant(async_session, child, ALICE, BOB)

        assert await overlay.has_recipient_tombstone(async_session, "f2", BOB) is False
        assert await overlay.get_recipient_tombstone(async_session, "d1", BOB) is None
        visible = await overlay.list_visible(async_session, BOB)
        assert [v.item_id for v in visible] == ["f2"]
        assert "Orphaned recipient tombstone" in caplog.text

    async def test_stale_markers_cleared_before_share(
        self, ledger: GrantLedger, overlay: VisibilityOverlay, async_session: AsyncSession
    ):
        item = await _item(async_session, "f1")
        await overlay.mark_owner_tombstone(async_session, "f1", [BOB])
        await overlay.mark_hidden(async_session, "f1", BOB)

        await ledger.create_grant(async_session, item, ALICE, BOB)
        visible = await overlay.list_visible(async_session, BOB)
        assert [v.item_id for v in visible] == ["f1"]


# ---------------------------------------------------------------------------
# delete_grant(s)
# ---------------------------------------------------------------------------


class TestDeleteGrant:
    async def test_delete_cascades_markers(
        self, ledger: GrantLedger, overlay: VisibilityOverlay, async_session: AsyncSession
    ):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        await overlay.mark_owner_tombstone(async_session, "f1", [BOB])
        await overlay.mark_recipient_tombstone(async_session, "f1", BOB)
        await overlay.mark_hidden(async_session, "f1", BOB)

        assert await ledger.delete_grant(async_session, "f1", BOB) == 1
        assert await ledger.get_grant(async_session, "f1", BOB) is None
        assert await overlay.has_owner_tombstone(async_session, "f1", BOB) is False
        assert await overlay.get_recipient_tombstone(async_session, "f1", BOB) is None
        assert await overlay.is_hidden(async_session, "f1", BOB) is False

    async def test_delete_is_idempotent(self, ledger: GrantLedger, async_session: AsyncSession):
        assert await ledger.delete_grant(async_session, "f1", BOB) == 0

    async def test_delete_all_recipients(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        await ledger.create_grant(async_session, item, ALICE, CAROL)
        assert await ledger.delete_grants(async_session, ["f1"]) == 2
        assert await ledger.list_recipients(async_session, "f1") == []

    async def test_delete_leaves_other_recipients(
        self, ledger: GrantLedger, async_session: AsyncSession
    ):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        await ledger.create_grant(async_session, item, ALICE, CAROL)
        await ledger.delete_grants(async_session, ["f1"], BOB)
        assert await ledger.list_recipients(async_session, "f1") == [CAROL]


# ---------------------------------------------------------------------------
# Read paths
# ---------------------------------------------------------------------------


class TestReadPaths:
    async def test_list_by_recipient_and_owner(
        self, ledger: GrantLedger, async_session: AsyncSession
    ):
        f1 = await _item(async_session, "f1")
        f2 = await _item(async_session, "f2")
        await ledger.create_grant(async_session, f1, ALICE, BOB)
        await ledger.create_grant(async_session, f2, ALICE, BOB)
        await ledger.create_grant(async_session, f2, ALICE, CAROL)

        assert {g.item_id for g in await ledger.list_grants_by_recipient(async_session, BOB)} == {
            "f1",
            "f2",
        }
        assert len(await ledger.list_grants_by_owner(async_session, ALICE)) == 3
        assert len(await ledger.list_grants_for(async_session, "f2")) == 2

    async def test_recipient_item_ids_keeps_input_order(
        self, ledger: GrantLedger, async_session: AsyncSession
    ):
        for item_id in ("a", "b", "c"):
            item = await _item(async_session, item_id)
            if item_id != "b":
                await ledger.create_grant(async_session, item, ALICE, BOB)

        held = await ledger.recipient_item_ids(async_session, ["c", "b", "a"], BOB)
        assert held == ["c", "a"]

    async def test_refresh_metadata(self, ledger: GrantLedger, async_session: AsyncSession):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        item.name = "renamed.pdf"
        item.size_bytes = 99

        assert await ledger.refresh_metadata(async_session, item) == 1
        grant = await ledger.get_grant(async_session, "f1", BOB)
        assert grant is not None
        assert grant.item_name == "renamed.pdf"
        assert grant.item_size == 99


# ---------------------------------------------------------------------------
# ConsistencyGuard
# ---------------------------------------------------------------------------


class TestGuard:
    def test_require_owner_case_insensitive(self):
        item = Item(id="f1", owner_id=ALICE, name="f1")
        ConsistencyGuard.require_owner(item, "Alice@X.com")

    def test_require_owner_mismatch(self):
        item = Item(id="f1", owner_id=ALICE, name="f1")
        with pytest.raises(ForbiddenError):
            ConsistencyGuard.require_owner(item, BOB)

    def test_owner_or_recipient(self):
        item = Item(id="f1", owner_id=ALICE, name="f1")
        ConsistencyGuard.require_owner_or_recipient(item, ALICE, BOB)
        ConsistencyGuard.require_owner_or_recipient(item, BOB, BOB)
        with pytest.raises(ForbiddenError):
            ConsistencyGuard.require_owner_or_recipient(item, CAROL, BOB)

    def test_require_distinct(self):
        with pytest.raises(ForbiddenError):
            ConsistencyGuard.require_distinct(ALICE, "ALICE@x.com")

    async def test_reshare_blocked_by_live_tombstone(
        self,
        ledger: GrantLedger,
        guard: ConsistencyGuard,
        overlay: VisibilityOverlay,
        async_session: AsyncSession,
    ):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        await overlay.mark_recipient_tombstone(async_session, "f1", BOB)

        with pytest.raises(RecipientMustPurgeFirstError) as exc_info:
            await guard.check_reshare(async_session, ledger, "f1", BOB)
        assert BOB in exc_info.value.user_message
        assert exc_info.value.informational is False

    async def test_orphan_tombstone_cleared(
        self,
        ledger: GrantLedger,
        guard: ConsistencyGuard,
        overlay: VisibilityOverlay,
        async_session: AsyncSession,
    ):
        await overlay.mark_recipient_tombstone(async_session, "f1", BOB)

        await guard.check_reshare(async_session, ledger, "f1", BOB)
        assert await overlay.get_recipient_tombstone(async_session, "f1", BOB) is None

    async def test_existing_grant_already_shared(
        self, ledger: GrantLedger, guard: ConsistencyGuard, async_session: AsyncSession
    ):
        item = await _item(async_session, "f1")
        await ledger.create_grant(async_session, item, ALICE, BOB)
        with pytest.raises(AlreadySharedError):
            await guard.check_reshare(async_session, ledger, "f1", BOB)
