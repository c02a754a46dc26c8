"""VaultConfig — database and model configuration for ``SharingVault``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vaultshare.models.grants import GrantBase
    from vaultshare.models.items import ItemBase
    from vaultshare.models.links import ShareLinkBase
    from vaultshare.models.overlay import (
        HiddenMarkerBase,
        OwnerTombstoneBase,
        RecipientTombstoneBase,
    )

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///vaultshare.db"

_TRUE = ("1", "true", "yes", "on")


@dataclass
class VaultConfig:
    """Configuration for a vault deployment."""

    database_url: str = DEFAULT_DATABASE_URL
    """SQLAlchemy async URL, e.g. ``postgresql+asyncpg://host/db``."""

    echo: bool = False
    """Log every SQL statement through SQLAlchemy's engine logger."""

    create_tables: bool = False
    """Run ``SQLModel.metadata.create_all`` when the vault opens."""

    item_model: type[ItemBase] | None = None
    grant_model: type[GrantBase] | None = None
    owner_tombstone_model: type[OwnerTombstoneBase] | None = None
    recipient_tombstone_model: type[RecipientTombstoneBase] | None = None
    hidden_model: type[HiddenMarkerBase] | None = None
    share_link_model: type[ShareLinkBase] | None = None

    @classmethod
    def from_env(cls, prefix: str = "VAULTSHARE_") -> VaultConfig:
        """Build a config from ``{prefix}DATABASE_URL``, ``{prefix}ECHO``, ``{prefix}CREATE_TABLES``."""
        return cls(
            database_url=os.environ.get(f"{prefix}DATABASE_URL", DEFAULT_DATABASE_URL),
            echo=os.environ.get(f"{prefix}ECHO", "").lower() in _TRUE,
            create_tables=os.environ.get(f"{prefix}CREATE_TABLES", "").lower() in _TRUE,
        )
