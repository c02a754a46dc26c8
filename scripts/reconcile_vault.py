"""Remove overlay rows left behind by earlier failures.

Usage:
    uv run python scripts/reconcile_vault.py
    uv run python scripts/reconcile_vault.py --database-url postgresql+asyncpg://host/vault
    uv run python scripts/reconcile_vault.py --verbose

The database URL defaults to ``VAULTSHARE_DATABASE_URL``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from vaultshare import SharingVault, VaultConfig, VaultError


async def reconcile(config: VaultConfig) -> dict[str, int]:
    vault = await SharingVault.from_config(config)
    try:
        return await vault.reconcile()
    finally:
        await vault.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile vault sharing overlay tables")
    parser.add_argument("--database-url", help="SQLAlchemy async URL (overrides the environment)")
    parser.add_argument("--echo", action="store_true", help="Log SQL statements")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = VaultConfig.from_env()
    if args.database_url:
        config.database_url = args.database_url
    if args.echo:
        config.echo = True

    try:
        counts = asyncio.run(reconcile(config))
    except VaultError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    for key, count in counts.items():
        print(f"{key}: {count}")
    print(f"total: {sum(counts.values())}")


if __name__ == "__main__":
    main()
