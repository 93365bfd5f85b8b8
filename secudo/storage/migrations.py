"""SQL migration runner for the Secudo schema.

Applied versions are recorded in a ``_migrations`` table.  Migration files
live in ``secudo/migrations/`` and are named ``NNN_name.sql``; an optional
``NNN_name_down.sql`` companion makes the step reversible.

Usage:
    from secudo.storage.migrations import apply_migrations
    await apply_migrations(db_connection)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger("secudo.migrations")

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_TRACKING_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS _migrations (
    version TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    up_sql: str
    down_sql: str | None = None


async def get_applied_versions(db: aiosqlite.Connection) -> set[str]:
    """Return the set of already-applied migration versions."""
    await db.executescript(_TRACKING_TABLE_SQL)
    cursor = await db.execute("SELECT version FROM _migrations")
    rows = await cursor.fetchall()
    return {row[0] for row in rows}


def discover_migrations(directory: Path | None = None) -> list[Migration]:
    """Load migrations from *directory*, ordered by version.

    Files whose stem has no ``NNN_`` prefix are ignored; ``_down`` files are
    attached to their forward migration rather than listed separately.
    """
    d = directory or MIGRATIONS_DIR
    if not d.is_dir():
        return []

    found: list[Migration] = []
    for path in sorted(d.glob("*.sql")):
        if path.stem.endswith("_down"):
            continue
        version, sep, name = path.stem.partition("_")
        if not sep or not version.isdigit():
            continue
        down_path = path.with_name(f"{path.stem}_down.sql")
        found.append(
            Migration(
                version=version,
                name=name,
                up_sql=path.read_text(encoding="utf-8"),
                down_sql=down_path.read_text(encoding="utf-8") if down_path.is_file() else None,
            )
        )
    return found


async def apply_migrations(
    db: aiosqlite.Connection,
    directory: Path | None = None,
    *,
    dry_run: bool = False,
) -> list[str]:
    """Apply pending migrations in order and return the versions applied."""
    applied = await get_applied_versions(db)
    pending = [m for m in discover_migrations(directory) if m.version not in applied]

    if not pending:
        logger.info("Schema up to date (%d migrations applied)", len(applied))
        return []

    versions: list[str] = []
    for migration in pending:
        if dry_run:
            logger.info("Would apply migration %s_%s", migration.version, migration.name)
            versions.append(migration.version)
            continue

        logger.info("Applying migration %s_%s", migration.version, migration.name)
        await db.executescript(migration.up_sql)
        await db.execute(
            "INSERT INTO _migrations (version, name, applied_at) VALUES (?, ?, ?)",
            (migration.version, migration.name, datetime.now(timezone.utc).isoformat()),
        )
        await db.commit()
        versions.append(migration.version)
    return versions


async def rollback_last(
    db: aiosqlite.Connection,
    directory: Path | None = None,
    *,
    dry_run: bool = False,
) -> dict:
    """Revert the most recently applied migration using its ``_down`` file.

    Returns ``{"rolled_back": version, "name": name, "dry_run": bool}`` or
    ``{"error": reason}`` when nothing can be reverted.
    """
    applied = await get_applied_versions(db)
    if not applied:
        return {"error": "No migrations to roll back"}

    latest = max(applied)
    by_version = {m.version: m for m in discover_migrations(directory)}
    migration = by_version.get(latest)
    if migration is None:
        return {"error": f"Migration {latest} is applied but its file is missing"}
    if migration.down_sql is None:
        return {"error": f"No down migration found for {latest}_{migration.name}"}

    if not dry_run:
        logger.info("Rolling back migration %s_%s", latest, migration.name)
        await db.executescript(migration.down_sql)
        await db.execute("DELETE FROM _migrations WHERE version = ?", (latest,))
        await db.commit()

    return {"rolled_back": latest, "name": migration.name, "dry_run": dry_run}


async def get_migration_status(db: aiosqlite.Connection, directory: Path | None = None) -> dict:
    """Return applied and pending migration versions."""
    applied = await get_applied_versions(db)
    known = discover_migrations(directory)
    return {
        "applied": sorted(applied),
        "pending": [m.version for m in known if m.version not in applied],
        "total": len(known),
    }
