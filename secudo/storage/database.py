"""Async SQLite storage layer for Secudo.

Uses aiosqlite for async access. Repository pattern for clean separation.

The base schema deliberately omits ``projects.deleted_at``; migration
``001_project_trash`` adds it.  :meth:`Database.supports_project_deleted_at`
introspects the live schema so databases that never ran the migration keep
working with soft delete disabled.
"""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from secudo.core.models import (
    GroupMember,
    ModelNode,
    NodeCategory,
    Project,
    ProjectMembership,
    Savepoint,
    User,
    UserGroup,
    to_timestamp,
    utcnow,
)
from secudo.exceptions import ConflictError, StorageError

DEFAULT_DB_PATH = Path(os.environ.get("SEC_DB_PATH", "secudo.db"))

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    name TEXT,
    first_name TEXT,
    last_name TEXT,
    role TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    norm TEXT NOT NULL DEFAULT 'IEC 62443',
    min_role_to_view TEXT NOT NULL DEFAULT 'any',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_memberships (
    project_id TEXT NOT NULL REFERENCES projects (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (project_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_memberships_user
    ON project_memberships (user_id);

CREATE TABLE IF NOT EXISTS model_nodes (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects (id) ON DELETE CASCADE,
    parent_node_id TEXT REFERENCES model_nodes (id) ON DELETE SET NULL,
    name TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'Component',
    description TEXT,
    notes TEXT,
    created_by_user_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_model_nodes_project
    ON model_nodes (project_id);

CREATE TABLE IF NOT EXISTS savepoints (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects (id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    model_json TEXT NOT NULL,
    created_by_user_id TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_savepoints_project
    ON savepoints (project_id, created_at);

CREATE TABLE IF NOT EXISTS user_groups (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    created_by_user_id TEXT REFERENCES users (id) ON DELETE SET NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_group_memberships (
    group_id TEXT NOT NULL REFERENCES user_groups (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    added_at TEXT NOT NULL,
    PRIMARY KEY (group_id, user_id)
);
"""

_PROJECT_COLUMNS = ("name", "description", "norm", "min_role_to_view")
_NODE_COLUMNS = ("name", "description", "notes", "parent_node_id")
_GROUP_COLUMNS = ("name", "description")


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def run_migrations(self) -> list[str]:
        """Apply pending SQL migrations. Returns list of applied versions."""
        from secudo.storage.migrations import apply_migrations

        return await apply_migrations(self.db)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Database not connected. Call connect() first.")
        return self._db

    async def supports_project_deleted_at(self) -> bool:
        """Return True when the ``projects`` table has the ``deleted_at`` column."""
        cursor = await self.db.execute("PRAGMA table_info(projects)")
        rows = await cursor.fetchall()
        return any(row["name"] == "deleted_at" for row in rows)

    # --- User ---

    async def insert_user(self, user: User, password_hash: str | None = None) -> None:
        try:
            await self.db.execute(
                """INSERT INTO users
                   (id, email, password_hash, name, first_name, last_name, role, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user.id,
                    user.email,
                    password_hash,
                    user.name,
                    user.first_name,
                    user.last_name,
                    user.role,
                    to_timestamp(user.created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Email already registered") from exc
        await self.db.commit()

    async def get_user(self, user_id: str) -> User | None:
        cursor = await self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        cursor = await self.db.execute("SELECT * FROM users WHERE email = ?", (email,))
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def get_password_hash(self, user_id: str) -> str | None:
        cursor = await self.db.execute("SELECT password_hash FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        return row["password_hash"] if row else None

    async def set_password_hash(self, user_id: str, password_hash: str) -> None:
        await self.db.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?", (password_hash, user_id)
        )
        await self.db.commit()

    async def list_users(self) -> list[User]:
        cursor = await self.db.execute("SELECT * FROM users ORDER BY created_at ASC, rowid ASC")
        rows = await cursor.fetchall()
        return [self._row_to_user(r) for r in rows]

    async def update_user_role(self, user_id: str, role: str) -> None:
        await self.db.execute("UPDATE users SET role = ? WHERE id = ?", (role, user_id))
        await self.db.commit()

    async def count_admin_users(self) -> int:
        cursor = await self.db.execute(
            "SELECT COUNT(*) FROM users WHERE lower(role) = 'admin'"
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def existing_user_ids(self, user_ids: list[str]) -> set[str]:
        """Return the subset of *user_ids* that belong to registered users."""
        if not user_ids:
            return set()
        placeholders = ", ".join("?" for _ in user_ids)
        cursor = await self.db.execute(
            f"SELECT id FROM users WHERE id IN ({placeholders})",  # noqa: S608
            list(user_ids),
        )
        rows = await cursor.fetchall()
        return {r["id"] for r in rows}

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            role=row["role"],
            created_at=row["created_at"],
        )

    # --- Project ---

    async def insert_project(self, project: Project, creator_user_id: str) -> None:
        """Insert *project* and its creator's Admin membership atomically."""
        try:
            await self.db.execute(
                """INSERT INTO projects
                   (id, name, description, norm, min_role_to_view, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    project.id,
                    project.name,
                    project.description,
                    project.norm,
                    project.min_role_to_view,
                    to_timestamp(project.created_at),
                    to_timestamp(project.updated_at),
                ),
            )
            await self.db.execute(
                """INSERT INTO project_memberships (project_id, user_id, role, created_at)
                   VALUES (?, ?, 'Admin', ?)""",
                (project.id, creator_user_id, to_timestamp(project.created_at)),
            )
        except sqlite3.IntegrityError:
            await self.db.rollback()
            raise
        await self.db.commit()

    async def get_project(
        self, project_id: str, *, active_only: bool = False, trashed_only: bool = False
    ) -> Project | None:
        where = "id = ?"
        if active_only:
            where += " AND deleted_at IS NULL"
        elif trashed_only:
            where += " AND deleted_at IS NOT NULL"
        cursor = await self.db.execute(
            f"SELECT * FROM projects WHERE {where}",  # noqa: S608
            (project_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_project(row) if row else None

    async def get_project_with_membership(
        self, project_id: str, user_id: str, *, active_only: bool = False
    ) -> tuple[Project, str | None] | None:
        """Fetch a project and the caller's raw membership role in one query."""
        where = "p.id = ?"
        if active_only:
            where += " AND p.deleted_at IS NULL"
        cursor = await self.db.execute(
            "SELECT p.*, m.role AS membership_role FROM projects p "
            "LEFT JOIN project_memberships m ON m.project_id = p.id AND m.user_id = ? "
            f"WHERE {where}",  # noqa: S608
            (user_id, project_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_project(row), row["membership_role"]

    async def list_projects(self, *, active_only: bool = False) -> list[Project]:
        where = " WHERE deleted_at IS NULL" if active_only else ""
        cursor = await self.db.execute(
            f"SELECT * FROM projects{where} ORDER BY updated_at DESC"  # noqa: S608
        )
        rows = await cursor.fetchall()
        return [self._row_to_project(r) for r in rows]

    async def list_trashed_projects(self, member_user_id: str | None = None) -> list[Project]:
        """List trashed projects, newest deletion first.

        When *member_user_id* is given only projects where that user holds a
        membership are returned.
        """
        params: list[Any] = []
        sql = "SELECT p.* FROM projects p WHERE p.deleted_at IS NOT NULL"
        if member_user_id is not None:
            sql += (
                " AND EXISTS (SELECT 1 FROM project_memberships m"
                " WHERE m.project_id = p.id AND m.user_id = ?)"
            )
            params.append(member_user_id)
        sql += " ORDER BY p.deleted_at DESC"
        cursor = await self.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_project(r) for r in rows]

    async def update_project(self, project_id: str, fields: dict[str, Any]) -> None:
        updates = {k: v for k, v in fields.items() if k in _PROJECT_COLUMNS}
        updates["updated_at"] = to_timestamp(utcnow())
        assignments = ", ".join(f"{column} = ?" for column in updates)
        await self.db.execute(
            f"UPDATE projects SET {assignments} WHERE id = ?",  # noqa: S608
            [*updates.values(), project_id],
        )
        await self.db.commit()

    async def set_project_deleted_at(self, project_id: str, deleted_at: datetime | None) -> None:
        await self.db.execute(
            "UPDATE projects SET deleted_at = ? WHERE id = ?",
            (to_timestamp(deleted_at) if deleted_at else None, project_id),
        )
        await self.db.commit()

    async def delete_project(self, project_id: str) -> bool:
        cursor = await self.db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        await self.db.commit()
        return cursor.rowcount > 0

    async def purge_deleted_projects(self, cutoff: datetime) -> int:
        """Hard-delete projects trashed at or before *cutoff*. Returns rows removed."""
        cursor = await self.db.execute(
            "DELETE FROM projects WHERE deleted_at IS NOT NULL AND deleted_at <= ?",
            (to_timestamp(cutoff),),
        )
        await self.db.commit()
        return cursor.rowcount

    def _row_to_project(self, row: aiosqlite.Row) -> Project:
        keys = row.keys()
        return Project(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            norm=row["norm"],
            min_role_to_view=row["min_role_to_view"],
            deleted_at=row["deleted_at"] if "deleted_at" in keys else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # --- ProjectMembership ---

    async def insert_membership(self, membership: ProjectMembership) -> None:
        try:
            await self.db.execute(
                """INSERT INTO project_memberships (project_id, user_id, role, created_at)
                   VALUES (?, ?, ?, ?)""",
                (
                    membership.project_id,
                    membership.user_id,
                    membership.role,
                    to_timestamp(membership.created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("User is already a project member") from exc
        await self.db.commit()

    async def get_membership(self, project_id: str, user_id: str) -> ProjectMembership | None:
        cursor = await self.db.execute(
            "SELECT * FROM project_memberships WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        row = await cursor.fetchone()
        return self._row_to_membership(row) if row else None

    async def list_members(self, project_id: str) -> list[ProjectMembership]:
        """Members of a project, earliest first (index 0 is the creator)."""
        cursor = await self.db.execute(
            "SELECT m.*, u.email AS user_email, u.name AS user_name "
            "FROM project_memberships m JOIN users u ON u.id = m.user_id "
            "WHERE m.project_id = ? ORDER BY m.created_at ASC, m.rowid ASC",
            (project_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_membership(r) for r in rows]

    async def update_membership_role(self, project_id: str, user_id: str, role: str) -> None:
        await self.db.execute(
            "UPDATE project_memberships SET role = ? WHERE project_id = ? AND user_id = ?",
            (role, project_id, user_id),
        )
        await self.db.commit()

    async def delete_membership(self, project_id: str, user_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM project_memberships WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def replace_memberships(self, project_id: str, roles: dict[str, str]) -> None:
        """Make *roles* the project's exact member list in one transaction.

        Users absent from *roles* lose their membership.  Kept members keep
        their ``created_at``, so the creator stays first.
        """
        now = to_timestamp(utcnow())
        keep = list(roles)
        sql = "DELETE FROM project_memberships WHERE project_id = ?"
        if keep:
            sql += f" AND user_id NOT IN ({', '.join('?' for _ in keep)})"
        try:
            await self.db.execute(sql, [project_id, *keep])
            await self.db.executemany(
                """INSERT INTO project_memberships (project_id, user_id, role, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (project_id, user_id) DO UPDATE SET role = excluded.role""",
                [(project_id, user_id, role, now) for user_id, role in roles.items()],
            )
        except sqlite3.Error:
            await self.db.rollback()
            raise
        await self.db.commit()

    def _row_to_membership(self, row: aiosqlite.Row) -> ProjectMembership:
        keys = row.keys()
        return ProjectMembership(
            project_id=row["project_id"],
            user_id=row["user_id"],
            role=row["role"],
            created_at=row["created_at"],
            user_email=row["user_email"] if "user_email" in keys else None,
            user_name=row["user_name"] if "user_name" in keys else None,
        )

    # --- ModelNode ---

    async def insert_node(self, node: ModelNode) -> None:
        await self.db.execute(
            """INSERT INTO model_nodes
               (id, project_id, parent_node_id, name, category, description, notes,
                created_by_user_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                node.id,
                node.project_id,
                node.parent_node_id,
                node.name,
                node.category.value,
                node.description,
                node.notes,
                node.created_by_user_id,
                to_timestamp(node.created_at),
                to_timestamp(node.updated_at),
            ),
        )
        await self.db.commit()

    async def get_node(self, node_id: str) -> ModelNode | None:
        cursor = await self.db.execute("SELECT * FROM model_nodes WHERE id = ?", (node_id,))
        row = await cursor.fetchone()
        return self._row_to_node(row) if row else None

    async def list_nodes(self, project_id: str) -> list[ModelNode]:
        cursor = await self.db.execute(
            "SELECT * FROM model_nodes WHERE project_id = ? ORDER BY created_at ASC, rowid ASC",
            (project_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_node(r) for r in rows]

    async def find_container_by_name(self, project_id: str, name: str) -> ModelNode | None:
        cursor = await self.db.execute(
            "SELECT * FROM model_nodes WHERE project_id = ? AND category = ? "
            "AND lower(name) = lower(?) ORDER BY created_at ASC, rowid ASC LIMIT 1",
            (project_id, NodeCategory.CONTAINER.value, name),
        )
        row = await cursor.fetchone()
        return self._row_to_node(row) if row else None

    async def update_node(self, node_id: str, fields: dict[str, Any]) -> None:
        updates = {k: v for k, v in fields.items() if k in _NODE_COLUMNS}
        updates["updated_at"] = to_timestamp(utcnow())
        assignments = ", ".join(f"{column} = ?" for column in updates)
        await self.db.execute(
            f"UPDATE model_nodes SET {assignments} WHERE id = ?",  # noqa: S608
            [*updates.values(), node_id],
        )
        await self.db.commit()

    async def delete_node(self, node_id: str) -> bool:
        cursor = await self.db.execute("DELETE FROM model_nodes WHERE id = ?", (node_id,))
        await self.db.commit()
        return cursor.rowcount > 0

    def _row_to_node(self, row: aiosqlite.Row) -> ModelNode:
        return ModelNode(
            id=row["id"],
            project_id=row["project_id"],
            parent_node_id=row["parent_node_id"],
            name=row["name"],
            category=NodeCategory(row["category"]),
            description=row["description"],
            notes=row["notes"],
            created_by_user_id=row["created_by_user_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # --- Savepoint ---

    async def insert_savepoint(self, savepoint: Savepoint) -> None:
        await self.db.execute(
            """INSERT INTO savepoints
               (id, project_id, title, model_json, created_by_user_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                savepoint.id,
                savepoint.project_id,
                savepoint.title,
                savepoint.model_json,
                savepoint.created_by_user_id,
                to_timestamp(savepoint.created_at),
            ),
        )
        await self.db.commit()

    async def list_savepoints(self, project_id: str) -> list[Savepoint]:
        cursor = await self.db.execute(
            "SELECT * FROM savepoints WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        )
        rows = await cursor.fetchall()
        return [
            Savepoint(
                id=r["id"],
                project_id=r["project_id"],
                title=r["title"],
                model_json=r["model_json"],
                created_by_user_id=r["created_by_user_id"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    # --- UserGroup ---

    async def insert_group(self, group: UserGroup, member_ids: list[str]) -> None:
        """Insert *group* with its initial members atomically."""
        created_at = to_timestamp(group.created_at)
        try:
            await self.db.execute(
                """INSERT INTO user_groups (id, name, description, created_by_user_id, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (group.id, group.name, group.description, group.created_by_user_id, created_at),
            )
            await self.db.executemany(
                """INSERT OR IGNORE INTO user_group_memberships (group_id, user_id, added_at)
                   VALUES (?, ?, ?)""",
                [(group.id, user_id, created_at) for user_id in member_ids],
            )
        except sqlite3.IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError("Group name already exists") from exc
        await self.db.commit()

    async def get_group(self, group_id: str) -> UserGroup | None:
        cursor = await self.db.execute("SELECT * FROM user_groups WHERE id = ?", (group_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        members = await self._group_members([group_id])
        return self._row_to_group(row, members.get(group_id, []))

    async def list_groups(self) -> list[UserGroup]:
        """All groups ordered by name, each with its members."""
        cursor = await self.db.execute(
            "SELECT * FROM user_groups ORDER BY name ASC, created_at ASC"
        )
        rows = await cursor.fetchall()
        members = await self._group_members([r["id"] for r in rows])
        return [self._row_to_group(r, members.get(r["id"], [])) for r in rows]

    async def update_group(self, group_id: str, fields: dict[str, Any]) -> bool:
        updates = {k: v for k, v in fields.items() if k in _GROUP_COLUMNS}
        if not updates:
            return await self.get_group(group_id) is not None
        assignments = ", ".join(f"{column} = ?" for column in updates)
        try:
            cursor = await self.db.execute(
                f"UPDATE user_groups SET {assignments} WHERE id = ?",  # noqa: S608
                [*updates.values(), group_id],
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Group name already exists") from exc
        await self.db.commit()
        return cursor.rowcount > 0

    async def delete_group(self, group_id: str) -> bool:
        cursor = await self.db.execute("DELETE FROM user_groups WHERE id = ?", (group_id,))
        await self.db.commit()
        return cursor.rowcount > 0

    async def insert_group_member(self, group_id: str, user_id: str) -> None:
        try:
            await self.db.execute(
                """INSERT INTO user_group_memberships (group_id, user_id, added_at)
                   VALUES (?, ?, ?)""",
                (group_id, user_id, to_timestamp(utcnow())),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("User is already in this group") from exc
        await self.db.commit()

    async def delete_group_member(self, group_id: str, user_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM user_group_memberships WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def group_member_ids(self, group_ids: list[str]) -> dict[str, list[str]]:
        """Map each existing group in *group_ids* to its member user ids."""
        if not group_ids:
            return {}
        placeholders = ", ".join("?" for _ in group_ids)
        cursor = await self.db.execute(
            f"SELECT id FROM user_groups WHERE id IN ({placeholders})",  # noqa: S608
            list(group_ids),
        )
        found: dict[str, list[str]] = {r["id"]: [] for r in await cursor.fetchall()}
        for group_id, members in (await self._group_members(list(found))).items():
            found[group_id] = [m.user_id for m in members]
        return found

    async def _group_members(self, group_ids: list[str]) -> dict[str, list[GroupMember]]:
        if not group_ids:
            return {}
        placeholders = ", ".join("?" for _ in group_ids)
        cursor = await self.db.execute(
            "SELECT gm.*, u.email AS user_email, u.name AS user_name, u.role AS user_role "
            "FROM user_group_memberships gm JOIN users u ON u.id = gm.user_id "
            f"WHERE gm.group_id IN ({placeholders}) "  # noqa: S608
            "ORDER BY gm.added_at ASC, gm.rowid ASC",
            list(group_ids),
        )
        members: dict[str, list[GroupMember]] = {}
        for r in await cursor.fetchall():
            members.setdefault(r["group_id"], []).append(
                GroupMember(
                    group_id=r["group_id"],
                    user_id=r["user_id"],
                    added_at=r["added_at"],
                    user_email=r["user_email"],
                    user_name=r["user_name"],
                    user_role=r["user_role"],
                )
            )
        return members

    def _row_to_group(self, row: aiosqlite.Row, members: list[GroupMember]) -> UserGroup:
        return UserGroup(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by_user_id=row["created_by_user_id"],
            created_at=row["created_at"],
            members=members,
        )
