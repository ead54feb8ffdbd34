"""Persistent store: one SQLite file per project, accessed through aiosqlite.

Every logical operation runs inside ``Database.transaction()``, which opens a
connection, takes the write lock up front with ``BEGIN IMMEDIATE`` and commits
or rolls back as a unit. Validation reads and the writes they guard therefore
see the same snapshot, even with several CLI processes on one file.
"""

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from aiosqlite import Connection

from tsk.domain.models import Task, TaskStatus
from tsk.infrastructure.exceptions import (
    NotFoundError,
    SelfDependencyError,
    SelfParentError,
    StoreBusyError,
    StoreCorruptError,
    TskError,
)
from tsk.infrastructure.logger import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 3

# SQLite caps bound parameters per statement (SQLITE_MAX_VARIABLE_NUMBER)
BATCH_SIZE = 900

# sqlite3 messages meaning the store file itself cannot be used
_UNREADABLE_MARKERS = (
    "not a database",
    "malformed",
    "unable to open database file",
    "disk i/o error",
)

_TASK_COLUMNS = (
    "seq, id, title, description, status, parent_id, "
    "created_at, started_at, completed_at, updated_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_task(row: aiosqlite.Row, dependencies: list[str]) -> Task:
    """Convert database row to Task model."""
    created_at = _parse_timestamp(row["created_at"]) or datetime.now(timezone.utc)
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        status=TaskStatus(row["status"]),
        parent_id=row["parent_id"],
        dependencies=dependencies,
        created_at=created_at,
        started_at=_parse_timestamp(row["started_at"]),
        completed_at=_parse_timestamp(row["completed_at"]),
        updated_at=_parse_timestamp(row["updated_at"]) or created_at,
    )


class StoreTransaction:
    """Task and edge operations bound to one open transaction.

    The store does referential checks (NotFound, self edges) but no lifecycle
    policy: status legality and cycle detection belong to the services layer,
    which calls in here within the same transaction.
    """

    def __init__(self, conn: Connection) -> None:
        self.connection = conn

    # ----- reads -----

    async def task_exists(self, task_id: str) -> bool:
        cursor = await self.connection.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,))
        return await cursor.fetchone() is not None

    async def find_task(self, task_id: str) -> Task | None:
        """Get task by ID, or None."""
        cursor = await self.connection.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_task(row, await self.get_dependencies(task_id))

    async def get_task(self, task_id: str, role: str = "Task") -> Task:
        """Get task by ID.

        Raises:
            NotFoundError: If no task has this id
        """
        task = await self.find_task(task_id)
        if task is None:
            raise NotFoundError(task_id, role)
        return task

    async def get_parent_id(self, task_id: str) -> str | None:
        cursor = await self.connection.execute(
            "SELECT parent_id FROM tasks WHERE id = ?", (task_id,)
        )
        row = await cursor.fetchone()
        return row["parent_id"] if row else None

    async def get_children_ids(self, task_id: str) -> list[str]:
        cursor = await self.connection.execute(
            "SELECT id FROM tasks WHERE parent_id = ? ORDER BY seq ASC", (task_id,)
        )
        return [row["id"] for row in await cursor.fetchall()]

    async def get_dependencies(self, task_id: str) -> list[str]:
        """Ids this task depends on, in edge creation order."""
        cursor = await self.connection.execute(
            """
            SELECT depends_on_id FROM task_dependencies
            WHERE task_id = ?
            ORDER BY seq ASC
            """,
            (task_id,),
        )
        return [row["depends_on_id"] for row in await cursor.fetchall()]

    async def get_dependents(self, task_id: str) -> list[str]:
        """Ids of tasks that depend on this one."""
        cursor = await self.connection.execute(
            """
            SELECT task_id FROM task_dependencies
            WHERE depends_on_id = ?
            ORDER BY seq ASC
            """,
            (task_id,),
        )
        return [row["task_id"] for row in await cursor.fetchall()]

    async def get_statuses(self, task_ids: list[str]) -> dict[str, TaskStatus]:
        """Map id -> status for the given ids (missing ids are left out)."""
        statuses: dict[str, TaskStatus] = {}
        for i in range(0, len(task_ids), BATCH_SIZE):
            batch = task_ids[i : i + BATCH_SIZE]
            placeholders = ",".join("?" * len(batch))
            cursor = await self.connection.execute(
                f"SELECT id, status FROM tasks WHERE id IN ({placeholders})",
                tuple(batch),
            )
            for row in await cursor.fetchall():
                statuses[row["id"]] = TaskStatus(row["status"])
        return statuses

    async def select_tasks(self, where_sql: str = "", params: list[Any] | None = None) -> list[Task]:
        """Fetch tasks matching a WHERE fragment, always in creation order.

        Args:
            where_sql: SQL condition without the WHERE keyword (empty for all rows)
            params: Values for the placeholders in where_sql
        """
        where_clause = f"WHERE {where_sql}" if where_sql else ""
        cursor = await self.connection.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks {where_clause} ORDER BY seq ASC",
            tuple(params or []),
        )
        rows = list(await cursor.fetchall())
        dependencies = await self._dependencies_for([row["id"] for row in rows])
        return [_row_to_task(row, dependencies.get(row["id"], [])) for row in rows]

    async def _dependencies_for(self, task_ids: list[str]) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for i in range(0, len(task_ids), BATCH_SIZE):
            batch = task_ids[i : i + BATCH_SIZE]
            placeholders = ",".join("?" * len(batch))
            cursor = await self.connection.execute(
                f"""
                SELECT task_id, depends_on_id FROM task_dependencies
                WHERE task_id IN ({placeholders})
                ORDER BY seq ASC
                """,
                tuple(batch),
            )
            for row in await cursor.fetchall():
                result.setdefault(row["task_id"], []).append(row["depends_on_id"])
        return result

    async def list_ids(self) -> list[str]:
        cursor = await self.connection.execute("SELECT id FROM tasks ORDER BY seq ASC")
        return [row["id"] for row in await cursor.fetchall()]

    # ----- writes -----

    async def reserve_id(self, task_id: str) -> bool:
        """Record task_id in the issued-id ledger.

        Returns:
            True if the id was free, False if it was ever issued before
        """
        cursor = await self.connection.execute(
            "INSERT OR IGNORE INTO issued_ids (id, issued_at) VALUES (?, ?)",
            (task_id, _now()),
        )
        return cursor.rowcount == 1

    async def insert_task(
        self,
        task_id: str,
        title: str,
        description: str,
        parent_id: str | None = None,
    ) -> Task:
        """Insert a new pending task.

        Raises:
            NotFoundError: If parent_id is given but does not exist
        """
        if parent_id is not None and not await self.task_exists(parent_id):
            raise NotFoundError(parent_id, "Parent task")

        now = _now()
        await self.connection.execute(
            """
            INSERT INTO tasks (
                id, title, description, status, parent_id, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (task_id, title, description, TaskStatus.PENDING.value, parent_id, now, now),
        )
        return await self.get_task(task_id)

    async def update_description(self, task_id: str, description: str) -> Task:
        cursor = await self.connection.execute(
            "UPDATE tasks SET description = ?, updated_at = ? WHERE id = ?",
            (description, _now(), task_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(task_id)
        return await self.get_task(task_id)

    async def set_status(self, task_id: str, status: TaskStatus) -> None:
        """Write status and its lifecycle timestamp unconditionally."""
        now = _now()
        if status == TaskStatus.IN_PROGRESS:
            cursor = await self.connection.execute(
                "UPDATE tasks SET status = ?, started_at = ?, updated_at = ? WHERE id = ?",
                (status.value, now, now, task_id),
            )
        elif status == TaskStatus.DONE:
            cursor = await self.connection.execute(
                "UPDATE tasks SET status = ?, completed_at = ?, updated_at = ? WHERE id = ?",
                (status.value, now, now, task_id),
            )
        else:
            cursor = await self.connection.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, task_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(task_id)

    async def set_parent(self, task_id: str, parent_id: str | None) -> None:
        """Point task_id at a new parent, or detach it when parent_id is None.

        Raises:
            NotFoundError: If either task is missing
            SelfParentError: If parent_id == task_id
        """
        if not await self.task_exists(task_id):
            raise NotFoundError(task_id)
        if parent_id is not None:
            if not await self.task_exists(parent_id):
                raise NotFoundError(parent_id, "Parent task")
            if parent_id == task_id:
                raise SelfParentError(task_id)

        await self.connection.execute(
            "UPDATE tasks SET parent_id = ?, updated_at = ? WHERE id = ?",
            (parent_id, _now(), task_id),
        )

    async def add_dependency(self, task_id: str, depends_on_id: str) -> bool:
        """Insert the edge task_id -> depends_on_id.

        Returns:
            True if a new edge was written, False if it already existed

        Raises:
            NotFoundError: If either task is missing
            SelfDependencyError: If both ids are equal
        """
        if not await self.task_exists(task_id):
            raise NotFoundError(task_id)
        if not await self.task_exists(depends_on_id):
            raise NotFoundError(depends_on_id, "Dependency task")
        if task_id == depends_on_id:
            raise SelfDependencyError(task_id)

        now = _now()
        cursor = await self.connection.execute(
            """
            INSERT OR IGNORE INTO task_dependencies (task_id, depends_on_id, created_at)
            VALUES (?, ?, ?)
            """,
            (task_id, depends_on_id, now),
        )
        if cursor.rowcount == 0:
            return False
        await self.connection.execute(
            "UPDATE tasks SET updated_at = ? WHERE id = ?", (now, task_id)
        )
        return True

    async def delete_task(self, task_id: str) -> None:
        """Delete a task, its edges in both directions, and orphan its children.

        Children are detached (parent_id = NULL), never cascaded.

        Raises:
            NotFoundError: If the task does not exist
        """
        if not await self.task_exists(task_id):
            raise NotFoundError(task_id)

        await self.connection.execute(
            "UPDATE tasks SET parent_id = NULL, updated_at = ? WHERE parent_id = ?",
            (_now(), task_id),
        )
        await self.connection.execute(
            """
            DELETE FROM task_dependencies
            WHERE task_id = ? OR depends_on_id = ?
            """,
            (task_id, task_id),
        )
        await self.connection.execute("DELETE FROM tasks WHERE id = ?", (task_id,))


class Database:
    """SQLite store holding tasks, dependency edges and the issued-id ledger."""

    def __init__(self, db_path: Path, busy_timeout_ms: int = 5000) -> None:
        """Initialize database.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests)
            busy_timeout_ms: How long a writer waits on another writer's lock
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._initialized = False
        self._shared_conn: Connection | None = None  # For :memory: databases
        self._memory_lock = asyncio.Lock()

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    async def initialize(self) -> None:
        """Create or migrate the schema. Creates the file if missing."""
        if self._initialized:
            return

        if not self.is_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Current stores need no write lock, so readers never queue behind writers here
        async with self.transaction(write=False) as tx:
            current_version = await self._schema_version(tx.connection)
            columns = await self._table_columns(tx.connection, "tasks")
        if current_version == SCHEMA_VERSION and "status" in columns:
            self._initialized = True
            return

        async with self.transaction() as tx:
            await self._run_migrations(tx.connection)
            await self._create_tables(tx.connection)
            await self._create_indexes(tx.connection)
            await tx.connection.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )

        self._initialized = True
        logger.debug("store_initialized", path=str(self.db_path))

    async def close(self) -> None:
        """Close the shared connection of a :memory: database.

        File-based databases close connections automatically.
        """
        if self._shared_conn is not None:
            await self._shared_conn.close()
            self._shared_conn = None
            self._initialized = False

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[Connection]:
        """Get database connection with proper settings.

        For :memory: databases, maintains a shared connection to preserve data
        across operations. For file databases, creates a new connection each time.
        Connections run with isolation_level=None so transactions are explicit.
        """
        if self.is_memory:
            async with self._memory_lock:
                if self._shared_conn is None:
                    self._shared_conn = await aiosqlite.connect(":memory:", isolation_level=None)
                    self._shared_conn.row_factory = aiosqlite.Row
                    await self._shared_conn.execute("PRAGMA foreign_keys=ON")
                yield self._shared_conn
        else:
            async with aiosqlite.connect(str(self.db_path), isolation_level=None) as conn:
                conn.row_factory = aiosqlite.Row
                # SQLite defaults to foreign_keys=OFF on every new connection
                await conn.execute("PRAGMA foreign_keys=ON")
                await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
                yield conn

    @asynccontextmanager
    async def transaction(self, write: bool = True) -> AsyncIterator[StoreTransaction]:
        """Run a block as one all-or-nothing transaction.

        Args:
            write: Take the write lock immediately (BEGIN IMMEDIATE). Read-only
                blocks use a deferred BEGIN.

        Raises:
            StoreBusyError: Another connection held the lock past busy_timeout
            StoreCorruptError: The file is not a readable SQLite database
        """
        try:
            async with self._get_connection() as conn:
                await conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
                try:
                    yield StoreTransaction(conn)
                except BaseException:
                    if conn.in_transaction:
                        await conn.rollback()
                    raise
                else:
                    await conn.commit()
        except sqlite3.DatabaseError as e:
            translated = self._translate_error(e)
            if translated is None:
                raise
            raise translated from e

    def _translate_error(self, error: sqlite3.DatabaseError) -> TskError | None:
        text = str(error).lower()
        if isinstance(error, sqlite3.OperationalError) and ("locked" in text or "busy" in text):
            logger.warning("store_busy", path=str(self.db_path), error=str(error))
            return StoreBusyError(str(error))
        if any(marker in text for marker in _UNREADABLE_MARKERS):
            logger.error("store_corrupt", path=str(self.db_path), error=str(error))
            return StoreCorruptError(str(self.db_path), str(error))
        return None

    # ----- single-operation conveniences -----

    async def insert_task(
        self, task_id: str, title: str, description: str, parent_id: str | None = None
    ) -> Task:
        async with self.transaction() as tx:
            return await tx.insert_task(task_id, title, description, parent_id)

    async def get_task(self, task_id: str) -> Task:
        async with self.transaction(write=False) as tx:
            return await tx.get_task(task_id)

    async def update_description(self, task_id: str, description: str) -> Task:
        async with self.transaction() as tx:
            return await tx.update_description(task_id, description)

    async def set_status(self, task_id: str, status: TaskStatus) -> None:
        async with self.transaction() as tx:
            await tx.set_status(task_id, status)

    async def delete_task(self, task_id: str) -> None:
        async with self.transaction() as tx:
            await tx.delete_task(task_id)

    async def add_dependency(self, task_id: str, depends_on_id: str) -> bool:
        async with self.transaction() as tx:
            return await tx.add_dependency(task_id, depends_on_id)

    async def select_tasks(self, where_sql: str = "", params: list[Any] | None = None) -> list[Task]:
        async with self.transaction(write=False) as tx:
            return await tx.select_tasks(where_sql, params)

    async def list_ids(self) -> list[str]:
        async with self.transaction(write=False) as tx:
            return await tx.list_ids()

    # ----- schema -----

    async def _schema_version(self, conn: Connection) -> int | None:
        if not await self._table_columns(conn, "meta"):
            return None
        cursor = await conn.execute("SELECT value FROM meta WHERE key = 'schema_version'")
        row = await cursor.fetchone()
        if row is None or not str(row["value"]).isdigit():
            return None
        return int(row["value"])

    async def _table_columns(self, conn: Connection, table: str) -> list[str]:
        cursor = await conn.execute(f"PRAGMA table_info({table})")
        return [col["name"] for col in await cursor.fetchall()]

    async def _create_tables(self, conn: Connection) -> None:
        """Create tables if they do not exist."""
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'pending',
                parent_id TEXT,
                created_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (parent_id) REFERENCES tasks(id) ON DELETE SET NULL,
                CHECK(status IN ('pending', 'in_progress', 'done')),
                CHECK(parent_id IS NULL OR parent_id != id)
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS task_dependencies (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id TEXT NOT NULL,
                depends_on_id TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
                FOREIGN KEY (depends_on_id) REFERENCES tasks(id) ON DELETE CASCADE,
                CHECK(task_id != depends_on_id),
                UNIQUE(task_id, depends_on_id)
            )
            """
        )

        # Every id ever handed out, so removed ids are never reissued
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS issued_ids (
                id TEXT PRIMARY KEY,
                issued_at TIMESTAMP NOT NULL
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT
            )
            """
        )

    async def _create_indexes(self, conn: Connection) -> None:
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id)")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, seq)")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_task_dependencies_depends_on "
            "ON task_dependencies(depends_on_id)"
        )

    async def _run_migrations(self, conn: Connection) -> None:
        """Upgrade stores written with the legacy single-table layout.

        Legacy layout: tasks(id, title, description, done INTEGER, parent_id,
        depend_id, created_at) plus meta(schema_version). ``done`` was a
        boolean before schema_version 1 and 0/1/2 = pending/in_progress/done after.
        """
        columns = await self._table_columns(conn, "tasks")
        if not columns or "status" in columns or "done" not in columns:
            return

        legacy_version = await self._schema_version(conn) or 0

        logger.info(
            "migrating_legacy_store", path=str(self.db_path), legacy_version=legacy_version
        )

        await conn.execute("ALTER TABLE tasks RENAME TO legacy_tasks")
        await self._create_tables(conn)

        parent_expr = "parent_id" if "parent_id" in columns else "NULL AS parent_id"
        depend_expr = "depend_id" if "depend_id" in columns else "NULL AS depend_id"
        cursor = await conn.execute(
            f"""
            SELECT id, title, description, done, {parent_expr}, {depend_expr}, created_at
            FROM legacy_tasks
            ORDER BY created_at ASC, rowid ASC
            """
        )
        rows = list(await cursor.fetchall())
        known_ids = {row["id"] for row in rows}

        for row in rows:
            status = self._legacy_status(row["done"], legacy_version)
            created = _parse_legacy_timestamp(row["created_at"])
            await conn.execute(
                """
                INSERT INTO tasks (
                    id, title, description, status, parent_id,
                    created_at, completed_at, updated_at
                ) VALUES (?, ?, ?, ?, NULL, ?, ?, ?)
                """,
                (
                    row["id"],
                    row["title"],
                    row["description"] or "",
                    status.value,
                    created,
                    created if status == TaskStatus.DONE else None,
                    created,
                ),
            )
            await conn.execute(
                "INSERT OR IGNORE INTO issued_ids (id, issued_at) VALUES (?, ?)",
                (row["id"], created),
            )

        # Second pass so parents inserted later in the scan still resolve.
        # Links that would break graph invariants are dropped like dangling ones.
        statuses = {
            row["id"]: self._legacy_status(row["done"], legacy_version) for row in rows
        }
        parents: dict[str, str] = {}
        depends: dict[str, str] = {}
        for row in rows:
            task_id = row["id"]
            parent_id = row["parent_id"]
            if parent_id and parent_id in known_ids and parent_id != task_id:
                if _closes_chain(parents, task_id, parent_id):
                    logger.warning("legacy_parent_dropped", task_id=task_id, parent_id=parent_id)
                else:
                    parents[task_id] = parent_id
                    await conn.execute(
                        "UPDATE tasks SET parent_id = ? WHERE id = ?", (parent_id, task_id)
                    )
            depend_id = row["depend_id"]
            if not depend_id or depend_id not in known_ids or depend_id == task_id:
                continue
            unmet = statuses[task_id] == TaskStatus.DONE and statuses[depend_id] != TaskStatus.DONE
            if unmet or _closes_chain(depends, task_id, depend_id):
                logger.warning("legacy_dependency_dropped", task_id=task_id, depends_on=depend_id)
                continue
            depends[task_id] = depend_id
            await conn.execute(
                """
                INSERT OR IGNORE INTO task_dependencies (task_id, depends_on_id, created_at)
                VALUES (?, ?, ?)
                """,
                (task_id, depend_id, _parse_legacy_timestamp(row["created_at"])),
            )

        await conn.execute("DROP TABLE legacy_tasks")
        logger.info("legacy_store_migrated", path=str(self.db_path), tasks=len(rows))

    @staticmethod
    def _legacy_status(done: int | None, legacy_version: int) -> TaskStatus:
        value = done or 0
        if legacy_version < 1:
            return TaskStatus.DONE if value else TaskStatus.PENDING
        if value == 0:
            return TaskStatus.PENDING
        if value == 1:
            return TaskStatus.IN_PROGRESS
        return TaskStatus.DONE


def _parse_legacy_timestamp(value: str | None) -> str:
    """Legacy rows used SQLite CURRENT_TIMESTAMP ('YYYY-MM-DD HH:MM:SS', UTC)."""
    try:
        parsed = _parse_timestamp(value)
    except ValueError:
        parsed = None
    return (parsed or datetime.now(timezone.utc)).isoformat()


def _closes_chain(links: dict[str, str], source: str, target: str) -> bool:
    """Whether adding source -> target to a one-link-per-node map closes a loop."""
    seen: set[str] = set()
    current: str | None = target
    while current is not None and current not in seen:
        if current == source:
            return True
        seen.add(current)
        current = links.get(current)
    return False
