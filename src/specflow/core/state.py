"""State management with SQLite persistence."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from specflow.core.models import (
    EntityType,
    Spec,
    SpecPhase,
    SyncRecord,
    SyncStatus,
    Task,
    TaskStatus,
)

if TYPE_CHECKING:
    from collections.abc import Generator


SCHEMA = """
CREATE TABLE IF NOT EXISTS specs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    phase TEXT NOT NULL,
    branch_name TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    spec_id TEXT NOT NULL REFERENCES specs(id),
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL,
    priority INTEGER NOT NULL DEFAULT 3,
    github_issue_number INTEGER,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    completed_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sync_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    github_id TEXT,
    github_number INTEGER,
    github_node_id TEXT,
    sync_status TEXT NOT NULL,
    parent_issue_number INTEGER,
    parent_spec_id TEXT,
    pr_number INTEGER,
    pr_url TEXT,
    pr_merged_at TIMESTAMP,
    error_message TEXT,
    last_synced_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    spec_id TEXT,
    action TEXT NOT NULL,
    details TEXT,
    logged_at TIMESTAMP NOT NULL
);
"""


class StateManager:
    """Manages specs, tasks and sync records in SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(sync_records)")}
            if "pr_merged_at" not in columns:
                conn.execute("ALTER TABLE sync_records ADD COLUMN pr_merged_at TIMESTAMP")

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # Spec Operations
    # =========================================================================

    def create_spec(self, name: str, description: str = "") -> Spec:
        """Create a new spec in the requirements phase."""
        now = datetime.now()
        spec = Spec(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            phase=SpecPhase.REQUIREMENTS,
            created_at=now,
            updated_at=now,
        )

        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO specs (id, name, description, phase, branch_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    spec.id,
                    spec.name,
                    spec.description,
                    spec.phase.value,
                    None,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )

        return spec

    def get_spec(self, spec_id: str) -> Spec | None:
        """Get a spec by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM specs WHERE id = ?", (spec_id,)).fetchone()

        if row is None:
            return None
        return _row_to_spec(row)

    def list_specs(self, phase: SpecPhase | None = None) -> list[Spec]:
        """List specs, most recently updated first."""
        with self._connection() as conn:
            if phase is None:
                rows = conn.execute("SELECT * FROM specs ORDER BY updated_at DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM specs WHERE phase = ? ORDER BY updated_at DESC",
                    (phase.value,),
                ).fetchall()

        return [_row_to_spec(r) for r in rows]

    def update_spec_phase(self, spec_id: str, phase: SpecPhase) -> None:
        """Persist a new phase and bump updated_at."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE specs SET phase = ?, updated_at = ? WHERE id = ?",
                (phase.value, datetime.now().isoformat(), spec_id),
            )

    def update_spec_name(self, spec_id: str, name: str) -> None:
        """Rename a spec."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE specs SET name = ?, updated_at = ? WHERE id = ?",
                (name, datetime.now().isoformat(), spec_id),
            )

    def set_spec_branch(self, spec_id: str, branch_name: str | None) -> None:
        """Record the working branch of a spec."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE specs SET branch_name = ?, updated_at = ? WHERE id = ?",
                (branch_name, datetime.now().isoformat(), spec_id),
            )

    # =========================================================================
    # Task Operations
    # =========================================================================

    def create_task(
        self,
        spec_id: str,
        title: str,
        description: str = "",
        priority: int = 3,
    ) -> Task:
        """Create a task under a spec."""
        now = datetime.now()
        task = Task(
            id=str(uuid.uuid4()),
            spec_id=spec_id,
            title=title,
            description=description,
            priority=priority,
            created_at=now,
            updated_at=now,
        )

        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO tasks (id, spec_id, title, description, status, priority, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    spec_id,
                    title,
                    description,
                    task.status.value,
                    priority,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )

        return task

    def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()

        if row is None:
            return None
        return _row_to_task(row)

    def list_tasks(self, spec_id: str) -> list[Task]:
        """List tasks of a spec by priority, then creation time."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE spec_id = ? ORDER BY priority, created_at",
                (spec_id,),
            ).fetchall()

        return [_row_to_task(r) for r in rows]

    def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        """Update a task's status; reaching done stamps completed_at."""
        now = datetime.now().isoformat()
        completed_at = now if status == TaskStatus.DONE else None

        with self._connection() as conn:
            conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ?, completed_at = ? WHERE id = ?",
                (status.value, now, completed_at, task_id),
            )

    def set_task_issue(self, task_id: str, issue_number: int | None) -> None:
        """Link a task to its sub-issue number."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE tasks SET github_issue_number = ?, updated_at = ? WHERE id = ?",
                (issue_number, datetime.now().isoformat(), task_id),
            )

    # =========================================================================
    # Sync Records
    # =========================================================================

    def get_sync_record(self, entity_type: EntityType, entity_id: str) -> SyncRecord | None:
        """Look up the single sync record for an entity."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_records WHERE entity_type = ? AND entity_id = ? ORDER BY id LIMIT 1",
                (entity_type.value, entity_id),
            ).fetchone()

        if row is None:
            return None
        return _row_to_sync_record(row)

    def upsert_sync_record(self, record: SyncRecord) -> SyncRecord:
        """Insert or update the record for (entity_type, entity_id).

        Looks up before writing so an entity never gets a second record.

        Returns:
            The stored record with its database id.
        """
        now = datetime.now()
        synced_at = record.last_synced_at or now

        with self._connection() as conn:
            existing = conn.execute(
                "SELECT id FROM sync_records WHERE entity_type = ? AND entity_id = ? ORDER BY id LIMIT 1",
                (record.entity_type.value, record.entity_id),
            ).fetchone()

            values = (
                record.github_id,
                record.github_number,
                record.github_node_id,
                record.sync_status.value,
                record.parent_issue_number,
                record.parent_spec_id,
                record.pr_number,
                record.pr_url,
                _format_datetime(record.pr_merged_at),
                record.error_message,
                synced_at.isoformat(),
            )

            if existing is not None:
                record_id = existing["id"]
                conn.execute(
                    """
                    UPDATE sync_records
                    SET github_id = ?, github_number = ?, github_node_id = ?, sync_status = ?,
                        parent_issue_number = ?, parent_spec_id = ?, pr_number = ?, pr_url = ?,
                        pr_merged_at = ?, error_message = ?, last_synced_at = ?
                    WHERE id = ?
                    """,
                    (*values, record_id),
                )
            else:
                cursor = conn.execute(
                    """
                    INSERT INTO sync_records
                        (github_id, github_number, github_node_id, sync_status,
                         parent_issue_number, parent_spec_id, pr_number, pr_url,
                         pr_merged_at, error_message, last_synced_at, entity_type, entity_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*values, record.entity_type.value, record.entity_id),
                )
                record_id = cursor.lastrowid

        return record.model_copy(update={"id": record_id, "last_synced_at": synced_at})

    def mark_sync_status(
        self,
        entity_type: EntityType,
        entity_id: str,
        status: SyncStatus,
        error_message: str | None = None,
    ) -> None:
        """Update only the status of an existing record."""
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE sync_records SET sync_status = ?, error_message = ?, last_synced_at = ?
                WHERE entity_type = ? AND entity_id = ?
                """,
                (status.value, error_message, datetime.now().isoformat(), entity_type.value, entity_id),
            )

    def list_sync_records(self, entity_type: EntityType) -> list[SyncRecord]:
        """All records of one entity type, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_records WHERE entity_type = ? ORDER BY id",
                (entity_type.value,),
            ).fetchall()

        return [_row_to_sync_record(r) for r in rows]

    def mark_pr_merged(self, spec_id: str, merged_at: datetime) -> None:
        """Record that the spec's pull request merged and drop its working branch."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE sync_records SET pr_merged_at = ? WHERE entity_type = ? AND entity_id = ?",
                (merged_at.isoformat(), EntityType.SPEC.value, spec_id),
            )
            conn.execute(
                "UPDATE specs SET branch_name = NULL, updated_at = ? WHERE id = ?",
                (datetime.now().isoformat(), spec_id),
            )

    def clear_sync_link(self, entity_type: EntityType, entity_id: str) -> None:
        """Drop a stale remote link while keeping the record itself."""
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE sync_records
                SET github_number = NULL, github_node_id = NULL, sync_status = ?, error_message = ?
                WHERE entity_type = ? AND entity_id = ?
                """,
                (SyncStatus.PENDING.value, "remote issue no longer exists", entity_type.value, entity_id),
            )

    # =========================================================================
    # Activity Log
    # =========================================================================

    def log_activity(self, spec_id: str | None, action: str, details: str | None = None) -> None:
        """Append an entry to the activity log."""
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO activity_log (spec_id, action, details, logged_at) VALUES (?, ?, ?, ?)",
                (spec_id, action, details, datetime.now().isoformat()),
            )

    def get_activity(self, spec_id: str, limit: int = 20) -> list[tuple[str, str | None, datetime]]:
        """Most recent activity entries for a spec."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT action, details, logged_at FROM activity_log
                WHERE spec_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (spec_id, limit),
            ).fetchall()

        return [(r["action"], r["details"], datetime.fromisoformat(r["logged_at"])) for r in rows]


def _row_to_spec(row: sqlite3.Row) -> Spec:
    return Spec(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        phase=SpecPhase(row["phase"]),
        branch_name=row["branch_name"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        spec_id=row["spec_id"],
        title=row["title"],
        description=row["description"],
        status=TaskStatus(row["status"]),
        priority=row["priority"],
        github_issue_number=row["github_issue_number"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        completed_at=_parse_datetime(row["completed_at"]),
    )


def _row_to_sync_record(row: sqlite3.Row) -> SyncRecord:
    return SyncRecord(
        id=row["id"],
        entity_type=EntityType(row["entity_type"]),
        entity_id=row["entity_id"],
        github_id=row["github_id"],
        github_number=row["github_number"],
        github_node_id=row["github_node_id"],
        sync_status=SyncStatus(row["sync_status"]),
        parent_issue_number=row["parent_issue_number"],
        parent_spec_id=row["parent_spec_id"],
        pr_number=row["pr_number"],
        pr_url=row["pr_url"],
        pr_merged_at=_parse_datetime(row["pr_merged_at"]),
        error_message=row["error_message"],
        last_synced_at=_parse_datetime(row["last_synced_at"]),
    )


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO datetime string."""
    if value is None:
        return None
    return datetime.fromisoformat(value)
