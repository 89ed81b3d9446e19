"""SQLite-backed project status record.

Tracks the last outcome of a project's assembly run so callers can poll
``processing`` / ``completed`` / ``failed`` independently of the request that
started it. Uses aiosqlite for async database operations.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".reelforge/status.db"


class ProjectStatus:
    """Project status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)


class ProjectStatusStore:
    """Async SQLite store holding one status row per project."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file, or ``:memory:``. Parent
                     directory will be created if it doesn't exist.
        """
        self.db_path = db_path
        self.db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the connection and create the schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(str(self.db_path))
        self.db.row_factory = aiosqlite.Row

        # WAL lets status polls read while a run writes
        if self.db_path != ":memory:":
            await self.db.execute("PRAGMA journal_mode=WAL")

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS project_status (
                project_id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                message TEXT NOT NULL DEFAULT '',
                updated_at TEXT NOT NULL,
                details JSON
            )
        """)
        await self.db.commit()
        logger.info(f"Status store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Status store connection closed")

    async def __aenter__(self) -> "ProjectStatusStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def set_status(
        self,
        project_id: str,
        status: str,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Insert or replace the status row for a project.

        Raises:
            ValueError: If status is not a known value
            RuntimeError: If database is not connected
        """
        if status not in ProjectStatus.ALL:
            raise ValueError(f"Unknown status: {status}")
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """
            INSERT INTO project_status (project_id, status, message, updated_at, details)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(project_id) DO UPDATE SET
                status = excluded.status,
                message = excluded.message,
                updated_at = excluded.updated_at,
                details = excluded.details
            """,
            (project_id, status, message, now, json.dumps(details or {}, default=str)),
        )
        await self.db.commit()

        logger.debug(f"Project {project_id}: status={status}")

        return {
            "project_id": project_id,
            "status": status,
            "message": message,
            "updated_at": now,
            "details": details or {},
        }

    async def get_status(self, project_id: str) -> dict[str, Any] | None:
        """Status row for a project, or None if it never ran."""
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self.db.execute(
            "SELECT * FROM project_status WHERE project_id = ?", (project_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_dict(row)

    def _row_to_dict(self, row: aiosqlite.Row) -> dict[str, Any]:
        details: dict[str, Any] = {}
        if row["details"]:
            try:
                details = json.loads(row["details"])
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse status details for {row['project_id']}")
        return {
            "project_id": row["project_id"],
            "status": row["status"],
            "message": row["message"],
            "updated_at": row["updated_at"],
            "details": details,
        }
