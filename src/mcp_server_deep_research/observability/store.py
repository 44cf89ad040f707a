"""SQLite-backed store of research runs for history and status queries."""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite

from .models import ResearchRunRecord, TaskStage, TaskStatus

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS runs (
        task_id TEXT PRIMARY KEY,
        tool_name TEXT NOT NULL,
        status TEXT NOT NULL,
        stage TEXT,
        created_at TEXT NOT NULL,
        started_at TEXT,
        completed_at TEXT,
        query TEXT NOT NULL DEFAULT '',
        depth INTEGER,
        breadth INTEGER,
        sources_count INTEGER DEFAULT 0,
        learnings_count INTEGER DEFAULT 0,
        expansions_count INTEGER DEFAULT 0,
        search_rounds_count INTEGER DEFAULT 0,
        input_params TEXT NOT NULL,
        result TEXT,
        error TEXT
    )
"""

_TERMINAL = (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value, TaskStatus.CANCELLED.value)


class RunStore:
    """Async SQLite store of ResearchRunRecords.

    Every operation opens its own connection; WAL mode keeps concurrent
    background runs from blocking each other.
    """

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            from ..config import get_config_dir

            db_path = get_config_dir() / "runs.db"
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute("PRAGMA busy_timeout = 5000")
                await db.execute(_SCHEMA)
                async with db.execute("PRAGMA table_info(runs)") as cursor:
                    columns = {row[1] for row in await cursor.fetchall()}
                # Databases created before search rounds were tracked
                if "search_rounds_count" not in columns:
                    await db.execute("ALTER TABLE runs ADD COLUMN search_rounds_count INTEGER DEFAULT 0")
                await db.execute("CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status)")
                await db.execute("CREATE INDEX IF NOT EXISTS idx_runs_created_at ON runs(created_at)")
                await db.commit()

            self._initialized = True

    async def _execute(self, sql: str, params: tuple | list) -> int:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount

    async def create_run(self, run: ResearchRunRecord) -> None:
        await self._execute(
            """
            INSERT INTO runs (
                task_id, tool_name, status, stage, created_at, started_at, completed_at,
                query, depth, breadth, sources_count, learnings_count, expansions_count,
                search_rounds_count, input_params, result, error
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run.task_id,
                run.tool_name,
                run.status.value,
                run.stage.value if run.stage else None,
                run.created_at.isoformat(),
                run.started_at.isoformat() if run.started_at else None,
                run.completed_at.isoformat() if run.completed_at else None,
                run.query,
                run.depth,
                run.breadth,
                run.sources_count,
                run.learnings_count,
                run.expansions_count,
                run.search_rounds_count,
                json.dumps(run.input_params),
                run.result,
                run.error,
            ),
        )

    async def update_stage(self, task_id: str, stage: TaskStage) -> None:
        await self._execute("UPDATE runs SET stage = ? WHERE task_id = ?", (stage.value, task_id))

    async def record_counts(self, task_id: str, sources: int, learnings: int, expansions: int, search_rounds: int = 0) -> None:
        """Store result counters once the research phase has finished."""
        await self._execute(
            "UPDATE runs SET sources_count = ?, learnings_count = ?, expansions_count = ?, search_rounds_count = ? WHERE task_id = ?",
            (sources, learnings, expansions, search_rounds, task_id),
        )

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        result: str | None = None,
        error: str | None = None,
    ) -> None:
        """Update run status and optionally result/error (truncated)."""
        now = datetime.now(UTC).isoformat()
        started_at = now if status == TaskStatus.RUNNING else None
        completed_at = now if status.value in _TERMINAL else None

        await self._execute(
            """
            UPDATE runs
            SET status = ?,
                started_at = COALESCE(started_at, ?),
                completed_at = COALESCE(completed_at, ?),
                result = COALESCE(?, result),
                error = COALESCE(?, error)
            WHERE task_id = ?
            """,
            (
                status.value,
                started_at,
                completed_at,
                result[:10000] if result else None,
                error[:2000] if error else None,
                task_id,
            ),
        )

    async def get_run(self, task_id: str) -> ResearchRunRecord | None:
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM runs WHERE task_id = ?", (task_id,)) as cursor:
                row = await cursor.fetchone()
        return self._row_to_run(row) if row else None

    async def find_run(self, task_id_prefix: str) -> ResearchRunRecord | None:
        """Exact match first, then the most recent run whose id starts with the prefix."""
        run = await self.get_run(task_id_prefix)
        if run:
            return run
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM runs WHERE task_id LIKE ? ORDER BY created_at DESC LIMIT 1",
                (f"{task_id_prefix}%",),
            ) as cursor:
                row = await cursor.fetchone()
        return self._row_to_run(row) if row else None

    async def get_history(
        self,
        limit: int = 100,
        tool_name: str | None = None,
        status: TaskStatus | None = None,
    ) -> list[ResearchRunRecord]:
        """Most recent runs first, optionally filtered."""
        await self.initialize()

        query = "SELECT * FROM runs"
        params: list = []
        conditions = []
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if status:
            conditions.append("status = ?")
            params.append(status.value)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [self._row_to_run(row) for row in rows]

    async def get_running(self) -> list[ResearchRunRecord]:
        return await self.get_history(limit=1000, status=TaskStatus.RUNNING)

    async def get_stats(self) -> dict:
        """Counts by status and tool, plus average sources/learnings of completed runs."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT status, COUNT(*) FROM runs GROUP BY status") as cursor:
                by_status = {row[0]: row[1] for row in await cursor.fetchall()}
            async with db.execute("SELECT tool_name, COUNT(*) FROM runs GROUP BY tool_name") as cursor:
                by_tool = {row[0]: row[1] for row in await cursor.fetchall()}
            async with db.execute(
                "SELECT AVG(sources_count), AVG(learnings_count) FROM runs WHERE status = ? AND tool_name = ?",
                (TaskStatus.COMPLETED.value, "run_deep_research"),
            ) as cursor:
                row = await cursor.fetchone()

        avg_sources, avg_learnings = (row[0] or 0.0, row[1] or 0.0) if row else (0.0, 0.0)
        return {
            "by_status": by_status,
            "by_tool": by_tool,
            "total_runs": sum(by_status.values()),
            "running_count": by_status.get(TaskStatus.RUNNING.value, 0),
            "avg_sources": round(avg_sources, 1),
            "avg_learnings": round(avg_learnings, 1),
        }

    async def cleanup_old_runs(self, days: int = 7) -> int:
        """Delete finished runs older than N days. Returns count deleted."""
        cutoff = (datetime.now(UTC) - timedelta(days=days)).isoformat()
        return await self._execute(
            "DELETE FROM runs WHERE created_at < ? AND status IN (?, ?, ?)",
            (cutoff, *_TERMINAL),
        )

    @staticmethod
    def _row_to_run(row: aiosqlite.Row) -> ResearchRunRecord:
        try:
            loaded = json.loads(row["input_params"])
        except json.JSONDecodeError:
            loaded = {}

        def _dt(value: str | None) -> datetime | None:
            return datetime.fromisoformat(value) if value else None

        return ResearchRunRecord(
            task_id=row["task_id"],
            tool_name=row["tool_name"],
            status=TaskStatus(row["status"]),
            stage=TaskStage(row["stage"]) if row["stage"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=_dt(row["started_at"]),
            completed_at=_dt(row["completed_at"]),
            query=row["query"],
            depth=row["depth"],
            breadth=row["breadth"],
            sources_count=row["sources_count"],
            learnings_count=row["learnings_count"],
            expansions_count=row["expansions_count"],
            search_rounds_count=row["search_rounds_count"] or 0,
            input_params=loaded if isinstance(loaded, dict) else {},
            result=row["result"],
            error=row["error"],
        )


_run_store: RunStore | None = None


def get_run_store() -> RunStore:
    """Get the process-wide RunStore instance."""
    global _run_store
    if _run_store is None:
        _run_store = RunStore()
    return _run_store
