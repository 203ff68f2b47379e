"""
Job Store
=========

SQLite-backed persistence for generation jobs, via aiosqlite.

Jobs are stored as JSON blobs with the columns needed for filtering
(status, project, timestamps) duplicated alongside.
"""

import json
import logging
from dataclasses import fields, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import aiosqlite

from ..core.exceptions import InvalidTransitionError, ResourceNotFoundError, ValidationError
from .models import Fail, GenerationJob, JobStatus, transition

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".video-pipeline/jobs.db"

# Fields a patch may not overwrite
_IMMUTABLE_FIELDS = {"id", "created_at"}


def _ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width timestamps so string comparison in SQL is chronological
    return value.isoformat(timespec="microseconds") if value else None


class JobStore:
    """
    Async SQLite job storage.

    Call ``connect()`` before use and ``close()`` when done, or use the
    store as an async context manager.
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH):
        """
        Initialize job store with database path.

        Args:
            db_path: Path to SQLite database file, or ``:memory:``. The parent
                     directory is created if it doesn't exist.
        """
        self.db_path = str(db_path)
        self.db: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open the connection and create the schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(self.db_path)
        self.db.row_factory = aiosqlite.Row

        await self.db.execute("PRAGMA journal_mode=WAL")

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS generation_jobs (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                scene_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                started_at TEXT,
                data JSON NOT NULL
            )
        """)

        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_generation_jobs_status
            ON generation_jobs (status, created_at)
        """)

        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_generation_jobs_project
            ON generation_jobs (project_id)
        """)

        await self.db.commit()
        logger.info(f"Job store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Job store connection closed")

    async def __aenter__(self) -> "JobStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_db(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def create_job(self, job: GenerationJob) -> GenerationJob:
        """
        Insert a new job.

        Args:
            job: Job to insert (normally pending)

        Returns:
            The stored job
        """
        db = self._require_db()
        now = _ts(datetime.now())

        await db.execute(
            "INSERT INTO generation_jobs "
            "(id, project_id, scene_id, status, created_at, updated_at, started_at, data) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                job.id,
                job.project_id,
                job.scene_id,
                job.status.value,
                _ts(job.created_at),
                now,
                _ts(job.started_at),
                json.dumps(job.to_dict()),
            ),
        )
        await db.commit()

        logger.info(f"Created job {job.id} for scene {job.scene_id}")
        return job

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        """Get a job by ID, or None if not found."""
        db = self._require_db()
        async with db.execute("SELECT data FROM generation_jobs WHERE id = ?", (job_id,)) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_job(row)

    async def save_job(
        self,
        job: GenerationJob,
        expected_status: Optional[JobStatus] = None,
    ) -> GenerationJob:
        """
        Persist the full state of an existing job.

        Args:
            job: Job state to write
            expected_status: Only write if the stored status still matches

        Raises:
            ResourceNotFoundError: If the job was never created
            InvalidTransitionError: If the stored status no longer matches ``expected_status``
        """
        db = self._require_db()
        query = "UPDATE generation_jobs SET status = ?, updated_at = ?, started_at = ?, data = ? WHERE id = ?"
        params: List[Any] = [
            job.status.value,
            _ts(datetime.now()),
            _ts(job.started_at),
            json.dumps(job.to_dict()),
            job.id,
        ]
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status.value)

        cursor = await db.execute(query, params)
        await db.commit()

        if cursor.rowcount == 0:
            stored = await self.get_job(job.id)
            if stored is None:
                raise ResourceNotFoundError(
                    f"Job not found: {job.id}",
                    resource_type="generation_job",
                    resource_id=job.id,
                )
            raise InvalidTransitionError(
                f"Job {job.id} is {stored.status.value}, expected {expected_status.value}",
                job_id=job.id,
                status=stored.status.value,
                event=job.status.value,
            )

        logger.debug(f"Saved job {job.id}: status={job.status.value} progress={job.progress}")
        return job

    async def update_job(self, job_id: str, patch: Dict[str, Any]) -> Optional[GenerationJob]:
        """
        Merge a field patch into a stored job.

        Status changes belong to ``transition``; the patch is meant for
        bookkeeping fields like ``progress`` or ``provider``.

        Args:
            job_id: Job identifier
            patch: Field name to new value

        Returns:
            Updated job, or None if not found

        Raises:
            ValidationError: If the patch names an unknown or immutable field
        """
        current = await self.get_job(job_id)
        if current is None:
            return None

        known = {f.name for f in fields(GenerationJob)}
        for key in patch:
            if key not in known or key in _IMMUTABLE_FIELDS:
                raise ValidationError(f"Cannot patch job field: {key}", field=key)

        values = dict(patch)
        if isinstance(values.get("status"), str):
            values["status"] = JobStatus(values["status"])

        return await self.save_job(replace(current, **values))

    async def get_pending_jobs(self, limit: int = 10) -> List[GenerationJob]:
        """Pending jobs, oldest first."""
        db = self._require_db()
        async with db.execute(
            "SELECT data FROM generation_jobs WHERE status = ? ORDER BY created_at ASC LIMIT ?",
            (JobStatus.PENDING.value, limit),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def list_jobs(
        self,
        status: Optional[Union[JobStatus, str]] = None,
        project_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[GenerationJob]:
        """
        List jobs with optional filters.

        Args:
            status: Filter by status (optional)
            project_id: Filter by project (optional)
            limit: Max results (default 100)

        Returns:
            Jobs ordered by created_at desc
        """
        db = self._require_db()

        query = "SELECT data FROM generation_jobs WHERE 1=1"
        params: List[Any] = []

        if status:
            query += " AND status = ?"
            params.append(status.value if isinstance(status, JobStatus) else status)
        if project_id:
            query += " AND project_id = ?"
            params.append(project_id)

        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job; True if a row was removed."""
        db = self._require_db()
        cursor = await db.execute("DELETE FROM generation_jobs WHERE id = ?", (job_id,))
        await db.commit()
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def recover_stuck_jobs(self, age_threshold_minutes: int = 10) -> int:
        """
        Fail jobs left running by a crashed worker.

        Each stuck job goes through the normal failure transition, so it is
        requeued with ``retry_count + 1`` or marked failed when its retry
        budget is spent.

        Args:
            age_threshold_minutes: Minimum time in running state

        Returns:
            Number of jobs recovered
        """
        db = self._require_db()
        cutoff = _ts(datetime.now() - timedelta(minutes=age_threshold_minutes))

        async with db.execute(
            "SELECT data FROM generation_jobs WHERE status = ? AND started_at IS NOT NULL AND started_at < ?",
            (JobStatus.RUNNING.value, cutoff),
        ) as cursor:
            rows = await cursor.fetchall()

        recovered = 0
        for row in rows:
            job = self._row_to_job(row)
            updated = transition(
                job,
                Fail(f"Job stuck in running state for over {age_threshold_minutes} minutes"),
            )
            try:
                await self.save_job(updated, expected_status=JobStatus.RUNNING)
            except InvalidTransitionError:
                logger.debug(f"Job {job.id} left running state before recovery")
                continue
            recovered += 1
            logger.warning(f"Recovered stuck job {job.id} -> {updated.status.value}")

        if recovered:
            logger.info(f"Recovered {recovered} stuck jobs")
        return recovered

    async def delete_old_jobs(self, days: int = 7) -> int:
        """
        Delete finished jobs older than the given number of days.

        Returns:
            Number of jobs deleted
        """
        db = self._require_db()
        cutoff = _ts(datetime.now() - timedelta(days=days))
        terminal = [s.value for s in JobStatus if s.is_terminal]

        cursor = await db.execute(
            f"DELETE FROM generation_jobs WHERE created_at < ? AND status IN ({', '.join('?' * len(terminal))})",
            (cutoff, *terminal),
        )
        await db.commit()

        deleted = cursor.rowcount
        if deleted:
            logger.info(f"Deleted {deleted} jobs older than {days} days")
        return deleted

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> GenerationJob:
        return GenerationJob.from_dict(json.loads(row["data"]))
