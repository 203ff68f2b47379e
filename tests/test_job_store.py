"""Unit tests for the SQLite job store."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from video_pipeline.core.exceptions import InvalidTransitionError, ResourceNotFoundError, ValidationError
from video_pipeline.jobs.models import GenerationJob, JobStatus
from video_pipeline.jobs.store import JobStore


@pytest.fixture
async def store(temp_dir):
    async with JobStore(temp_dir / "jobs.db") as job_store:
        yield job_store


def make_job(**kwargs):
    values = {"project_id": "proj_1", "scene_id": "scene_1", "prompt": "Latte art close-up"}
    values.update(kwargs)
    return GenerationJob(**values)


class TestCrud:
    async def test_create_and_get(self, store):
        job = await store.create_job(make_job(provider="kling"))
        loaded = await store.get_job(job.id)
        assert loaded == job

    async def test_get_missing(self, store):
        assert await store.get_job("vj_missing") is None

    async def test_save_unknown_job(self, store):
        with pytest.raises(ResourceNotFoundError):
            await store.save_job(make_job())

    async def test_update_job(self, store):
        job = await store.create_job(make_job())
        updated = await store.update_job(job.id, {"progress": 30, "provider": "luma"})
        assert updated.progress == 30
        assert (await store.get_job(job.id)).provider == "luma"

    async def test_update_rejects_immutable_fields(self, store):
        job = await store.create_job(make_job())
        with pytest.raises(ValidationError):
            await store.update_job(job.id, {"id": "vj_other"})
        with pytest.raises(ValidationError):
            await store.update_job(job.id, {"not_a_field": 1})

    async def test_update_missing(self, store):
        assert await store.update_job("vj_missing", {"progress": 5}) is None

    async def test_delete(self, store):
        job = await store.create_job(make_job())
        assert await store.delete_job(job.id)
        assert not await store.delete_job(job.id)

    async def test_conditional_save_rejects_changed_status(self, store):
        job = await store.create_job(make_job())
        await store.save_job(replace(job, status=JobStatus.CANCELLED), expected_status=JobStatus.PENDING)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await store.save_job(replace(job, status=JobStatus.RUNNING), expected_status=JobStatus.PENDING)

        assert exc_info.value.details["status"] == "cancelled"
        assert (await store.get_job(job.id)).status == JobStatus.CANCELLED

    async def test_conditional_save_unknown_job(self, store):
        with pytest.raises(ResourceNotFoundError):
            await store.save_job(make_job(), expected_status=JobStatus.PENDING)


class TestQueries:
    async def test_pending_jobs_oldest_first(self, store):
        now = datetime.now()
        newer = await store.create_job(make_job(scene_id="b", created_at=now))
        older = await store.create_job(make_job(scene_id="a", created_at=now - timedelta(hours=1)))
        await store.create_job(make_job(scene_id="c", status=JobStatus.SUCCEEDED))

        pending = await store.get_pending_jobs()
        assert [j.id for j in pending] == [older.id, newer.id]

    async def test_list_filters(self, store):
        await store.create_job(make_job(project_id="p1"))
        await store.create_job(make_job(project_id="p2"))
        await store.create_job(make_job(project_id="p2", status=JobStatus.FAILED))

        assert len(await store.list_jobs(project_id="p2")) == 2
        assert len(await store.list_jobs(status=JobStatus.FAILED)) == 1
        assert len(await store.list_jobs(status="pending", project_id="p2")) == 1


class TestMaintenance:
    async def test_recover_stuck_jobs_requeues(self, store):
        job = await store.create_job(make_job())
        stuck = replace(
            job,
            status=JobStatus.RUNNING,
            progress=30,
            started_at=datetime.now() - timedelta(minutes=30),
        )
        await store.save_job(stuck)

        assert await store.recover_stuck_jobs(age_threshold_minutes=10) == 1

        recovered = await store.get_job(job.id)
        assert recovered.status == JobStatus.PENDING
        assert recovered.retry_count == 1
        assert "stuck" in recovered.error_message

    async def test_recover_exhausted_job_fails(self, store):
        job = await store.create_job(make_job(max_retries=0))
        await store.save_job(replace(
            job,
            status=JobStatus.RUNNING,
            started_at=datetime.now() - timedelta(minutes=30),
        ))

        await store.recover_stuck_jobs(age_threshold_minutes=10)
        assert (await store.get_job(job.id)).status == JobStatus.FAILED

    async def test_recent_running_jobs_untouched(self, store):
        job = await store.create_job(make_job())
        await store.save_job(replace(job, status=JobStatus.RUNNING, started_at=datetime.now()))
        assert await store.recover_stuck_jobs(age_threshold_minutes=10) == 0

    async def test_delete_old_jobs_keeps_active(self, store):
        old = datetime.now() - timedelta(days=10)
        finished = await store.create_job(make_job(status=JobStatus.SUCCEEDED, created_at=old))
        pending = await store.create_job(make_job(created_at=old))

        assert await store.delete_old_jobs(days=7) == 1
        assert await store.get_job(finished.id) is None
        assert await store.get_job(pending.id) is not None
