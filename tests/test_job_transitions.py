"""Unit tests for the generation job state machine."""

from dataclasses import replace

import pytest

from video_pipeline.core.exceptions import InvalidTransitionError
from video_pipeline.jobs.models import (
    PROGRESS_DEQUEUED,
    PROGRESS_DISPATCHED,
    Cancel,
    Dequeue,
    Dispatch,
    Fail,
    GenerationJob,
    JobStatus,
    Succeed,
    transition,
)


@pytest.fixture
def job():
    return GenerationJob(project_id="proj_1", scene_id="scene_1", prompt="Latte art close-up", max_retries=2)


def running(job):
    return transition(job, Dequeue())


class TestTransitions:
    def test_dequeue_starts_job(self, job):
        started = transition(job, Dequeue())
        assert started.status == JobStatus.RUNNING
        assert started.progress == PROGRESS_DEQUEUED
        assert started.started_at is not None
        assert job.status == JobStatus.PENDING

    def test_dispatch_sets_progress(self, job):
        dispatched = transition(running(job), Dispatch(provider="kling"))
        assert dispatched.status == JobStatus.RUNNING
        assert dispatched.progress == PROGRESS_DISPATCHED

    def test_succeed(self, job):
        done = transition(running(job), Succeed(result_url="https://cdn.example.com/a.mp4", provider_used="luma", cost=0.2))
        assert done.status == JobStatus.SUCCEEDED
        assert done.progress == 100
        assert done.result_url == "https://cdn.example.com/a.mp4"
        assert done.provider_used == "luma"
        assert done.completed_at is not None

    def test_fail_requeues_with_retries_left(self, job):
        failed = transition(running(job), Fail("provider down"))
        assert failed.status == JobStatus.PENDING
        assert failed.retry_count == 1
        assert failed.progress == 0
        assert failed.started_at is None
        assert failed.error_message == "provider down"

    def test_fail_is_terminal_when_budget_spent(self, job):
        current = job
        for _ in range(job.max_retries):
            current = transition(running(current), Fail("provider down"))
            assert current.status == JobStatus.PENDING

        final = transition(running(current), Fail("provider down"))
        assert final.status == JobStatus.FAILED
        assert final.retry_count == job.max_retries
        assert final.completed_at is not None

    def test_zero_retry_budget(self, job):
        final = transition(running(replace(job, max_retries=0)), Fail("boom"))
        assert final.status == JobStatus.FAILED

    def test_cancel_pending(self, job):
        cancelled = transition(job, Cancel())
        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.status.is_terminal

    @pytest.mark.parametrize("event", [Dispatch(), Succeed(result_url="https://x/a.mp4"), Fail("x")])
    def test_pending_rejects_running_events(self, job, event):
        with pytest.raises(InvalidTransitionError):
            transition(job, event)

    def test_running_cannot_be_cancelled(self, job):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(running(job), Cancel())
        assert exc_info.value.details["status"] == "running"
        assert exc_info.value.details["event"] == "cancel"

    @pytest.mark.parametrize("event", [Dequeue(), Dispatch(), Fail("x"), Cancel()])
    def test_terminal_states_reject_events(self, job, event):
        done = transition(running(job), Succeed(result_url="https://x/a.mp4"))
        with pytest.raises(InvalidTransitionError):
            transition(done, event)


class TestSerialization:
    def test_round_trip_preserves_state(self, job):
        done = transition(running(job), Succeed(result_url="https://x/a.mp4", cost=0.18))
        restored = GenerationJob.from_dict(done.to_dict())
        assert restored == done

    def test_from_dict_ignores_unknown_keys(self, job):
        data = job.to_dict()
        data["legacy_field"] = "ignored"
        assert GenerationJob.from_dict(data).id == job.id

    def test_ids_are_prefixed(self, job):
        assert job.id.startswith("vj_")
