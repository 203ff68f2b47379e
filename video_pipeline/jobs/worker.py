"""
Generation Worker
=================

Polling loop that takes pending jobs from the job store, runs them through
the provider orchestrator and persists every state change.

Usage:
    async with JobStore(config.worker.db_path) as store:
        worker = GenerationWorker(store, orchestrator, config.worker)
        unsubscribe = worker.subscribe(lambda update: print(update.status))
        await worker.start()
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Set

from ..core.config import WorkerConfig
from ..core.exceptions import InvalidTransitionError
from ..workflow.orchestrator import OrchestrationRequest, OrchestrationResult, ProviderOrchestrator
from .models import (
    Cancel,
    Dequeue,
    Dispatch,
    Fail,
    GenerationJob,
    JobEvent,
    JobStatus,
    Succeed,
    event_name,
    transition,
)
from .store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class JobUpdate:
    """Event published to subscribers after every persisted change."""

    job_id: str
    event: str
    status: JobStatus
    progress: int
    job: GenerationJob
    timestamp: datetime = field(default_factory=datetime.now)


JobListener = Callable[[JobUpdate], object]


class InFlightJobs:
    """Ids of jobs currently being processed; one claim per id."""

    def __init__(self):
        self._ids: Set[str] = set()

    def claim(self, job_id: str) -> bool:
        if job_id in self._ids:
            return False
        self._ids.add(job_id)
        return True

    def release(self, job_id: str) -> None:
        self._ids.discard(job_id)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._ids))


class GenerationWorker:
    """
    Background worker for scene generation jobs.

    Processes one job per tick. A job that raises is failed through the
    normal failure transition; the loop itself keeps running.
    """

    def __init__(
        self,
        store: JobStore,
        orchestrator: ProviderOrchestrator,
        config: Optional[WorkerConfig] = None,
        in_flight: Optional[InFlightJobs] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.config = config or WorkerConfig()
        self.in_flight = in_flight if in_flight is not None else InFlightJobs()

        self._listeners: List[JobListener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Recover stuck jobs, then start the polling loop."""
        if self._running:
            logger.debug("Worker already running")
            return

        recovered = await self.store.recover_stuck_jobs(self.config.stuck_job_minutes)
        if recovered:
            logger.info(f"Recovered {recovered} stuck jobs on startup")

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Generation worker started (poll every {self.config.poll_interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop and wait for it to exit."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Generation worker stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker tick failed")
            await asyncio.sleep(self.config.poll_interval)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def tick(self) -> Optional[GenerationJob]:
        """
        Process at most one pending job.

        Returns:
            The job in its final state for this tick, or None if nothing ran
        """
        pending = await self.store.get_pending_jobs(limit=10)
        for job in pending:
            if not self.in_flight.claim(job.id):
                continue
            try:
                processed = await self.process_job(job)
            finally:
                self.in_flight.release(job.id)
            if processed is not None:
                return processed
        return None

    async def process_job(self, job: GenerationJob) -> Optional[GenerationJob]:
        """
        Run one pending job to success, requeue or failure.

        Args:
            job: Pending job

        Returns:
            The persisted job after its last transition, or None if another
            writer moved the job out of pending first
        """
        try:
            job = await self._apply(job, Dequeue())
        except InvalidTransitionError as e:
            logger.info(f"Skipping job {job.id}: {e.message}")
            return None
        logger.info(f"Processing job {job.id} (attempt {job.retry_count + 1}/{job.max_retries + 1})")

        job = await self._apply(job, Dispatch(provider=job.provider))

        try:
            result = await self.orchestrator.generate(self._build_request(job))
        except Exception as e:
            logger.exception(f"Job {job.id} raised during generation")
            result = OrchestrationResult(success=False, error=str(e) or e.__class__.__name__)

        if result.success and result.media_url:
            job = await self._apply(job, Succeed(
                result_url=result.media_url,
                provider_used=result.provider_used,
                cost=result.cost,
            ))
            logger.info(f"Job {job.id} succeeded with {job.provider_used}")
        else:
            job = await self._apply(job, Fail(result.error or "Generation failed"))
            if job.status == JobStatus.PENDING:
                logger.warning(f"Job {job.id} failed, requeued ({job.retry_count}/{job.max_retries}): {job.error_message}")
            else:
                logger.error(f"Job {job.id} failed permanently: {job.error_message}")

        return job

    def _build_request(self, job: GenerationJob) -> OrchestrationRequest:
        return OrchestrationRequest(
            prompt=job.prompt,
            scene_type=job.scene_type or "scene",
            duration=job.duration,
            aspect_ratio=job.aspect_ratio,
            negative_prompt=job.negative_prompt,
            provider=job.provider,
            quality_tier=job.quality_tier,
            source_image_url=job.source_image_url,
            fallback_prompt=job.fallback_prompt,
            visual_style=job.style,
        )

    async def _apply(self, job: GenerationJob, event: JobEvent) -> GenerationJob:
        updated = transition(job, event)
        await self.store.save_job(updated, expected_status=job.status)
        await self._publish(updated, event_name(event))
        return updated

    # -------------------------------------------------------------------------
    # Job API
    # -------------------------------------------------------------------------

    async def create_job(
        self,
        project_id: str,
        scene_id: str,
        prompt: str,
        duration: Optional[int] = None,
        aspect_ratio: Optional[str] = None,
        max_retries: Optional[int] = None,
        **kwargs,
    ) -> GenerationJob:
        """
        Create and persist a pending job.

        Args:
            project_id: Owning project
            scene_id: Scene within the project
            prompt: Visual prompt
            duration: Clip length in seconds (config default when omitted)
            aspect_ratio: Aspect ratio (config default when omitted)
            max_retries: Retry budget (config default when omitted)
            **kwargs: Other GenerationJob fields (provider, fallback_prompt, ...)
        """
        job = GenerationJob(
            project_id=project_id,
            scene_id=scene_id,
            prompt=prompt,
            duration=duration or self.config.default_duration,
            aspect_ratio=aspect_ratio or self.config.default_aspect_ratio,
            max_retries=self.config.max_retries if max_retries is None else max_retries,
            **kwargs,
        )
        await self.store.create_job(job)
        await self._publish(job, "created")
        return job

    async def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job that has not started.

        Returns:
            True if the job was cancelled; False if it is unknown, running or finished
        """
        job = await self.store.get_job(job_id)
        if job is None or job.status != JobStatus.PENDING or job_id in self.in_flight:
            return False

        try:
            await self._apply(job, Cancel())
        except InvalidTransitionError:
            logger.info(f"Job {job_id} was picked up before it could be cancelled")
            return False
        logger.info(f"Cancelled job {job_id}")
        return True

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """
        Register a listener for job updates.

        Listeners may be plain or async callables.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _publish(self, job: GenerationJob, event: str) -> None:
        update = JobUpdate(
            job_id=job.id,
            event=event,
            status=job.status,
            progress=job.progress,
            job=job,
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(update)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Job listener failed for {job.id} ({event})")
