"""
Generation Job Model
====================

Immutable job record and the pure state machine that moves it between
statuses:

    pending --dequeue--> running --succeed--> succeeded
    running --fail (retries left)--> pending (retry_count + 1)
    running --fail (budget spent)--> failed
    pending --cancel--> cancelled

Every other edge raises ``InvalidTransitionError``.
"""

import uuid
from dataclasses import dataclass, field, fields, replace, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Union

from ..core.exceptions import InvalidTransitionError


class JobStatus(Enum):
    """Lifecycle status of a generation job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


# Progress checkpoints
PROGRESS_DEQUEUED = 10
PROGRESS_DISPATCHED = 30
PROGRESS_DONE = 100


def new_job_id() -> str:
    return f"vj_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class GenerationJob:
    """One scene generation request and its outcome."""

    project_id: str
    scene_id: str
    prompt: str

    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0

    provider: Optional[str] = None
    fallback_prompt: Optional[str] = None
    duration: int = 6
    aspect_ratio: str = "16:9"
    negative_prompt: Optional[str] = None
    style: Optional[str] = None
    scene_type: Optional[str] = None
    quality_tier: Optional[str] = None
    source_image_url: Optional[str] = None

    retry_count: int = 0
    max_retries: int = 3

    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    result_url: Optional[str] = None
    provider_used: Optional[str] = None
    cost: Optional[float] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("created_at", "started_at", "completed_at"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationJob":
        """Rebuild a job from ``to_dict`` output, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["status"] = JobStatus(values.get("status", JobStatus.PENDING.value))
        for key in ("created_at", "started_at", "completed_at"):
            if isinstance(values.get(key), str):
                values[key] = datetime.fromisoformat(values[key])
        return cls(**values)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Dequeue:
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Dispatch:
    """Job handed to the provider orchestrator; status is unchanged."""

    provider: Optional[str] = None


@dataclass(frozen=True)
class Succeed:
    result_url: str
    provider_used: Optional[str] = None
    cost: Optional[float] = None
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Fail:
    error: str
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Cancel:
    at: datetime = field(default_factory=datetime.now)


JobEvent = Union[Dequeue, Dispatch, Succeed, Fail, Cancel]


def event_name(event: JobEvent) -> str:
    return type(event).__name__.lower()


def transition(job: GenerationJob, event: JobEvent) -> GenerationJob:
    """
    Apply an event to a job and return the new job.

    Args:
        job: Current job
        event: Event to apply

    Returns:
        A new GenerationJob; the input is never modified

    Raises:
        InvalidTransitionError: If the event is not allowed from the job's status
    """
    status = job.status

    if isinstance(event, Dequeue) and status == JobStatus.PENDING:
        return replace(
            job,
            status=JobStatus.RUNNING,
            progress=PROGRESS_DEQUEUED,
            started_at=event.at,
            error_message=None,
        )

    if isinstance(event, Dispatch) and status == JobStatus.RUNNING:
        return replace(job, progress=PROGRESS_DISPATCHED)

    if isinstance(event, Succeed) and status == JobStatus.RUNNING:
        return replace(
            job,
            status=JobStatus.SUCCEEDED,
            progress=PROGRESS_DONE,
            completed_at=event.at,
            result_url=event.result_url,
            provider_used=event.provider_used,
            cost=event.cost,
            error_message=None,
        )

    if isinstance(event, Fail) and status == JobStatus.RUNNING:
        if job.retry_count < job.max_retries:
            return replace(
                job,
                status=JobStatus.PENDING,
                progress=0,
                retry_count=job.retry_count + 1,
                started_at=None,
                error_message=event.error,
            )
        return replace(
            job,
            status=JobStatus.FAILED,
            completed_at=event.at,
            error_message=event.error,
        )

    if isinstance(event, Cancel) and status == JobStatus.PENDING:
        return replace(job, status=JobStatus.CANCELLED, completed_at=event.at)

    raise InvalidTransitionError(
        f"Cannot apply {event_name(event)} to job {job.id} in status {status.value}",
        job_id=job.id,
        status=status.value,
        event=event_name(event),
    )
