"""
Generation jobs: state machine, persistence and the polling worker.
"""

from .models import (
    Cancel,
    Dequeue,
    Dispatch,
    Fail,
    GenerationJob,
    JobEvent,
    JobStatus,
    Succeed,
    new_job_id,
    transition,
)
from .store import JobStore
from .worker import GenerationWorker, InFlightJobs, JobUpdate

__all__ = [
    "Cancel",
    "Dequeue",
    "Dispatch",
    "Fail",
    "GenerationJob",
    "JobEvent",
    "JobStatus",
    "Succeed",
    "new_job_id",
    "transition",
    "JobStore",
    "GenerationWorker",
    "InFlightJobs",
    "JobUpdate",
]
