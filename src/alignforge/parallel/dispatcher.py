"""Idempotent job submission for planned batches.

Every batch goes through the same three-way decision each time the
driver runs:

1. its completion marker exists: nothing to do;
2. a job handle persisted by an earlier run still reports alive:
   reattach to it instead of submitting again;
3. otherwise: reset the working directory, write the pair list and job
   task, estimate memory, submit, and persist the new handle.

The handle is persisted after the scheduler accepted the job. A driver
killed between those two steps submits the batch a second time on the
next run; both jobs write the same outputs.

If the scheduler cannot say whether an earlier job is still alive, the
batch is neither reset nor resubmitted and the error propagates.

Example:
    >>> from alignforge.parallel.dispatcher import JobDispatcher
    >>> dispatcher = JobDispatcher(scheduler, config.resources, config.aligner)
    >>> for batch in batches:
    ...     result = dispatcher.dispatch(batch)
"""

from __future__ import annotations

import logging
import shutil
from enum import Enum
from typing import TYPE_CHECKING

import attrs

from alignforge.config import AlignerConfig, ResourceConfig
from alignforge.errors import SchedulerUnavailableError, StaleHandleError
from alignforge.parallel.planner import write_pairs_file
from alignforge.parallel.resources import estimate_batch_vmem
from alignforge.parallel.scheduler import save_handle
from alignforge.parallel.taskgen import JobTask, build_runner_command

if TYPE_CHECKING:
    from alignforge.parallel.planner import Batch
    from alignforge.parallel.scheduler import JobHandle, Scheduler

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class DispatchOutcome(Enum):
    """What happened to a batch during dispatch."""

    SKIPPED = "skipped"  # Marker present
    REATTACHED = "reattached"  # Earlier job still alive
    SUBMITTED = "submitted"  # New job


class BatchState(Enum):
    """Read-only view of a batch for status reports."""

    DONE = "done"
    RUNNING = "running"
    PENDING = "pending"
    UNKNOWN = "unknown"  # Scheduler not reachable


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class DispatchResult:
    """Result of dispatching one batch."""

    batch_id: int
    outcome: DispatchOutcome
    handle: JobHandle | None = None
    memory_mb: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "batch_id": self.batch_id,
            "outcome": self.outcome.value,
            "job_id": self.handle.job_id if self.handle else None,
            "memory_mb": self.memory_mb,
        }


# =============================================================================
# Handle Lookup
# =============================================================================


def find_live_handle(batch: Batch, scheduler: Scheduler) -> JobHandle | None:
    """Revive the batch's persisted handle if its job is still alive.

    A missing, unreadable or foreign handle file counts as no live job.

    Raises:
        SchedulerUnavailableError: If the scheduler cannot tell whether
            the job is alive. The batch must then be left alone.
    """
    if not batch.handle_file.exists():
        return None

    try:
        handle = scheduler.load_handle(batch.handle_file)
        alive = handle.is_alive()
    except StaleHandleError as e:
        logger.warning(f"job {batch.batch_id}: ignoring stale job handle ({e})")
        return None

    if not alive:
        logger.debug(f"job {batch.batch_id}: previous job {handle.job_id} is gone")
        handle.release()
        return None
    return handle


def batch_state(batch: Batch, scheduler: Scheduler) -> BatchState:
    """Classify a batch without changing anything on disk."""
    if batch.is_complete:
        return BatchState.DONE
    try:
        handle = find_live_handle(batch, scheduler)
    except SchedulerUnavailableError as e:
        logger.warning(f"job {batch.batch_id}: {e}")
        return BatchState.UNKNOWN
    if handle is None:
        return BatchState.PENDING
    return BatchState.RUNNING


# =============================================================================
# Dispatcher
# =============================================================================


class JobDispatcher:
    """Applies the skip / reattach / submit decision to batches.

    Args:
        scheduler: Backend jobs are submitted to.
        resources: Memory estimate parameters.
        aligner: Aligner parameters written into each job task.
        job_name_prefix: Prefix of the scheduler job name.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        resources: ResourceConfig | None = None,
        aligner: AlignerConfig | None = None,
        job_name_prefix: str = "align",
    ) -> None:
        self.scheduler = scheduler
        self.resources = resources or ResourceConfig()
        self.aligner = aligner or AlignerConfig()
        self.job_name_prefix = job_name_prefix

    def dispatch(self, batch: Batch) -> DispatchResult:
        """Skip, reattach or submit one batch.

        On reattach and submit the handle is also stored on the batch.

        Raises:
            SubmissionError: If the scheduler rejects the job.
            PreconditionFailedError: If a chunk file of the batch is missing.
            SchedulerUnavailableError: If an earlier job of the batch cannot
                be checked; its working directory is not touched.
        """
        logger.info(f"job {batch.batch_id} - {batch.work_dir} - {len(batch)} pairs")

        if batch.is_complete:
            logger.info("done, skipping.")
            return DispatchResult(batch.batch_id, DispatchOutcome.SKIPPED)

        handle = find_live_handle(batch, self.scheduler)
        if handle is not None:
            logger.info(f"still running as {handle.job_id}, reattaching.")
            batch.handle = handle
            return DispatchResult(batch.batch_id, DispatchOutcome.REATTACHED, handle)

        memory_mb = self.submit(batch)
        return DispatchResult(
            batch.batch_id, DispatchOutcome.SUBMITTED, batch.handle, memory_mb
        )

    def submit(self, batch: Batch) -> int:
        """Prepare a fresh working directory and submit the batch's job.

        Returns:
            Memory hint the job was submitted with, in MiB.
        """
        memory_mb = estimate_batch_vmem(
            batch.pairs, self.resources.baseline_mb, self.resources.scale
        )

        if batch.work_dir.exists():
            shutil.rmtree(batch.work_dir)
        batch.work_dir.mkdir(parents=True)

        write_pairs_file(batch.pairs, batch.pairs_file)
        JobTask.for_batch(batch, self.aligner).save(batch.task_file)

        command = build_runner_command(
            batch.task_file,
            batch.work_dir,
            memory_mb=memory_mb,
            job_name=f"{self.job_name_prefix}_{batch.batch_id}",
        )
        handle = self.scheduler.submit(command)
        save_handle(handle, batch.handle_file)
        batch.handle = handle

        logger.info(f"submitted as {handle.job_id} (vmem {memory_mb}M)")
        return memory_mb


__all__ = [
    "DispatchOutcome",
    "BatchState",
    "DispatchResult",
    "JobDispatcher",
    "find_live_handle",
    "batch_state",
]
