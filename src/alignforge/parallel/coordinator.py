"""Top-level driver for an alignment run.

A run prepares the chunked inputs, plans batches, dispatches every
batch, and then waits until no job it submitted or reattached to is
alive. The driver can be killed and restarted at any point: finished
batches are recognised by their markers and running jobs by their
persisted handles.

All state of a run lives in a :class:`RunContext` passed to the
coordinator; nothing is kept at module level.

Example:
    >>> from alignforge.config import Config
    >>> from alignforge.parallel.coordinator import RunContext, RunCoordinator
    >>> context = RunContext.create(
    ...     Config(), "work", genomic_fasta="genome.fa", cdna_fastas=["cdna.fa"]
    ... )
    >>> summary = RunCoordinator(context).run()
    >>> summary.all_done
    True
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Callable, Sequence

import attrs

from alignforge.config import Config
from alignforge.errors import SchedulerUnavailableError, StaleHandleError
from alignforge.parallel.chunker import prepare_cdna_input, prepare_genomic_input
from alignforge.parallel.dispatcher import DispatchOutcome, DispatchResult, JobDispatcher
from alignforge.parallel.planner import Batch, plan_batches
from alignforge.parallel.scheduler import JobHandle, Scheduler, make_scheduler
from alignforge.utils.logging import Timer

logger = logging.getLogger(__name__)

INPUT_DIRNAME = "input"
JOBS_DIRNAME = "jobs"


# =============================================================================
# Data Structures
# =============================================================================


def work_layout(work_dir: Path | str) -> dict[str, Path]:
    """Standard directories under a run's working root."""
    work_dir = Path(work_dir)
    return {
        "cdna": work_dir / INPUT_DIRNAME / "cdna",
        "genomic": work_dir / INPUT_DIRNAME / "genomic",
        "jobs": work_dir / JOBS_DIRNAME,
    }


def _absolute(path: Path | str) -> Path:
    # Jobs run with their batch directory as cwd
    return Path(path).resolve()


@attrs.define
class RunContext:
    """Everything one run needs and accumulates.

    Paths are made absolute on construction.

    Attributes:
        config: Run configuration.
        work_dir: Working root (holds input/ and jobs/).
        genomic_fasta: Genomic FASTA to align against.
        cdna_fastas: cDNA FASTA files to align.
        scheduler: Job scheduler backend.
        sleep: Function used to wait between polls.
        batches: Planned batches (filled by the coordinator).
        handles: Handles of submitted and reattached jobs.
        results: Dispatch result per batch.
    """

    config: Config
    work_dir: Path = attrs.field(converter=_absolute)
    genomic_fasta: Path = attrs.field(converter=_absolute)
    cdna_fastas: list[Path] = attrs.field(converter=lambda ps: [_absolute(p) for p in ps])
    scheduler: Scheduler
    sleep: Callable[[float], None] = time.sleep
    batches: list[Batch] = attrs.Factory(list)
    handles: list[JobHandle] = attrs.Factory(list)
    results: list[DispatchResult] = attrs.Factory(list)

    @classmethod
    def create(
        cls,
        config: Config,
        work_dir: Path | str,
        genomic_fasta: Path | str,
        cdna_fastas: Sequence[Path | str],
        scheduler: Scheduler | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RunContext:
        """Build a context, creating the configured scheduler if none is given."""
        return cls(
            config=config,
            work_dir=work_dir,
            genomic_fasta=genomic_fasta,
            cdna_fastas=cdna_fastas,
            scheduler=scheduler or make_scheduler(config.scheduler),
            sleep=sleep,
        )

    @property
    def cdna_input_dir(self) -> Path:
        return work_layout(self.work_dir)["cdna"]

    @property
    def genomic_input_dir(self) -> Path:
        return work_layout(self.work_dir)["genomic"]

    @property
    def jobs_dir(self) -> Path:
        return work_layout(self.work_dir)["jobs"]


@attrs.define(slots=True)
class RunSummary:
    """Outcome of a run, read back from the completion markers."""

    total_batches: int
    done: int
    incomplete: list[int]
    outcomes: dict[str, int]
    poll_rounds: int = 0

    @property
    def all_done(self) -> bool:
        """Whether every batch has its completion marker."""
        return not self.incomplete

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_batches": self.total_batches,
            "done": self.done,
            "incomplete": list(self.incomplete),
            "outcomes": dict(self.outcomes),
            "poll_rounds": self.poll_rounds,
        }


# =============================================================================
# Coordinator
# =============================================================================


class RunCoordinator:
    """Runs the prepare / plan / dispatch / wait pipeline for a context."""

    def __init__(self, context: RunContext) -> None:
        self.context = context

    def prepare_inputs(self) -> tuple[list[Path], list[Path]]:
        """Chunk both datasets (or reuse cached chunks).

        Returns:
            (cdna chunk files, genomic chunk files)
        """
        ctx = self.context
        chunking = ctx.config.chunking

        with Timer("Input preparation", logger):
            cdna_files = prepare_cdna_input(
                ctx.cdna_fastas, chunking.cdna_chunks, ctx.cdna_input_dir, seed=chunking.seed
            )
            genomic_files = prepare_genomic_input(
                ctx.genomic_fasta,
                chunking.genomic_chunks,
                ctx.genomic_input_dir,
                seed=chunking.seed,
            )
        return cdna_files, genomic_files

    def plan(self, cdna_files: list[Path], genomic_files: list[Path]) -> list[Batch]:
        """Plan batches and store them on the context."""
        ctx = self.context
        ctx.batches = plan_batches(
            cdna_files, genomic_files, ctx.config.batch.max_batches, ctx.jobs_dir
        )
        return ctx.batches

    def dispatch_all(self) -> list[DispatchResult]:
        """Dispatch every planned batch in order."""
        ctx = self.context
        dispatcher = JobDispatcher(ctx.scheduler, ctx.config.resources, ctx.config.aligner)

        for batch in ctx.batches:
            result = dispatcher.dispatch(batch)
            ctx.results.append(result)
            if result.handle is not None:
                ctx.handles.append(result.handle)
        return ctx.results

    def wait(self) -> int:
        """Block until no collected job is alive.

        Returns:
            Number of poll rounds that slept.
        """
        ctx = self.context
        interval = ctx.config.batch.poll_interval
        rounds = 0

        while True:
            alive = [handle for handle in ctx.handles if _is_alive(handle)]
            if not alive:
                break
            done = sum(1 for batch in ctx.batches if batch.is_complete)
            logger.info(
                f"{len(alive)} jobs running, {done}/{len(ctx.batches)} batches done"
            )
            ctx.sleep(interval)
            rounds += 1

        return rounds

    def release_all(self) -> None:
        """Release every collected handle."""
        for handle in self.context.handles:
            handle.release()

    def summarize(self, poll_rounds: int = 0) -> RunSummary:
        """Build the run summary from the completion markers."""
        ctx = self.context
        incomplete = [batch.batch_id for batch in ctx.batches if not batch.is_complete]
        outcomes = Counter(result.outcome.value for result in ctx.results)
        return RunSummary(
            total_batches=len(ctx.batches),
            done=len(ctx.batches) - len(incomplete),
            incomplete=incomplete,
            outcomes={outcome.value: outcomes.get(outcome.value, 0) for outcome in DispatchOutcome},
            poll_rounds=poll_rounds,
        )

    def run(self) -> RunSummary:
        """Execute the whole run.

        Raises:
            InvalidArgumentError: If chunk or batch counts are invalid.
            FileNotFoundError: If an input FASTA is missing.
            SubmissionError: If the scheduler rejects a job.
            SchedulerUnavailableError: If an earlier job cannot be checked
                while dispatching.
        """
        cdna_files, genomic_files = self.prepare_inputs()
        self.plan(cdna_files, genomic_files)

        try:
            self.dispatch_all()
            rounds = self.wait()
        finally:
            self.release_all()

        summary = self.summarize(rounds)
        if summary.all_done:
            logger.info(f"all {summary.total_batches} batches done.")
        else:
            logger.warning(
                f"{len(summary.incomplete)} of {summary.total_batches} batches "
                f"finished without a completion marker: {summary.incomplete}"
            )
        return summary


def _is_alive(handle: JobHandle) -> bool:
    # Unreachable scheduler: keep waiting, ask again next round
    try:
        return handle.is_alive()
    except SchedulerUnavailableError as e:
        logger.warning(f"cannot check job {handle.job_id}, still waiting: {e}")
        return True
    except StaleHandleError as e:
        logger.warning(f"lost track of job {handle.job_id}: {e}")
        return False


__all__ = [
    "RunContext",
    "RunSummary",
    "RunCoordinator",
    "work_layout",
]
