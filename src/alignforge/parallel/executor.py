"""Job runner executed inside each cluster job.

The runner loads the batch's :class:`~alignforge.parallel.taskgen.JobTask`,
aligns every pair of the batch's pair list one after another, and writes
the batch completion marker only when all of them succeeded. A failing
pair stops the job; the marker stays absent and the next driver run
submits the batch again.

Example:
    $ python -m alignforge.cli run-task jobs/7/job.json
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path

import attrs
import psutil

from alignforge.parallel.markers import write_done
from alignforge.parallel.planner import FilePair, read_pairs_file
from alignforge.parallel.slurm import get_slurm_resources
from alignforge.parallel.taskgen import JobTask, TaskOperation, build_aligner_argv

logger = logging.getLogger(__name__)

# Share of the job allocation above which a pair's peak memory is reported
MEMORY_WARN_FRACTION = 0.9


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class PairResult:
    """Result from aligning one pair."""

    pair_number: int
    pair: FilePair
    output: Path
    skipped: bool = False
    duration_seconds: float = 0.0
    peak_memory_mb: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "pair_number": self.pair_number,
            "cdna": str(self.pair.cdna),
            "genomic": str(self.pair.genomic),
            "output": str(self.output),
            "skipped": self.skipped,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_memory_mb": (
                round(self.peak_memory_mb, 2) if self.peak_memory_mb else None
            ),
        }


# =============================================================================
# Memory Monitoring
# =============================================================================


def children_peak_memory_mb() -> float | None:
    """Peak resident memory of reaped child processes, in MB.

    Returns:
        Peak RSS, or None where the platform does not report it.
    """
    if psutil.WINDOWS:
        return None
    import resource

    peak_kb = resource.getrusage(resource.RUSAGE_CHILDREN).ru_maxrss
    if psutil.MACOS:
        return peak_kb / 1024 / 1024
    return peak_kb / 1024


# =============================================================================
# Execution
# =============================================================================


def _is_empty(path: Path) -> bool:
    return path.stat().st_size == 0


def align_pair(task: JobTask, pair_number: int, pair: FilePair) -> PairResult:
    """Run the aligner on one pair.

    Raises:
        subprocess.CalledProcessError: If the aligner exits non-zero.
        FileNotFoundError: If a chunk file or the aligner is missing.
    """
    output = task.output_file(pair_number)

    if _is_empty(pair.cdna) or _is_empty(pair.genomic):
        logger.info(f"pair {pair_number}: empty chunk file, nothing to align")
        return PairResult(pair_number, pair, output, skipped=True)

    argv = build_aligner_argv(task.aligner, pair.cdna, pair.genomic, output)
    logger.info(f"pair {pair_number}: {pair.cdna} vs {pair.genomic}")
    logger.debug(" ".join(argv))

    start = time.perf_counter()
    subprocess.run(argv, check=True, cwd=task.work_dir)
    duration = time.perf_counter() - start

    return PairResult(
        pair_number,
        pair,
        output,
        duration_seconds=duration,
        peak_memory_mb=children_peak_memory_mb(),
    )


def align_pairs(task: JobTask, memory_limit_mb: int | None = None) -> list[PairResult]:
    """Align every pair of the task, then write the completion marker.

    Args:
        task: Job task to run.
        memory_limit_mb: Memory allocated to the job. Pairs whose peak
            memory comes close to it are logged so the estimate
            constants can be tuned.
    """
    pairs = read_pairs_file(task.pairs_file)
    logger.info(f"{len(pairs)} pairs in {task.pairs_file}")

    results = []
    for pair_number, pair in enumerate(pairs, start=1):
        result = align_pair(task, pair_number, pair)
        peak = result.peak_memory_mb
        if memory_limit_mb and peak and peak > MEMORY_WARN_FRACTION * memory_limit_mb:
            logger.warning(
                f"pair {pair_number}: peak memory {peak:.0f} MiB of "
                f"{memory_limit_mb} MiB allocated"
            )
        results.append(result)

    write_done(task.done_file)
    logger.info(f"all pairs aligned, wrote {task.done_file}")
    return results


def run_task(task_file: Path | str) -> list[PairResult]:
    """Load a job task and execute it.

    Args:
        task_file: JobTask JSON written by the dispatcher.

    Returns:
        One result per pair.

    Raises:
        ValueError: If the task file is not a supported task.
        subprocess.CalledProcessError: If an aligner run fails.
    """
    slurm = get_slurm_resources()
    if slurm["job_id"]:
        memory = f"{slurm['memory_mb']} MiB" if slurm["memory_mb"] else "default memory"
        logger.info(
            f"Running in SLURM job {slurm['job_id']} "
            f"on {slurm['node'] or 'unknown node'} with {memory}"
        )

    task = JobTask.load(task_file)

    if task.operation is TaskOperation.ALIGN_PAIRS:
        return align_pairs(task, slurm["memory_mb"])
    raise ValueError(f"Unsupported task operation: {task.operation}")


__all__ = [
    "PairResult",
    "align_pair",
    "align_pairs",
    "run_task",
]
