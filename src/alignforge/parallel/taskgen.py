"""Job task and command generation.

A cluster job never receives code. The driver writes a :class:`JobTask`
(an operation name plus typed parameters) as JSON into the batch's
working directory and submits a :class:`JobCommand` that starts the
AlignForge job runner on that file. The runner interprets the task; see
:mod:`alignforge.parallel.executor`.

Commands are argument lists, not shell strings. They are only quoted
into a shell line at the last moment, when a scheduler backend writes a
submit script.

Example:
    >>> from alignforge.parallel.taskgen import JobTask, build_runner_command
    >>> task = JobTask.for_batch(batch, aligner_config)
    >>> task.save(batch.task_file)
    >>> command = build_runner_command(batch.task_file, batch.work_dir, 2048, "align_1")
    >>> command.argv[-2:]
    ['run-task', 'jobs/1/job.json']
"""

from __future__ import annotations

import json
import logging
import shlex
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import attrs

from alignforge.config import AlignerConfig

if TYPE_CHECKING:
    from alignforge.parallel.planner import Batch

logger = logging.getLogger(__name__)

TASK_FORMAT_VERSION = 1


# =============================================================================
# Enums
# =============================================================================


class TaskOperation(Enum):
    """Operations the job runner knows how to perform."""

    ALIGN_PAIRS = "align_pairs"  # Align each pair in a pair list


# =============================================================================
# Commands
# =============================================================================


@attrs.frozen
class JobCommand:
    """A command for a scheduler to run.

    Attributes:
        argv: Program and arguments.
        work_dir: Working directory for the job.
        memory_mb: Memory hint in MiB.
        job_name: Name shown in the scheduler queue.
    """

    argv: tuple[str, ...] = attrs.field(converter=lambda args: tuple(str(a) for a in args))
    work_dir: Path = attrs.field(converter=Path)
    memory_mb: int | None = None
    job_name: str = "alignforge"

    def to_shell(self) -> str:
        """Quote the argument list into one shell command line."""
        return shlex.join(self.argv)


def build_aligner_argv(
    config: AlignerConfig,
    cdna: Path | str,
    genomic: Path | str,
    output: Path | str,
) -> list[str]:
    """GenomeThreader arguments for one pair.

    Args:
        config: Aligner parameters.
        cdna: cDNA chunk file.
        genomic: Genomic chunk file.
        output: XML output file (overwritten if present).

    Returns:
        Argument list starting with the executable.
    """
    return [
        config.executable,
        "-xmlout",
        "-force",  # overwrite output
        "-minalignmentscore", f"{config.min_alignment_score:.2f}",
        "-mincoverage", f"{config.min_coverage:.2f}",
        "-seedlength", str(config.seed_length),
        "-o", str(output),
        "-species", config.species,
        "-cdna", str(cdna),
        "-genomic", str(genomic),
    ]


def build_runner_command(
    task_file: Path | str,
    work_dir: Path | str,
    memory_mb: int | None,
    job_name: str,
    python: str | None = None,
) -> JobCommand:
    """Command that runs the job runner on a task file.

    Args:
        task_file: Serialized JobTask.
        work_dir: Job working directory.
        memory_mb: Memory hint in MiB.
        job_name: Scheduler job name.
        python: Interpreter to use (default: the driver's interpreter).

    Returns:
        JobCommand for the scheduler.
    """
    argv = [
        python or sys.executable,
        "-m", "alignforge.cli",
        "run-task", str(task_file),
    ]
    return JobCommand(argv=argv, work_dir=work_dir, memory_mb=memory_mb, job_name=job_name)


# =============================================================================
# Job Task
# =============================================================================


@attrs.define
class JobTask:
    """Serialized instructions for one cluster job.

    Attributes:
        operation: What the runner should do.
        pairs_file: Pair list to process.
        work_dir: Directory for outputs.
        done_file: Marker to write after every pair succeeded.
        aligner: Aligner parameters.
    """

    operation: TaskOperation
    pairs_file: Path = attrs.field(converter=Path)
    work_dir: Path = attrs.field(converter=Path)
    done_file: Path = attrs.field(converter=Path)
    aligner: AlignerConfig = attrs.Factory(AlignerConfig)

    @classmethod
    def for_batch(cls, batch: Batch, aligner: AlignerConfig) -> JobTask:
        """Alignment task for a planned batch."""
        return cls(
            operation=TaskOperation.ALIGN_PAIRS,
            pairs_file=batch.pairs_file,
            work_dir=batch.work_dir,
            done_file=batch.done_file,
            aligner=aligner,
        )

    def output_file(self, pair_number: int) -> Path:
        """XML output path for the n-th pair (1-based)."""
        return self.work_dir / f"{pair_number}.xml"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": TASK_FORMAT_VERSION,
            "operation": self.operation.value,
            "pairs_file": str(self.pairs_file),
            "work_dir": str(self.work_dir),
            "done_file": str(self.done_file),
            "aligner": self.aligner.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> JobTask:
        """Create from dictionary.

        Raises:
            ValueError: If the task format version or operation is unknown.
        """
        version = data.get("version")
        if version != TASK_FORMAT_VERSION:
            raise ValueError(f"Unsupported task format version: {version}")
        return cls(
            operation=TaskOperation(data["operation"]),
            pairs_file=data["pairs_file"],
            work_dir=data["work_dir"],
            done_file=data["done_file"],
            aligner=AlignerConfig.from_dict(data.get("aligner", {})),
        )

    def save(self, path: Path | str) -> Path:
        """Save task to JSON.

        Args:
            path: Output file path.

        Returns:
            The written path.
        """
        path = Path(path)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved job task to {path}")
        return path

    @classmethod
    def load(cls, path: Path | str) -> JobTask:
        """Load task from JSON."""
        with open(path) as f:
            return cls.from_dict(json.load(f))
