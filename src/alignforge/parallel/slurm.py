"""SLURM scheduler backend.

Each batch becomes one SLURM job. The job command is written to a small
submit script in the batch working directory and handed to
``sbatch --parsable``; the returned job id is all the driver needs to
poll (``squeue``) and cancel (``scancel``) the job later, including
from a restarted driver.

The module also exposes helpers for code running inside a SLURM job,
used by the job runner to log where it is running.

Example:
    >>> from alignforge.parallel.slurm import SlurmScheduler
    >>> scheduler = SlurmScheduler(partition="normal", time_limit="24:00:00")
    >>> handle = scheduler.submit(command)
    >>> handle.job_id
    '4815162'
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING

from alignforge.errors import SchedulerUnavailableError, SubmissionError
from alignforge.parallel.scheduler import JobHandle, Scheduler

if TYPE_CHECKING:
    from alignforge.parallel.taskgen import JobCommand

logger = logging.getLogger(__name__)

SUBMIT_SCRIPT_FILENAME = "job.sbatch"

# squeue calls per state query, and seconds between them
QUERY_ATTEMPTS = 3
QUERY_RETRY_DELAY = 5.0

# squeue states after which a job will not run again
TERMINAL_STATES = frozenset(
    {
        "BOOT_FAIL",
        "CANCELLED",
        "COMPLETED",
        "DEADLINE",
        "FAILED",
        "NODE_FAIL",
        "OUT_OF_MEMORY",
        "PREEMPTED",
        "TIMEOUT",
    }
)


# =============================================================================
# Environment Detection
# =============================================================================


def detect_slurm_environment() -> dict | None:
    """Detect if running under SLURM.

    Returns:
        Dict with SLURM env vars if in SLURM, None otherwise.

    Example:
        >>> env = detect_slurm_environment()
        >>> if env:
        ...     print(f"Job ID: {env['SLURM_JOB_ID']}")
    """
    if "SLURM_JOB_ID" not in os.environ:
        return None

    env_vars = [
        "SLURM_JOB_ID",
        "SLURM_JOB_NAME",
        "SLURM_CPUS_PER_TASK",
        "SLURM_MEM_PER_NODE",
        "SLURM_SUBMIT_DIR",
        "SLURM_NODELIST",
    ]
    return {k: os.environ[k] for k in env_vars if k in os.environ}


def get_slurm_resources() -> dict:
    """Get allocated resources from SLURM environment.

    Returns:
        Dict with:
            - job_id: SLURM job id (None outside SLURM)
            - memory_mb: Memory in MB (if available)
            - node: Node name (if available)
    """
    env = detect_slurm_environment()
    if not env:
        return {"job_id": None, "memory_mb": None, "node": None}

    return {
        "job_id": env.get("SLURM_JOB_ID"),
        "memory_mb": _parse_slurm_memory(env.get("SLURM_MEM_PER_NODE")),
        "node": env.get("SLURM_NODELIST"),
    }


def _parse_slurm_memory(mem_str: str | None) -> int | None:
    """Parse SLURM memory string to MB.

    Args:
        mem_str: Memory string (e.g., '16G', '16000M', '16000').

    Returns:
        Memory in MB, or None if parsing fails.
    """
    if not mem_str:
        return None

    mem_str = mem_str.strip().upper()

    try:
        if mem_str.endswith("G"):
            return int(float(mem_str[:-1]) * 1024)
        elif mem_str.endswith("M"):
            return int(mem_str[:-1])
        elif mem_str.endswith("K"):
            return int(float(mem_str[:-1]) / 1024)
        else:
            # Assume MB
            return int(mem_str)
    except ValueError:
        return None


# =============================================================================
# Submit Script
# =============================================================================


def build_sbatch_script(
    command: JobCommand,
    partition: str | None = None,
    time_limit: str | None = None,
    extra_args: list[str] | None = None,
) -> str:
    """Render the submit script for a job command.

    Args:
        command: Command to run.
        partition: SLURM partition.
        time_limit: Wall time limit (e.g. "24:00:00").
        extra_args: Additional ``#SBATCH`` options, one per entry.

    Returns:
        Script text.
    """
    work_dir = Path(command.work_dir)
    directives = [
        f"--job-name={command.job_name}",
        f"--chdir={work_dir}",
        f"--output={work_dir / 'slurm-%j.out'}",
        "--nodes=1",
        "--ntasks=1",
    ]
    if command.memory_mb is not None:
        directives.append(f"--mem={command.memory_mb}M")
    if partition:
        directives.append(f"--partition={partition}")
    if time_limit:
        directives.append(f"--time={time_limit}")
    directives.extend(extra_args or [])

    lines = ["#!/bin/bash"]
    lines.extend(f"#SBATCH {directive}" for directive in directives)
    lines.append("")
    lines.append(f"exec {command.to_shell()}")
    return "\n".join(lines) + "\n"


def _run(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(args, capture_output=True, text=True, check=True)


# =============================================================================
# Jobs
# =============================================================================


class SlurmJob(JobHandle):
    """A job submitted with sbatch."""

    scheduler_name = "slurm"

    def __init__(self, slurm_job_id: str, script_path: Path | str | None = None) -> None:
        self._job_id = str(slurm_job_id)
        self.script_path = Path(script_path) if script_path else None

    @property
    def job_id(self) -> str:
        return self._job_id

    def state(self) -> str | None:
        """Current squeue state, or None once the job has left the queue.

        Failed squeue calls are retried; the job is only reported gone
        when SLURM says it does not know the job id.

        Raises:
            SchedulerUnavailableError: If squeue cannot be run or keeps
                failing.
        """
        for attempt in range(1, QUERY_ATTEMPTS + 1):
            try:
                result = _run(["squeue", "-h", "-j", self._job_id, "-o", "%T"])
            except FileNotFoundError as e:
                raise SchedulerUnavailableError(f"squeue not available: {e}") from e
            except subprocess.CalledProcessError as e:
                # Purged job ids are reported as an error, not an empty listing
                if "Invalid job id" in (e.stderr or ""):
                    return None
                if attempt == QUERY_ATTEMPTS:
                    raise SchedulerUnavailableError(
                        f"squeue failed for job {self._job_id}: {e.stderr}"
                    ) from e
                logger.debug(
                    f"squeue failed for job {self._job_id} "
                    f"(attempt {attempt}/{QUERY_ATTEMPTS}): {e.stderr}"
                )
                time.sleep(QUERY_RETRY_DELAY)

            states = result.stdout.split()
            return states[0] if states else None

    def is_alive(self) -> bool:
        state = self.state()
        return state is not None and state not in TERMINAL_STATES

    def kill(self) -> None:
        logger.info(f"Cancelling SLURM job {self._job_id}")
        try:
            _run(["scancel", self._job_id])
        except (FileNotFoundError, subprocess.CalledProcessError) as e:
            logger.warning(f"scancel failed for job {self._job_id}: {e}")

    def release(self) -> None:
        if self.script_path is not None:
            self.script_path.unlink(missing_ok=True)

    def to_dict(self) -> dict:
        return {
            "scheduler": self.scheduler_name,
            "job_id": self._job_id,
            "script_path": str(self.script_path) if self.script_path else None,
        }

    def __repr__(self) -> str:
        return f"SlurmJob({self._job_id!r})"


class SlurmScheduler(Scheduler):
    """Submits job commands with sbatch.

    Attributes:
        partition: SLURM partition (None = cluster default).
        time_limit: Wall time limit (None = partition default).
        extra_args: Additional sbatch options.
    """

    name = "slurm"

    def __init__(
        self,
        partition: str | None = None,
        time_limit: str | None = None,
        extra_args: list[str] | None = None,
    ) -> None:
        self.partition = partition
        self.time_limit = time_limit
        self.extra_args = list(extra_args or [])

    def submit(self, command: JobCommand) -> SlurmJob:
        work_dir = Path(command.work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)

        script_path = work_dir / SUBMIT_SCRIPT_FILENAME
        script_path.write_text(
            build_sbatch_script(
                command,
                partition=self.partition,
                time_limit=self.time_limit,
                extra_args=self.extra_args,
            )
        )

        try:
            result = _run(["sbatch", "--parsable", str(script_path)])
        except FileNotFoundError as e:
            raise SubmissionError(f"sbatch not available: {e}") from e
        except subprocess.CalledProcessError as e:
            raise SubmissionError(f"sbatch failed: {e.stderr}") from e

        # --parsable prints "jobid" or "jobid;cluster"
        job_id = result.stdout.strip().split(";")[0]
        if not job_id:
            raise SubmissionError(f"sbatch returned no job id for {script_path}")

        logger.debug(f"sbatch {script_path} -> {job_id}")
        return SlurmJob(job_id, script_path)

    def handle_from_dict(self, data: dict) -> SlurmJob:
        return SlurmJob(data["job_id"], data.get("script_path"))


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    "detect_slurm_environment",
    "get_slurm_resources",
    "build_sbatch_script",
    "SlurmJob",
    "SlurmScheduler",
    "TERMINAL_STATES",
]
