"""Job scheduler interface and the local backend.

A :class:`Scheduler` turns a :class:`~alignforge.parallel.taskgen.JobCommand`
into a running job and returns a :class:`JobHandle`. Handles are saved
as JSON next to the batch they belong to, so a restarted driver can ask
the scheduler to revive them and check whether the job is still running.

Backends:
    - ``slurm``: sbatch/squeue/scancel (:mod:`alignforge.parallel.slurm`)
    - ``local``: detached subprocesses on the driver host, for testing a
      pipeline on a workstation before moving it to the cluster

Example:
    >>> from alignforge.parallel.scheduler import make_scheduler, save_handle
    >>> scheduler = make_scheduler(config.scheduler)
    >>> handle = scheduler.submit(command)
    >>> save_handle(handle, batch.handle_file)
    >>> while handle.is_alive():
    ...     time.sleep(10)
    >>> handle.release()
"""

from __future__ import annotations

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from alignforge.errors import StaleHandleError, SubmissionError

if TYPE_CHECKING:
    from alignforge.config import SchedulerConfig
    from alignforge.parallel.taskgen import JobCommand

logger = logging.getLogger(__name__)

LOCAL_LOG_FILENAME = "job.log"


# =============================================================================
# Interfaces
# =============================================================================


class JobHandle(ABC):
    """Reference to a submitted job."""

    #: Backend name stored in the persisted handle
    scheduler_name: str = ""

    @property
    @abstractmethod
    def job_id(self) -> str:
        """Scheduler job identifier."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the job is queued or running.

        Raises:
            StaleHandleError: If the handle no longer resolves to a job.
            SchedulerUnavailableError: If the scheduler cannot be queried
                right now.
        """

    @abstractmethod
    def kill(self) -> None:
        """Cancel the job."""

    @abstractmethod
    def release(self) -> None:
        """Free driver-side resources held for the job."""

    @abstractmethod
    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""


class Scheduler(ABC):
    """Submits commands and revives persisted handles."""

    name: str = ""

    @abstractmethod
    def submit(self, command: JobCommand) -> JobHandle:
        """Submit a command.

        Raises:
            SubmissionError: If the job could not be submitted.
        """

    @abstractmethod
    def handle_from_dict(self, data: dict) -> JobHandle:
        """Rebuild a handle from :meth:`JobHandle.to_dict` output."""

    def load_handle(self, path: Path | str) -> JobHandle:
        """Load a persisted handle.

        Raises:
            StaleHandleError: If the file is unreadable, was written by a
                different backend, or is missing fields.
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StaleHandleError(f"Cannot read job handle {path}: {e}") from e

        if not isinstance(data, dict) or data.get("scheduler") != self.name:
            raise StaleHandleError(
                f"Job handle {path} was not written by the {self.name} scheduler"
            )

        try:
            return self.handle_from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StaleHandleError(f"Malformed job handle {path}: {e}") from e


def save_handle(handle: JobHandle, path: Path | str) -> Path:
    """Persist a job handle as JSON.

    The file is written to a temporary name and renamed into place, so
    a crash never leaves a truncated handle behind.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(handle.to_dict(), f, indent=2)
    tmp_path.replace(path)
    return path


# =============================================================================
# Local Backend
# =============================================================================


class LocalJob(JobHandle):
    """A detached process on the driver host.

    The process create time is recorded with the pid, so a recycled pid
    belonging to an unrelated process is not mistaken for the job.
    """

    scheduler_name = "local"

    def __init__(
        self,
        pid: int,
        create_time: float,
        work_dir: Path | str,
        process: subprocess.Popen | None = None,
    ) -> None:
        self.pid = pid
        self.create_time = create_time
        self.work_dir = Path(work_dir)
        self._process = process

    @property
    def job_id(self) -> str:
        return str(self.pid)

    def _psutil_process(self) -> psutil.Process | None:
        try:
            proc = psutil.Process(self.pid)
            if abs(proc.create_time() - self.create_time) > 1.0:
                return None
            return proc
        except psutil.NoSuchProcess:
            return None
        except psutil.Error as e:
            raise StaleHandleError(f"Cannot query process {self.pid}: {e}") from e

    def is_alive(self) -> bool:
        # Reap our own child so it does not linger as a zombie
        if self._process is not None and self._process.poll() is not None:
            return False

        proc = self._psutil_process()
        if proc is None:
            return False
        try:
            return proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def kill(self) -> None:
        proc = self._psutil_process()
        if proc is not None:
            logger.info(f"Terminating local job {self.pid}")
            proc.terminate()

    def release(self) -> None:
        if self._process is not None:
            self._process.poll()
            self._process = None

    def to_dict(self) -> dict:
        return {
            "scheduler": self.scheduler_name,
            "pid": self.pid,
            "create_time": self.create_time,
            "work_dir": str(self.work_dir),
        }

    def __repr__(self) -> str:
        return f"LocalJob(pid={self.pid}, work_dir={str(self.work_dir)!r})"


class LocalScheduler(Scheduler):
    """Runs each job as a detached subprocess.

    Memory hints are logged but not enforced.
    """

    name = "local"

    def submit(self, command: JobCommand) -> LocalJob:
        work_dir = Path(command.work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        log_path = work_dir / LOCAL_LOG_FILENAME

        try:
            with open(log_path, "ab") as log:
                process = subprocess.Popen(
                    list(command.argv),
                    cwd=work_dir,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as e:
            raise SubmissionError(f"Failed to start {command.argv[0]}: {e}") from e

        try:
            create_time = psutil.Process(process.pid).create_time()
        except psutil.NoSuchProcess:
            # Already finished; any value keeps later liveness checks false
            create_time = 0.0

        logger.debug(
            f"Started local job {process.pid} ({command.job_name}, "
            f"memory hint {command.memory_mb}M)"
        )
        return LocalJob(process.pid, create_time, work_dir, process=process)

    def handle_from_dict(self, data: dict) -> LocalJob:
        return LocalJob(
            pid=int(data["pid"]),
            create_time=float(data["create_time"]),
            work_dir=data["work_dir"],
        )


# =============================================================================
# Factory
# =============================================================================


def make_scheduler(config: SchedulerConfig) -> Scheduler:
    """Create the scheduler backend named in the configuration.

    Raises:
        ValueError: If the backend is unknown.
    """
    if config.backend == "local":
        return LocalScheduler()
    if config.backend == "slurm":
        from alignforge.parallel.slurm import SlurmScheduler

        return SlurmScheduler(
            partition=config.partition,
            time_limit=config.time_limit,
            extra_args=list(config.extra_args),
        )
    raise ValueError(f"Unknown scheduler backend: {config.backend}")


__all__: list[str] = [
    "JobHandle",
    "Scheduler",
    "LocalJob",
    "LocalScheduler",
    "save_handle",
    "make_scheduler",
]

