"""Pytest configuration and shared fixtures for AlignForge tests.

This module contains fixtures that are shared across multiple test modules.
Fixtures are organized by category:

- Synthetic data fixtures: Generate FASTA inputs programmatically
- Scheduler fixtures: An in-memory scheduler whose jobs finish on command
"""

import logging
import random
from pathlib import Path

import pytest

from alignforge.parallel.markers import write_done
from alignforge.parallel.scheduler import JobHandle, Scheduler


# =============================================================================
# FASTA Fixtures
# =============================================================================


def write_fasta(path: Path, sequences: dict[str, str], width: int = 80) -> Path:
    """Write sequences to a FASTA file with the given line width."""
    with open(path, "w") as f:
        for name, seq in sequences.items():
            f.write(f">{name}\n")
            for i in range(0, len(seq), width):
                f.write(seq[i : i + width] + "\n")
    return path


def random_sequences(prefix: str, count: int, length: int, seed: int) -> dict[str, str]:
    """Reproducible random DNA sequences named <prefix>1..<prefix>N."""
    rng = random.Random(seed)
    return {
        f"{prefix}{i}": "".join(rng.choice("ACGT") for _ in range(length))
        for i in range(1, count + 1)
    }


@pytest.fixture
def genomic_fasta(tmp_path: Path) -> Path:
    """A small genome with six scaffolds of 300 bp."""
    return write_fasta(
        tmp_path / "genome.fa", random_sequences("scaffold_", 6, 300, seed=42)
    )


@pytest.fixture
def cdna_fasta(tmp_path: Path) -> Path:
    """Nine cDNA sequences of 120 bp, with descriptions in the headers."""
    sequences = random_sequences("tx", 9, 120, seed=7)
    path = tmp_path / "cdna.fa"
    with open(path, "w") as f:
        for name, seq in sequences.items():
            f.write(f">{name} gene={name.upper()}\n{seq}\n")
    return path


@pytest.fixture
def chunk_files(tmp_path: Path):
    """Factory for non-empty fake chunk files of a given size."""

    def _make(directory: str, count: int, size: int = 100) -> list[Path]:
        chunk_dir = tmp_path / directory
        chunk_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(1, count + 1):
            path = chunk_dir / f"{i}.fa"
            path.write_text(">s\n" + "A" * (size - 4) + "\n")
            paths.append(path)
        return paths

    return _make


# =============================================================================
# Scheduler Fixtures
# =============================================================================


class FakeJob(JobHandle):
    """Job that reports alive for a number of polls, then finishes.

    On finishing it writes the batch completion marker unless
    ``complete`` is False, imitating a job that failed.
    """

    scheduler_name = "fake"

    def __init__(self, job_id: str, work_dir: Path, polls: int = 0, complete: bool = True):
        self._job_id = job_id
        self.work_dir = Path(work_dir)
        self.polls = polls
        self.complete = complete
        self.released = False
        self.killed = False
        self.finished = False

    @property
    def job_id(self) -> str:
        return self._job_id

    def is_alive(self) -> bool:
        if self.polls > 0:
            self.polls -= 1
            return True
        if not self.finished:
            self.finished = True
            if self.complete and self.work_dir.exists():
                write_done(self.work_dir / "done")
        return False

    def kill(self) -> None:
        self.killed = True

    def release(self) -> None:
        self.released = True

    def to_dict(self) -> dict:
        return {
            "scheduler": self.scheduler_name,
            "job_id": self._job_id,
            "work_dir": str(self.work_dir),
        }


class FakeScheduler(Scheduler):
    """Records submissions; revived handles are alive if listed in ``running``."""

    name = "fake"

    def __init__(self, polls: int = 0, complete: bool = True):
        self.polls = polls
        self.complete = complete
        self.submitted = []
        self.revived = []
        self.running: set[str] = set()
        self._next_id = 1000

    def submit(self, command) -> FakeJob:
        job = FakeJob(
            str(self._next_id), command.work_dir, polls=self.polls, complete=self.complete
        )
        self._next_id += 1
        self.submitted.append((command, job))
        return job

    def handle_from_dict(self, data: dict) -> FakeJob:
        job_id = data["job_id"]
        polls = self.polls if job_id in self.running else 0
        job = FakeJob(job_id, Path(data["work_dir"]), polls=polls, complete=self.complete)
        if job_id not in self.running:
            # A job that is gone does not write anything any more
            job.finished = True
        self.revived.append(job)
        return job


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    """Scheduler whose jobs finish immediately and write their marker."""
    return FakeScheduler()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Remove handlers installed by setup_logging during a test."""
    logger = logging.getLogger("alignforge")
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
