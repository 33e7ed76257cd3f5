"""All-versus-all pairing of chunk files and batching into jobs.

Every cDNA chunk has to be aligned against every genomic chunk. The
full cross product is far too many pairs to submit one job per pair, so
it is split with :func:`~alignforge.parallel.partition.balanced_split`
into at most ``max_batches`` batches, each run by one cluster job.

Batch numbers start at 1 and follow the partitioner's group order. The
batch number names the batch's working directory, which holds its
completion marker and persisted job handle, so identical inputs must
always produce identical numbering.

Example:
    >>> from alignforge.parallel.planner import plan_batches
    >>> batches = plan_batches(cdna_files, genomic_files, 200, "jobs")
    >>> batches[0].work_dir
    PosixPath('jobs/1')
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Sequence

import attrs

from alignforge.errors import InvalidArgumentError
from alignforge.parallel.markers import DONE_FILENAME, is_done
from alignforge.parallel.partition import balanced_split

if TYPE_CHECKING:
    from alignforge.parallel.scheduler import JobHandle

logger = logging.getLogger(__name__)

PAIRS_FILENAME = "pairs.tsv"
TASK_FILENAME = "job.json"
HANDLE_FILENAME = "job_handle.json"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.frozen
class FilePair:
    """One cDNA chunk to align against one genomic chunk.

    Attributes:
        cdna: cDNA chunk file.
        genomic: Genomic chunk file.
    """

    cdna: Path = attrs.field(converter=Path)
    genomic: Path = attrs.field(converter=Path)

    def to_line(self) -> str:
        """Tab-separated line for the batch pair list."""
        return f"{self.cdna}\t{self.genomic}"

    @classmethod
    def from_line(cls, line: str) -> FilePair:
        """Parse a line written by :meth:`to_line`."""
        fields = line.rstrip("\n").split("\t")
        if len(fields) != 2:
            raise ValueError(f"Malformed pair line: {line!r}")
        return cls(cdna=fields[0], genomic=fields[1])


@attrs.define
class Batch:
    """A group of file pairs run by a single cluster job.

    Attributes:
        batch_id: Sequential batch number (1-based).
        pairs: File pairs, in execution order.
        work_dir: Working directory for the job.
        handle: Job handle once submitted or reattached.
    """

    batch_id: int
    pairs: list[FilePair]
    work_dir: Path
    handle: JobHandle | None = None

    @property
    def done_file(self) -> Path:
        """Completion marker written by the job after all pairs succeed."""
        return self.work_dir / DONE_FILENAME

    @property
    def pairs_file(self) -> Path:
        """Serialized pair list."""
        return self.work_dir / PAIRS_FILENAME

    @property
    def task_file(self) -> Path:
        """Serialized job task."""
        return self.work_dir / TASK_FILENAME

    @property
    def handle_file(self) -> Path:
        """Persisted job handle."""
        return self.work_dir / HANDLE_FILENAME

    @property
    def is_complete(self) -> bool:
        """Whether the completion marker exists."""
        return is_done(self.done_file)

    def __len__(self) -> int:
        """Return number of pairs."""
        return len(self.pairs)

    def __iter__(self) -> Iterator[FilePair]:
        """Iterate over pairs."""
        return iter(self.pairs)


# =============================================================================
# Planning
# =============================================================================


def cross_product(
    cdna_files: Sequence[Path | str],
    genomic_files: Sequence[Path | str],
) -> list[FilePair]:
    """All cDNA/genomic chunk pairs, genomic-major.

    Args:
        cdna_files: cDNA chunk files.
        genomic_files: Genomic chunk files.

    Returns:
        len(cdna_files) * len(genomic_files) pairs: for each genomic
        file, every cDNA file in order.
    """
    return [
        FilePair(cdna=cdna, genomic=genomic)
        for genomic in genomic_files
        for cdna in cdna_files
    ]


def plan_batches(
    cdna_files: Sequence[Path | str],
    genomic_files: Sequence[Path | str],
    max_batches: int,
    jobs_dir: Path | str,
) -> list[Batch]:
    """Partition the cDNA x genomic cross product into job batches.

    Batches are balanced by pair count. When there are fewer pairs than
    ``max_batches`` each pair gets its own batch; no empty batch is
    planned.

    Args:
        cdna_files: cDNA chunk files.
        genomic_files: Genomic chunk files.
        max_batches: Ceiling on the number of batches.
        jobs_dir: Parent directory of the batch working directories.

    Returns:
        Batches numbered from 1.

    Raises:
        InvalidArgumentError: If max_batches is not positive.
    """
    if isinstance(max_batches, bool) or not isinstance(max_batches, int) or max_batches <= 0:
        raise InvalidArgumentError(
            f"Batch ceiling must be a positive integer, got {max_batches!r}"
        )

    jobs_dir = Path(jobs_dir)
    pairs = cross_product(cdna_files, genomic_files)
    if not pairs:
        logger.warning("No chunk pairs to align")
        return []

    groups = balanced_split(min(max_batches, len(pairs)), pairs)
    batches = [
        Batch(batch_id=batch_id, pairs=group, work_dir=jobs_dir / str(batch_id))
        for batch_id, group in enumerate(groups, start=1)
    ]

    logger.info(
        f"Planned {len(pairs)} pairs ({len(cdna_files)} cdna x "
        f"{len(genomic_files)} genomic) into {len(batches)} batches"
    )

    return batches


def write_pairs_file(pairs: Sequence[FilePair], path: Path | str) -> Path:
    """Write a pair list, one tab-separated pair per line."""
    path = Path(path)
    with open(path, "w") as f:
        for pair in pairs:
            f.write(pair.to_line() + "\n")
    return path


def read_pairs_file(path: Path | str) -> list[FilePair]:
    """Read a pair list written by :func:`write_pairs_file`."""
    with open(path) as f:
        return [FilePair.from_line(line) for line in f if line.strip()]
