"""Memory estimates for alignment jobs.

GenomeThreader's memory use grows with the product of the cDNA and
genomic input sizes. The estimate for one pair is a fixed baseline plus
a term proportional to that product; both constants were fitted
empirically and live in :class:`~alignforge.config.ResourceConfig`.

A batch runs its pairs one after another in one process, so its hint
is the largest single-pair estimate, not the sum.

Example:
    >>> from alignforge.parallel.resources import estimate_pair_memory
    >>> round(estimate_pair_memory(10 * 2**20, 50 * 2**20), 1)
    26414.4
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from alignforge.config import DEFAULT_BASELINE_MB, DEFAULT_MEMORY_SCALE
from alignforge.errors import InvalidArgumentError, PreconditionFailedError

logger = logging.getLogger(__name__)

MEGABYTE = 2**20


def file_size(path: Path | str) -> int:
    """Size of a file in bytes.

    Raises:
        PreconditionFailedError: If the file cannot be stat'ed.
    """
    try:
        return Path(path).stat().st_size
    except OSError as e:
        raise PreconditionFailedError(
            f"sanity check failed, no size found for {path}: {e}"
        ) from e


def estimate_pair_memory(
    cdna_size: int,
    genomic_size: int,
    baseline_mb: float = DEFAULT_BASELINE_MB,
    scale: float = DEFAULT_MEMORY_SCALE,
) -> float:
    """Exact memory estimate for one pair, in MiB.

    Args:
        cdna_size: cDNA file size in bytes.
        genomic_size: Genomic file size in bytes.
        baseline_mb: Fixed memory floor in MiB.
        scale: Multiplier on the product of the sizes.

    Returns:
        ``(baseline_mb * 2**20 + scale * cdna_size * genomic_size) / 2**20``
    """
    return (baseline_mb * MEGABYTE + scale * cdna_size * genomic_size) / MEGABYTE


def estimate_vmem(
    cdna_file: Path | str,
    genomic_file: Path | str,
    baseline_mb: float = DEFAULT_BASELINE_MB,
    scale: float = DEFAULT_MEMORY_SCALE,
) -> int:
    """Memory hint for one file pair, rounded to whole MiB.

    Raises:
        PreconditionFailedError: If either file cannot be stat'ed.
    """
    cdna_size = file_size(cdna_file)
    genomic_size = file_size(genomic_file)

    estimate = estimate_pair_memory(cdna_size, genomic_size, baseline_mb, scale)
    logger.debug(
        f"cdna size: {cdna_size}, genomic size: {genomic_size} => vmem {estimate:.1f}M"
    )
    return round(estimate)


def estimate_batch_vmem(
    pairs: Iterable,
    baseline_mb: float = DEFAULT_BASELINE_MB,
    scale: float = DEFAULT_MEMORY_SCALE,
) -> int:
    """Memory hint for a batch: the maximum over its pairs.

    Args:
        pairs: FilePair objects (anything with ``cdna`` and ``genomic``).
        baseline_mb: Fixed memory floor in MiB.
        scale: Multiplier on the product of the sizes.

    Raises:
        InvalidArgumentError: If there are no pairs.
        PreconditionFailedError: If a chunk file cannot be stat'ed.
    """
    estimates = [
        estimate_vmem(pair.cdna, pair.genomic, baseline_mb, scale) for pair in pairs
    ]
    if not estimates:
        raise InvalidArgumentError("Cannot estimate memory for an empty batch")
    return max(estimates)
