"""FASTA chunking for parallel alignment.

This module splits a cDNA or genomic FASTA dataset into a fixed number
of chunk files with roughly equal sequence counts. The sequence order
is shuffled before splitting so that runs of similar sequences (long
scaffolds, gene families) spread across chunks.

Chunking is cached: a ``done`` marker in the output directory means the
chunk files are complete, and later runs reuse them as they are. The
directory is only wiped and regenerated when the marker is absent, so a
new random shuffle can never replace chunks that finished jobs already
aligned.

Example:
    >>> from alignforge.parallel.chunker import prepare_genomic_input
    >>> files = prepare_genomic_input("genomic.fa", 200, "input/genomic")
    >>> len(files)
    200
"""

from __future__ import annotations

import logging
import random
import shutil
import tempfile
from pathlib import Path
from typing import Iterable

import attrs

from alignforge.errors import InvalidArgumentError
from alignforge.io.fasta import (
    FastaSource,
    concatenate_fasta,
    iter_fasta_paths,
    read_fasta_names,
)
from alignforge.parallel.markers import done_path, is_done, write_done
from alignforge.parallel.partition import balanced_split

logger = logging.getLogger(__name__)

CHUNK_SUFFIX = ".fa"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.frozen
class SequenceChunk:
    """A written chunk file.

    Attributes:
        chunk_id: Chunk identifier (the file stem, "1", "2", ...).
        path: Path to the chunk FASTA file.
        names: Sequence names in the file, in file order.
    """

    chunk_id: str
    path: Path
    names: tuple[str, ...] = ()

    @property
    def n_sequences(self) -> int:
        """Number of sequences in the chunk."""
        return len(self.names)

    @classmethod
    def from_file(cls, path: Path | str) -> SequenceChunk:
        """Describe an existing chunk file by scanning its headers."""
        path = Path(path)
        return cls(
            chunk_id=path.stem,
            path=path,
            names=tuple(read_fasta_names(path)),
        )


# =============================================================================
# Chunk Generation
# =============================================================================


def _check_chunk_count(chunk_count: int) -> None:
    if isinstance(chunk_count, bool) or not isinstance(chunk_count, int) or chunk_count <= 0:
        raise InvalidArgumentError(
            f"Chunk count must be a positive integer, got {chunk_count!r}"
        )


def _cached_chunks(output_dir: Path) -> list[SequenceChunk]:
    return [
        SequenceChunk.from_file(path)
        for path in iter_fasta_paths(output_dir, CHUNK_SUFFIX)
    ]


def chunk_fasta_file(
    source: FastaSource,
    chunk_count: int,
    output_dir: Path | str,
    seed: int | None = None,
) -> list[SequenceChunk]:
    """Write a shuffled, balanced split of a FASTA source to chunk files.

    Chunk i (1-based) is written to ``<output_dir>/<i>.fa``. No marker
    is written; see :func:`generate_chunks`.

    Args:
        source: Sequence source to split.
        chunk_count: Number of chunk files to write.
        output_dir: Existing directory to write into.
        seed: Seed for the shuffle (None = nondeterministic).

    Returns:
        The written chunks in chunk order.
    """
    _check_chunk_count(chunk_count)
    output_dir = Path(output_dir)

    names = source.list_sequence_names()
    random.Random(seed).shuffle(names)

    chunks = []
    for chunk_idx, group in enumerate(balanced_split(chunk_count, names), start=1):
        chunk_path = output_dir / f"{chunk_idx}{CHUNK_SUFFIX}"
        with open(chunk_path, "w") as out:
            for name in group:
                record, _ = source.get_sequence(name)
                out.write(record)
        chunks.append(
            SequenceChunk(chunk_id=str(chunk_idx), path=chunk_path, names=tuple(group))
        )

    if chunk_count > len(names):
        logger.info(
            f"{chunk_count} chunks requested for {len(names)} sequences; "
            f"{chunk_count - len(names)} chunk files are empty"
        )

    return chunks


def generate_chunks(
    source_path: Path | str,
    chunk_count: int,
    output_dir: Path | str,
    seed: int | None = None,
    label: str = "",
) -> list[SequenceChunk]:
    """Generate chunk files for a FASTA dataset, reusing a finished set.

    If ``<output_dir>/done`` exists the existing ``*.fa`` files are
    returned, ordered by file name. Otherwise the directory is removed
    and recreated, the source is chunked, and the marker is written.

    Args:
        source_path: FASTA file to split.
        chunk_count: Number of chunk files.
        output_dir: Directory holding the chunk files and marker.
        seed: Seed for the shuffle.
        label: Dataset label for log messages ("cdna", "genomic").

    Returns:
        Chunks in deterministic order.

    Raises:
        InvalidArgumentError: If chunk_count is not positive.
        FileNotFoundError: If the source FASTA is missing.
    """
    _check_chunk_count(chunk_count)
    output_dir = Path(output_dir)
    label = f"{label} " if label else ""

    marker = done_path(output_dir)
    if is_done(marker):
        logger.info(f"using cached {label}input.")
        return _cached_chunks(output_dir)

    logger.info(f"generating {label}input files...")

    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)

    with FastaSource(source_path) as source:
        chunk_fasta_file(source, chunk_count, output_dir, seed=seed)

    write_done(marker, timestamp=True)
    logger.info(f"{label}input done.")

    # Enumerate from disk so fresh and cached runs return the same order
    return _cached_chunks(output_dir)


def prepare_genomic_input(
    genomic_fasta: Path | str,
    chunk_count: int,
    input_dir: Path | str,
    seed: int | None = None,
) -> list[Path]:
    """Chunk the genomic FASTA.

    Returns:
        Chunk file paths.
    """
    chunks = generate_chunks(genomic_fasta, chunk_count, input_dir, seed=seed, label="genomic")
    return [chunk.path for chunk in chunks]


def prepare_cdna_input(
    cdna_fastas: Iterable[Path | str],
    chunk_count: int,
    input_dir: Path | str,
    seed: int | None = None,
) -> list[Path]:
    """Merge the cDNA FASTA files and chunk the result.

    Input files are merged in sorted path order; missing files are
    skipped with a warning. When the chunk set is cached the inputs are
    not read at all.

    Returns:
        Chunk file paths.
    """
    _check_chunk_count(chunk_count)
    input_dir = Path(input_dir)

    if is_done(done_path(input_dir)):
        logger.info("using cached cdna input.")
        return [chunk.path for chunk in _cached_chunks(input_dir)]

    with tempfile.TemporaryDirectory(prefix="alignforge_cdna_") as tmp:
        merged = concatenate_fasta(
            sorted(Path(p) for p in cdna_fastas),
            Path(tmp) / "all_cdna.fasta",
        )
        chunks = generate_chunks(merged, chunk_count, input_dir, seed=seed, label="cdna")

    return [chunk.path for chunk in chunks]
