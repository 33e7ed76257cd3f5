"""FASTA file handling for cDNA and genomic datasets.

This module provides the sequence source consumed by the chunk
generator, using pyfaidx for indexed random access, plus the small
amount of record writing needed to produce chunk files.

Features:
    - Ordered sequence names of a FASTA file
    - Random access to whole records by name
    - FASTA record formatting with fixed line width
    - Header scanning for already-written chunk files
    - Concatenation of several FASTA files into one

Example:
    >>> from alignforge.io.fasta import FastaSource
    >>> with FastaSource("genomic.fa") as source:
    ...     for name in source.list_sequence_names():
    ...         record, size = source.get_sequence(name)
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Iterator

import pyfaidx

logger = logging.getLogger(__name__)

# Line width for written sequence records
FASTA_LINE_WIDTH = 60


# =============================================================================
# Utility Functions
# =============================================================================


def format_fasta_record(
    header: str,
    sequence: str,
    width: int = FASTA_LINE_WIDTH,
) -> str:
    """Format a single FASTA record.

    Args:
        header: Header text without the leading '>'.
        sequence: Sequence string.
        width: Maximum residues per line.

    Returns:
        Record text ending with a newline.

    Example:
        >>> format_fasta_record("seq1 desc", "ACGTACGT", width=4)
        '>seq1 desc\\nACGT\\nACGT\\n'
    """
    lines = [f">{header}"]
    for i in range(0, len(sequence), width):
        lines.append(sequence[i : i + width])
    return "\n".join(lines) + "\n"


def read_fasta_names(path: Path | str) -> list[str]:
    """Read sequence names from the header lines of a FASTA file.

    The name is the first whitespace-delimited token of each header,
    matching the keys pyfaidx uses.

    Args:
        path: FASTA file path.

    Returns:
        Sequence names in file order.
    """
    names = []
    with open(path) as f:
        for line in f:
            if line.startswith(">"):
                fields = line[1:].split()
                if fields:
                    names.append(fields[0])
    return names


def iter_fasta_paths(directory: Path | str, suffix: str = ".fa") -> Iterator[Path]:
    """Recursively yield FASTA files under a directory, sorted by name.

    Args:
        directory: Directory to search.
        suffix: File suffix to match.

    Yields:
        File paths ordered lexicographically by file name, then full path.
    """
    directory = Path(directory)
    paths = [p for p in directory.rglob(f"*{suffix}") if p.is_file()]
    yield from sorted(paths, key=lambda p: (p.name, str(p)))


def concatenate_fasta(
    fasta_files: Iterable[Path | str],
    output_path: Path | str,
) -> Path:
    """Concatenate FASTA files into one, skipping missing inputs.

    Args:
        fasta_files: Input FASTA files, in the order to write them.
        output_path: Destination file.

    Returns:
        Path to the concatenated file.
    """
    output_path = Path(output_path)
    n_written = 0
    with open(output_path, "wb") as out:
        for fasta_file in fasta_files:
            fasta_file = Path(fasta_file)
            if not fasta_file.is_file():
                logger.warning(f"Skipping missing FASTA file: {fasta_file}")
                continue
            with open(fasta_file, "rb") as f:
                shutil.copyfileobj(f, out)
            n_written += 1

    logger.debug(f"Concatenated {n_written} FASTA files into {output_path}")
    return output_path


# =============================================================================
# Main Source Class
# =============================================================================


class FastaSource:
    """Indexed FASTA sequence source using pyfaidx.

    Attributes:
        path: Path to the FASTA file.

    Example:
        >>> source = FastaSource("cdna.fa")
        >>> names = source.list_sequence_names()
        >>> record, size = source.get_sequence(names[0])
        >>> source.close()
    """

    def __init__(self, fasta_path: Path | str) -> None:
        """Initialize the source.

        Args:
            fasta_path: Path to FASTA file. Will create .fai index if needed.

        Raises:
            FileNotFoundError: If FASTA file doesn't exist.
        """
        self.path = Path(fasta_path)
        if not self.path.exists():
            raise FileNotFoundError(f"FASTA file not found: {self.path}")

        self._fasta: pyfaidx.Fasta | None = None
        self._names: list[str] = []

        self._open()

    def _open(self) -> None:
        """Open the FASTA file with pyfaidx."""
        if self.path.stat().st_size == 0:
            # pyfaidx refuses to index an empty file
            logger.info(f"Opened FASTA: {self.path.name}, 0 sequences")
            return

        self._fasta = pyfaidx.Fasta(
            str(self.path),
            sequence_always_upper=False,  # Preserve case for soft-masking
            rebuild=False,
        )
        self._names = list(self._fasta.keys())

        logger.info(f"Opened FASTA: {self.path.name}, {len(self._names):,} sequences")

    def list_sequence_names(self) -> list[str]:
        """Return sequence names in file order."""
        return list(self._names)

    def get_sequence(self, name: str) -> tuple[str, int]:
        """Get a full record by sequence name.

        Args:
            name: Sequence name (first token of the header).

        Returns:
            Tuple of (FASTA record text, sequence length).

        Raises:
            KeyError: If name not in FASTA.
        """
        if self._fasta is None or name not in self._fasta:
            raise KeyError(f"Unknown sequence: {name}")

        record = self._fasta[name]
        sequence = str(record[:])
        return format_fasta_record(record.long_name, sequence), len(sequence)

    def __contains__(self, name: str) -> bool:
        """Check if a sequence exists in the FASTA."""
        return self._fasta is not None and name in self._fasta

    def __len__(self) -> int:
        """Return number of sequences."""
        return len(self._names)

    def __enter__(self) -> FastaSource:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the FASTA file."""
        if self._fasta is not None:
            self._fasta.close()
            self._fasta = None
