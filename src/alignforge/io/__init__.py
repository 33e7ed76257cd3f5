"""Input/output handlers for AlignForge.

Example:
    >>> from alignforge.io import FastaSource
    >>> source = FastaSource("genomic.fa")
"""

from alignforge.io.fasta import (
    FastaSource,
    concatenate_fasta,
    format_fasta_record,
    iter_fasta_paths,
    read_fasta_names,
)

__all__ = [
    "FastaSource",
    "concatenate_fasta",
    "format_fasta_record",
    "iter_fasta_paths",
    "read_fasta_names",
]
