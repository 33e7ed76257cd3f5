"""AlignForge: resumable cluster batching for cDNA-to-genome alignment.

AlignForge splits a cDNA collection and a genome into FASTA chunks,
plans the all-versus-all chunk pairs into a bounded number of cluster
jobs, submits each job with a memory hint derived from the input sizes,
and waits for the jobs to finish. Completion markers on disk make every
stage restartable: a rerun only redoes what has not finished.

Example:
    >>> import alignforge
    >>> alignforge.__version__
    '0.1.0'

Modules:
    io: FASTA sequence sources and record writing
    parallel: Partitioning, chunking, batch planning, dispatch, scheduling
    utils: Logging configuration
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
