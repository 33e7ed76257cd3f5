"""Partitioning, batch planning and resumable job dispatch.

This package holds everything between the input FASTA files and the
cluster:

- Balanced partitioning of items into groups
- FASTA chunking with completion markers
- Planning of the cDNA x genomic pair set into batches
- Memory estimates per batch
- Job tasks and commands, and the runner executed inside each job
- Scheduler backends (SLURM, local processes)
- The dispatcher and the run coordinator

Example:
    >>> from alignforge.parallel import RunContext, RunCoordinator
    >>> context = RunContext.create(config, "work", "genome.fa", ["cdna.fa"])
    >>> summary = RunCoordinator(context).run()
"""

from alignforge.parallel.partition import balanced_split, group_costs

from alignforge.parallel.chunker import (
    SequenceChunk,
    generate_chunks,
    prepare_cdna_input,
    prepare_genomic_input,
)

from alignforge.parallel.planner import (
    Batch,
    FilePair,
    cross_product,
    plan_batches,
)

from alignforge.parallel.resources import (
    estimate_batch_vmem,
    estimate_pair_memory,
    estimate_vmem,
)

from alignforge.parallel.taskgen import (
    JobCommand,
    JobTask,
    TaskOperation,
    build_aligner_argv,
    build_runner_command,
)

from alignforge.parallel.scheduler import (
    JobHandle,
    LocalJob,
    LocalScheduler,
    Scheduler,
    make_scheduler,
    save_handle,
)

from alignforge.parallel.slurm import (
    SlurmJob,
    SlurmScheduler,
    detect_slurm_environment,
)

from alignforge.parallel.dispatcher import (
    BatchState,
    DispatchOutcome,
    DispatchResult,
    JobDispatcher,
    batch_state,
)

from alignforge.parallel.coordinator import (
    RunContext,
    RunCoordinator,
    RunSummary,
)

from alignforge.parallel.executor import PairResult, run_task

__all__ = [
    # Partitioning
    "balanced_split",
    "group_costs",
    # Chunking
    "SequenceChunk",
    "generate_chunks",
    "prepare_cdna_input",
    "prepare_genomic_input",
    # Planning
    "Batch",
    "FilePair",
    "cross_product",
    "plan_batches",
    # Resources
    "estimate_batch_vmem",
    "estimate_pair_memory",
    "estimate_vmem",
    # Tasks
    "JobCommand",
    "JobTask",
    "TaskOperation",
    "build_aligner_argv",
    "build_runner_command",
    # Schedulers
    "JobHandle",
    "LocalJob",
    "LocalScheduler",
    "Scheduler",
    "make_scheduler",
    "save_handle",
    "SlurmJob",
    "SlurmScheduler",
    "detect_slurm_environment",
    # Dispatch
    "BatchState",
    "DispatchOutcome",
    "DispatchResult",
    "JobDispatcher",
    "batch_state",
    "RunContext",
    "RunCoordinator",
    "RunSummary",
    # Job runner
    "PairResult",
    "run_task",
]
