"""Command-line interface for AlignForge.

This module provides the main entry point for the alignforge CLI tool.
It uses Click to define commands and rich for console output.

Commands:
    run: Chunk inputs, submit alignment batches and wait for them
    status: Show the state of every batch of a working directory
    run-task: Execute one batch (invoked inside cluster jobs)

Example:
    $ alignforge --help
    $ alignforge run --genomic genome.fa --cdna transcripts.fa -w work/
    $ alignforge run --genomic genome.fa --cdna-list cdna_files.txt -g 200 -c 30
    $ alignforge status -w work/
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from alignforge.utils.logging import setup_logging

# Initialize rich console for pretty output
console = Console()


@click.group()
@click.version_option(prog_name="alignforge")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write a debug log to this file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, log_file: Optional[Path]) -> None:
    """AlignForge: resumable cluster batching for cDNA-to-genome alignment.

    AlignForge chunks a cDNA collection and a genome, aligns every cDNA
    chunk against every genomic chunk with GenomeThreader in a bounded
    number of cluster jobs, and can be rerun at any time to pick up where
    a previous run stopped.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    verbosity = 0 if quiet else (2 if verbose else 1)
    setup_logging(verbosity=verbosity, log_file=log_file)


def _read_cdna_list(path: Path) -> list[Path]:
    """Paths listed one per line; blank lines and '#' comments ignored."""
    entries = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            entries.append(Path(line))
    return entries


def _load_config(
    config_path: Optional[Path],
    overrides: dict,
):
    """Load the config file and apply command-line overrides."""
    import attrs

    from alignforge.config import Config

    config = Config.load(config_path)
    for section, values in overrides.items():
        values = {k: v for k, v in values.items() if v is not None}
        if values:
            setattr(config, section, attrs.evolve(getattr(config, section), **values))
    return config


# =============================================================================
# run command
# =============================================================================


@main.command()
@click.option(
    "--genomic",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Genomic FASTA file.",
)
@click.option(
    "--cdna",
    type=click.Path(dir_okay=False, path_type=Path),
    multiple=True,
    help="cDNA FASTA file. Can be repeated.",
)
@click.option(
    "--cdna-list",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File listing cDNA FASTA files, one per line.",
)
@click.option(
    "-g",
    "--genomic-chunks",
    type=int,
    help="Number of genomic chunk files [default: 200].",
)
@click.option(
    "-c",
    "--cdna-chunks",
    type=int,
    help="Number of cDNA chunk files [default: 30].",
)
@click.option(
    "--max-batches",
    type=int,
    help="Maximum number of cluster jobs [default: 200].",
)
@click.option(
    "-w",
    "--work-dir",
    type=click.Path(file_okay=False, resolve_path=True, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Working directory for chunks and job directories.",
)
@click.option(
    "--scheduler",
    type=click.Choice(["slurm", "local"]),
    help="Scheduler backend [default: slurm].",
)
@click.option(
    "--partition",
    type=str,
    help="SLURM partition.",
)
@click.option(
    "--time-limit",
    type=str,
    help="SLURM time limit per job (e.g. 24:00:00).",
)
@click.option(
    "--poll-interval",
    type=float,
    help="Seconds between job status checks [default: 10].",
)
@click.option(
    "--seed",
    type=int,
    help="Random seed for the sequence shuffle.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML configuration file. Command-line options take precedence.",
)
@click.pass_context
def run(
    ctx: click.Context,
    genomic: Path,
    cdna: tuple[Path, ...],
    cdna_list: Optional[Path],
    genomic_chunks: Optional[int],
    cdna_chunks: Optional[int],
    max_batches: Optional[int],
    work_dir: Path,
    scheduler: Optional[str],
    partition: Optional[str],
    time_limit: Optional[str],
    poll_interval: Optional[float],
    seed: Optional[int],
    config_path: Optional[Path],
) -> None:
    """Align cDNA chunks against genomic chunks on the cluster.

    Chunks the inputs (reusing finished chunk sets), plans the pair set
    into batches, submits every batch that is neither done nor still
    running, and waits until all jobs have finished. Safe to rerun.

    Example:
        $ alignforge run --genomic genome.fa --cdna est.fa -w work/ --partition long
    """
    from alignforge.parallel.coordinator import RunContext, RunCoordinator

    verbose = ctx.obj.get("verbose", False)

    try:
        cdna_files = list(cdna)
        if cdna_list:
            cdna_files.extend(_read_cdna_list(cdna_list))
        if not cdna_files:
            console.print("[red]Error:[/red] Provide --cdna and/or --cdna-list")
            raise SystemExit(1)

        config = _load_config(
            config_path,
            {
                "chunking": {
                    "genomic_chunks": genomic_chunks,
                    "cdna_chunks": cdna_chunks,
                    "seed": seed,
                },
                "batch": {"max_batches": max_batches, "poll_interval": poll_interval},
                "scheduler": {
                    "backend": scheduler,
                    "partition": partition,
                    "time_limit": time_limit,
                },
            },
        )

        if not ctx.obj.get("quiet"):
            console.print(f"[blue]Genomic:[/blue] {genomic}")
            console.print(f"[blue]cDNA files:[/blue] {len(cdna_files)}")
            console.print(f"[blue]Work dir:[/blue] {work_dir}")
            console.print(
                f"[blue]Chunks:[/blue] {config.chunking.cdna_chunks} cdna x "
                f"{config.chunking.genomic_chunks} genomic, "
                f"at most {config.batch.max_batches} jobs"
            )
            console.print(f"[blue]Scheduler:[/blue] {config.scheduler.backend}")

        context = RunContext.create(config, work_dir, genomic, cdna_files)
        summary = RunCoordinator(context).run()

        table = Table(title="Run Summary")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Batches", str(summary.total_batches))
        table.add_row("Done", str(summary.done))
        table.add_row("Incomplete", str(len(summary.incomplete)))
        for outcome, count in summary.outcomes.items():
            table.add_row(outcome.capitalize(), str(count))
        console.print(table)

        if not summary.all_done:
            ids = ", ".join(str(i) for i in summary.incomplete)
            console.print(
                f"[yellow]Warning:[/yellow] batches without completion marker: {ids}. "
                "Rerun to resubmit them."
            )
            raise SystemExit(1)

        console.print("[green]All batches done.[/green]")

    except SystemExit:
        raise
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback
            traceback.print_exc()
        raise SystemExit(1)


# =============================================================================
# status command
# =============================================================================


@main.command()
@click.option(
    "-w",
    "--work-dir",
    type=click.Path(exists=True, file_okay=False, resolve_path=True, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Working directory of a run.",
)
@click.option(
    "--max-batches",
    type=int,
    help="Batch ceiling used for the run [default: 200].",
)
@click.option(
    "--scheduler",
    type=click.Choice(["slurm", "local"]),
    help="Scheduler backend used for the run [default: slurm].",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML configuration file used for the run.",
)
@click.pass_context
def status(
    ctx: click.Context,
    work_dir: Path,
    max_batches: Optional[int],
    scheduler: Optional[str],
    config_path: Optional[Path],
) -> None:
    """Show which batches are done, running or pending.

    Re-plans the batches from the finished chunk sets of a working
    directory; nothing is submitted or modified.

    Example:
        $ alignforge status -w work/
    """
    from alignforge.io.fasta import iter_fasta_paths
    from alignforge.parallel.chunker import CHUNK_SUFFIX
    from alignforge.parallel.coordinator import work_layout
    from alignforge.parallel.dispatcher import BatchState, batch_state
    from alignforge.parallel.markers import done_path, is_done
    from alignforge.parallel.planner import plan_batches
    from alignforge.parallel.scheduler import make_scheduler

    verbose = ctx.obj.get("verbose", False)

    try:
        config = _load_config(
            config_path,
            {
                "batch": {"max_batches": max_batches},
                "scheduler": {"backend": scheduler},
            },
        )
        layout = work_layout(work_dir)

        for label in ("cdna", "genomic"):
            if not is_done(done_path(layout[label])):
                console.print(
                    f"[red]Error:[/red] {label} input in {layout[label]} is not prepared"
                )
                raise SystemExit(1)

        batches = plan_batches(
            list(iter_fasta_paths(layout["cdna"], CHUNK_SUFFIX)),
            list(iter_fasta_paths(layout["genomic"], CHUNK_SUFFIX)),
            config.batch.max_batches,
            layout["jobs"],
        )
        backend = make_scheduler(config.scheduler)

        table = Table(title=f"Batches in {layout['jobs']}")
        table.add_column("Batch", justify="right")
        table.add_column("Pairs", justify="right")
        table.add_column("State")

        colors = {
            BatchState.DONE: "green",
            BatchState.RUNNING: "yellow",
            BatchState.PENDING: "red",
            BatchState.UNKNOWN: "magenta",
        }
        counts = {state: 0 for state in BatchState}
        for batch in batches:
            state = batch_state(batch, backend)
            counts[state] += 1
            table.add_row(
                str(batch.batch_id),
                str(len(batch)),
                f"[{colors[state]}]{state.value}[/{colors[state]}]",
            )

        console.print(table)
        console.print(
            ", ".join(f"{state.value}: {count}" for state, count in counts.items())
        )

    except SystemExit:
        raise
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback
            traceback.print_exc()
        raise SystemExit(1)


# =============================================================================
# run-task command
# =============================================================================


@main.command("run-task")
@click.argument(
    "task_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_context
def run_task_command(ctx: click.Context, task_file: Path) -> None:
    """Execute one batch from its job task file.

    Submitted jobs run this command; it is not normally invoked by hand.

    Example:
        $ alignforge run-task work/jobs/7/job.json
    """
    from alignforge.parallel.executor import run_task

    verbose = ctx.obj.get("verbose", False)

    try:
        results = run_task(task_file)
        skipped = sum(1 for r in results if r.skipped)
        console.print(
            f"[green]Aligned {len(results) - skipped} pairs[/green] "
            f"({skipped} skipped)"
        )
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback
            traceback.print_exc()
        raise SystemExit(1)


if __name__ == "__main__":
    main()
