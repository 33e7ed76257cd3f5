"""Configuration management for AlignForge.

This module handles loading, validating, and providing access to
AlignForge configuration settings. Configuration can come from:
- Default values
- A TOML configuration file
- Command-line arguments (applied by the CLI on top of the file)

Example:
    >>> from alignforge.config import Config
    >>> config = Config.load("alignforge.toml")
    >>> config.batch.max_batches
    200

A configuration file mirrors the attribute layout::

    [chunking]
    genomic_chunks = 200
    cdna_chunks = 30

    [batch]
    max_batches = 200
    poll_interval = 10.0

    [resources]
    baseline_mb = 200.0
    scale = 5e-5

    [aligner]
    species = "arabidopsis"

    [scheduler]
    backend = "slurm"
    partition = "long"
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import attrs

from alignforge.errors import InvalidArgumentError

# =============================================================================
# Default Configuration Values
# =============================================================================

# Chunking defaults
DEFAULT_GENOMIC_CHUNKS = 200
DEFAULT_CDNA_CHUNKS = 30

# Batching defaults
DEFAULT_MAX_BATCHES = 200
DEFAULT_POLL_INTERVAL = 10.0  # seconds

# Memory estimate defaults (tuned empirically for gth)
DEFAULT_BASELINE_MB = 200.0
DEFAULT_MEMORY_SCALE = 5e-05

# Aligner defaults
DEFAULT_ALIGNER = "gth"
DEFAULT_MIN_ALIGNMENT_SCORE = 0.90
DEFAULT_MIN_COVERAGE = 0.90
DEFAULT_SEED_LENGTH = 16
DEFAULT_SPECIES = "arabidopsis"

SCHEDULER_BACKENDS = ("slurm", "local")


# =============================================================================
# Validators
# =============================================================================


def _positive(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if value is None or value <= 0:
        raise InvalidArgumentError(
            f"{attribute.name} must be positive, got {value!r}"
        )


def _non_negative(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if value < 0:
        raise InvalidArgumentError(
            f"{attribute.name} must not be negative, got {value!r}"
        )


def _fraction(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(
            f"{attribute.name} must be between 0 and 1, got {value!r}"
        )


def _backend(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if value not in SCHEDULER_BACKENDS:
        raise InvalidArgumentError(
            f"Unknown scheduler backend: {value!r} "
            f"(expected one of {', '.join(SCHEDULER_BACKENDS)})"
        )


# =============================================================================
# Configuration Classes
# =============================================================================


@attrs.define
class ChunkingConfig:
    """Configuration for splitting the input datasets.

    Attributes:
        genomic_chunks: Number of chunk files for the genomic FASTA.
        cdna_chunks: Number of chunk files for the cDNA FASTA.
        seed: Seed for the sequence shuffle (None = random each run).
    """

    genomic_chunks: int = attrs.field(default=DEFAULT_GENOMIC_CHUNKS, validator=_positive)
    cdna_chunks: int = attrs.field(default=DEFAULT_CDNA_CHUNKS, validator=_positive)
    seed: int | None = None


@attrs.define
class BatchConfig:
    """Configuration for batching chunk pairs into cluster jobs.

    Attributes:
        max_batches: Ceiling on the number of submitted jobs.
        poll_interval: Seconds between liveness checks.
    """

    max_batches: int = attrs.field(default=DEFAULT_MAX_BATCHES, validator=_positive)
    poll_interval: float = attrs.field(
        default=DEFAULT_POLL_INTERVAL, validator=_non_negative
    )


@attrs.define
class ResourceConfig:
    """Configuration for the per-job memory estimate.

    The estimate for a cDNA/genomic file pair is
    ``baseline_mb + scale * cdna_bytes * genomic_bytes / 2**20`` MiB.

    Attributes:
        baseline_mb: Fixed memory floor in MiB.
        scale: Multiplier on the product of the two file sizes.
    """

    baseline_mb: float = attrs.field(default=DEFAULT_BASELINE_MB, validator=_non_negative)
    scale: float = attrs.field(default=DEFAULT_MEMORY_SCALE, validator=_non_negative)


@attrs.define
class AlignerConfig:
    """Parameters for the GenomeThreader invocation of each pair.

    Attributes:
        executable: Aligner executable name or path.
        min_alignment_score: Value for -minalignmentscore.
        min_coverage: Value for -mincoverage.
        seed_length: Value for -seedlength.
        species: Value for -species.
    """

    executable: str = DEFAULT_ALIGNER
    min_alignment_score: float = attrs.field(
        default=DEFAULT_MIN_ALIGNMENT_SCORE, validator=_fraction
    )
    min_coverage: float = attrs.field(default=DEFAULT_MIN_COVERAGE, validator=_fraction)
    seed_length: int = attrs.field(default=DEFAULT_SEED_LENGTH, validator=_positive)
    species: str = DEFAULT_SPECIES

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return attrs.asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AlignerConfig:
        """Create from dictionary."""
        return cls(**data)


@attrs.define
class SchedulerConfig:
    """Configuration for the job scheduler backend.

    Attributes:
        backend: "slurm" or "local".
        partition: SLURM partition (None = cluster default).
        time_limit: SLURM time limit, e.g. "24:00:00" (None = default).
        extra_args: Additional sbatch arguments.
    """

    backend: str = attrs.field(default="slurm", validator=_backend)
    partition: str | None = None
    time_limit: str | None = None
    extra_args: list[str] = attrs.Factory(list)


@attrs.define
class Config:
    """Main configuration container for AlignForge.

    Attributes:
        chunking: Input chunking configuration.
        batch: Batch planning and polling configuration.
        resources: Memory estimate configuration.
        aligner: Aligner parameters.
        scheduler: Scheduler backend configuration.
    """

    chunking: ChunkingConfig = attrs.Factory(ChunkingConfig)
    batch: BatchConfig = attrs.Factory(BatchConfig)
    resources: ResourceConfig = attrs.Factory(ResourceConfig)
    aligner: AlignerConfig = attrs.Factory(AlignerConfig)
    scheduler: SchedulerConfig = attrs.Factory(SchedulerConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> Config:
        """Load configuration from a TOML file.

        Args:
            path: Path to configuration file.
                  If None, returns default configuration.

        Returns:
            Loaded configuration object.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            InvalidArgumentError: If the file has unknown sections or keys,
                or a value fails validation.
        """
        if path is None:
            return cls()

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise InvalidArgumentError(f"Invalid TOML in {path}: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Build a configuration from nested section dictionaries."""
        unknown = set(data) - set(_SECTION_TYPES)
        if unknown:
            raise InvalidArgumentError(
                f"Unknown configuration sections: {', '.join(sorted(unknown))}"
            )

        kwargs = {}
        for name, values in data.items():
            section_cls = _SECTION_TYPES[name]
            known = {f.name for f in attrs.fields(section_cls)}
            bad_keys = set(values) - known
            if bad_keys:
                raise InvalidArgumentError(
                    f"Unknown keys in [{name}]: {', '.join(sorted(bad_keys))}"
                )
            kwargs[name] = section_cls(**values)

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration.
        """
        return attrs.asdict(self)


_SECTION_TYPES = {
    "chunking": ChunkingConfig,
    "batch": BatchConfig,
    "resources": ResourceConfig,
    "aligner": AlignerConfig,
    "scheduler": SchedulerConfig,
}
