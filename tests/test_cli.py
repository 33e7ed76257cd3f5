"""Tests for the alignforge command-line interface."""

import subprocess
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import FakeScheduler

from alignforge.cli import main


@pytest.fixture
def runner():
    return CliRunner()


def _run_args(genomic_fasta, cdna_fasta, work_dir, *extra):
    return [
        "run",
        "--genomic", str(genomic_fasta),
        "--cdna", str(cdna_fasta),
        "-g", "2",
        "-c", "3",
        "--max-batches", "4",
        "--poll-interval", "0",
        "--seed", "1",
        "-w", str(work_dir),
        *extra,
    ]


class TestMain:
    """Tests for the command group."""

    def test_help(self, runner):
        """Help lists the commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "status", "run-task"):
            assert command in result.output

    def test_version(self, runner):
        """--version prints the program name."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "alignforge" in result.output


class TestRunCommand:
    """Tests for `alignforge run`."""

    def test_run(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """A run submits every batch and reports success."""
        scheduler = FakeScheduler(polls=1)
        with patch("alignforge.parallel.coordinator.make_scheduler", return_value=scheduler):
            result = runner.invoke(
                main, _run_args(genomic_fasta, cdna_fasta, tmp_path / "work")
            )

        assert result.exit_code == 0, result.output
        assert "All batches done" in result.output
        assert len(scheduler.submitted) == 4
        assert (tmp_path / "work" / "input" / "cdna" / "done").exists()
        assert (tmp_path / "work" / "jobs" / "1" / "done").exists()

    def test_cdna_list(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """cDNA files can be listed in a file."""
        listing = tmp_path / "cdna.txt"
        listing.write_text(f"# transcripts\n{cdna_fasta}\n\n")
        scheduler = FakeScheduler()
        args = _run_args(genomic_fasta, cdna_fasta, tmp_path / "work")
        # Replace --cdna with --cdna-list
        index = args.index("--cdna")
        args[index:index + 2] = ["--cdna-list", str(listing)]

        with patch("alignforge.parallel.coordinator.make_scheduler", return_value=scheduler):
            result = runner.invoke(main, args)

        assert result.exit_code == 0, result.output
        assert len(scheduler.submitted) == 4

    def test_requires_cdna(self, runner, genomic_fasta, tmp_path):
        """Without cDNA input the command fails."""
        result = runner.invoke(
            main, ["run", "--genomic", str(genomic_fasta), "-w", str(tmp_path)]
        )
        assert result.exit_code == 1
        assert "--cdna" in result.output

    def test_invalid_chunk_count(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """Bad counts are reported as errors with exit code 1."""
        args = _run_args(genomic_fasta, cdna_fasta, tmp_path / "work")
        args[args.index("-g") + 1] = "0"
        result = runner.invoke(main, args)
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_incomplete_batches_exit_1(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """Batches without markers make the run fail."""
        scheduler = FakeScheduler(complete=False)
        with patch("alignforge.parallel.coordinator.make_scheduler", return_value=scheduler):
            result = runner.invoke(
                main, _run_args(genomic_fasta, cdna_fasta, tmp_path / "work")
            )
        assert result.exit_code == 1
        assert "Rerun" in result.output

    def test_config_file(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """Options override the config file; file values fill the rest."""
        config = tmp_path / "alignforge.toml"
        config.write_text("[batch]\nmax_batches = 2\npoll_interval = 0\n")
        scheduler = FakeScheduler()
        args = [
            "run",
            "--genomic", str(genomic_fasta),
            "--cdna", str(cdna_fasta),
            "-g", "2",
            "-c", "3",
            "-w", str(tmp_path / "work"),
            "--config", str(config),
        ]
        with patch("alignforge.parallel.coordinator.make_scheduler", return_value=scheduler):
            result = runner.invoke(main, args)

        assert result.exit_code == 0, result.output
        assert len(scheduler.submitted) == 2

    def test_relative_paths(self, runner, genomic_fasta, cdna_fasta, tmp_path, monkeypatch):
        """Relative work dir and inputs reach the jobs as absolute paths."""
        monkeypatch.chdir(tmp_path)
        scheduler = FakeScheduler()
        args = _run_args("genome.fa", "cdna.fa", "work")
        with patch("alignforge.parallel.coordinator.make_scheduler", return_value=scheduler):
            result = runner.invoke(main, args)

        assert result.exit_code == 0, result.output
        work_dir = tmp_path / "work"
        for command, _ in scheduler.submitted:
            assert command.work_dir.is_absolute()
            assert command.work_dir.parent == work_dir / "jobs"
            assert command.argv[-1] == str(command.work_dir / "job.json")

        from alignforge.parallel.planner import read_pairs_file
        from alignforge.parallel.taskgen import JobTask

        task = JobTask.load(scheduler.submitted[0][0].work_dir / "job.json")
        assert task.pairs_file.is_absolute()
        assert all(pair.cdna.is_absolute() for pair in read_pairs_file(task.pairs_file))


class TestStatusCommand:
    """Tests for `alignforge status`."""

    def test_status_after_run(self, runner, genomic_fasta, cdna_fasta, tmp_path):
        """Batches of a finished run are all done."""
        work_dir = tmp_path / "work"
        with patch(
            "alignforge.parallel.coordinator.make_scheduler", return_value=FakeScheduler()
        ):
            runner.invoke(main, _run_args(genomic_fasta, cdna_fasta, work_dir))

        with patch(
            "alignforge.parallel.scheduler.make_scheduler", return_value=FakeScheduler()
        ):
            result = runner.invoke(
                main, ["status", "-w", str(work_dir), "--max-batches", "4"]
            )

        assert result.exit_code == 0, result.output
        assert "done: 4" in result.output
        assert "pending: 0" in result.output

    def test_status_unprepared(self, runner, tmp_path):
        """A directory without chunked inputs is an error."""
        result = runner.invoke(main, ["status", "-w", str(tmp_path)])
        assert result.exit_code == 1
        assert "not prepared" in result.output


class TestRunTaskCommand:
    """Tests for `alignforge run-task`."""

    def test_run_task(self, runner, chunk_files, tmp_path):
        """The runner aligns the pairs of a task file."""
        from alignforge.parallel.planner import FilePair, write_pairs_file
        from alignforge.parallel.taskgen import JobTask, TaskOperation

        cdna = chunk_files("c", 1)
        genomic = chunk_files("g", 1)
        work_dir = tmp_path / "jobs" / "1"
        work_dir.mkdir(parents=True)
        write_pairs_file([FilePair(cdna[0], genomic[0])], work_dir / "pairs.tsv")
        task_file = JobTask(
            TaskOperation.ALIGN_PAIRS, work_dir / "pairs.tsv", work_dir, work_dir / "done"
        ).save(work_dir / "job.json")

        completed = subprocess.CompletedProcess(args=[], returncode=0)
        with patch("subprocess.run", return_value=completed):
            result = runner.invoke(main, ["run-task", str(task_file)])

        assert result.exit_code == 0, result.output
        assert "Aligned 1 pairs" in result.output
        assert (work_dir / "done").exists()

    def test_run_task_failure(self, runner, chunk_files, tmp_path):
        """A failing aligner gives exit code 1."""
        from alignforge.parallel.planner import FilePair, write_pairs_file
        from alignforge.parallel.taskgen import JobTask, TaskOperation

        cdna = chunk_files("c", 1)
        genomic = chunk_files("g", 1)
        write_pairs_file([FilePair(cdna[0], genomic[0])], tmp_path / "pairs.tsv")
        task_file = JobTask(
            TaskOperation.ALIGN_PAIRS, tmp_path / "pairs.tsv", tmp_path, tmp_path / "done"
        ).save(tmp_path / "job.json")

        error = subprocess.CalledProcessError(1, ["gth"])
        with patch("subprocess.run", side_effect=error):
            result = runner.invoke(main, ["run-task", str(task_file)])

        assert result.exit_code == 1
        assert not (tmp_path / "done").exists()
