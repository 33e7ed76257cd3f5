"""Tests for alignforge.parallel.planner module."""

from collections import Counter
from pathlib import Path

import pytest

from alignforge.errors import InvalidArgumentError
from alignforge.parallel.planner import (
    Batch,
    FilePair,
    cross_product,
    plan_batches,
    read_pairs_file,
    write_pairs_file,
)


# =============================================================================
# Data Structure Tests
# =============================================================================


class TestFilePair:
    """Tests for FilePair."""

    def test_paths_converted(self):
        """String paths become Path objects."""
        pair = FilePair("c/1.fa", "g/2.fa")
        assert pair.cdna == Path("c/1.fa")
        assert pair.genomic == Path("g/2.fa")

    def test_line_format(self):
        """Lines are tab separated, cDNA first."""
        assert FilePair("c/1.fa", "g/2.fa").to_line() == "c/1.fa\tg/2.fa"
        assert FilePair.from_line("c/1.fa\tg/2.fa\n") == FilePair("c/1.fa", "g/2.fa")

    def test_malformed_line(self):
        """Lines without exactly two fields raise."""
        with pytest.raises(ValueError):
            FilePair.from_line("just-one-field")

    def test_hashable(self):
        """Pairs are frozen values."""
        assert len({FilePair("a", "b"), FilePair("a", "b")}) == 1


class TestBatch:
    """Tests for Batch."""

    def test_file_locations(self, tmp_path):
        """Marker, pair list, task and handle live in the work dir."""
        batch = Batch(batch_id=3, pairs=[], work_dir=tmp_path / "3")
        assert batch.done_file == tmp_path / "3" / "done"
        assert batch.pairs_file == tmp_path / "3" / "pairs.tsv"
        assert batch.task_file == tmp_path / "3" / "job.json"
        assert batch.handle_file == tmp_path / "3" / "job_handle.json"

    def test_is_complete(self, tmp_path):
        """Completion is the marker's existence."""
        batch = Batch(batch_id=1, pairs=[], work_dir=tmp_path)
        assert not batch.is_complete
        (tmp_path / "done").write_text("")
        assert batch.is_complete

    def test_len_and_iter(self, tmp_path):
        """Batches behave as pair sequences."""
        pairs = [FilePair("a", "b"), FilePair("c", "d")]
        batch = Batch(batch_id=1, pairs=pairs, work_dir=tmp_path)
        assert len(batch) == 2
        assert list(batch) == pairs


# =============================================================================
# Planning Tests
# =============================================================================


class TestCrossProduct:
    """Tests for cross_product."""

    def test_genomic_major(self):
        """For each genomic file, every cDNA file in order."""
        pairs = cross_product(["c1", "c2"], ["g1", "g2"])
        assert [(p.cdna.name, p.genomic.name) for p in pairs] == [
            ("c1", "g1"),
            ("c2", "g1"),
            ("c1", "g2"),
            ("c2", "g2"),
        ]

    def test_empty_side(self):
        """An empty side gives no pairs."""
        assert cross_product([], ["g1"]) == []
        assert cross_product(["c1"], []) == []


class TestPlanBatches:
    """Tests for plan_batches."""

    def test_three_by_two_ceiling_four(self, tmp_path):
        """Six pairs across at most four non-overlapping batches."""
        cdna = ["c1", "c2", "c3"]
        genomic = ["g1", "g2"]
        batches = plan_batches(cdna, genomic, 4, tmp_path)

        assert 1 <= len(batches) <= 4
        planned = [pair for batch in batches for pair in batch]
        assert len(planned) == 6
        assert set(planned) == set(cross_product(cdna, genomic))

    def test_union_is_cross_product_without_repeats(self, tmp_path):
        """Batches partition the cross product exactly."""
        cdna = [f"c{i}" for i in range(30)]
        genomic = [f"g{i}" for i in range(20)]
        batches = plan_batches(cdna, genomic, 200, tmp_path)

        planned = Counter(pair for batch in batches for pair in batch)
        assert all(count == 1 for count in planned.values())
        assert set(planned) == set(cross_product(cdna, genomic))
        assert len(batches) == 200

    def test_batch_sizes_balanced(self, tmp_path):
        """Pair counts per batch differ by at most one."""
        batches = plan_batches([f"c{i}" for i in range(7)], ["g1", "g2", "g3"], 4, tmp_path)
        sizes = [len(b) for b in batches]
        assert max(sizes) - min(sizes) <= 1

    def test_numbered_from_one(self, tmp_path):
        """Batch ids start at 1 and name the work dirs."""
        batches = plan_batches(["c1", "c2"], ["g1"], 2, tmp_path / "jobs")
        assert [b.batch_id for b in batches] == [1, 2]
        assert [b.work_dir for b in batches] == [tmp_path / "jobs" / "1", tmp_path / "jobs" / "2"]

    def test_no_empty_batches(self, tmp_path):
        """Fewer pairs than the ceiling gives one pair per batch."""
        batches = plan_batches(["c1"], ["g1", "g2"], 10, tmp_path)
        assert len(batches) == 2
        assert all(len(b) == 1 for b in batches)

    def test_deterministic(self, tmp_path):
        """Identical inputs give identical batches."""
        args = ([f"c{i}" for i in range(5)], [f"g{i}" for i in range(4)], 6, tmp_path)
        first = [b.pairs for b in plan_batches(*args)]
        second = [b.pairs for b in plan_batches(*args)]
        assert first == second

    def test_empty_cross_product(self, tmp_path):
        """No chunks, no batches."""
        assert plan_batches([], ["g1"], 4, tmp_path) == []

    @pytest.mark.parametrize("ceiling", [0, -1])
    def test_invalid_ceiling(self, tmp_path, ceiling):
        """Non-positive ceilings raise."""
        with pytest.raises(InvalidArgumentError):
            plan_batches(["c1"], ["g1"], ceiling, tmp_path)


class TestPairsFile:
    """Tests for write_pairs_file and read_pairs_file."""

    def test_one_line_per_pair(self, tmp_path):
        """Each pair is written on its own line, in order."""
        pairs = [FilePair("c/1.fa", "g/1.fa"), FilePair("c/2.fa", "g/1.fa")]
        path = write_pairs_file(pairs, tmp_path / "pairs.tsv")
        assert path.read_text() == "c/1.fa\tg/1.fa\nc/2.fa\tg/1.fa\n"
        assert read_pairs_file(path) == pairs
