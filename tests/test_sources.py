"""
Tests for genome sequence sources.
"""

import tempfile
from pathlib import Path

import pytest

from sccs.entries import Entry
from sccs.exceptions import InvalidParameterError
from sccs.sources import (
    FastaGenomeSource,
    GenomeDatabaseRegistry,
    InMemoryGenomeSource,
    default_ddel,
)

GENOME = "AAAACCCCGGGGTTTT"


class TestRegion:
    """Test region extraction and context extension."""

    def setup_method(self):
        self.source = InMemoryGenomeSource({"g1": GENOME.lower()})

    def test_plus_strand_region(self):
        assert self.source.region(Entry("g1", 5, 8, 1)) == "CCCC"

    def test_minus_strand_region_is_reverse_complement(self):
        assert self.source.region(Entry("g1", 3, 6, -1)) == "GGTT"

    def test_flanks(self):
        assert self.source.region(Entry("g1", 5, 8, 1), 2, 3) == "AACCCCGGG"

    def test_flanks_clipped_to_genome(self):
        assert self.source.region(Entry("g1", 2, 4, 1), 5, 100) == GENOME

    def test_default_ddel(self):
        assert default_ddel(Entry("g1", 5, 8)) == 1
        assert default_ddel(Entry("g1", 1, 101)) == 25

    def test_directed_plus(self):
        # Upstream ddel = ceil(3 / 4) = 1, downstream delta = 4
        assert self.source.context_sequence(Entry("g1", 5, 8, 1), 4) == "ACCCCGGGG"

    def test_directed_minus(self):
        # Genome-left side gets delta, genome-right side ddel
        assert self.source.context_sequence(Entry("g1", 5, 8, -1), 4) == "CGGGGTTTT"

    def test_directed_explicit_ddel(self):
        assert self.source.context_sequence(Entry("g1", 5, 8, 1), 2, ddel=0) == "CCCCGG"

    def test_undirected(self):
        assert self.source.context_sequence(Entry("g1", 5, 8, 1), 2, directed=False) == "AACCCCGG"

    def test_adjusted_sequences_without_delta(self):
        entries = [Entry("g1", 5, 8, 1), Entry("g1", 9, 12, -1)]
        assert self.source.adjusted_sequences(entries, 0) == [
            (entries[0], "CCCC"),
            (entries[1], "CCCC"),
        ]

    def test_adjusted_sequences_with_delta(self):
        entry = Entry("g1", 5, 8, 1)
        assert self.source.adjusted_sequences([entry], 4) == [(entry, "ACCCCGGGG")]
        assert self.source.adjusted_sequences([entry], 4, ddel=0) == [(entry, "CCCCGGGG")]

    def test_unknown_genome(self):
        with pytest.raises(InvalidParameterError):
            self.source.region(Entry("nope", 1, 2))


class TestFastaGenomeSource:
    """Test the directory-backed genome source."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)
        (self.dir / "g1.fna").write_text(">g1 test genome\n" + GENOME[:8] + "\n" + GENOME[8:] + "\n")
        (self.dir / "g2.fa").write_text(">g2\nacgtacgt\n")

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_fetch_genome(self):
        source = FastaGenomeSource(self.dir)
        assert source.fetch_genome("g1") == GENOME
        assert source.fetch_genome("g2") == "ACGTACGT"

    def test_genome_cached(self):
        source = FastaGenomeSource(self.dir)
        source.fetch_genome("g1")
        (self.dir / "g1.fna").unlink()
        assert source.fetch_genome("g1") == GENOME

    def test_missing_genome(self):
        with pytest.raises(FileNotFoundError):
            FastaGenomeSource(self.dir).fetch_genome("g9")

    def test_region(self):
        assert FastaGenomeSource(self.dir).region(Entry("g1", 9, 12, -1)) == "CCCC"

    def test_from_registry(self):
        registry = GenomeDatabaseRegistry()
        registry.register("refseq58", self.dir)
        source = FastaGenomeSource.from_registry(registry, "refseq58")
        assert source.directory == self.dir
        assert source.fetch_genome("g2") == "ACGTACGT"


class TestGenomeDatabaseRegistry:
    """Test genome database lookup."""

    def test_resolve(self):
        registry = GenomeDatabaseRegistry({"refseq58": Path("/data/refseq58")})
        assert registry.resolve("refseq58") == Path("/data/refseq58")

    def test_unknown_key(self):
        registry = GenomeDatabaseRegistry()
        with pytest.raises(InvalidParameterError, match="Unknown genome database"):
            registry.resolve("refseq99")
