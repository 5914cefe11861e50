"""
Tests for entries and entry files.
"""

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

from sccs.entries import (
    Entry,
    StockholmAlignment,
    entry_file_difference,
    entry_file_union,
    entry_key,
    read_entries,
    read_entry_values,
    read_named_sequences,
    read_stockholm,
    write_entry_file,
    write_entry_value_file,
    write_stockholm,
)
from sccs.exceptions import InvalidParameterError

STOCKHOLM = """# STOCKHOLM 1.0
#=GF CTXSZ 300

NC_000913.3/10-50/1      ACGU-ACGU
NC_002516.2/5-40/-1      ACGUAACGU
//
"""


class TestEntry:
    """Test entry parsing and formatting."""

    def test_parse_with_strand(self):
        entry = Entry.parse("NC_000913.3/100-200/-1")
        assert entry == Entry("NC_000913.3", 100, 200, -1)

    def test_parse_without_strand(self):
        assert Entry.parse("NC_1/100-200") == Entry("NC_1", 100, 200, 1)
        assert Entry.parse("NC_1/200-100") == Entry("NC_1", 100, 200, -1)

    def test_str_round_trip(self):
        entry = Entry("NC_1", 5, 70, -1)
        assert str(entry) == "NC_1/5-70/-1"
        assert Entry.parse(str(entry)) == entry

    def test_length(self):
        assert Entry("g", 10, 19).length == 10

    @pytest.mark.parametrize("text", ["", "NC_1", "NC_1/abc-10", "NC_1/10-20/2"])
    def test_invalid(self, text):
        with pytest.raises(InvalidParameterError):
            Entry.parse(text)

    @given(
        name=st.from_regex(r"[A-Za-z][A-Za-z0-9_.]{0,12}", fullmatch=True),
        start=st.integers(min_value=1, max_value=10**7),
        span=st.integers(min_value=0, max_value=10**4),
        strand=st.sampled_from([1, -1])
    )
    def test_parse_format_round_trip(self, name, start, span, strand):
        entry = Entry(name, start, start + span, strand)
        assert Entry.parse(str(entry)) == entry


class TestEntryFiles:
    """Test reading and writing entry files."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_entry_file_round_trip_preserves_order(self):
        entries = [Entry("g2", 50, 90, -1), Entry("g1", 1, 40), Entry("g3", 7, 9)]
        path = write_entry_file(entries, self.dir / "a.ent")
        assert read_entries(path) == entries

    def test_entry_value_round_trip(self):
        pairs = [(Entry("g1", 1, 40), 0.125), (Entry("g2", 50, 90, -1), 0.5)]
        path = write_entry_value_file(pairs, self.dir / "a-bad.ent")
        assert read_entry_values(path) == pairs
        assert read_entries(path) == [e for e, _ in pairs]

    def test_numpy_values_written_as_plain_floats(self):
        np = pytest.importorskip("numpy")
        path = write_entry_value_file([(Entry("g1", 1, 40), np.float64(0.25))], self.dir / "v.ent")
        assert path.read_text() == "g1/1-40/1, 0.25\n"

    def test_csv_columns_with_header(self):
        path = self.dir / "hits.cmsearch.csv"
        path.write_text("name,start,end,evalue\nNC_1,10,50,1e-5\nNC_1,80,40,2e-3\n")
        assert read_entries(path) == [Entry("NC_1", 10, 50, 1), Entry("NC_1", 40, 80, -1)]

    def test_comments_blank_lines_and_duplicates(self):
        path = self.dir / "e.ent"
        path.write_text("# comment\n\ng1/1-10/1\ng1/1-10/1\ng2/3-9/-1\n")
        assert read_entries(path) == [Entry("g1", 1, 10), Entry("g2", 3, 9, -1)]

    def test_bad_line_after_header(self):
        path = self.dir / "e.ent"
        path.write_text("g1/1-10/1\nnot an entry\n")
        with pytest.raises(InvalidParameterError):
            read_entries(path)

    def test_stockholm_entries(self):
        path = self.dir / "seed.sto"
        path.write_text(STOCKHOLM)
        assert read_entries(path) == [Entry("NC_000913.3", 10, 50, 1), Entry("NC_002516.2", 5, 40, -1)]

    def test_fasta_entries_and_sequences(self):
        path = self.dir / "seqs.fna"
        path.write_text(">g1/1-8/1\nacgt-acg\n>g2/20-11/-1\nTTTTGGGGCC\n")
        assert read_entries(path) == [Entry("g1", 1, 8), Entry("g2", 11, 20, -1)]
        assert read_named_sequences(path) == [("g1/1-8/1", "ACGTACG"), ("g2/20-11/-1", "TTTTGGGGCC")]

    def test_stockholm_sequences_degapped(self):
        path = self.dir / "seed.sto"
        path.write_text(STOCKHOLM)
        assert read_named_sequences(path)[0] == ("NC_000913.3/10-50/1", "ACGUACGU")

    def test_entry_file_union_and_difference(self):
        a = write_entry_file([Entry("g1", 1, 10), Entry("g2", 5, 9)], self.dir / "a-final.ent")
        b = write_entry_value_file([(Entry("g2", 5, 9), 0.1), (Entry("g3", 1, 4), 0.2)],
                                   self.dir / "b-final.ent")
        everything = write_entry_file([Entry("g0", 1, 2), Entry("g1", 1, 10), Entry("g2", 5, 9),
                                       Entry("g3", 1, 4)], self.dir / "all.ent")

        assert entry_file_union([a, b]) == [Entry("g1", 1, 10), Entry("g2", 5, 9), Entry("g3", 1, 4)]
        assert entry_file_difference(everything, a, b) == [Entry("g0", 1, 2)]
        assert entry_file_difference(everything) == read_entries(everything)


INTERLEAVED = """# STOCKHOLM 1.0
#=GF ID test
#=GF CTXSZ 300
#=GS g1/1-10/1 DE first

g1/1-10/1        ACGU-
g2/30-21         AC-UU
#=GR g1/1-10/1 PP 99999
#=GC SS_cons     <<..>

g1/1-10/1        ACGUA
g2/30-21         AAAAC
#=GC SS_cons     ..>>.
//
"""


class TestStockholm:
    """Test the text view of Stockholm alignments."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)
        self.path = self.dir / "seed.sto"
        self.path.write_text(INTERLEAVED)

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_read_joins_blocks(self):
        alignment = read_stockholm(self.path)
        assert alignment.headers == ["# STOCKHOLM 1.0", "#=GF ID test", "#=GF CTXSZ 300"]
        assert alignment.rows == [("g1/1-10/1", "ACGU-ACGUA"), ("g2/30-21", "AC-UUAAAAC")]
        assert alignment.columns == [("SS_cons", "<<..>..>>.")]

    def test_write_layout(self):
        alignment = StockholmAlignment(headers=["#=GF ID test"],
                                       rows=[("g1/1-10/1", "ACGU")],
                                       columns=[("SS_cons", "<<>>")])
        path = write_stockholm(self.dir / "out.sto", alignment)
        lines = path.read_text().splitlines()
        assert lines[:3] == ["# STOCKHOLM 1.0", "#=GF ID test", ""]
        assert lines[3] == "g1/1-10/1".ljust(40) + "ACGU"
        assert lines[4] == "#=GC SS_cons".ljust(40) + "<<>>"
        assert lines[5] == "//"
        assert read_stockholm(path).rows == alignment.rows

    def test_written_file_readable_by_biopython(self):
        alignment = read_stockholm(self.path)
        path = write_stockholm(self.dir / "copy.sto", alignment)
        assert read_named_sequences(path) == [("g1/1-10/1", "ACGUACGUA"), ("g2/30-21", "ACUUAAAAC")]

    def test_select_matches_entry_text(self):
        alignment = read_stockholm(self.path)
        rows = alignment.select([Entry("g2", 21, 30, -1), "g1/1-10/1"])
        assert [name for name, _ in rows] == ["g2/30-21", "g1/1-10/1"]

    def test_select_missing_row(self):
        with pytest.raises(InvalidParameterError, match="g9"):
            read_stockholm(self.path).select(["g9/1-5/1"])

    def test_entry_key(self):
        assert entry_key("g2/30-21") == "g2/21-30/-1"
        assert entry_key(Entry("g1", 1, 10)) == "g1/1-10/1"
        assert entry_key("seq_3") == "seq_3"
