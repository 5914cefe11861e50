"""
Tests for context size annotation and estimation.
"""

import math
import tempfile
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from sccs.candidates import SCCSOptions
from sccs.context import (
    get_saved_ctx_size,
    hit_context_delta,
    merge_by_context_size,
    require_ctx_size,
    save_ctx_size,
    save_hit_context_delta,
    score_ctx,
)
from sccs.entries import Entry, read_stockholm
from sccs.exceptions import EmptyInputError, MissingAnnotationError
from sccs.sources import InMemoryGenomeSource


def stockholm(entries, ctxsz=None):
    lines = ["# STOCKHOLM 1.0"]
    if ctxsz is not None:
        lines.append(f"#=GF CTXSZ {ctxsz}")
    lines.append("")
    for entry in entries:
        lines.append(f"{entry}    ACGUACGU")
    lines.append("//")
    return "\n".join(lines) + "\n"


def random_sequence(length, rng):
    return "".join(rng.choice(list("ACGT"), size=length))


class TestCtxSizeAnnotation:
    """Test reading and writing the CTXSZ annotation."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)
        self.entries = [Entry("g1", 11, 50), Entry("g1", 111, 150)]

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_saved_size(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries, ctxsz=300))
        assert get_saved_ctx_size(path) == 300
        assert require_ctx_size(path) == 300

    def test_missing_size(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        assert get_saved_ctx_size(path) is None
        with pytest.raises(MissingAnnotationError, match="CTXSZ"):
            require_ctx_size(path)

    def test_save_ctx_size(self):
        path = self.dir / "seed.sto"
        original = stockholm(self.entries)
        path.write_text(original)

        backup = save_ctx_size(path, 420)

        assert backup == self.dir / "seed-orig.sto"
        assert backup.read_text() == original
        lines = path.read_text().splitlines()
        assert lines[0] == "# STOCKHOLM 1.0"
        assert lines[1] == "#=GF CTXSZ 420"
        assert get_saved_ctx_size(path) == 420

    def test_save_replaces_existing(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries, ctxsz=300))
        save_ctx_size(path, 500)
        assert path.read_text().count("CTXSZ") == 1
        assert get_saved_ctx_size(path) == 500


class TestScoreCtx:
    """Test power-law context size scoring."""

    def test_best_first(self):
        scores = score_ctx([(200, 0.5), (220, 0.1), (240, 0.3)])
        assert [delta for delta, _ in scores] == [220, 240, 200]
        assert scores[0][1] == pytest.approx(0.1 ** math.log(220))

    def test_top_ten(self):
        points = [(200 + 20 * i, 0.5) for i in range(15)]
        assert len(score_ctx(points)) == 10


class TestHitContextDelta:
    """Test context size estimation."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)

        rng = np.random.default_rng(7)
        hit = random_sequence(40, rng)
        context = random_sequence(80, rng)
        # Five copies of hit + shared downstream context, separated by random spacers
        parts, self.entries = [], []
        position = 1
        for _ in range(5):
            spacer = random_sequence(30, rng)
            parts.append(spacer)
            position += len(spacer)
            self.entries.append(Entry("g1", position, position + len(hit) - 1))
            parts.append(hit + context)
            position += len(hit) + len(context)
        parts.append(random_sequence(30, rng))
        self.source = InMemoryGenomeSource({"g1": "".join(parts)})
        self.options = SCCSOptions(word_size=4, num_workers=0)

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_saved_annotation_wins(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries, ctxsz=260))
        assert hit_context_delta(path, self.source) == (260, True)

    def test_single_sequence(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries[:1]))
        assert hit_context_delta(path, self.source, mindelta=150) == (150, False)

    def test_estimate(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        delta, found = hit_context_delta(path, self.source, mindelta=20, step=10, steps=3,
                                         options=self.options)
        assert not found
        assert delta in (20, 30)

    def test_estimate_with_plot(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        plot_dir = self.dir / "plots"
        hit_context_delta(path, self.source, mindelta=20, step=10, steps=3,
                          plot_dir=plot_dir, options=self.options)
        assert (plot_dir / "seed-ctxsz.png").exists()
        assert (plot_dir / "seed-ctxsz.csv").read_text().startswith("Extension,JSD mean,Name")

    def test_save_hit_context_delta(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        delta = save_hit_context_delta(path, self.source, mindelta=20, step=10, steps=3,
                                       options=self.options)
        assert get_saved_ctx_size(path) == delta
        assert (self.dir / "seed-orig.sto").exists()
        assert hit_context_delta(path, self.source) == (delta, True)

    def test_deltas_scored_across_workers(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        options = SCCSOptions(word_size=4, num_workers=2)
        with patch('sccs.context.parallel_map', return_value=[0.5, 0.2, 0.3]) as mock_map:
            delta, _ = hit_context_delta(path, self.source, mindelta=20, step=10, steps=3,
                                         options=options)
        args, kwargs = mock_map.call_args
        assert args[1] == [20, 30, 40]
        assert kwargs['num_workers'] == 2
        assert kwargs['initargs'][2].num_workers == 0
        # Minima of successive means: [0.2, 0.2] at 20 and 30
        assert delta == 30

    def test_pool_matches_serial(self):
        path = self.dir / "seed.sto"
        path.write_text(stockholm(self.entries))
        serial = hit_context_delta(path, self.source, mindelta=20, step=10, steps=8,
                                   options=self.options)
        pooled = hit_context_delta(path, self.source, mindelta=20, step=10, steps=8,
                                   options=SCCSOptions(word_size=4, num_workers=2))
        assert serial == pooled


class TestMergeByContextSize:
    """Test merging cluster alignments with equal context sizes."""

    def setup_method(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)
        self.source = InMemoryGenomeSource({"g1": "ACGT" * 100})
        self.paths = []
        for i in range(1, 4):
            path = self.dir / f"clu-k4-{i}.sto"
            path.write_text("# STOCKHOLM 1.0\n#=GF ID fam\n\n"
                            f"g1/{i * 10}-{i * 10 + 7}/1    ACGU-ACG\n"
                            "#=GC SS_cons    <<....>>\n//\n")
            self.paths.append(path)

    def teardown_method(self):
        self.tmpdir.cleanup()

    def test_equal_sizes_merged(self):
        sizes = {"clu-k4-1.sto": (300, False), "clu-k4-2.sto": (220, False), "clu-k4-3.sto": (300, False)}
        out_dir = self.dir / "merged"
        with patch('sccs.context.hit_context_delta', side_effect=lambda p, *a, **kw: sizes[p.name]):
            merged = merge_by_context_size(reversed(self.paths), self.source, out_dir=out_dir)

        assert merged == {300: out_dir / "clu-k4-1-3.sto", 220: out_dir / "clu-k4-2.sto"}
        alignment = read_stockholm(merged[300])
        assert alignment.headers == ["# STOCKHOLM 1.0", "#=GF CTXSZ 300", "#=GF ID fam"]
        assert [name for name, _ in alignment.rows] == ["g1/10-17/1", "g1/30-37/1"]
        assert alignment.columns == [("SS_cons", "<<....>>")]
        assert get_saved_ctx_size(merged[300]) == 300
        assert get_saved_ctx_size(merged[220]) == 220

    def test_sizes_estimated_per_alignment(self):
        with patch('sccs.context.hit_context_delta', return_value=(260, False)) as mock_delta:
            merged = merge_by_context_size(self.paths, self.source, mindelta=100, sample_count=3)
        assert mock_delta.call_count == 3
        assert mock_delta.call_args[1]['mindelta'] == 100
        assert merged == {260: self.dir / "clu-k4-1-2-3.sto"}

    def test_single_sequence_alignments(self):
        # One sequence each: every cluster gets mindelta and all merge
        merged = merge_by_context_size(self.paths[:2], self.source, mindelta=150)
        assert list(merged) == [150]
        assert len(read_stockholm(merged[150]).rows) == 2

    def test_empty(self):
        with pytest.raises(EmptyInputError):
            merge_by_context_size([], self.source)
