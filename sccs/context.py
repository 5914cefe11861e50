"""
Genomic context size for a seed alignment.

The context size (delta) is how far downstream of each hit the conserved
sequence context reaches. It is estimated from how tightly the seed
sequences, extended by increasing deltas, cluster around their own hybrid
profile, and is stored in the Stockholm file as a ``#=GF CTXSZ <int>``
line so later runs can reuse it.
"""

import logging
import math
import re
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .candidates import SCCSOptions, compute_candidate_info
from .entries import Entry, StockholmAlignment, read_entries, read_stockholm, write_stockholm
from .exceptions import EmptyInputError, MissingAnnotationError
from .parallel import parallel_map
from .render import render_chart, write_plot_data_csv
from .sources import SequenceSource

logger = logging.getLogger(__name__)

CTXSZ_PATTERN = re.compile(r'^#=GF\s+CTXSZ\s+(\d+)')

# Alignment rows start here; annotation above them is all we scan
_SEQUENCE_LINE = re.compile(r'^[^#/\s]')


def get_saved_ctx_size(sto_path: Union[str, Path]) -> Optional[int]:
    """Context size recorded in a Stockholm file, or None."""
    with open(sto_path) as f:
        for line in f:
            match = CTXSZ_PATTERN.match(line)
            if match:
                return int(match.group(1))
            if _SEQUENCE_LINE.match(line):
                break
    return None


def require_ctx_size(sto_path: Union[str, Path]) -> int:
    """
    Context size recorded in a Stockholm file.

    Raises:
        MissingAnnotationError: No CTXSZ annotation present
    """
    size = get_saved_ctx_size(sto_path)
    if size is None:
        raise MissingAnnotationError(str(sto_path))
    return size


def save_ctx_size(sto_path: Union[str, Path], size: int) -> Path:
    """
    Record a context size in a Stockholm file.

    The original file is kept as ``{stem}-orig.sto``. The annotation goes
    directly after the ``# STOCKHOLM`` header line, replacing any earlier
    CTXSZ line.

    Returns:
        Path of the backup file
    """
    sto_path = Path(sto_path)
    backup = sto_path.with_name(f"{sto_path.stem}-orig.sto")
    shutil.copyfile(sto_path, backup)

    with open(backup) as f:
        lines = [line for line in f if not CTXSZ_PATTERN.match(line)]

    annotation = f"#=GF CTXSZ {int(size)}\n"
    insert_at = 1 if lines and lines[0].startswith("# STOCKHOLM") else 0
    lines.insert(insert_at, annotation)

    with open(sto_path, "w") as f:
        f.writelines(lines)

    logger.info(f"Saved context size {size} to {sto_path} (original kept as {backup.name})")
    return backup


def score_ctx(points: Sequence[Tuple[int, float]], top: int = 10) -> List[Tuple[int, float]]:
    """
    Power-law scores for (delta, divergence) points.

    Each point scores divergence ** ln(delta); lower is better. Returns the
    best ``top`` (delta, score) pairs in ascending score order.
    """
    scored = [(int(delta), float(value) ** math.log(delta)) for delta, value in points if delta > 0]
    scored.sort(key=lambda p: (p[1], p[0]))
    return scored[:top]


# Worker state for the per-delta context scoring
_delta_entries = None
_delta_source = None
_delta_options = None


def _init_delta_worker(entries: List[Entry], source: SequenceSource, options: SCCSOptions) -> None:
    global _delta_entries, _delta_source, _delta_options
    _delta_entries = entries
    _delta_source = source
    _delta_options = options


def _mean_good_divergence(delta: int) -> float:
    info = compute_candidate_info(_delta_entries, _delta_entries, delta, 1, _delta_source, _delta_options)
    values = [d for _, d in info.good]
    return float(np.mean(values)) if values else 1.0


def hit_context_delta(sto_path: Union[str, Path],
                      source: SequenceSource,
                      mindelta: int = 200,
                      step: int = 20,
                      steps: int = 81,
                      sample_count: int = 7,
                      plot_dir: Optional[Union[str, Path]] = None,
                      options=None) -> Tuple[int, bool]:
    """
    Estimate the downstream context size for the sequences of a seed file.

    A size already saved in the file wins. A single sequence gives
    mindelta. Otherwise, for each delta in mindelta, mindelta + step, ...
    the seed set is scored against itself (Dy 0.4, Mre 0.99, JSD, CRE cut
    0.01 up to length 19) and the mean good-set divergence recorded. The
    minima of successive means are scored with score_ctx and the best
    delta returned. Deltas are spread over options.num_workers processes,
    each scoring its delta single-process.

    Args:
        sto_path: Seed Stockholm file
        source: Genome sequence source for the seed entries
        mindelta: Smallest delta tried
        step: Delta increment
        steps: Number of deltas tried
        sample_count: Sequences sampled for word size selection
        plot_dir: Directory for the delta chart and its CSV series
        options: Base SCCSOptions (workers, seed, xlate)

    Returns:
        Tuple of (best_delta, found_saved_annotation)
    """
    saved = get_saved_ctx_size(sto_path)
    if saved is not None:
        logger.info(f"Using saved context size {saved} from {sto_path}")
        return saved, True

    entries = read_entries(sto_path)
    if len(entries) == 1:
        logger.info(f"Single sequence in {sto_path}; using minimum delta {mindelta}")
        return mindelta, False

    base = options if options is not None else SCCSOptions()
    options = replace(base, divergence="jensen_shannon", dy=0.4, mre=0.99,
                      crecut=0.01, limit=19, sample_count=sample_count,
                      plot_cre=None, plot_dists=None, num_workers=0, show_progress=False)

    deltas = [mindelta + step * i for i in range(steps)]
    means = parallel_map(_mean_good_divergence,
                         deltas,
                         num_workers=base.num_workers,
                         show_progress=base.show_progress,
                         desc="Scoring context sizes",
                         unit=" deltas",
                         initializer=_init_delta_worker,
                         initargs=(entries, source, options))
    for delta, mean in zip(deltas, means):
        logger.debug(f"Context delta {delta}: mean good-set divergence {mean:.4f}")

    minima = [min(a, b) for a, b in zip(means, means[1:])]
    sizes = deltas[:len(minima)]
    if not minima:
        return mindelta, False

    if plot_dir is not None:
        plot_dir = Path(plot_dir)
        plot_dir.mkdir(parents=True, exist_ok=True)
        stem = Path(sto_path).stem
        name = stem.split("-")[0]
        render_chart(plot_dir / f"{stem}-ctxsz.png", sizes, minima,
                     "Context size", "JSD", "Divergence to context hybrid",
                     series_label="Sub seq size", legend=True)
        write_plot_data_csv(plot_dir / f"{stem}-ctxsz.csv",
                            ["Extension", "JSD mean", "Name"], sizes, minima, name)

    best_delta, best_score = score_ctx(list(zip(sizes, minima)))[0]
    logger.info(f"Context size for {sto_path}: {best_delta} (score {best_score:.4g})")
    return best_delta, False


def save_hit_context_delta(sto_path: Union[str, Path], source: SequenceSource, **kwargs) -> int:
    """Compute the context size and record it in the file unless already saved."""
    delta, found = hit_context_delta(sto_path, source, **kwargs)
    if not found:
        save_ctx_size(sto_path, delta)
    return delta


def _merged_name(sto_paths: Sequence[Path]) -> str:
    """``clu-k4-1.sto`` and ``clu-k4-3.sto`` merge as ``clu-k4-1-3.sto``."""
    prefix = sto_paths[0].stem.rpartition("-")[0]
    suffixes = [path.stem.rpartition("-")[2] for path in sto_paths]
    return "-".join(part for part in [prefix] + suffixes if part) + ".sto"


def merge_by_context_size(sto_paths: Iterable[Union[str, Path]],
                          source: SequenceSource,
                          out_dir: Optional[Union[str, Path]] = None,
                          plot_dir: Optional[Union[str, Path]] = None,
                          options=None,
                          **kwargs) -> Dict[int, Path]:
    """
    Merge cluster alignments whose estimated context sizes are equal.

    Each alignment (normally written by split_sto) gets a context size
    from hit_context_delta. Alignments sharing a size are merged into one
    Stockholm file whose rows are those of the group in input name order,
    with the first alignment's header and ``#=GC`` lines and a
    ``#=GF CTXSZ`` line for the shared size. A group of one is rewritten
    with its size annotated.

    Args:
        sto_paths: Cluster Stockholm files
        source: Genome sequence source for the cluster entries
        out_dir: Directory for merged files (default: that of the first file)
        plot_dir: Directory for the context size charts
        options: Base SCCSOptions for the estimation
        **kwargs: mindelta, step, steps or sample_count for hit_context_delta

    Returns:
        Dict mapping each context size to its merged file
    """
    sto_paths = sorted(Path(p) for p in sto_paths)
    if not sto_paths:
        raise EmptyInputError("No alignments to merge")
    out_dir = Path(out_dir) if out_dir is not None else sto_paths[0].parent
    out_dir.mkdir(parents=True, exist_ok=True)

    groups: Dict[int, List[Path]] = {}
    for path in sto_paths:
        size, _ = hit_context_delta(path, source, plot_dir=plot_dir, options=options, **kwargs)
        groups.setdefault(size, []).append(path)

    alignments = {path: read_stockholm(path) for path in sto_paths}
    merged = {}
    for size, paths in groups.items():
        first = alignments[paths[0]]
        headers = [line for line in first.headers if not CTXSZ_PATTERN.match(line)]
        insert_at = 1 if headers and headers[0].startswith("# STOCKHOLM") else 0
        headers.insert(insert_at, f"#=GF CTXSZ {size}")

        rows, seen = [], set()
        for path in paths:
            for name, sequence in alignments[path].rows:
                if name not in seen:
                    seen.add(name)
                    rows.append((name, sequence))

        target = out_dir / _merged_name(paths)
        merged[size] = write_stockholm(target, StockholmAlignment(headers=headers, rows=rows,
                                                                  columns=first.columns))
        logger.info(f"Context size {size}: merged {len(paths)} alignments into {target}")
    return merged
