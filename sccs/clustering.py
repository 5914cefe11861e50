"""
Reciprocal k-nearest-neighbor clustering of sequence sets.

A heterogeneous sequence set is split into sub-contexts as follows. Every
sequence gets a word profile at a CRE-selected word size, and all pairwise
JSD values form the distance matrix. For each trial k:

- points that are among the k nearest neighbors of at least k other
  points are core points;
- the reciprocal k-NN graph restricted to core points is split into
  strongly connected components; components of two or more points are
  the initial clusters;
- every other point is folded into the cluster most of its k nearest
  neighbors belong to.

Each resulting partition is scored with the S_Dbw validity index (lower
is better) and partitions are returned best first.
"""

import logging
import math
import os
from collections import Counter
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np

from .context import CTXSZ_PATTERN
from .divergence import ProfileDistanceProvider, jensen_shannon
from .entries import (
    StockholmAlignment,
    read_entries,
    read_named_sequences,
    read_stockholm,
    write_entry_file,
    write_stockholm,
)
from .exceptions import EmptyInputError, InvalidParameterError
from .hybrid import hybrid_profile
from .parallel import parallel_map
from .profiles import prepare_sequence, profiles_for
from .sources import SequenceSource
from .word_size import select_word_size

logger = logging.getLogger(__name__)

KInfo = Union[None, int, Sequence[Union[int, Tuple[int, int]]]]

# S_Dbw of a partition with a single cluster: Scat = 1, Dens_bw = 0
SINGLE_CLUSTER_SCORE = 1.0


@dataclass
class ClusterOptions:
    """Tuning for the clustering engine."""
    delta: int = 0
    xlate: Optional[Mapping[str, str]] = None
    alphabet: str = "dna"
    crecut: float = 0.10
    limit: int = 15
    kinfo: KInfo = None
    word_size: Optional[int] = None
    validity: Optional[str] = "s_dbw"
    num_workers: Optional[int] = None
    show_progress: bool = False
    seed: Optional[int] = None


@dataclass
class ClusterResult:
    """A scored partition for one k."""
    score: float
    clusters: List[List[Hashable]]
    k: int


def get_krange(kinfo: KInfo, n: int) -> List[int]:
    """
    Trial k values.

    Args:
        kinfo: None for the default pair [4, ceil(0.1 n)], a single int, or
            a list of ints and (start, stop) half-open ranges
        n: Number of points

    Returns:
        Distinct k values in [1, n - 1], in first-seen order
    """
    if kinfo is None:
        ks = [4, int(math.ceil(0.1 * n))]
    elif isinstance(kinfo, (int, np.integer)) and not isinstance(kinfo, bool):
        ks = [int(kinfo)]
    elif isinstance(kinfo, (list, tuple)):
        ks = []
        for item in kinfo:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                ks.extend(range(int(item[0]), int(item[1])))
            elif isinstance(item, (int, np.integer)) and not isinstance(item, bool):
                ks.append(int(item))
            else:
                raise InvalidParameterError(f"Invalid k value or range {item!r}")
    else:
        raise InvalidParameterError(f"Invalid k value or range {kinfo!r}")

    valid = []
    for k in ks:
        if 1 <= k <= n - 1 and k not in valid:
            valid.append(k)
    return valid


def suggest_k_values(n: int) -> List[int]:
    """Heuristic k values for a set of n sequences."""
    if n < 15:
        return [2, 3]
    return [int(math.ceil(f * n)) for f in (0.1, 0.12, 0.17)]


def knn_graph(distance_matrix: np.ndarray, k: int) -> Dict[int, List[int]]:
    """k nearest neighbors of every point, ordered by (distance, index)."""
    n = len(distance_matrix)
    graph = {}
    for i in range(n):
        others = sorted((j for j in range(n) if j != i), key=lambda j: (distance_matrix[i, j], j))
        graph[i] = others[:k]
    return graph


def reverse_neighbor_counts(knn: Mapping[int, Sequence[int]]) -> Dict[int, int]:
    """For every point, the number of points that list it as a neighbor."""
    counts = {i: 0 for i in knn}
    for neighbors in knn.values():
        for j in neighbors:
            counts[j] += 1
    return counts


def reciprocal_knn_graph(knn: Mapping[int, Sequence[int]]) -> Dict[int, List[int]]:
    """Keep only neighbor relations that hold in both directions."""
    neighbor_sets = {i: set(neighbors) for i, neighbors in knn.items()}
    return {i: [j for j in neighbors if i in neighbor_sets[j]] for i, neighbors in knn.items()}


def refold_outliers(clusters: List[List[int]],
                    outliers: Iterable[int],
                    knn: Mapping[int, Sequence[int]],
                    distance_matrix: np.ndarray) -> List[List[int]]:
    """
    Assign outliers to clusters.

    An outlier joins the cluster holding most of its clustered k nearest
    neighbors, ties going to the cluster of the nearest such neighbor.
    Outliers with no clustered neighbor join the cluster of their nearest
    clustered point. Assignment uses the initial clusters only, so the
    result does not depend on outlier order.
    """
    membership = {p: ci for ci, members in enumerate(clusters) for p in members}
    clustered = sorted(membership)
    refolded = [list(members) for members in clusters]

    for p in sorted(outliers):
        votes = Counter(membership[q] for q in knn[p] if q in membership)
        if votes:
            top = max(votes.values())
            # knn lists are nearest first
            target = next(membership[q] for q in knn[p]
                          if q in membership and votes[membership[q]] == top)
        else:
            nearest = min(clustered, key=lambda q: (distance_matrix[p, q], q))
            target = membership[nearest]
        refolded[target].append(p)

    return [sorted(members) for members in refolded]


def split_clusters(k: int, distance_matrix: np.ndarray) -> Optional[List[List[int]]]:
    """
    Partition points by the reciprocal k-NN rule.

    Returns:
        Clusters as sorted index lists, or None when no two core points are
        reciprocal neighbors
    """
    knn = knn_graph(distance_matrix, k)
    counts = reverse_neighbor_counts(knn)
    reciprocal = reciprocal_knn_graph(knn)
    core = {i for i, c in counts.items() if c >= k}

    graph = nx.DiGraph()
    graph.add_nodes_from(core)
    for i in core:
        graph.add_edges_from((i, j) for j in reciprocal[i] if j in core)

    components = [sorted(c) for c in nx.strongly_connected_components(graph) if len(c) >= 2]
    if not components:
        logger.debug(f"k={k}: no reciprocal core components among {len(core)} core points")
        return None

    components.sort(key=lambda c: c[0])
    clustered = {p for c in components for p in c}
    outliers = [p for p in range(len(distance_matrix)) if p not in clustered]
    logger.debug(f"k={k}: {len(components)} initial clusters, {len(outliers)} outliers")
    return refold_outliers(components, outliers, knn, distance_matrix)


def s_dbw_index(clusters: Sequence[Sequence[Mapping[str, float]]],
                distance: Callable[[Mapping[str, float], Mapping[str, float]], float],
                centroid: Callable[[Sequence[Mapping[str, float]]], Mapping[str, float]]) -> float:
    """
    S_Dbw cluster validity index: intra-cluster scatter plus inter-cluster density.

    Args:
        clusters: Clusters of points (profiles)
        distance: Distance between two points
        centroid: Centroid of a group of points

    Returns:
        Index value; lower is better
    """
    clusters = [list(c) for c in clusters if len(c) > 0]
    c = len(clusters)
    if c == 0:
        raise EmptyInputError("S_Dbw needs at least one non-empty cluster")
    if c == 1:
        return SINGLE_CLUSTER_SCORE

    def scatter(points, center):
        return float(np.mean([distance(p, center) for p in points]))

    centers = [centroid(members) for members in clusters]
    scatters = [scatter(members, center) for members, center in zip(clusters, centers)]

    all_points = [p for members in clusters for p in members]
    total_scatter = scatter(all_points, centroid(all_points))
    scat = float(np.mean(scatters)) / total_scatter if total_scatter > 0 else 0.0

    stdev = math.sqrt(sum(scatters)) / c

    def density(points, u):
        return sum(1 for p in points if distance(p, u) <= stdev)

    dens_sum = 0.0
    for i in range(c):
        for j in range(c):
            if i == j:
                continue
            union = clusters[i] + clusters[j]
            midpoint = centroid([centers[i], centers[j]])
            top = max(density(union, centers[i]), density(union, centers[j]))
            if top > 0:
                dens_sum += density(union, midpoint) / top

    dens_bw = dens_sum / (c * (c - 1))
    return scat + dens_bw


# Worker state for per-k clustering trials
_trial_matrix = None
_trial_profiles = None
_trial_word_size = None
_trial_validity = None


def _init_trial_worker(matrix: np.ndarray, profiles: List[Mapping[str, float]],
                       word_size: int, validity: Optional[str]) -> None:
    global _trial_matrix, _trial_profiles, _trial_word_size, _trial_validity
    _trial_matrix = matrix
    _trial_profiles = profiles
    _trial_word_size = word_size
    _trial_validity = validity


def _cluster_trial(k: int) -> Optional[Tuple[float, List[List[int]], int]]:
    clusters = split_clusters(k, _trial_matrix)
    if clusters is None:
        return None
    if _trial_validity is None:
        return 0.0, clusters, k
    if _trial_validity != "s_dbw":
        raise InvalidParameterError(f"Unknown validity index '{_trial_validity}'")

    centroid = partial(hybrid_profile, _trial_word_size, num_workers=0)
    profile_clusters = [[_trial_profiles[i] for i in members] for members in clusters]
    return s_dbw_index(profile_clusters, jensen_shannon, centroid), clusters, k


def _resolve_sequences(entries: Sequence,
                       options: ClusterOptions,
                       source: Optional[SequenceSource]) -> List[Tuple[Hashable, str]]:
    """(label, sequence) pairs; bare entries are fetched from the source."""
    entries = list(entries)
    if all(isinstance(item, tuple) and len(item) == 2 and isinstance(item[1], str) for item in entries):
        return [(label, seq) for label, seq in entries]
    if source is None:
        raise InvalidParameterError("Entries without sequences need a sequence source")
    return source.adjusted_sequences(entries, options.delta)


def krnn_cluster(entries: Sequence,
                 options: Optional[ClusterOptions] = None,
                 source: Optional[SequenceSource] = None) -> List[ClusterResult]:
    """
    Cluster sequences by reciprocal k-NN for every trial k.

    Args:
        entries: Entries (resolved through source with options.delta
            context) or (label, sequence) pairs
        options: Clustering options
        source: Sequence source for bare entries

    Returns:
        ClusterResult list sorted by ascending validity score
    """
    options = options or ClusterOptions()
    pairs = _resolve_sequences(entries, options, source)
    if not pairs:
        raise EmptyInputError("Cannot cluster an empty sequence set")

    labels = [label for label, _ in pairs]
    seqs = [prepare_sequence(s, options.xlate) for _, s in pairs]
    n = len(seqs)

    krange = get_krange(options.kinfo, n)
    if not krange:
        logger.warning(f"No usable k for {n} sequences (kinfo={options.kinfo}); "
                       f"returning a single cluster")
        return [ClusterResult(SINGLE_CLUSTER_SCORE, [labels], 0)]

    word_size = options.word_size
    if word_size is None:
        word_size, _ = select_word_size([(str(label), s) for label, s in zip(labels, seqs)],
                                        limit=options.limit,
                                        crecut=options.crecut,
                                        alphabet=options.alphabet,
                                        seed=options.seed,
                                        num_workers=options.num_workers)
    logger.info(f"Clustering {n} sequences at word size {word_size}, k in {krange}")

    profiles = profiles_for(seqs, word_size, num_workers=options.num_workers,
                            show_progress=options.show_progress)
    provider = ProfileDistanceProvider(profiles, "jensen_shannon",
                                       num_workers=options.num_workers,
                                       show_progress=options.show_progress)
    matrix = provider.build_distance_matrix()

    trials = parallel_map(_cluster_trial,
                          krange,
                          num_workers=options.num_workers,
                          show_progress=options.show_progress,
                          desc="Clustering trials",
                          unit=" k",
                          initializer=_init_trial_worker,
                          initargs=(matrix, profiles, word_size, options.validity))

    results = []
    for trial in trials:
        if trial is None:
            continue
        score, clusters, k = trial
        results.append(ClusterResult(score, [[labels[i] for i in members] for members in clusters], k))
        logger.debug(f"k={k}: {len(clusters)} clusters, score {score:.4f}")

    if not results:
        logger.warning(f"No k in {krange} produced a cluster; returning a single cluster")
        return [ClusterResult(SINGLE_CLUSTER_SCORE, [labels], 0)]

    results.sort(key=lambda r: (r.score, r.k))
    return results


def _write_partition(best: ClusterResult, clu_dir: Path) -> List[Path]:
    os.makedirs(clu_dir, exist_ok=True)
    files = []
    for i, members in enumerate(best.clusters, 1):
        files.append(write_entry_file(members, clu_dir / f"clu-k{best.k}-{i}.ent"))
    logger.info(f"Best partition k={best.k}: {len(best.clusters)} clusters "
                f"(score {best.score:.4f}) written to {clu_dir}")
    return files


def _summary(results: List[ClusterResult]) -> List[Tuple[float, int, int, List[int]]]:
    return [(r.score, r.k, len(r.clusters), [len(c) for c in r.clusters]) for r in results]


def split_entries(entries: Sequence,
                  out_dir: Union[str, Path],
                  options: Optional[ClusterOptions] = None,
                  source: Optional[SequenceSource] = None
                  ) -> Tuple[List[Tuple[float, int, int, List[int]]], List[Path]]:
    """
    Cluster entries and write the best partition as entry files.

    Files are named ``clu-k{k}-{i}.ent`` (i from 1) under
    ``out_dir/d{delta}``.

    Returns:
        Tuple of (summary, files); summary holds (score, k, n_clusters,
        cluster_sizes) for every trial k, best first
    """
    options = options or ClusterOptions()
    results = krnn_cluster(entries, options, source)
    files = _write_partition(results[0], Path(out_dir) / f"d{options.delta}")
    return _summary(results), files


def split_sto(sto_path: Union[str, Path],
              out_dir: Optional[Union[str, Path]] = None,
              options: Optional[ClusterOptions] = None,
              source: Optional[SequenceSource] = None
              ) -> Tuple[List[Tuple[float, int, int, List[int]]], List[Path], List[Path]]:
    """
    Cluster the rows of a Stockholm alignment into sub-context alignments.

    With a source, the alignment's entries are clustered with
    options.delta context taken from the genomes; without one, the
    degapped rows themselves are clustered. Each cluster of the best
    partition is written as ``clu-k{k}-{i}.ent`` and as
    ``clu-k{k}-{i}.sto`` under ``out_dir/d{delta}``. The cluster
    alignments keep the input's header and ``#=GC`` lines and the member
    rows as aligned; a saved context size is dropped since each cluster
    gets its own.

    Args:
        sto_path: Stockholm alignment to split
        out_dir: Output directory (default: ``CLU-{name}`` beside the input)
        options: Clustering options
        source: Genome sequence source

    Returns:
        Tuple of (summary, entry_files, sto_files)
    """
    sto_path = Path(sto_path)
    options = options or ClusterOptions()
    if out_dir is None:
        out_dir = sto_path.parent / f"CLU-{sto_path.name.split('.')[0]}"

    alignment = read_stockholm(sto_path)
    items = read_entries(sto_path) if source is not None else read_named_sequences(sto_path)
    results = krnn_cluster(items, options, source)
    best = results[0]

    clu_dir = Path(out_dir) / f"d{options.delta}"
    ent_files = _write_partition(best, clu_dir)

    headers = [line for line in alignment.headers if not CTXSZ_PATTERN.match(line)]
    sto_files = []
    for ent_file, members in zip(ent_files, best.clusters):
        cluster = StockholmAlignment(headers=headers, rows=alignment.select(members),
                                     columns=alignment.columns)
        sto_files.append(write_stockholm(ent_file.with_suffix(".sto"), cluster))
    return _summary(results), ent_files, sto_files
