"""Divergence measures between word profiles and a profile distance provider."""

import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .exceptions import EmptyInputError, InvalidParameterError
from .parallel import parallel_map

logger = logging.getLogger(__name__)

DivergenceFn = Callable[[Mapping[str, float], Mapping[str, float]], float]

# Jensen-Shannon divergence of two profiles with disjoint support
MAX_JSD = 1.0

# Relative entropy is unbounded; disjoint supports map to this sentinel
NO_OVERLAP_DIVERGENCE = math.inf


def _aligned_arrays(p: Mapping[str, float], q: Mapping[str, float]) -> Tuple[np.ndarray, np.ndarray]:
    """Probability vectors of p and q over their sorted joint key space."""
    if not p or not q:
        raise EmptyInputError("Cannot compare empty profiles")
    keys = sorted(set(p) | set(q))
    pv = np.array([p.get(k, 0.0) for k in keys], dtype=float)
    qv = np.array([q.get(k, 0.0) for k in keys], dtype=float)
    return pv, qv


def _kl_terms(pv: np.ndarray, qv: np.ndarray) -> float:
    mask = (pv > 0) & (qv > 0)
    return float(np.sum(pv[mask] * np.log2(pv[mask] / qv[mask])))


def jensen_shannon(p: Mapping[str, float], q: Mapping[str, float]) -> float:
    """
    Jensen-Shannon divergence (base 2) between two profiles.

    Symmetric and bounded in [0, 1]. Words absent from a profile have
    probability 0.
    """
    pv, qv = _aligned_arrays(p, q)
    if not np.any((pv > 0) & (qv > 0)):
        return MAX_JSD
    m = (pv + qv) / 2.0
    jsd = 0.5 * _kl_terms(pv, m) + 0.5 * _kl_terms(qv, m)
    return float(min(max(jsd, 0.0), MAX_JSD))


def relative_entropy(p: Mapping[str, float], q: Mapping[str, float]) -> float:
    """
    Directional relative entropy D(p || q) in bits over the shared support.

    Words of p missing from q are skipped; fully disjoint supports give
    NO_OVERLAP_DIVERGENCE.
    """
    pv, qv = _aligned_arrays(p, q)
    if not np.any((pv > 0) & (qv > 0)):
        return NO_OVERLAP_DIVERGENCE
    return max(_kl_terms(pv, qv), 0.0)


def lambda_divergence(p: Mapping[str, float], q: Mapping[str, float], lam: float = 0.5) -> float:
    """Skew divergence D(p || lam*p + (1-lam)*q); finite for any pair of profiles."""
    if not 0.0 < lam <= 1.0:
        raise InvalidParameterError(f"lambda must be in (0, 1], got {lam}")
    pv, qv = _aligned_arrays(p, q)
    mix = lam * pv + (1.0 - lam) * qv
    return max(_kl_terms(pv, mix), 0.0)


DIVERGENCE_MEASURES: Dict[str, DivergenceFn] = {
    "jensen_shannon": jensen_shannon,
    "jsd": jensen_shannon,
    "relative_entropy": relative_entropy,
    "kl": relative_entropy,
    "lambda": lambda_divergence,
}


def get_divergence(measure: Union[str, DivergenceFn, None] = "jensen_shannon") -> DivergenceFn:
    """Resolve a divergence measure by name; callables are returned as given."""
    if measure is None:
        return jensen_shannon
    if callable(measure):
        return measure
    try:
        return DIVERGENCE_MEASURES[measure.lower()]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown divergence measure '{measure}'. "
            f"Choose one of: {', '.join(sorted(DIVERGENCE_MEASURES))}"
        ) from None


class DistanceProvider(ABC):
    """Abstract base class for distance providers."""

    @abstractmethod
    def get_distance(self, idx1: int, idx2: int) -> float:
        """Get distance between two profiles by index."""
        pass

    @abstractmethod
    def get_distances_from_sequence(self, idx: int, targets: Set[int]) -> Dict[int, float]:
        """Get distances from one profile to a set of target profiles."""
        pass

    @abstractmethod
    def build_distance_matrix(self) -> np.ndarray:
        """Build the full symmetric distance matrix."""
        pass


# Worker state for distance matrix rows (initialized once per worker)
_row_worker_profiles = None
_row_worker_measure = None


def _init_row_worker(profiles: Sequence[Mapping[str, float]], measure: DivergenceFn) -> None:
    global _row_worker_profiles, _row_worker_measure
    _row_worker_profiles = profiles
    _row_worker_measure = measure


def _distance_row_worker(i: int) -> List[float]:
    """Distances from profile i to every profile j > i."""
    profiles = _row_worker_profiles
    return [_row_worker_measure(profiles[i], profiles[j]) for j in range(i + 1, len(profiles))]


class ProfileDistanceProvider(DistanceProvider):
    """Distance provider over precomputed word profiles.

    Single distances are computed on demand and cached; the full matrix is
    computed row by row across worker processes and written into a
    pre-indexed array.
    """

    def __init__(self,
                 profiles: Sequence[Mapping[str, float]],
                 measure: Union[str, DivergenceFn, None] = "jensen_shannon",
                 num_workers: Optional[int] = None,
                 show_progress: bool = False):
        """
        Args:
            profiles: Word profiles, indexed by entry number
            measure: Divergence measure name or module-level function
            num_workers: Worker processes for the matrix (None: auto, 0/1: serial)
            show_progress: Show a progress bar while building the matrix
        """
        self.profiles = list(profiles)
        self.measure = get_divergence(measure)
        self.num_workers = num_workers
        self.show_progress = show_progress
        self.n = len(self.profiles)
        self._distance_cache: Dict[Tuple[int, int], float] = {}

    def get_distance(self, idx1: int, idx2: int) -> float:
        if idx1 == idx2:
            return 0.0

        cache_key = (min(idx1, idx2), max(idx1, idx2))
        if cache_key in self._distance_cache:
            return self._distance_cache[cache_key]

        distance = self.measure(self.profiles[cache_key[0]], self.profiles[cache_key[1]])
        self._distance_cache[cache_key] = distance
        return distance

    def get_distances_from_sequence(self, idx: int, targets: Set[int]) -> Dict[int, float]:
        return {target_idx: self.get_distance(idx, target_idx) for target_idx in targets}

    def build_distance_matrix(self) -> np.ndarray:
        matrix = np.zeros((self.n, self.n))
        if self.n < 2:
            return matrix

        rows = parallel_map(_distance_row_worker,
                            range(self.n - 1),
                            num_workers=self.num_workers,
                            show_progress=self.show_progress,
                            desc="Computing profile divergences",
                            unit=" rows",
                            initializer=_init_row_worker,
                            initargs=(self.profiles, self.measure))

        for i, row in enumerate(rows):
            for offset, dist in enumerate(row):
                j = i + 1 + offset
                matrix[i, j] = dist
                matrix[j, i] = dist
                self._distance_cache[(i, j)] = dist

        logger.debug(f"Built {self.n} x {self.n} divergence matrix")
        return matrix
