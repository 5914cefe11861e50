"""
Cutpoint selection over divergence-sorted (entry, divergence) pairs.

The empirical CDF of the divergences (rounded to thousandths) locates the
largest divergence that is both within a maximum bound Mre and at or below
the target cumulative probability 0.5 + Dy. Every pair whose divergence is
at or below that cutoff falls on the positive ("good") side.
"""

import logging
import math
from typing import Callable, Dict, Hashable, List, Sequence, Tuple

from .exceptions import EmptyInputError, InvalidParameterError

logger = logging.getLogger(__name__)

NameDivergence = Tuple[Hashable, float]

DEFAULT_MRE = 0.935


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def round_divergence(value: float) -> float:
    """Bin a divergence to the nearest thousandth."""
    return round_half_up(value * 1000 + 0.1) / 1000.0


def divergence_distribution(pairs: Sequence[NameDivergence]) -> List[Tuple[float, float, List[Hashable]]]:
    """
    Probability mass of each rounded divergence value.

    Returns:
        List of (rounded_divergence, probability, names) sorted by divergence
    """
    if not pairs:
        return []
    groups: Dict[float, List[Hashable]] = {}
    for name, value in pairs:
        groups.setdefault(round_divergence(value), []).append(name)
    total = float(len(pairs))
    return [(re, len(names) / total, names) for re, names in sorted(groups.items())]


def empirical_cdf(pairs: Sequence[NameDivergence]) -> Callable[[float], float]:
    """Empirical CDF F(x) over the rounded divergences of pairs."""
    distribution = [(re, p) for re, p, _ in divergence_distribution(pairs)]

    def cdf(x: float) -> float:
        return sum(p for re, p in distribution if re <= x)

    return cdf


def cdf_cutoff(pairs: Sequence[NameDivergence],
               dy: float,
               mre: float = DEFAULT_MRE,
               allow_single_value_fallback: bool = True) -> float:
    """
    Divergence cutoff selected by the CDF rule, rounded to thousandths.

    When no value satisfies both bounds and the fallback is enabled, the
    smallest observed value is used if it is within mre. The fallback
    targets a single good score repeated an anomalous number of times; it
    is a tunable heuristic rather than a guarantee.
    """
    distribution = divergence_distribution(pairs)
    target = 0.5 + dy

    cutoff = 0.0
    cumulative = 0.0
    for re, p, _ in distribution:
        cumulative += p
        if re <= mre and cumulative <= target:
            cutoff = re

    if cutoff == 0.0 and allow_single_value_fallback:
        smallest = distribution[0][0]
        if smallest <= mre:
            cutoff = smallest

    return round_half_up(1000 * (cutoff + 0.001)) / 1000.0


def select_cutpoint(pairs: Sequence[NameDivergence],
                    dy: float,
                    mre: float = DEFAULT_MRE,
                    allow_single_value_fallback: bool = True) -> int:
    """
    Number of pairs on the positive side of the CDF cutoff.

    Args:
        pairs: (entry, divergence) pairs, normally sorted ascending
        dy: Offset added to the median (0.5) to give the target CDF value
        mre: Largest divergence allowed on the positive side
        allow_single_value_fallback: Use the smallest divergence when the
            CDF rule selects nothing

    Returns:
        Cutpoint in [0, len(pairs)]

    Raises:
        EmptyInputError: pairs is empty
    """
    if not pairs:
        raise EmptyInputError("Cutpoint undefined on an empty set of divergence points")

    cutoff = cdf_cutoff(pairs, dy, mre, allow_single_value_fallback)
    cutpoint = sum(1 for _, value in pairs if value <= cutoff)
    logger.debug(f"Cutpoint {cutpoint}/{len(pairs)} at divergence {cutoff:.3f} (Dy={dy}, Mre={mre})")
    return cutpoint


def get_pos_neg_sets(pairs: Sequence[NameDivergence],
                     cutpoint: int,
                     ends: str = "low") -> Tuple[List[NameDivergence], List[NameDivergence]]:
    """
    Split sorted pairs at a cutpoint.

    Args:
        pairs: Divergence-sorted pairs
        cutpoint: Number of positive pairs (per tail for ends="both")
        ends: "low" keeps the low-divergence head, "high" the tail, "both"
            keeps cutpoint pairs from each end

    Returns:
        Tuple of (good, bad)
    """
    pairs = list(pairs)
    total = len(pairs)
    if not 0 <= cutpoint <= total:
        raise InvalidParameterError(f"Cutpoint {cutpoint} outside [0, {total}]")

    if ends == "low":
        return pairs[:cutpoint], pairs[cutpoint:]
    if ends == "high":
        return pairs[total - cutpoint:], pairs[:total - cutpoint]
    if ends == "both":
        # Tails never overlap; with cutpoint > total / 2 everything is good
        tail_start = max(cutpoint, total - cutpoint)
        return pairs[:cutpoint] + pairs[tail_start:], pairs[cutpoint:tail_start]
    raise InvalidParameterError(f"ends must be 'low', 'high' or 'both', got '{ends}'")
