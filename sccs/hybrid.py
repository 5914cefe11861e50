"""
Hybrid (centroid) profile aggregation.

The hybrid profile of a group is the average of its member profiles: member
probabilities are summed word by word and divided by the member count.
Summation is associative and commutative, so members are merged in chunks
on worker processes and the partial sums combined in any order.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Union

from .exceptions import EmptyInputError, InvalidParameterError
from .parallel import parallel_map
from .profiles import Profile, check_word_size, profiles_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawSequence:
    """Member given as a sequence; profiled at the hybrid's word size."""
    sequence: str


@dataclass(frozen=True)
class PrecomputedProfile:
    """Member given as an already computed word profile."""
    profile: Mapping[str, float]


ProfileInput = Union[RawSequence, PrecomputedProfile]


def as_profile_inputs(members: Iterable) -> List[ProfileInput]:
    """Tag plain strings as RawSequence and mappings as PrecomputedProfile."""
    tagged = []
    for member in members:
        if isinstance(member, (RawSequence, PrecomputedProfile)):
            tagged.append(member)
        elif isinstance(member, str):
            tagged.append(RawSequence(member))
        elif isinstance(member, Mapping):
            tagged.append(PrecomputedProfile(member))
        else:
            raise InvalidParameterError(
                f"Hybrid members must be sequences or profiles, got {type(member).__name__}"
            )
    return tagged


def merge_profiles(profiles: Iterable[Mapping[str, float]]) -> Counter:
    """Sum profiles word by word."""
    total = Counter()
    for p in profiles:
        for word, value in p.items():
            total[word] += value
    return total


def _chunks(items: List, n_chunks: int) -> List[List]:
    size = max(1, -(-len(items) // n_chunks))
    return [items[i:i + size] for i in range(0, len(items), size)]


def resolve_profiles(word_size: int,
                     members: Iterable,
                     num_workers: Optional[int] = None) -> List[Mapping[str, float]]:
    """Profiles for a mixed collection of raw sequences and precomputed profiles."""
    tagged = as_profile_inputs(members)
    raw_positions = [i for i, m in enumerate(tagged) if isinstance(m, RawSequence)]
    computed = profiles_for([tagged[i].sequence for i in raw_positions], word_size,
                            num_workers=num_workers)

    resolved: List[Optional[Mapping[str, float]]] = [
        m.profile if isinstance(m, PrecomputedProfile) else None for m in tagged
    ]
    for i, p in zip(raw_positions, computed):
        resolved[i] = p
    return resolved


def hybrid_profile(word_size: int,
                   members: Iterable,
                   num_workers: Optional[int] = None) -> Profile:
    """
    Hybrid (centroid) profile of a group of sequences or profiles.

    Args:
        word_size: Word size for raw sequence members
        members: RawSequence / PrecomputedProfile items, or plain strings / mappings
        num_workers: Worker processes (None: auto, 0/1: serial)

    Returns:
        Normalized profile

    Raises:
        EmptyInputError: No members given
    """
    check_word_size(word_size)
    profiles = resolve_profiles(word_size, members, num_workers=num_workers)
    count = len(profiles)
    if count == 0:
        raise EmptyInputError("Cannot build a hybrid profile from no members")

    n_chunks = max(count // 10, 2)
    partials = parallel_map(merge_profiles,
                            _chunks(profiles, n_chunks),
                            num_workers=num_workers,
                            desc="Merging profiles",
                            unit=" chunks")
    total = merge_profiles(partials)

    return {word: value / count for word, value in total.items()}


def hybrid_of_sequences(word_size: int, sequences: Iterable[str],
                        num_workers: Optional[int] = None) -> Profile:
    """Convenience wrapper for a group given only as sequences."""
    return hybrid_profile(word_size, [RawSequence(s) for s in sequences], num_workers=num_workers)
