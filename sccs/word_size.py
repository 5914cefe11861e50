"""
Word-size selection by cumulative relative entropy (CRE).

For each word length l the observed l-word distribution is compared with
the distribution expected if the sequence were generated by a Markov
process consistent with its (l-1)- and (l-2)-word statistics. Once longer
words stop adding information, the summed divergence over all longer
lengths (the CRE) drops towards zero. The selected word size is the
smallest length whose CRE falls below a cut value.
"""

import logging
import math
from dataclasses import dataclass, field
from functools import partial
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .divergence import relative_entropy
from .exceptions import EmptyInputError, InvalidWordSizeError
from .parallel import parallel_map
from .profiles import Profile, check_word_size, get_alphabet, prefix_profile, profile

logger = logging.getLogger(__name__)

MIN_WORD_SIZE = 3
DEFAULT_CRECUT = 0.10
DEFAULT_LIMIT = 14


@dataclass
class CRESample:
    """CRE curve of one sampled sequence."""
    name: str
    length: int
    points: List[Tuple[int, float]] = field(default_factory=list)

    def first_below(self, crecut: float) -> Optional[int]:
        """Smallest word length whose CRE is below crecut, if any."""
        for length, value in self.points:
            if value < crecut:
                return length
        return None


def expected_profile(sequence: str,
                     word_size: int,
                     alphabet: Union[str, Sequence[str], None] = "dna") -> Profile:
    """
    Reconstruct the expected word_size-word distribution from shorter words.

    Each word a.x.b is given P(a.x) * P(x.b) / P(x), where the (l-1)-word
    probabilities come from the sequence profile and the (l-2)-word ones
    from the prefixes of the boundary-extended (l-1)-word profile. Words
    whose terms were never observed are left out.
    """
    if check_word_size(word_size) <= 2:
        raise InvalidWordSizeError(f"Reconstruction needs word size > 2, got {word_size}")

    alpha = get_alphabet(alphabet)
    q = word_size - 1
    q_dict = profile(sequence, q)
    q1_dict = prefix_profile(profile(sequence, q, extended=True))

    expected: Profile = {}
    for prefix in q_dict:
        for symbol in alpha:
            word = prefix + symbol
            suffix = word[1:]
            middle = word[1:q]
            if suffix in q_dict and middle in q1_dict:
                expected[word] = q_dict[prefix] * q_dict[suffix] / q1_dict[middle]
    return expected


def length_divergence(sequence: str,
                      word_size: int,
                      alphabet: Union[str, Sequence[str], None] = "dna") -> float:
    """Relative entropy of observed vs reconstructed words at one length.

    Lengths the sequence cannot support contribute 0.
    """
    if word_size > len(sequence):
        return 0.0
    observed = profile(sequence, word_size)
    expected = expected_profile(sequence, word_size, alphabet)
    if not expected:
        return 0.0
    value = relative_entropy(observed, expected)
    return value if math.isfinite(value) else 0.0


def cre_profile(sequence: str,
                limit: int = DEFAULT_LIMIT,
                alphabet: Union[str, Sequence[str], None] = "dna",
                start: int = MIN_WORD_SIZE) -> List[Tuple[int, float]]:
    """CRE(l) for every l in [start, limit], from per-length divergences."""
    if start <= 2:
        raise InvalidWordSizeError(f"CRE is defined for word sizes > 2, got {start}")
    lengths = list(range(start, limit + 1))
    divergences = [length_divergence(sequence, l, alphabet) for l in lengths]

    points = []
    running = 0.0
    for l, d in zip(reversed(lengths), reversed(divergences)):
        running += d
        points.append((l, running))
    points.reverse()
    return points


def cre(word_size: int,
        sequence: str,
        limit: int = 15,
        alphabet: Union[str, Sequence[str], None] = "dna") -> float:
    """Cumulative relative entropy: sum of per-length divergences for word_size..limit."""
    if check_word_size(word_size) <= 2:
        raise InvalidWordSizeError(f"CRE is defined for word sizes > 2, got {word_size}")
    return sum(length_divergence(sequence, l, alphabet) for l in range(word_size, limit + 1))


def _cre_sample(named_sequence: Tuple[str, str], limit: int, alphabet) -> CRESample:
    name, sequence = named_sequence
    return CRESample(name=name, length=len(sequence),
                     points=cre_profile(sequence, limit=limit, alphabet=alphabet))


def _named(sequences) -> List[Tuple[str, str]]:
    named = []
    for i, item in enumerate(sequences):
        if isinstance(item, str):
            named.append((f"seq_{i}", item))
        else:
            name, sequence = item
            named.append((str(name), sequence))
    return named


def cre_samples(sequences,
                sample_count: int = 5,
                limit: int = DEFAULT_LIMIT,
                alphabet: Union[str, Sequence[str], None] = "dna",
                seed: Optional[int] = None,
                num_workers: Optional[int] = None) -> List[CRESample]:
    """
    CRE curves for a random sample of sequences.

    Args:
        sequences: Sequence strings or (name, sequence) pairs
        sample_count: Number of sequences to sample (capped at the input size)
        limit: Largest word length considered
        alphabet: Alphabet used for reconstruction
        seed: Random seed for the sample
        num_workers: Worker processes (None: auto, 0/1: serial)
    """
    named = _named(sequences)
    if not named:
        raise EmptyInputError("Cannot sample CRE curves from an empty sequence set")

    rng = np.random.default_rng(seed)
    count = min(sample_count, len(named))
    chosen = sorted(rng.choice(len(named), size=count, replace=False))
    sample = [named[i] for i in chosen]

    return parallel_map(partial(_cre_sample, limit=limit, alphabet=alphabet),
                        sample,
                        num_workers=num_workers,
                        desc="Computing CRE curves",
                        unit=" seqs")


def select_word_size(sequences,
                     sample_count: int = 5,
                     limit: int = DEFAULT_LIMIT,
                     crecut: float = DEFAULT_CRECUT,
                     alphabet: Union[str, Sequence[str], None] = "dna",
                     seed: Optional[int] = None,
                     num_workers: Optional[int] = None) -> Tuple[int, List[CRESample]]:
    """
    Choose the word size for a sequence set.

    Each sampled sequence votes for the smallest length whose CRE drops
    below crecut (limit when none does); votes are combined as a running
    average, rounded up and clamped to at least 3.

    Returns:
        Tuple of (word_size, cre_samples)
    """
    samples = cre_samples(sequences, sample_count=sample_count, limit=limit,
                          alphabet=alphabet, seed=seed, num_workers=num_workers)

    average = None
    for sample in samples:
        choice = sample.first_below(crecut)
        if choice is None:
            logger.debug(f"CRE of {sample.name} never drops below {crecut}; using limit {limit}")
            choice = limit
        average = float(choice) if average is None else (average + choice) / 2.0

    word_size = max(MIN_WORD_SIZE, int(math.ceil(average)))
    logger.info(f"Selected word size {word_size} from {len(samples)} sampled sequences")
    return word_size, samples
