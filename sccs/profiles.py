"""
Sequence profile builder.

A profile (feature frequency profile, FFP) is the probability distribution
over the overlapping words (k-mers) of a sequence at a fixed word size.
This module also carries the small entropy measures computed directly
from profiles.
"""

import logging
import math
from collections import Counter
from functools import partial
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import EmptyInputError, InvalidParameterError, InvalidWordSizeError
from .parallel import parallel_map

logger = logging.getLogger(__name__)

Profile = Dict[str, float]

ALPHABETS = {
    "dna": "ACGT",
    "rna": "ACGU",
    "ry": "RY",
}

# Purine / pyrimidine reduction
RY_XLATE = {"A": "R", "G": "R", "C": "Y", "T": "Y", "U": "Y"}

GAP_CHARS = "-."

# Padding symbol appended for the cross-boundary (extended) word counts
BOUNDARY_SYMBOL = "X"

# IUPAC nucleotide codes accepted when no explicit alphabet is given
IUPAC_SYMBOLS = set("ACGTUNRYKMSWBDHV")


def get_alphabet(alphabet: Union[str, Sequence[str], None] = "dna") -> Tuple[str, ...]:
    """
    Resolve an alphabet name ("dna", "rna", "ry") or explicit symbols.

    Raises:
        InvalidParameterError: Unknown name, empty alphabet or repeated symbols
    """
    if alphabet is None:
        alphabet = "dna"
    if isinstance(alphabet, str) and alphabet.lower() in ALPHABETS:
        symbols = ALPHABETS[alphabet.lower()]
    else:
        symbols = alphabet

    symbols = tuple(str(s).upper() for s in symbols)
    if not symbols:
        raise InvalidParameterError("Alphabet must contain at least one symbol")
    if any(len(s) != 1 for s in symbols):
        raise InvalidParameterError(f"Alphabet symbols must be single characters: {symbols}")
    if len(set(symbols)) != len(symbols):
        raise InvalidParameterError(f"Alphabet contains repeated symbols: {symbols}")
    return symbols


def degap(sequence: str) -> str:
    """Remove alignment gap characters."""
    return "".join(c for c in sequence if c not in GAP_CHARS)


def translate_sequence(sequence: str, xmap: Mapping[str, str]) -> str:
    """Translate symbols through xmap; symbols without a mapping are kept."""
    return "".join(xmap.get(c, c) for c in sequence)


def prepare_sequence(sequence: str, xlate: Optional[Mapping[str, str]] = None) -> str:
    """Upper-case, degap and optionally translate a sequence before profiling."""
    sequence = degap(str(sequence).upper())
    if xlate:
        sequence = translate_sequence(sequence, xlate)
    return sequence


def check_word_size(word_size, sequence_length: Optional[int] = None) -> int:
    """Validate a word size, optionally against the sequence length."""
    if isinstance(word_size, bool) or not isinstance(word_size, (int, np.integer)):
        raise InvalidWordSizeError(f"Word size must be an integer, got {word_size!r}")
    if word_size <= 0:
        raise InvalidWordSizeError(f"Word size must be positive, got {word_size}")
    if sequence_length is not None and word_size > sequence_length:
        raise InvalidWordSizeError(
            f"Word size {word_size} exceeds sequence length {sequence_length}"
        )
    return int(word_size)


def word_counts(sequence: str, word_size: int, extended: bool = False) -> Counter:
    """
    Count overlapping words of length word_size.

    Args:
        sequence: Symbol string
        word_size: Word length k
        extended: Append one boundary symbol so the final window crosses the
            sequence end (used when reconstructing lower order statistics)

    Returns:
        Counter of word -> number of windows
    """
    k = check_word_size(word_size, len(sequence))
    if extended:
        sequence = sequence + BOUNDARY_SYMBOL
    return Counter(sequence[i:i + k] for i in range(len(sequence) - k + 1))


def profile_from_counts(counts: Mapping[str, float]) -> Profile:
    """Normalize word counts to probabilities."""
    total = float(sum(counts.values()))
    if total <= 0:
        raise EmptyInputError("Cannot normalize an empty set of word counts")
    return {word: count / total for word, count in counts.items()}


def profile(sequence: str, word_size: int, extended: bool = False) -> Profile:
    """Word probability profile of sequence at word_size."""
    return profile_from_counts(word_counts(sequence, word_size, extended=extended))


def prefix_profile(word_profile: Mapping[str, float]) -> Profile:
    """Marginalize a profile onto the word prefixes one symbol shorter."""
    prefixes: Dict[str, float] = {}
    for word, p in word_profile.items():
        pre = word[:-1]
        prefixes[pre] = prefixes.get(pre, 0.0) + p
    return prefixes


def profiles_for(sequences: Iterable[str],
                 word_size: int,
                 num_workers: Optional[int] = None,
                 show_progress: bool = False) -> List[Profile]:
    """Profiles of many sequences at one word size, computed across workers."""
    return parallel_map(partial(profile, word_size=word_size),
                        sequences,
                        num_workers=num_workers,
                        show_progress=show_progress,
                        desc=f"Profiling sequences (k={word_size})",
                        unit=" seqs")


def entropy(word_profile: Mapping[str, float]) -> float:
    """Shannon entropy of a profile in bits."""
    probs = np.fromiter(word_profile.values(), dtype=float)
    probs = probs[probs > 0]
    if probs.size == 0:
        return 0.0
    return float(-np.sum(probs * np.log2(probs)))


def max_entropy(word_size: int, alphabet: Union[str, Sequence[str], None] = "dna") -> float:
    """Entropy of the uniform distribution over all words of length word_size."""
    return check_word_size(word_size) * math.log2(len(get_alphabet(alphabet)))


def informativity(word_profile: Mapping[str, float],
                  alphabet: Union[str, Sequence[str], None] = "dna") -> float:
    """Distance of a profile's entropy from the maximal entropy for its word size."""
    if not word_profile:
        raise EmptyInputError("Cannot compute informativity of an empty profile")
    word_size = len(next(iter(word_profile)))
    return max_entropy(word_size, alphabet) - entropy(word_profile)


def limit_entropy(sequence: str,
                  word_size: int,
                  alphabet: Union[str, Sequence[str], None] = "dna",
                  na: float = -1.0) -> float:
    """
    Per-symbol entropy gained by extending words from k-1 to k symbols.

    Returns (H_k - H_{k-1}) / log2|alphabet|, H_1 / log2|alphabet| for k = 1,
    and na when the k-word vocabulary is smaller than the (k-1)-word one.
    """
    lgcnt = math.log2(len(get_alphabet(alphabet)))
    if check_word_size(word_size, len(sequence)) == 1:
        return entropy(profile(sequence, 1)) / lgcnt

    q_profile = profile(sequence, word_size)
    q1_profile = prefix_profile(profile(sequence, word_size, extended=True))
    if len(q_profile) < len(q1_profile):
        return na
    return (entropy(q_profile) - entropy(q1_profile)) / lgcnt


def validate_sequences(sequences: List[str],
                       alphabet: Union[str, Sequence[str], None] = None) -> Tuple[bool, List[str]]:
    """
    Validate sequences against an alphabet (IUPAC nucleotides when None).

    Returns:
        Tuple of (is_valid, error_messages)
    """
    valid = set(get_alphabet(alphabet)) if alphabet is not None else set(IUPAC_SYMBOLS)
    valid |= set(GAP_CHARS)
    errors = []

    if not sequences:
        return False, ["No sequences provided"]

    for i, seq in enumerate(sequences):
        if not seq:
            errors.append(f"Sequence {i+1} is empty")
            continue

        invalid_chars = set(seq.upper()) - valid
        if invalid_chars:
            errors.append(f"Sequence {i+1} contains invalid characters: {invalid_chars}")

    return len(errors) == 0, errors
