"""
SCCS: Sequence Conservation Context and Size similarity

An alignment-free, information-theoretic engine that decides which search
candidates share conserved genomic context with a seed sequence set, and
that splits heterogeneous sequence sets into consistent sub-contexts.
"""

__version__ = "0.3.0"

from .exceptions import (
    SCCSError,
    InvalidParameterError,
    InvalidWordSizeError,
    EmptyInputError,
    MissingAnnotationError
)
from .profiles import (
    profile,
    profiles_for,
    entropy,
    informativity,
    limit_entropy,
    validate_sequences,
    RY_XLATE
)
from .divergence import (
    jensen_shannon,
    relative_entropy,
    lambda_divergence,
    DistanceProvider,
    ProfileDistanceProvider
)
from .word_size import cre, select_word_size
from .hybrid import RawSequence, PrecomputedProfile, hybrid_profile
from .cutpoint import select_cutpoint, get_pos_neg_sets
from .entries import Entry, read_entries, write_entry_file, write_entry_value_file
from .sources import (
    GenomeDatabaseRegistry,
    SequenceSource,
    FastaGenomeSource,
    InMemoryGenomeSource
)
from .candidates import (
    SCCSOptions,
    compute_candidate_info,
    compute_candidate_sets,
    aggregate_candidate_sets
)
from .context import hit_context_delta, save_hit_context_delta, merge_by_context_size
from .clustering import ClusterOptions, krnn_cluster, split_entries, split_sto

__all__ = [
    "SCCSError",
    "InvalidParameterError",
    "InvalidWordSizeError",
    "EmptyInputError",
    "MissingAnnotationError",
    "profile",
    "profiles_for",
    "entropy",
    "informativity",
    "limit_entropy",
    "validate_sequences",
    "RY_XLATE",
    "jensen_shannon",
    "relative_entropy",
    "lambda_divergence",
    "DistanceProvider",
    "ProfileDistanceProvider",
    "cre",
    "select_word_size",
    "RawSequence",
    "PrecomputedProfile",
    "hybrid_profile",
    "select_cutpoint",
    "get_pos_neg_sets",
    "Entry",
    "read_entries",
    "write_entry_file",
    "write_entry_value_file",
    "GenomeDatabaseRegistry",
    "SequenceSource",
    "FastaGenomeSource",
    "InMemoryGenomeSource",
    "SCCSOptions",
    "compute_candidate_info",
    "compute_candidate_sets",
    "aggregate_candidate_sets",
    "hit_context_delta",
    "save_hit_context_delta",
    "merge_by_context_size",
    "ClusterOptions",
    "krnn_cluster",
    "split_entries",
    "split_sto"
]
