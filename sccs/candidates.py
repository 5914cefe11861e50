"""
Candidate set engine.

Candidates found by a homology search are split into a positive ("good")
set that shares sequence and context similarity with the seed sequences
and a negative ("bad") set. The split runs in two phases:

1. Hit only: the hit regions themselves, reduced to purine/pyrimidine
   symbols, at a fixed word size, against the hybrid of the seed hits.
2. Context: the hit-only positives extended downstream by delta bases,
   at the word size selected for the seed set, against the hybrid of the
   equally extended seed regions.

Each phase scores every candidate by divergence to the reference hybrid,
sorts the scores and cuts them with the CDF cutpoint rule.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Hashable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .cutpoint import NameDivergence, get_pos_neg_sets, select_cutpoint
from .divergence import DivergenceFn, get_divergence
from .entries import (
    Entry,
    entry_file_difference,
    entry_file_union,
    read_entries,
    write_entry_file,
    write_entry_value_file,
)
from .exceptions import EmptyInputError, InvalidParameterError
from .hybrid import hybrid_of_sequences
from .parallel import parallel_map
from .profiles import RY_XLATE, prepare_sequence, profiles_for
from .render import plot_cand_dists, plot_cres, plot_hit_dists
from .sources import SequenceSource
from .word_size import select_word_size

logger = logging.getLogger(__name__)

HIT_DY = 0.4
HIT_MRE = 0.7

RUN_DY = {1: 0.3, 2: 0.25, 3: 0.2, 4: 0.1, 5: 0.0}
RUN_MRE = {1: 0.953, 2: 0.94, 3: 0.935, 4: 0.93}
DEFAULT_RUN_DY = -0.1
DEFAULT_RUN_MRE = 0.927

CMSEARCH_SUFFIX = re.compile(r'(\.[a-z]+|)\.cmsearch\.(csv|out|ent)$')


@dataclass
class SCCSOptions:
    """Tuning for the candidate set engine."""
    divergence: Union[str, DivergenceFn] = "jensen_shannon"
    xlate: Optional[Mapping[str, str]] = None
    alphabet: str = "dna"
    crecut: float = 0.10
    limit: int = 15
    sample_count: int = 5
    dy: Optional[float] = None
    mre: Optional[float] = None
    word_size: Optional[int] = None
    hit_word_size: int = 6
    hit_xlate: Mapping[str, str] = field(default_factory=lambda: dict(RY_XLATE))
    hit_alphabet: str = "ry"
    plot_cre: Optional[Union[str, Path]] = None
    plot_dists: Optional[Union[str, Path]] = None
    num_workers: Optional[int] = None
    show_progress: bool = False
    seed: Optional[int] = None


@dataclass
class CandidateInfo:
    """Outcome of one scoring phase."""
    good: List[NameDivergence]
    bad: List[NameDivergence]
    cutpoint: int
    divergences: List[NameDivergence]
    word_size: int
    dy: float
    mre: float


@dataclass
class CandidateSetResult:
    """Outcome of both phases plus the written entry files.

    Unpacks as ``(good, bad, cutpoint), (hitonly_good, hitonly_bad,
    hitonly_cutpoint), hitonly_divergences, divergences, (final_good_file,
    final_bad_file)``.
    """
    final: CandidateInfo
    hitonly: CandidateInfo
    hitonly_file: Path
    hitonly_neg_file: Path
    final_file: Path
    final_bad_file: Path

    def __iter__(self) -> Iterator:
        yield self.final.good, self.final.bad, self.final.cutpoint
        yield self.hitonly.good, self.hitonly.bad, self.hitonly.cutpoint
        yield self.hitonly.divergences
        yield self.final.divergences
        yield self.final_file, self.final_bad_file


def run_presets(run: int, delta: int,
                dy: Optional[float] = None,
                mre: Optional[float] = None) -> Tuple[float, float]:
    """
    Cutpoint parameters (Dy, Mre) for a run.

    Hit-only scoring (delta 0) always uses the 0.9 CDF point and Mre 0.7,
    which in practice lets the CDF decide. Later runs loosen the CDF point
    and tighten Mre. Explicit values win for context scoring.
    """
    if delta == 0:
        return HIT_DY, HIT_MRE
    if dy is None:
        dy = RUN_DY.get(run, DEFAULT_RUN_DY)
    if mre is None:
        mre = RUN_MRE.get(run, DEFAULT_RUN_MRE)
    return dy, mre


# Worker state for scoring against a reference hybrid
_reference_hybrid = None
_reference_measure = None


def _init_reference_worker(hybrid: Mapping[str, float], measure: DivergenceFn) -> None:
    global _reference_hybrid, _reference_measure
    _reference_hybrid = hybrid
    _reference_measure = measure


def _reference_worker(candidate_profile: Mapping[str, float]) -> float:
    return _reference_measure(candidate_profile, _reference_hybrid)


def reference_divergences(word_size: int,
                          candidates: Sequence[Tuple[Hashable, str]],
                          references: Sequence[str],
                          options: Optional[SCCSOptions] = None) -> List[NameDivergence]:
    """
    Divergence of each candidate to the hybrid of the reference sequences.

    Args:
        word_size: Word size for all profiles
        candidates: (entry, sequence) pairs
        references: Reference sequences
        options: Divergence measure, translation and worker settings

    Returns:
        Distinct (entry, divergence) pairs sorted by ascending divergence
    """
    options = options or SCCSOptions()
    if not candidates:
        raise EmptyInputError("No candidate sequences to score")
    if not references:
        raise EmptyInputError("No reference sequences to build a hybrid from")

    measure = get_divergence(options.divergence)
    refs = [prepare_sequence(s, options.xlate) for s in references]
    names = [name for name, _ in candidates]
    seqs = [prepare_sequence(s, options.xlate) for _, s in candidates]

    hybrid = hybrid_of_sequences(word_size, refs, num_workers=options.num_workers)
    profiles = profiles_for(seqs, word_size, num_workers=options.num_workers,
                            show_progress=options.show_progress)
    values = parallel_map(_reference_worker,
                          profiles,
                          num_workers=options.num_workers,
                          show_progress=options.show_progress,
                          desc="Scoring candidates",
                          unit=" seqs",
                          initializer=_init_reference_worker,
                          initargs=(hybrid, measure))

    distinct: Dict[Tuple[Hashable, float], None] = {}
    for name, value in zip(names, values):
        distinct.setdefault((name, value), None)
    return sorted(distinct, key=lambda p: (p[1], str(p[0])))


def _as_entries(items: Union[str, Path, Sequence[Entry]]) -> List[Entry]:
    if isinstance(items, (str, Path)):
        return read_entries(items)
    return list(items)


def _chart_name(seed) -> str:
    if isinstance(seed, (str, Path)):
        return Path(seed).name.split(".")[0].replace("_", "-")
    return "seed"


def compute_candidate_info(seed: Union[str, Path, Sequence[Entry]],
                           candidates: Union[str, Path, Sequence[Entry]],
                           delta: int,
                           run: int,
                           source: SequenceSource,
                           options: Optional[SCCSOptions] = None,
                           word_size: Optional[int] = None) -> CandidateInfo:
    """
    Score candidates against the seed hybrid and split them at the cutpoint.

    Candidate and seed sequences are taken from the source with directed
    downstream extension delta and no upstream extension. Unless given
    (argument or options), the word size is selected by CRE on the seed
    set extended the same way.

    Args:
        seed: Seed entries or an entry/Stockholm/FASTA file naming them
        candidates: Candidate entries or a file naming them
        delta: Downstream context extension
        run: Run number selecting the cutpoint presets
        source: Genome sequence source
        options: Engine options
        word_size: Fixed word size

    Returns:
        CandidateInfo for this phase
    """
    options = options or SCCSOptions()
    seed_entries = _as_entries(seed)
    candidate_entries = _as_entries(candidates)
    if not candidate_entries:
        raise EmptyInputError("Candidate set is empty")
    if not seed_entries:
        raise EmptyInputError("Seed set is empty")

    word_size = word_size or options.word_size
    samples = None
    if word_size is None:
        seed_seqs = [(str(e), prepare_sequence(s, options.xlate))
                     for e, s in source.adjusted_sequences(seed_entries, delta)]
        word_size, samples = select_word_size(seed_seqs,
                                              sample_count=options.sample_count,
                                              limit=options.limit,
                                              crecut=options.crecut,
                                              alphabet=options.alphabet,
                                              seed=options.seed,
                                              num_workers=options.num_workers)

    references = [s for _, s in source.adjusted_sequences(seed_entries, delta, ddel=0)]
    cands = source.adjusted_sequences(candidate_entries, delta, ddel=0)
    divergences = reference_divergences(word_size, cands, references, options)

    dy, mre = run_presets(run, delta, options.dy, options.mre)
    cutpoint = select_cutpoint(divergences, dy=dy, mre=mre)
    good, bad = get_pos_neg_sets(divergences, cutpoint)
    logger.info(f"Delta {delta}, word size {word_size}: {len(good)} good, "
                f"{len(bad)} bad of {len(divergences)} candidates")

    chart_name = _chart_name(seed)
    if options.plot_cre and samples:
        plot_cres(samples, options.plot_cre)
    if options.plot_dists:
        if delta == 0:
            plot_hit_dists(chart_name, chart_name, divergences, word_size, cutpoint,
                           location=options.plot_dists)
        else:
            plot_cand_dists(chart_name, chart_name, divergences, delta, word_size,
                            mre, dy + 0.5, cutpoint, location=options.plot_dists)

    return CandidateInfo(good=good, bad=bad, cutpoint=cutpoint, divergences=divergences,
                         word_size=word_size, dy=dy, mre=mre)


def get_hitonly_final_names(candidate_file: Union[str, Path],
                            seed_name: Optional[Union[str, Path]] = None) -> Tuple[Path, Path]:
    """
    Canonical hit-only and final entry file names for a candidate file.

    With a seed file name, the candidate file's leading name component is
    replaced by the seed's. A trailing ``[.type].cmsearch.(csv|out|ent)``
    is replaced by ``-hitonly.ent`` / ``-final.ent``; other names have
    their last suffix replaced.
    """
    candidate_file = Path(candidate_file)
    base = candidate_file.name
    if seed_name is not None:
        prefix = Path(seed_name).name.split(".")[0]
        base = ".".join([prefix] + base.split(".")[1:])

    if CMSEARCH_SUFFIX.search(base):
        hitonly = CMSEARCH_SUFFIX.sub("-hitonly.ent", base)
        final = CMSEARCH_SUFFIX.sub("-final.ent", base)
    else:
        stem = base.rsplit(".", 1)[0] if "." in base else base
        hitonly, final = f"{stem}-hitonly.ent", f"{stem}-final.ent"

    return candidate_file.parent / hitonly, candidate_file.parent / final


def _suffixed(path: Path, tag: str) -> Path:
    return path.with_name(f"{path.stem}-{tag}{path.suffix}")


def compute_candidate_sets(seed_seqs: Union[str, Path, Sequence[Entry]],
                           candidate_file: Union[str, Path],
                           run: int,
                           delta: int,
                           source: SequenceSource,
                           options: Optional[SCCSOptions] = None) -> CandidateSetResult:
    """
    Two-phase positive/negative candidate selection.

    Phase 1 scores the hits alone and writes its positives as an entry
    file (``-hitonly.ent``) and its negatives with their divergences
    (``-hitonly-neg.ent``). Phase 2 rescores those positives with delta
    bases of downstream context and writes the final positives
    (``-final.ent``) and negatives (``-final-bad.ent``) with divergences.

    Args:
        seed_seqs: Seed entries, or a Stockholm/entry/FASTA file of them
        candidate_file: File naming the search candidates
        run: Run number selecting the cutpoint presets
        delta: Downstream context size
        source: Genome sequence source
        options: Engine options

    Returns:
        CandidateSetResult

    Raises:
        EmptyInputError: No candidates in candidate_file, or none passed
            the hit-only phase. In the latter case the hit-only files are
            already written and the final files are not.
    """
    options = options or SCCSOptions()
    if delta < 0:
        raise InvalidParameterError(f"Context delta must be non-negative, got {delta}")

    seed_name = seed_seqs if isinstance(seed_seqs, (str, Path)) else None
    hitonly_file, final_file = get_hitonly_final_names(candidate_file, seed_name)
    hitonly_neg_file = _suffixed(hitonly_file, "neg")
    final_bad_file = _suffixed(final_file, "bad")

    seed_entries = _as_entries(seed_seqs)
    candidates = read_entries(candidate_file)
    if not candidates:
        raise EmptyInputError(f"No candidates in {candidate_file}")
    logger.info(f"Scoring {len(candidates)} candidates against {len(seed_entries)} seeds")

    hit_options = replace(options, xlate=options.hit_xlate, alphabet=options.hit_alphabet)
    hitonly = compute_candidate_info(seed_entries, candidates, 0, run, source, hit_options,
                                     word_size=options.hit_word_size)
    write_entry_file([entry for entry, _ in hitonly.good], hitonly_file)
    write_entry_value_file(hitonly.bad, hitonly_neg_file)

    if not hitonly.good:
        raise EmptyInputError(f"No candidates in {candidate_file} passed the hit-only phase")
    final = compute_candidate_info(seed_entries, [entry for entry, _ in hitonly.good],
                                   delta, run, source, options)

    write_entry_value_file(final.good, final_file)
    write_entry_value_file(final.bad, final_bad_file)
    logger.info(f"Final: {len(final.good)} good, {len(final.bad)} bad "
                f"(hit-only: {len(hitonly.good)} good, {len(hitonly.bad)} bad)")

    return CandidateSetResult(final=final, hitonly=hitonly,
                              hitonly_file=hitonly_file, hitonly_neg_file=hitonly_neg_file,
                              final_file=final_file, final_bad_file=final_bad_file)


def aggregate_candidate_sets(result_dir: Union[str, Path],
                             candidate_file: Union[str, Path],
                             out_dir: Union[str, Path],
                             prefix: str) -> Tuple[Path, Path, Path, Path]:
    """
    Combine the candidate sets computed separately for each sub-context.

    result_dir holds the ``*hitonly.ent`` and ``*final.ent`` files of the
    per-cluster runs against the same candidate file. Positives are the
    union over clusters; negatives are the candidates in no positive set.
    Written to out_dir as ``{prefix}-hitonly.ent``,
    ``{prefix}-hitonly-neg.ent``, ``{prefix}-pos.ent`` and
    ``{prefix}-neg.ent``.

    Args:
        result_dir: Directory of per-cluster result files
        candidate_file: Candidate file; a bare name is looked up in result_dir
        out_dir: Output directory
        prefix: Name prefix of the aggregated files

    Returns:
        Tuple of (hitonly, hitonly_neg, pos, neg) file paths
    """
    result_dir = Path(result_dir)
    candidate_file = Path(candidate_file)
    if not candidate_file.exists() and (result_dir / candidate_file.name).exists():
        candidate_file = result_dir / candidate_file.name
    if not candidate_file.exists():
        raise FileNotFoundError(f"Candidate file not found: {candidate_file}")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for pattern, pos_name, neg_name in (("*hitonly.ent", "hitonly", "hitonly-neg"),
                                        ("*final.ent", "pos", "neg")):
        sources = sorted(result_dir.glob(pattern))
        pos_file = out_dir / f"{prefix}-{pos_name}.ent"
        write_entry_file(entry_file_union(sources), pos_file)
        neg_file = write_entry_file(entry_file_difference(candidate_file, pos_file),
                                    out_dir / f"{prefix}-{neg_name}.ent")
        logger.info(f"Aggregated {len(sources)} {pattern} files into {pos_file} and {neg_file}")
        written.extend([pos_file, neg_file])
    return tuple(written)
