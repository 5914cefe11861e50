"""
Command-line interface for SCCS candidate classification.
"""

import argparse
import logging
import sys
from pathlib import Path

from .candidates import SCCSOptions, compute_candidate_sets
from .context import get_saved_ctx_size, require_ctx_size, save_hit_context_delta
from .divergence import DIVERGENCE_MEASURES
from .profiles import RY_XLATE
from .sources import FastaGenomeSource, GenomeDatabaseRegistry


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def parse_genome_db(values) -> GenomeDatabaseRegistry:
    """Build a registry from KEY=DIR strings."""
    registry = GenomeDatabaseRegistry()
    for value in values or []:
        key, sep, directory = value.partition("=")
        if not sep or not key or not directory:
            raise ValueError(f"Genome database must be given as KEY=DIR, got '{value}'")
        registry.register(key, directory)
    return registry


def add_genome_arguments(parser: argparse.ArgumentParser):
    """Genome source flags shared by the SCCS commands."""
    parser.add_argument(
        '--genome-dir',
        help='Directory of genome FASTA files named {genome}.fna/.fa/.fasta'
    )
    parser.add_argument(
        '--genome-db',
        action='append',
        metavar='KEY=DIR',
        help='Register a named genome database (may be repeated)'
    )
    parser.add_argument(
        '--use-db',
        metavar='KEY',
        help='Name of the registered genome database to read sequences from'
    )


def genome_source_from_args(args) -> FastaGenomeSource:
    """Sequence source selected by --genome-dir or --use-db."""
    if args.use_db:
        return FastaGenomeSource.from_registry(parse_genome_db(args.genome_db), args.use_db)
    if args.genome_dir:
        return FastaGenomeSource(args.genome_dir)
    raise ValueError("A genome source is required: give --genome-dir or --genome-db with --use-db")


def main():
    """Main entry point for the sccs-candidates CLI."""
    parser = argparse.ArgumentParser(
        description='SCCS: classify search candidates by sequence context and size similarity to a seed set',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sccs-candidates seed.sto hits.cmsearch.csv --genome-dir genomes/
  sccs-candidates seed.sto hits.cmsearch.csv --genome-dir genomes/ --delta 500 --run 2
  sccs-candidates seed.sto hits.cmsearch.csv --genome-dir genomes/ --compute-delta
  sccs-candidates seed.sto hits.ent --genome-db refseq58=/data/refseq58 --use-db refseq58
        """
    )

    # Required arguments
    parser.add_argument(
        'seed',
        help='Seed sequences: Stockholm alignment, entry file or FASTA file of entries'
    )
    parser.add_argument(
        'candidates',
        help='Candidate entries (cmsearch CSV, entry file, Stockholm or FASTA)'
    )

    add_genome_arguments(parser)

    # Context options
    parser.add_argument(
        '--delta',
        type=int,
        help='Downstream context size (default: CTXSZ annotation of the seed file)'
    )
    parser.add_argument(
        '--compute-delta',
        action='store_true',
        help='Estimate the context size and save it in the seed file when not annotated'
    )
    parser.add_argument(
        '--run',
        type=int,
        default=1,
        help='Run number selecting the cutpoint presets (default: 1)'
    )

    # Scoring options
    parser.add_argument(
        '--divergence',
        choices=sorted(DIVERGENCE_MEASURES),
        default='jensen_shannon',
        help='Divergence measure (default: jensen_shannon)'
    )
    parser.add_argument(
        '--ry',
        action='store_true',
        help='Reduce context sequences to purine/pyrimidine symbols'
    )
    parser.add_argument(
        '--word-size',
        type=int,
        help='Fixed word size for context scoring (default: selected by CRE)'
    )
    parser.add_argument(
        '--dy',
        type=float,
        help='CDF offset above the median for the cutpoint (default: run preset)'
    )
    parser.add_argument(
        '--mre',
        type=float,
        help='Largest divergence allowed in the good set (default: run preset)'
    )
    parser.add_argument(
        '--crecut',
        type=float,
        default=0.10,
        help='CRE cut value for word size selection (default: 0.10)'
    )
    parser.add_argument(
        '--limit',
        type=int,
        default=15,
        help='Largest word size considered (default: 15)'
    )
    parser.add_argument(
        '--sample-count',
        type=int,
        default=5,
        help='Seed sequences sampled for word size selection (default: 5)'
    )
    parser.add_argument(
        '--seed-value',
        type=int,
        dest='random_seed',
        help='Random seed for word size sampling'
    )

    # Output options
    parser.add_argument(
        '--plot-dists',
        help="Directory for divergence charts, or 'display' to show them"
    )
    parser.add_argument(
        '--plot-cre',
        help="Directory for CRE charts, or 'display' to show them"
    )

    # Processing options
    parser.add_argument(
        '-t', '--threads',
        type=int,
        help='Number of worker processes (default: auto-detect, 0: single-process)'
    )
    parser.add_argument(
        '--progress',
        action='store_true',
        help='Show progress bars'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        for path in (args.seed, args.candidates):
            if not Path(path).exists():
                logging.error(f"Input file not found: {path}")
                sys.exit(1)

        source = genome_source_from_args(args)

        options = SCCSOptions(
            divergence=args.divergence,
            xlate=dict(RY_XLATE) if args.ry else None,
            alphabet='ry' if args.ry else 'dna',
            crecut=args.crecut,
            limit=args.limit,
            sample_count=args.sample_count,
            dy=args.dy,
            mre=args.mre,
            word_size=args.word_size,
            plot_cre=args.plot_cre,
            plot_dists=args.plot_dists,
            num_workers=args.threads,
            show_progress=args.progress,
            seed=args.random_seed
        )

        delta = args.delta
        if delta is None:
            if args.compute_delta and get_saved_ctx_size(args.seed) is None:
                logging.info(f"Estimating context size for {args.seed}")
                delta = save_hit_context_delta(args.seed, source, options=options)
            else:
                delta = require_ctx_size(args.seed)
        logging.info(f"Using context size {delta}")

        result = compute_candidate_sets(args.seed, args.candidates, args.run, delta, source, options)

        print(f"Hit-only: {len(result.hitonly.good)} good, {len(result.hitonly.bad)} bad "
              f"(cutpoint {result.hitonly.cutpoint})")
        print(f"Final:    {len(result.final.good)} good, {len(result.final.bad)} bad "
              f"(cutpoint {result.final.cutpoint}, word size {result.final.word_size})")
        print(f"Wrote {result.hitonly_file}, {result.hitonly_neg_file}")
        print(f"Wrote {result.final_file}, {result.final_bad_file}")

        logging.debug("Done!")

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
