"""
Command-line interface for splitting sequence sets into sub-contexts.
"""

import argparse
import logging
import sys
from pathlib import Path

from .cli import add_genome_arguments, genome_source_from_args, setup_logging
from .candidates import SCCSOptions
from .clustering import ClusterOptions, split_entries, split_sto, suggest_k_values
from .context import merge_by_context_size
from .entries import STOCKHOLM_SUFFIXES, read_entries, read_named_sequences
from .profiles import RY_XLATE


def parse_kinfo(values):
    """k values from '4' or '4:8' (half-open range) strings."""
    if not values:
        return None
    kinfo = []
    for value in values:
        if ':' in value:
            start, stop = value.split(':', 1)
            kinfo.append((int(start), int(stop)))
        else:
            kinfo.append(int(value))
    return kinfo


def main():
    """Main entry point for the sccs-cluster CLI."""
    parser = argparse.ArgumentParser(
        description='SCCS clustering: split a sequence set into sub-contexts by reciprocal k-NN',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sccs-cluster seqs.fasta -o clusters/                   # Sequences taken from the file
  sccs-cluster seed.sto -o clusters/ -k 4 -k 6:9
  sccs-cluster hits.ent -o clusters/ --genome-dir genomes/ --delta 300
  sccs-cluster seqs.fasta -o clusters/ --suggest-k
  sccs-cluster seed.sto --genome-dir genomes/ --merge-contexts  # Merge clusters by context size
        """
    )

    parser.add_argument(
        'input',
        help='Sequences (FASTA or Stockholm) or entries (entry file) to cluster'
    )
    parser.add_argument(
        '-o', '--output',
        help='Output directory (default: CLU-{input name} next to the input)'
    )

    add_genome_arguments(parser)

    parser.add_argument(
        '--delta',
        type=int,
        default=0,
        help='Downstream context added to entries fetched from genomes (default: 0)'
    )
    parser.add_argument(
        '-k',
        action='append',
        dest='kinfo',
        help="Trial k value or START:STOP range (may be repeated; default: 4 and ceil(0.1 N))"
    )
    parser.add_argument(
        '--suggest-k',
        action='store_true',
        help='Use the heuristic k values for the input size'
    )
    parser.add_argument(
        '--merge-contexts',
        action='store_true',
        help='Estimate the context size of each cluster alignment and merge equal ones '
             '(Stockholm input with a genome source)'
    )
    parser.add_argument(
        '--word-size',
        type=int,
        help='Fixed word size (default: selected by CRE)'
    )
    parser.add_argument(
        '--ry',
        action='store_true',
        help='Reduce sequences to purine/pyrimidine symbols'
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
        '--no-validity',
        action='store_true',
        help='Skip S_Dbw scoring'
    )
    parser.add_argument(
        '--seed-value',
        type=int,
        dest='random_seed',
        help='Random seed for word size sampling'
    )
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
        input_path = Path(args.input)
        if not input_path.exists():
            logging.error(f"Input file not found: {args.input}")
            sys.exit(1)

        if args.genome_dir or args.use_db:
            source = genome_source_from_args(args)
            items = read_entries(input_path)
            logging.info(f"Loaded {len(items)} entries from {args.input}")
        else:
            source = None
            items = read_named_sequences(input_path)
            logging.info(f"Loaded {len(items)} sequences from {args.input}")

        kinfo = parse_kinfo(args.kinfo)
        if args.suggest_k:
            kinfo = suggest_k_values(len(items))
            logging.info(f"Suggested k values: {kinfo}")

        options = ClusterOptions(
            delta=args.delta,
            xlate=dict(RY_XLATE) if args.ry else None,
            alphabet='ry' if args.ry else 'dna',
            crecut=args.crecut,
            limit=args.limit,
            kinfo=kinfo,
            word_size=args.word_size,
            validity=None if args.no_validity else 's_dbw',
            num_workers=args.threads,
            show_progress=args.progress,
            seed=args.random_seed
        )

        out_dir = args.output or input_path.parent / f"CLU-{input_path.name.split('.')[0]}"
        sto_files = []
        if input_path.suffix.lower() in STOCKHOLM_SUFFIXES:
            summary, files, sto_files = split_sto(input_path, out_dir, options, source)
        else:
            summary, files = split_entries(items, out_dir, options, source)

        print("score\tk\tclusters\tsizes")
        for score, k, n_clusters, sizes in summary:
            print(f"{score:.4f}\t{k}\t{n_clusters}\t{','.join(str(s) for s in sizes)}")
        for path in files + sto_files:
            print(f"Wrote {path}")

        if args.merge_contexts:
            if source is None or not sto_files:
                raise ValueError("--merge-contexts needs a Stockholm input and a genome source")
            merged = merge_by_context_size(sto_files, source,
                                           options=SCCSOptions(num_workers=args.threads,
                                                               show_progress=args.progress,
                                                               seed=args.random_seed))
            for size, path in sorted(merged.items()):
                print(f"Context size {size}: {path}")

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
