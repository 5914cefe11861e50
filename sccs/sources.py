"""
Sequence sources: where region sequences come from.

The engine never touches genome files directly. It asks a SequenceSource
for the sequence of an entry, optionally extended by flanking context.
FastaGenomeSource reads one FASTA file per genome from a directory;
InMemoryGenomeSource serves genomes held in a dict.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from Bio import SeqIO
from Bio.Seq import Seq

from .entries import Entry
from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

GENOME_SUFFIXES = (".fna", ".fa", ".fasta")


@dataclass
class GenomeDatabaseRegistry:
    """Named genome databases, keyword -> directory of genome FASTA files."""
    databases: Dict[str, Path] = field(default_factory=dict)

    def register(self, key: str, directory: Union[str, Path]) -> None:
        self.databases[key] = Path(directory)

    def resolve(self, key: str) -> Path:
        """
        Directory registered under key.

        Raises:
            InvalidParameterError: key is not registered
        """
        try:
            return self.databases[key]
        except KeyError:
            known = ", ".join(sorted(self.databases)) or "none"
            raise InvalidParameterError(
                f"Unknown genome database '{key}' (registered: {known})"
            ) from None


def default_ddel(entry: Entry) -> int:
    """Default hit-side extension: a quarter of the hit span, rounded up."""
    return int(math.ceil(abs(entry.end - entry.start) / 4.0))


class SequenceSource(ABC):
    """Abstract base class for genome sequence sources."""

    @abstractmethod
    def fetch_genome(self, name: str) -> str:
        """Full upper-case sequence of the named genome."""
        pass

    def region(self, entry: Entry, ldelta: int = 0, rdelta: int = 0) -> str:
        """
        Sequence of entry extended by ldelta bases on the left and rdelta on
        the right, in genome coordinates, clipped to the genome.

        Minus strand entries are returned reverse complemented.
        """
        genome = self.fetch_genome(entry.name)
        start = max(1, entry.start - ldelta)
        end = min(len(genome), entry.end + rdelta)
        sequence = genome[start - 1:end]
        if entry.strand == -1:
            sequence = str(Seq(sequence).reverse_complement())
        return sequence

    def context_sequence(self,
                         entry: Entry,
                         delta: int,
                         directed: bool = True,
                         ddel: Optional[int] = None) -> str:
        """
        Entry sequence with flanking context.

        With directed extension the downstream side (in the entry's own
        orientation) grows by delta and the upstream side by ddel: plus
        strand entries extend left by ddel and right by delta, minus strand
        entries the reverse. Undirected extension adds delta on both sides.

        Args:
            entry: Region to fetch
            delta: Context extension
            directed: Extend in the entry's orientation
            ddel: Upstream extension; defaults to a quarter of the hit span
        """
        if not directed:
            return self.region(entry, delta, delta)
        if ddel is None:
            ddel = default_ddel(entry)
        if entry.strand == -1:
            return self.region(entry, delta, ddel)
        return self.region(entry, ddel, delta)

    def adjusted_sequences(self,
                           entries: Iterable[Entry],
                           delta: int,
                           ddel: Optional[int] = None) -> List[Tuple[Entry, str]]:
        """(entry, sequence) pairs with directed context; no upstream extension when delta is 0."""
        if delta == 0 and ddel is None:
            ddel = 0
        return [(entry, self.context_sequence(entry, delta, directed=True, ddel=ddel))
                for entry in entries]


class FastaGenomeSource(SequenceSource):
    """Genomes read from {directory}/{name}.fna|.fa|.fasta, cached after first use."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self._cache: Dict[str, str] = {}

    @classmethod
    def from_registry(cls, registry: GenomeDatabaseRegistry, key: str) -> "FastaGenomeSource":
        return cls(registry.resolve(key))

    def genome_path(self, name: str) -> Path:
        for suffix in GENOME_SUFFIXES:
            path = self.directory / f"{name}{suffix}"
            if path.exists():
                return path
        raise FileNotFoundError(f"No genome file for '{name}' in {self.directory}")

    def fetch_genome(self, name: str) -> str:
        if name not in self._cache:
            path = self.genome_path(name)
            # Multi-record files are concatenated in file order
            parts = [str(record.seq).upper() for record in SeqIO.parse(str(path), "fasta")]
            if not parts:
                raise InvalidParameterError(f"Genome file {path} contains no sequences")
            self._cache[name] = "".join(parts)
            logger.debug(f"Loaded genome {name} ({len(self._cache[name]):,} bp) from {path}")
        return self._cache[name]


class InMemoryGenomeSource(SequenceSource):
    """Genomes held in a dict of name -> sequence."""

    def __init__(self, genomes: Dict[str, str]):
        self.genomes = {name: str(seq).upper() for name, seq in genomes.items()}

    def fetch_genome(self, name: str) -> str:
        try:
            return self.genomes[name]
        except KeyError:
            raise InvalidParameterError(f"Unknown genome '{name}'") from None
