"""
Sequence region entries and entry files.

An entry names a region of a genome as ``NAME/START-END/STRAND`` with
1-based inclusive coordinates and strand 1 or -1. Entry files hold one
entry per line, optionally followed by a comma and a value.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Hashable, Iterable, List, Tuple, Union

from Bio import AlignIO, SeqIO

from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

ENTRY_PATTERN = re.compile(r'^(?P<name>.+?)/(?P<start>\d+)-(?P<end>\d+)(?:/(?P<strand>-?1))?$')

STOCKHOLM_SUFFIXES = {".sto", ".stk", ".stockholm"}
FASTA_SUFFIXES = {".fa", ".fna", ".fasta", ".fas"}


@dataclass(frozen=True, order=True)
class Entry:
    """A genome region: sequence name, 1-based inclusive range and strand."""
    name: str
    start: int
    end: int
    strand: int = 1

    @classmethod
    def from_coordinates(cls, name: str, start: int, end: int) -> "Entry":
        """Build an entry from raw coordinates; start > end means minus strand."""
        start, end = int(start), int(end)
        if start > end:
            return cls(name, end, start, -1)
        return cls(name, start, end, 1)

    @classmethod
    def parse(cls, text: str) -> "Entry":
        """
        Parse ``NAME/START-END[/STRAND]``.

        Raises:
            InvalidParameterError: Text is not an entry
        """
        match = ENTRY_PATTERN.match(text.strip())
        if not match:
            raise InvalidParameterError(f"Invalid entry '{text}': expected NAME/START-END/STRAND")

        name, start, end = match.group("name"), int(match.group("start")), int(match.group("end"))
        if match.group("strand") is None:
            return cls.from_coordinates(name, start, end)
        return cls(name, min(start, end), max(start, end), int(match.group("strand")))

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.name}/{self.start}-{self.end}/{self.strand}"


def _parse_entry_line(line: str) -> Union[Entry, None]:
    """Entry on a text line: an entry token, or NAME,START,END,... columns."""
    fields = [f.strip() for f in line.split(",")]
    try:
        return Entry.parse(fields[0])
    except InvalidParameterError:
        if len(fields) >= 3 and fields[1].isdigit() and fields[2].isdigit():
            return Entry.from_coordinates(fields[0], int(fields[1]), int(fields[2]))
        raise


def _unique(items: Iterable) -> List:
    seen = set()
    unique = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


def read_entries(path: Union[str, Path]) -> List[Entry]:
    """
    Read the entries named in a Stockholm, FASTA or entry file.

    Order is preserved and duplicates dropped. Lines starting with '#' and
    header lines that are not entries are skipped in entry files.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in STOCKHOLM_SUFFIXES:
        alignment = AlignIO.read(str(path), "stockholm")
        entries = [Entry.parse(record.id) for record in alignment]
    elif suffix in FASTA_SUFFIXES:
        entries = [Entry.parse(record.id) for record in SeqIO.parse(str(path), "fasta")]
    else:
        entries = []
        with open(path) as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    entries.append(_parse_entry_line(line))
                except InvalidParameterError:
                    if line_no == 1:
                        logger.debug(f"Skipping header line in {path}: {line}")
                        continue
                    raise

    entries = _unique(entries)
    logger.debug(f"Read {len(entries)} entries from {path}")
    return entries


def read_named_sequences(path: Union[str, Path]) -> List[Tuple[str, str]]:
    """(id, sequence) pairs from a FASTA or Stockholm file, upper-cased and degapped."""
    path = Path(path)
    if path.suffix.lower() in STOCKHOLM_SUFFIXES:
        records = AlignIO.read(str(path), "stockholm")
    else:
        records = SeqIO.parse(str(path), "fasta")

    pairs = []
    try:
        for record in records:
            sequence = str(record.seq).upper().replace("-", "").replace(".", "")
            pairs.append((record.id, sequence))
    except Exception as e:
        logger.error(f"Error reading sequence file {path}: {e}")
        raise
    return pairs


def write_entry_file(entries: Iterable[Hashable], path: Union[str, Path]) -> Path:
    """Write one entry per line."""
    path = Path(path)
    entries = list(entries)
    with open(path, "w") as f:
        for entry in entries:
            f.write(f"{entry}\n")
    logger.debug(f"Wrote {len(entries)} entries to {path}")
    return path


def write_entry_value_file(pairs: Iterable[Tuple[Hashable, float]], path: Union[str, Path]) -> Path:
    """Write ``entry, value`` lines."""
    path = Path(path)
    pairs = list(pairs)
    with open(path, "w") as f:
        for entry, value in pairs:
            f.write(f"{entry}, {float(value)!r}\n")
    logger.debug(f"Wrote {len(pairs)} entry values to {path}")
    return path


def read_entry_values(path: Union[str, Path]) -> List[Tuple[Entry, float]]:
    """Read ``entry, value`` lines written by write_entry_value_file."""
    pairs = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            name, value = line.rsplit(",", 1)
            pairs.append((Entry.parse(name), float(value)))
    return pairs


def entry_key(name: Hashable) -> str:
    """Canonical text of an entry name; names that are not entries stay as they are."""
    text = str(name)
    try:
        return str(Entry.parse(text))
    except InvalidParameterError:
        return text


def entry_file_union(paths: Iterable[Union[str, Path]]) -> List[Entry]:
    """Entries named in any of the files, in first-seen order."""
    entries = []
    for path in paths:
        entries.extend(read_entries(path))
    return _unique(entries)


def entry_file_difference(path: Union[str, Path], *others: Union[str, Path]) -> List[Entry]:
    """Entries of path named in none of the other files."""
    excluded = set(entry_file_union(others))
    return [entry for entry in read_entries(path) if entry not in excluded]


@dataclass
class StockholmAlignment:
    """
    Text view of a Stockholm alignment.

    headers holds the ``# STOCKHOLM`` and ``#=GF`` lines, rows the
    (name, aligned sequence) pairs and columns the ``#=GC`` (tag, value)
    pairs. Interleaved blocks are joined. Per-sequence ``#=GS`` and
    ``#=GR`` annotation is not kept.
    """
    headers: List[str] = field(default_factory=list)
    rows: List[Tuple[str, str]] = field(default_factory=list)
    columns: List[Tuple[str, str]] = field(default_factory=list)

    def select(self, names: Iterable[Hashable]) -> List[Tuple[str, str]]:
        """
        Rows for the given names, matched by entry text, in the given order.

        Raises:
            InvalidParameterError: A name has no row
        """
        by_key = {entry_key(name): (name, sequence) for name, sequence in self.rows}
        selected = []
        for name in names:
            key = entry_key(name)
            if key not in by_key:
                raise InvalidParameterError(f"No alignment row for '{name}'")
            selected.append(by_key[key])
        return selected


def read_stockholm(path: Union[str, Path]) -> StockholmAlignment:
    """Read a single-alignment Stockholm file as text."""
    headers = []
    rows: Dict[str, str] = {}
    columns: Dict[str, str] = {}
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line == "//":
                continue
            if line.startswith("# STOCKHOLM") or line.startswith("#=GF"):
                headers.append(line)
            elif line.startswith("#=GC"):
                fields = line.split(None, 2)
                if len(fields) == 3:
                    columns[fields[1]] = columns.get(fields[1], "") + fields[2]
            elif line.startswith("#"):
                continue
            else:
                fields = line.split(None, 1)
                if len(fields) != 2:
                    raise InvalidParameterError(f"Malformed alignment row in {path}: {line}")
                rows[fields[0]] = rows.get(fields[0], "") + fields[1].replace(" ", "")
    return StockholmAlignment(headers=headers, rows=list(rows.items()), columns=list(columns.items()))


def write_stockholm(path: Union[str, Path], alignment: StockholmAlignment) -> Path:
    """Write headers, a blank line, rows, ``#=GC`` lines and the terminator."""
    path = Path(path)
    labels = [name for name, _ in alignment.rows] + [f"#=GC {tag}" for tag, _ in alignment.columns]
    width = max([40] + [len(label) + 1 for label in labels])

    headers = list(alignment.headers)
    if not headers or not headers[0].startswith("# STOCKHOLM"):
        headers.insert(0, "# STOCKHOLM 1.0")

    with open(path, "w") as f:
        for line in headers:
            f.write(f"{line}\n")
        f.write("\n")
        for name, sequence in alignment.rows:
            f.write(f"{name:<{width}}{sequence}\n")
        for tag, value in alignment.columns:
            f.write(f"{'#=GC ' + tag:<{width}}{value}\n")
        f.write("//\n")
    logger.debug(f"Wrote {len(alignment.rows)} alignment rows to {path}")
    return path
