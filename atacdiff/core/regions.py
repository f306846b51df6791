"""
Genomic region value types.

Provides:
- ``Region``: half-open [start, end) interval on a chromosome with a strand
- ``RegionId``: the ``chrom:start-end`` identifier used as the join key
  between every table produced by the pipeline
- ``RegionSet``: ordered, immutable collection of regions with DataFrame
  conversion helpers
- ``overlaps`` / ``gap``: pairwise interval queries
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Union

import pandas as pd

from .exceptions import (
    CrossChromosomeError,
    InvalidRegionError,
    MalformedRegionIdError,
    MissingColumnError,
)


class Strand(str, Enum):
    """Strand of a region. Merged regions are always ``UNKNOWN``."""

    PLUS = "+"
    MINUS = "-"
    UNKNOWN = "*"

    @classmethod
    def parse(cls, value) -> "Strand":
        """Parse a strand symbol; ``.``, ``*``, empty and NaN mean unknown."""
        if isinstance(value, Strand):
            return value
        if value is None or (isinstance(value, float) and value != value):
            return cls.UNKNOWN
        value = str(value).strip()
        if value == "+":
            return cls.PLUS
        if value == "-":
            return cls.MINUS
        if value in ("", ".", "*"):
            return cls.UNKNOWN
        raise ValueError(f"Unrecognized strand symbol: {value!r}")


@dataclass(frozen=True)
class Region:
    """A 0-based, half-open genomic interval."""

    chrom: str
    start: int
    end: int
    strand: Strand = Strand.UNKNOWN

    def __post_init__(self):
        if not self.chrom:
            raise InvalidRegionError("Region chromosome must be a non-empty string")
        if self.start < 0:
            raise InvalidRegionError(
                f"Region start must be >= 0, got {self.chrom}:{self.start}-{self.end}"
            )
        if self.start >= self.end:
            raise InvalidRegionError(
                f"Region start must be < end, got {self.chrom}:{self.start}-{self.end}"
            )
        if not isinstance(self.strand, Strand):
            object.__setattr__(self, "strand", Strand.parse(self.strand))

    @property
    def width(self) -> int:
        return self.end - self.start

    @property
    def region_id(self) -> "RegionId":
        return RegionId(self.chrom, self.start, self.end)

    def unstranded(self) -> "Region":
        return Region(self.chrom, self.start, self.end, Strand.UNKNOWN)

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}({self.strand.value})"


_REGION_ID_RE = re.compile(r"^(?P<chrom>.+):(?P<start>\d+)-(?P<end>\d+)$")


@dataclass(frozen=True, order=True)
class RegionId:
    """Coordinate identifier ``"{chrom}:{start}-{end}"``.

    Strand is not part of the identifier, so two regions differing only
    in strand share an id.
    """

    chrom: str
    start: int
    end: int

    def __post_init__(self):
        if not self.chrom or self.start < 0 or self.start >= self.end:
            raise MalformedRegionIdError(f"{self.chrom}:{self.start}-{self.end}")

    @classmethod
    def parse(cls, value: Union[str, "RegionId"]) -> "RegionId":
        if isinstance(value, RegionId):
            return value
        match = _REGION_ID_RE.match(str(value).strip())
        if match is None:
            raise MalformedRegionIdError(value)
        return cls(match.group("chrom"), int(match.group("start")), int(match.group("end")))

    def to_region(self) -> Region:
        return Region(self.chrom, self.start, self.end, Strand.UNKNOWN)

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}"


def region_id(region: Region) -> str:
    """Return the string identifier of a region."""
    return str(region.region_id)


def parse_region_id(value: str) -> Region:
    """Parse a ``chrom:start-end`` identifier back into an unstranded Region."""
    return RegionId.parse(value).to_region()


# ============================================================================
# Pairwise queries
# ============================================================================


def overlaps(a: Region, b: Region) -> bool:
    """True iff ``a`` and ``b`` share at least one base on the same chromosome."""
    return a.chrom == b.chrom and a.start < b.end and b.start < a.end


def gap(a: Region, b: Region) -> int:
    """Signed distance between two same-chromosome regions.

    Zero for book-ended regions, negative by the overlap length when they
    overlap.

    Raises
    ------
    CrossChromosomeError
        If the regions lie on different chromosomes.
    """
    if a.chrom != b.chrom:
        raise CrossChromosomeError(a.chrom, b.chrom)
    return max(a.start, b.start) - min(a.end, b.end)


# ============================================================================
# Region collections
# ============================================================================

REGION_COLUMNS = ["chrom", "start", "end", "strand"]


class RegionSet:
    """An ordered, immutable sequence of regions."""

    def __init__(self, regions: Iterable[Region] = ()):
        self._regions = tuple(regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return RegionSet(self._regions[idx])
        return self._regions[idx]

    def __eq__(self, other) -> bool:
        if isinstance(other, RegionSet):
            return self._regions == other._regions
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._regions)

    def __repr__(self) -> str:
        return f"RegionSet({len(self)} regions)"

    @property
    def regions(self) -> tuple:
        return self._regions

    def ids(self) -> List[str]:
        return [region_id(r) for r in self._regions]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "chrom": [r.chrom for r in self._regions],
                "start": [r.start for r in self._regions],
                "end": [r.end for r in self._regions],
                "strand": [r.strand.value for r in self._regions],
            },
            columns=REGION_COLUMNS,
        ).astype({"chrom": str, "start": "int64", "end": "int64", "strand": str})

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "RegionSet":
        """Build a RegionSet from ``chrom``/``start``/``end`` (+ optional ``strand``)."""
        for col in ("chrom", "start", "end"):
            if col not in df.columns:
                raise MissingColumnError(col, "region table", available=list(df.columns))
        strands = df["strand"] if "strand" in df.columns else [Strand.UNKNOWN] * len(df)
        return cls(
            Region(str(c), int(s), int(e), Strand.parse(st))
            for c, s, e, st in zip(df["chrom"], df["start"], df["end"], strands)
        )
