"""
Shared genomic utilities for atacdiff.

Provides interval overlap detection using an NCLS (Nested Containment List)
index instead of O(n*m) nested loops, and shared helpers for peak and
blacklist file parsing and chromosome handling.
"""

import gzip
import io
import logging
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
import pandas as pd
from ncls import NCLS

from .exceptions import BlacklistFormatError, PeakFileFormatError
from .regions import Region, RegionSet, Strand

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

NARROWPEAK_COLUMNS = [
    "chrom", "start", "end", "name", "score", "strand",
    "signalValue", "pValue", "qValue", "summit",
]
BLACKLIST_COLUMNS = ["chrom", "start", "end"]
HEADER_PREFIXES = ("#", "track", "browser")


# ============================================================================
# Core overlap functions
# ============================================================================


def _build_ncls_index(starts: np.ndarray, ends: np.ndarray) -> NCLS:
    """Build an NCLS index from start/end arrays."""
    ids = np.arange(len(starts), dtype=np.int64)
    return NCLS(starts.astype(np.int64), ends.astype(np.int64), ids)


def find_overlaps(
    query_df: pd.DataFrame,
    subject_df: pd.DataFrame,
    chrom_col: str = "chrom",
    start_col: str = "start",
    end_col: str = "end",
    report: str = "all",
) -> pd.DataFrame:
    """Find overlapping half-open intervals between two DataFrames.

    Parameters
    ----------
    query_df : pd.DataFrame
        Query intervals (the "left" set).
    subject_df : pd.DataFrame
        Subject intervals (the "right" set to search against).
    chrom_col, start_col, end_col : str
        Column names shared by both DataFrames.
    report : str
        "all" – every overlapping pair.
        "first" – only the first hit per query.

    Returns
    -------
    pd.DataFrame
        Columns [query_idx, subject_idx, overlap_bp] where the indices are
        index labels of the input frames.
    """
    columns = ["query_idx", "subject_idx", "overlap_bp"]
    if query_df.empty or subject_df.empty:
        return pd.DataFrame(columns=columns)

    results: List[Tuple[int, int, int]] = []
    subject_groups = {name: grp for name, grp in subject_df.groupby(chrom_col, sort=False)}

    for chrom, q_grp in query_df.groupby(chrom_col, sort=False):
        if chrom not in subject_groups:
            continue
        s_grp = subject_groups[chrom]
        s_starts = s_grp[start_col].values
        s_ends = s_grp[end_col].values
        s_indices = s_grp.index.values
        index = _build_ncls_index(s_starts, s_ends)

        for q_idx, qs, qe in zip(q_grp.index.values, q_grp[start_col].values, q_grp[end_col].values):
            qs, qe = int(qs), int(qe)
            for hit_start, hit_end, local_idx in index.find_overlap(qs, qe):
                ovlp = min(qe, int(hit_end)) - max(qs, int(hit_start))
                if ovlp < 1:
                    continue
                results.append((q_idx, s_indices[int(local_idx)], ovlp))
                if report == "first":
                    break

    if not results:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(results, columns=columns)


# ============================================================================
# Peak file parsing utilities
# ============================================================================


def _coerce_coordinates(df: pd.DataFrame, path, error_cls) -> pd.DataFrame:
    """Convert start/end to int64, naming the first offending row on failure."""
    for col in ("start", "end"):
        numeric = pd.to_numeric(df[col], errors="coerce")
        bad = numeric.isna() | (numeric != numeric.round())
        if bad.any():
            row = int(np.flatnonzero(bad.values)[0])
            raise error_cls(
                f"non-integer {col} coordinate {df[col].iloc[row]!r}",
                path=path, line=int(df.index[row]),
            )
        df[col] = numeric.astype("int64")

    bad = (df["start"] < 0) | (df["start"] >= df["end"])
    if bad.any():
        row = int(np.flatnonzero(bad.values)[0])
        raise error_cls(
            f"invalid interval {df['chrom'].iloc[row]}:{df['start'].iloc[row]}-{df['end'].iloc[row]}",
            path=path, line=int(df.index[row]),
        )
    df["chrom"] = df["chrom"].astype(str)
    return df


def _read_headerless_tsv(path: PathLike, min_cols: int, error_cls) -> pd.DataFrame:
    """Read data rows of a BED-like file, indexed by their 1-based line number.

    Blank lines, comments and UCSC ``track``/``browser`` lines are skipped.
    """
    opener = gzip.open if str(path).endswith(".gz") else open
    lines, line_numbers = [], []
    try:
        with opener(path, "rt") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip() or line.startswith(HEADER_PREFIXES):
                    continue
                lines.append(line)
                line_numbers.append(lineno)
    except OSError as e:
        raise error_cls(f"cannot read file: {e}", path=path) from e

    if not lines:
        return pd.DataFrame(columns=list(range(min_cols)))
    try:
        df = pd.read_csv(io.StringIO("".join(lines)), sep="\t", header=None, dtype=str)
    except pd.errors.ParserError as e:
        raise error_cls(f"inconsistent number of columns: {e}", path=path) from e
    df.index = line_numbers

    if df.shape[1] < min_cols:
        raise error_cls(
            f"expected at least {min_cols} tab-separated columns, found {df.shape[1]}",
            path=path, line=line_numbers[0],
        )
    return df


def load_narrowpeak(path: PathLike) -> pd.DataFrame:
    """Load a narrowPeak (or BED3+) file.

    Returns a DataFrame with ``chrom, start, end, strand`` plus any of the
    remaining narrowPeak columns present in the file.

    Raises
    ------
    PeakFileFormatError
        If a row has fewer than three columns or non-integer coordinates.
    """
    df = _read_headerless_tsv(path, 3, PeakFileFormatError)
    n_cols = min(df.shape[1], len(NARROWPEAK_COLUMNS))
    df = df.iloc[:, :n_cols].copy()
    df.columns = NARROWPEAK_COLUMNS[:n_cols]

    if df.empty:
        return pd.DataFrame(columns=["chrom", "start", "end", "strand"])

    df = _coerce_coordinates(df, path, PeakFileFormatError)
    if "strand" not in df.columns:
        df["strand"] = Strand.UNKNOWN.value
    else:
        strands = []
        for lineno, value in df["strand"].items():
            try:
                strands.append(Strand.parse(value).value)
            except ValueError as e:
                raise PeakFileFormatError(str(e), path=path, line=int(lineno)) from e
        df["strand"] = strands

    logger.debug(f"Loaded {len(df)} peaks from {path}")
    return df.reset_index(drop=True)


def load_peak_regions(path: PathLike) -> RegionSet:
    """Load a peak file straight into a RegionSet (chrom/start/end/strand only)."""
    return RegionSet.from_dataframe(load_narrowpeak(path))


def load_blacklist(path: PathLike) -> RegionSet:
    """Load a headerless ``chrom start end`` blacklist BED file."""
    df = _read_headerless_tsv(path, 3, BlacklistFormatError)
    if df.empty:
        logger.warning(f"Blacklist {path} is empty")
        return RegionSet()
    df = df.iloc[:, :3].copy()
    df.columns = BLACKLIST_COLUMNS
    df = _coerce_coordinates(df, path, BlacklistFormatError)
    logger.info(f"Loaded {len(df)} blacklist regions from {path}")
    return RegionSet(
        Region(c, int(s), int(e)) for c, s, e in zip(df["chrom"], df["start"], df["end"])
    )


def write_region_bed(frame: pd.DataFrame, path: PathLike) -> Path:
    """Write ``chrom start end peak_id score strand`` rows without a header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    out = pd.DataFrame({
        "chrom": frame["chrom"],
        "start": frame["start"],
        "end": frame["end"],
        "peak_id": frame["peak_id"],
        "score": 0,
        "strand": frame["strand"].replace({Strand.UNKNOWN.value: "."}),
    })
    out.to_csv(path, sep="\t", header=False, index=False)
    return path


# ============================================================================
# Chromosome utilities
# ============================================================================

_CHROM_ORDER = {f"chr{i}": i for i in range(1, 23)}
_CHROM_ORDER.update({"chrX": 23, "chrY": 24, "chrM": 25, "chrMT": 25})


def sort_chromosomes(chroms: List[str]) -> List[str]:
    """Sort chromosome names in natural order (1,2,...,22,X,Y,M)."""
    def _sort_key(c: str) -> Tuple[int, str]:
        c_stripped = c.replace("chr", "") if c.startswith("chr") else c
        if c in _CHROM_ORDER:
            return (_CHROM_ORDER[c], c)
        try:
            return (int(c_stripped), c)
        except ValueError:
            return (100, c)
    return sorted(chroms, key=_sort_key)


def is_standard_chrom(chrom: str) -> bool:
    """Primary assembly chromosomes only; drops random, chrUn and alt contigs."""
    return chrom in _CHROM_ORDER or chrom in {str(i) for i in range(1, 23)} | {"X", "Y", "M", "MT"}


def filter_standard_chroms(regions: RegionSet) -> RegionSet:
    """Filter a RegionSet to standard chromosomes."""
    kept = RegionSet(r for r in regions if is_standard_chrom(r.chrom))
    if len(kept) < len(regions):
        logger.debug(f"Dropped {len(regions) - len(kept)} regions on non-standard contigs")
    return kept
