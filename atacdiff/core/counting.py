"""
Read counting in merged regions.

The count matrix is a regions x samples table of integer read counts
indexed by region id, with columns in sample sheet order.

Provides:
- SAF export for external counters (featureCounts convention)
- In-process counting from indexed BAM files via pysam
- Count table read/write
"""

import logging
from pathlib import Path
from typing import Mapping, Union

import numpy as np
import pandas as pd
import pysam

from .exceptions import CountTableFormatError, CountingError, validate_dataframe
from .filters import ID_COLUMN

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def to_saf(regions: pd.DataFrame) -> pd.DataFrame:
    """Convert an id-keyed region table to SAF (1-based, closed) columns."""
    validate_dataframe(regions, "region table", required_columns=[ID_COLUMN, "chrom", "start", "end"])
    return pd.DataFrame({
        "GeneID": regions[ID_COLUMN].values,
        "Chr": regions["chrom"].values,
        "Start": regions["start"].values + 1,
        "End": regions["end"].values,
        "Strand": "+",
    })


def write_saf(regions: pd.DataFrame, path: PathLike) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_saf(regions).to_csv(path, sep="\t", index=False)
    logger.info(f"Wrote SAF annotation for {len(regions)} regions to {path}")
    return path


def count_reads_in_regions(
    regions: pd.DataFrame,
    bam_files: Mapping[str, PathLike],
) -> pd.DataFrame:
    """Count reads overlapping each region in each BAM file.

    Args:
        regions: Table with peak_id, chrom, start, end
        bam_files: Ordered mapping of sample id -> indexed BAM path

    Returns:
        Count matrix (regions x samples), int64, indexed by peak_id

    Raises:
        CountingError: If a BAM file cannot be opened
    """
    validate_dataframe(regions, "region table", required_columns=[ID_COLUMN, "chrom", "start", "end"])
    counts = {}

    for sample_id, bam_path in bam_files.items():
        sample_counts = np.zeros(len(regions), dtype=np.int64)
        try:
            bam = pysam.AlignmentFile(str(bam_path), "rb")
        except (OSError, ValueError) as e:
            raise CountingError(f"Cannot open BAM for {sample_id}: {bam_path} ({e})") from e

        with bam:
            contigs = set(bam.references)
            for i, (chrom, start, end) in enumerate(
                zip(regions["chrom"], regions["start"], regions["end"])
            ):
                if chrom not in contigs:
                    logger.debug(f"{chrom} not in {bam_path}; counting 0 reads")
                    continue
                sample_counts[i] = bam.count(chrom, int(start), int(end))

        counts[sample_id] = sample_counts
        logger.info(f"Counted reads for {sample_id}: {int(sample_counts.sum())} in regions")

    return pd.DataFrame(counts, index=pd.Index(regions[ID_COLUMN].values, name=ID_COLUMN))


def write_count_table(counts: pd.DataFrame, path: PathLike) -> Path:
    """Write a count matrix as TSV with a ``peak_id`` column and a header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    out = counts.copy()
    out.index.name = ID_COLUMN
    out.to_csv(path, sep="\t")
    return path


def load_count_table(path: PathLike) -> pd.DataFrame:
    """Read a count table written by :func:`write_count_table`.

    Raises:
        CountTableFormatError: On missing id column, duplicate ids or
            non-integer counts
    """
    try:
        df = pd.read_csv(path, sep="\t", dtype={ID_COLUMN: str})
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise CountTableFormatError(f"cannot read count table: {e}", path=path) from e

    if ID_COLUMN not in df.columns:
        raise CountTableFormatError(f"missing '{ID_COLUMN}' column", path=path, line=1)
    if df.shape[1] < 2:
        raise CountTableFormatError("no sample columns", path=path, line=1)

    dup = df[ID_COLUMN].duplicated()
    if dup.any():
        row = int(np.flatnonzero(dup.values)[0])
        raise CountTableFormatError(f"duplicate region id {df[ID_COLUMN].iloc[row]}", path=path, line=row + 2)

    df = df.set_index(ID_COLUMN)
    for col in df.columns:
        values = pd.to_numeric(df[col], errors="coerce")
        bad = values.isna() | (values < 0) | (values != values.round())
        if bad.any():
            row = int(np.flatnonzero(bad.values)[0])
            raise CountTableFormatError(
                f"non-integer count {df[col].iloc[row]!r} in column {col}", path=path, line=row + 2
            )
        df[col] = values.astype(np.int64)

    logger.info(f"Loaded count table {path}: {df.shape[0]} regions x {df.shape[1]} samples")
    return df
