"""
Assembly of the final annotated result table.

Statistics drive the join: every statistics row is kept, annotation
columns are attached by region id where one exists. A region can carry
several annotation rows (transcripts tied for the nearest TSS); only the
first, by input order, survives.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from .exceptions import validate_dataframe
from .filters import ID_COLUMN, regions_from_ids
from .signal_noise import S2N_COLUMN

logger = logging.getLogger(__name__)

STAT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]
ANNOTATION_COLUMNS = [
    "annotation", "geneChr", "geneStart", "geneEnd", "geneStrand",
    "geneId", "transcriptId", "distanceToTSS", "SYMBOL",
]
OUTPUT_COLUMNS = (
    ["seqnames", "start", "end", "width", "strand", ID_COLUMN]
    + STAT_COLUMNS
    + ANNOTATION_COLUMNS
    + [S2N_COLUMN]
)


def join_first(
    left: pd.DataFrame,
    right: pd.DataFrame,
    on: str = ID_COLUMN,
) -> pd.DataFrame:
    """Left join on ``on`` keeping only the first row per key.

    Row order of ``left`` is preserved. Right-hand columns already present
    on the left are not duplicated.
    """
    validate_dataframe(left, "left table", required_columns=[on])
    validate_dataframe(right, "right table", required_columns=[on])

    extra = [c for c in right.columns if c != on and c not in left.columns]
    joined = left.merge(right[[on] + extra], on=on, how="left", sort=False)

    duplicated = joined[on].duplicated(keep="first")
    if duplicated.any():
        logger.debug(f"Discarding {int(duplicated.sum())} duplicate rows after join on {on}")
    return joined[~duplicated].reset_index(drop=True)


def assemble_results(
    stats: pd.DataFrame,
    annotation: pd.DataFrame,
    s2n: Optional[pd.Series] = None,
) -> pd.DataFrame:
    """Build the final annotated table.

    Args:
        stats: Differential statistics with a ``peak_id`` column
        annotation: Nearest-feature annotation with a ``peak_id`` column
        s2n: Signal-to-noise scores indexed by region id

    Returns:
        DataFrame with OUTPUT_COLUMNS, one row per statistics row
    """
    table = join_first(stats, annotation)

    if s2n is not None:
        table[S2N_COLUMN] = table[ID_COLUMN].map(s2n)
    else:
        table[S2N_COLUMN] = np.nan

    coords = regions_from_ids(table[ID_COLUMN])
    table["seqnames"] = coords["chrom"].values
    table["start"] = coords["start"].values
    table["end"] = coords["end"].values
    table["width"] = table["end"] - table["start"]
    table["strand"] = "*"

    for col in OUTPUT_COLUMNS:
        if col not in table.columns:
            table[col] = np.nan

    n_annotated = int(table["annotation"].notna().sum())
    logger.info(f"Assembled {len(table)} result rows ({n_annotated} annotated)")
    return table[OUTPUT_COLUMNS]


def write_results(table: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write the final table as CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    logger.info(f"Results written to {path}")
    return path
