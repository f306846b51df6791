"""
Row filters over region-keyed tables.

Every table produced after the region set is finalized carries a
``peak_id`` column holding the ``chrom:start-end`` identifier. The
filters here read coordinates back out of that identifier, so the id is
the only place a row's coordinates live.

Provides:
- Region identifier assignment
- Blacklist (overlap) exclusion with a rescue allow-list
- TSS proximity filtering
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from .exceptions import validate_dataframe, validate_numeric_param
from .genomic_utils import find_overlaps
from .regions import RegionId, RegionSet

logger = logging.getLogger(__name__)

ID_COLUMN = "peak_id"
DISTANCE_COLUMN = "distanceToTSS"
DEFAULT_TSS_DISTANCE = 1000


@dataclass
class FilterResult:
    """Rows kept and dropped by a filter."""
    kept: pd.DataFrame
    dropped: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def n_kept(self) -> int:
        return len(self.kept)

    @property
    def n_dropped(self) -> int:
        return len(self.dropped)

    @property
    def dropped_ids(self) -> List[str]:
        if self.dropped.empty:
            return []
        return self.dropped[ID_COLUMN].tolist()


# ============================================================================
# Identifier assignment
# ============================================================================


def assign_region_ids(regions: RegionSet) -> pd.DataFrame:
    """Freeze a region set into a table keyed by region id.

    Returns:
        DataFrame with columns peak_id, chrom, start, end, strand in the
        order of the input set. Regions repeating an earlier id (same
        coordinates, any strand) are dropped with a warning.
    """
    table = regions.to_dataframe()
    table.insert(0, ID_COLUMN, regions.ids())

    duplicated = table[ID_COLUMN].duplicated(keep="first")
    if duplicated.any():
        logger.warning(
            f"Dropping {int(duplicated.sum())} regions with duplicate ids: "
            f"{table.loc[duplicated, ID_COLUMN].tolist()}"
        )
        table = table[~duplicated].reset_index(drop=True)

    logger.info(f"Assigned ids to {len(table)} regions")
    return table


def regions_from_ids(ids: Iterable[str]) -> pd.DataFrame:
    """Parse region ids into a chrom/start/end frame (same order)."""
    parsed = [RegionId.parse(i) for i in ids]
    return pd.DataFrame(
        {
            "chrom": [p.chrom for p in parsed],
            "start": np.array([p.start for p in parsed], dtype=np.int64),
            "end": np.array([p.end for p in parsed], dtype=np.int64),
        },
        columns=["chrom", "start", "end"],
    )


# ============================================================================
# Blacklist exclusion
# ============================================================================


def exclude_overlapping(
    table: pd.DataFrame,
    exclusion: RegionSet,
    allow: Optional[Iterable[str]] = None,
    id_col: str = ID_COLUMN,
) -> FilterResult:
    """Drop rows whose region overlaps any exclusion region.

    Args:
        table: Rows keyed by region id in ``id_col``
        exclusion: Artifact regions; membership is any overlap
        allow: Region ids kept even when they overlap an exclusion region

    Returns:
        FilterResult with rows in their original order
    """
    validate_dataframe(table, "region table", required_columns=[id_col])
    allow = {str(RegionId.parse(a)) for a in (allow or ())}

    table = table.reset_index(drop=True)
    coords = regions_from_ids(table[id_col])
    hits = find_overlaps(coords, exclusion.to_dataframe(), report="first")

    overlapping = np.zeros(len(table), dtype=bool)
    if not hits.empty:
        overlapping[hits["query_idx"].astype(int).values] = True

    rescued = overlapping & table[id_col].isin(allow).values
    drop = overlapping & ~rescued

    if rescued.any():
        logger.info(f"Rescued {int(rescued.sum())} blacklisted regions via allow-list: "
                    f"{table.loc[rescued, id_col].tolist()}")

    result = FilterResult(
        kept=table[~drop].reset_index(drop=True),
        dropped=table[drop].reset_index(drop=True),
    )
    logger.info(f"Blacklist filter: dropped {result.n_dropped} of {len(table)} regions")
    logger.debug(f"Blacklisted region ids: {result.dropped_ids}")
    return result


# ============================================================================
# TSS proximity
# ============================================================================


def filter_by_tss_distance(
    table: pd.DataFrame,
    max_distance: int = DEFAULT_TSS_DISTANCE,
    distance_col: str = DISTANCE_COLUMN,
) -> FilterResult:
    """Keep rows with ``abs(distance) < max_distance``.

    Rows without a distance (no annotated feature on the chromosome) are
    dropped.
    """
    validate_dataframe(table, "annotated table", required_columns=[distance_col])
    validate_numeric_param(max_distance, "max_distance", min_val=0)

    table = table.reset_index(drop=True)
    distance = pd.to_numeric(table[distance_col], errors="coerce")
    keep = (distance.abs() < max_distance).fillna(False).values

    result = FilterResult(
        kept=table[keep].reset_index(drop=True),
        dropped=table[~keep].reset_index(drop=True),
    )
    logger.info(
        f"TSS proximity filter (<{max_distance} bp): kept {result.n_kept} of {len(table)} rows"
    )
    return result
