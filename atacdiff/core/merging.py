"""
Multi-sample peak merging.

Unions the peak sets of all samples/replicates into one non-overlapping,
unstranded region set. Peaks whose gap is at most ``max_gap`` bp are
stitched into a single region.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Union

from .exceptions import validate_numeric_param
from .genomic_utils import filter_standard_chroms, load_peak_regions, sort_chromosomes
from .regions import Region, RegionSet, Strand, gap

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAP = 500


def merge_regions(
    region_sets: Iterable[Iterable[Region]],
    max_gap: int = DEFAULT_MAX_GAP,
) -> RegionSet:
    """Merge regions from many samples into one sorted, non-overlapping set.

    Args:
        region_sets: One collection of regions per sample (need not be merged)
        max_gap: Regions whose gap is <= max_gap are merged

    Returns:
        RegionSet sorted by (chrom, start), every strand set to unknown
    """
    validate_numeric_param(max_gap, "max_gap", min_val=0)

    by_chrom: Dict[str, List[Region]] = defaultdict(list)
    n_input = 0
    for regions in region_sets:
        for region in regions:
            by_chrom[region.chrom].append(region)
            n_input += 1

    merged: List[Region] = []
    for chrom in sort_chromosomes(list(by_chrom)):
        regions = sorted(by_chrom[chrom], key=lambda r: (r.start, r.end))

        active = regions[0].unstranded()
        for region in regions[1:]:
            if gap(active, region) <= max_gap:
                if region.end > active.end:
                    active = Region(chrom, active.start, region.end, Strand.UNKNOWN)
            else:
                merged.append(active)
                active = region.unstranded()
        merged.append(active)

    logger.info(f"Merged {n_input} peaks into {len(merged)} regions (max_gap={max_gap})")
    return RegionSet(merged)


def merge_peak_files(
    peak_files: Union[Mapping[str, str], Iterable[str]],
    max_gap: int = DEFAULT_MAX_GAP,
    standard_chroms_only: bool = False,
) -> RegionSet:
    """Load per-sample peak files and merge them.

    Args:
        peak_files: Paths, or a mapping of sample id -> path
        max_gap: Merge distance in bp
        standard_chroms_only: Drop peaks on random/Un/alt contigs before merging
    """
    if isinstance(peak_files, Mapping):
        items = list(peak_files.items())
    else:
        items = [(str(p), p) for p in peak_files]

    region_sets = []
    for sample_id, path in items:
        regions = load_peak_regions(path)
        if standard_chroms_only:
            regions = filter_standard_chroms(regions)
        logger.info(f"Loaded {len(regions)} peaks for {sample_id}")
        region_sets.append(regions)

    return merge_regions(region_sets, max_gap=max_gap)
