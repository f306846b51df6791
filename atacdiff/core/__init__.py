"""
Core analysis modules for atacdiff.

Includes:
- Region model and region id round-trip
- Multi-sample peak merging and manual curation
- Blacklist and TSS proximity filters
- Read counting, differential testing (PyDESeq2) and annotation
- Signal-to-noise scoring and result assembly
"""

# Region model
from .regions import Region, RegionId, RegionSet, Strand, gap, overlaps, parse_region_id, region_id

# Merging and curation
from .merging import merge_regions, merge_peak_files
from .curation import Curation, apply_curation, apply_overrides, load_curation

# Filters
from .filters import (
    FilterResult,
    assign_region_ids,
    exclude_overlapping,
    filter_by_tss_distance,
)

# Statistics
from .signal_noise import signal_to_noise, summarize_signal_to_noise
from .assembly import assemble_results, join_first

# Collaborators
from .counting import count_reads_in_regions, load_count_table, write_count_table
from .differential import DifferentialAnalyzer, DifferentialOutput, Sample, load_sample_sheet
from .annotation import AnnotationConfig, GeneAnnotation, PeakAnnotator

# Pipeline
from .pipeline import DifferentialPipeline, PipelineConfig, PipelineResults

__all__ = [
    # Region model
    "Region",
    "RegionId",
    "RegionSet",
    "Strand",
    "gap",
    "overlaps",
    "parse_region_id",
    "region_id",

    # Merging and curation
    "merge_regions",
    "merge_peak_files",
    "Curation",
    "apply_curation",
    "apply_overrides",
    "load_curation",

    # Filters
    "FilterResult",
    "assign_region_ids",
    "exclude_overlapping",
    "filter_by_tss_distance",

    # Statistics
    "signal_to_noise",
    "summarize_signal_to_noise",
    "assemble_results",
    "join_first",

    # Collaborators
    "count_reads_in_regions",
    "load_count_table",
    "write_count_table",
    "DifferentialAnalyzer",
    "DifferentialOutput",
    "Sample",
    "load_sample_sheet",
    "AnnotationConfig",
    "GeneAnnotation",
    "PeakAnnotator",

    # Pipeline
    "DifferentialPipeline",
    "PipelineConfig",
    "PipelineResults",
]
