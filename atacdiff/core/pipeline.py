"""
End-to-end differential accessibility run.

Workflow:
1. Merge per-sample peak files into one region set
2. Apply manual curation and freeze region ids
3. Count reads per region and sample
4. Drop blacklisted regions and regions far from any TSS
5. Test for differential accessibility
6. Score signal-to-noise from normalized counts
7. Join statistics, annotation and scores into the final table

The counting, differential and annotation steps are callables so that
external tools (or test doubles) can stand in for them.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from .assembly import assemble_results, join_first, write_results
from .counting import count_reads_in_regions, load_count_table, write_count_table, write_saf
from .curation import Curation, apply_curation
from .differential import DifferentialAnalyzer, DifferentialOutput, Sample, condition_indices
from .exceptions import (
    CountTableFormatError,
    InvalidParameterError,
    SampleSheetError,
)
from .filters import ID_COLUMN, FilterResult, assign_region_ids, exclude_overlapping, filter_by_tss_distance
from .genomic_utils import write_region_bed
from .merging import merge_peak_files
from .regions import RegionSet
from .signal_noise import check_groups, summarize_signal_to_noise

logger = logging.getLogger(__name__)

Counter = Callable[[pd.DataFrame, List[Sample]], pd.DataFrame]
Differential = Callable[[pd.DataFrame, List[Sample]], DifferentialOutput]
Annotator = Callable[[pd.DataFrame], pd.DataFrame]

FILTER_STEPS = ("blacklist", "proximity")


@dataclass
class PipelineConfig:
    """Configuration for one run."""
    treatment: str = "treatment"
    control: str = "normal"

    max_gap: int = 500
    standard_chroms_only: bool = True
    tss_distance: int = 1000
    filter_order: Sequence[str] = FILTER_STEPS

    # Significance thresholds for the summary
    fdr_threshold: float = 0.05
    lfc_threshold: float = 0.0

    # Positional sample indices for signal-to-noise; default: treatment vs control
    s2n_group1: Optional[Sequence[int]] = None
    s2n_group2: Optional[Sequence[int]] = None

    output_dir: Optional[str] = None

    def __post_init__(self):
        if sorted(self.filter_order) != sorted(FILTER_STEPS):
            raise InvalidParameterError("filter_order", list(self.filter_order), f"a permutation of {FILTER_STEPS}")
        if (self.s2n_group1 is None) != (self.s2n_group2 is None):
            raise InvalidParameterError(
                "s2n groups", (self.s2n_group1, self.s2n_group2), "both groups or neither"
            )


@dataclass
class PipelineResults:
    """Outputs and audit counts of one run."""
    merged_regions: int
    blacklisted: int
    outside_tss_distance: int
    tested: int
    significant: int
    gained: int
    lost: int
    s2n_undefined: int

    regions: pd.DataFrame = field(default_factory=pd.DataFrame)
    counts: pd.DataFrame = field(default_factory=pd.DataFrame)
    excluded: pd.DataFrame = field(default_factory=pd.DataFrame)
    results: pd.DataFrame = field(default_factory=pd.DataFrame)

    output_dir: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "merged_regions": self.merged_regions,
            "blacklisted": self.blacklisted,
            "outside_tss_distance": self.outside_tss_distance,
            "tested": self.tested,
            "significant": self.significant,
            "gained": self.gained,
            "lost": self.lost,
            "s2n_undefined": self.s2n_undefined,
        }


def bam_counter(regions: pd.DataFrame, samples: List[Sample]) -> pd.DataFrame:
    """Default counter: pysam counts from each sample's BAM file."""
    missing = [s.sample_id for s in samples if not s.bam_file]
    if missing:
        raise SampleSheetError(f"No bam_file for samples: {missing}")
    return count_reads_in_regions(regions, {s.sample_id: s.bam_file for s in samples})


def table_counter(path: str) -> Counter:
    """Counter that reads a precomputed count table."""
    def _load(regions: pd.DataFrame, samples: List[Sample]) -> pd.DataFrame:
        return load_count_table(path)
    return _load


class DifferentialPipeline:
    """
    Batch run from peak files to the annotated result table.

    Args:
        config: Run configuration
        annotator: Nearest-TSS annotation callable (e.g. a PeakAnnotator)
        blacklist: Regions treated as artifacts
        curation: Manual deletions, insertions and rescued ids
        counter: Read counting callable (default: pysam on BAM files)
        differential: Statistics callable (default: PyDESeq2)
    """

    def __init__(
        self,
        config: PipelineConfig,
        annotator: Annotator,
        blacklist: Optional[RegionSet] = None,
        curation: Optional[Curation] = None,
        counter: Optional[Counter] = None,
        differential: Optional[Differential] = None,
    ):
        self.config = config
        self.annotator = annotator
        self.blacklist = blacklist if blacklist is not None else RegionSet()
        self.curation = curation or Curation()
        self.counter = counter or bam_counter
        self.differential = differential or DifferentialAnalyzer(config.treatment, config.control)

    def build_regions(self, samples: List[Sample]) -> pd.DataFrame:
        """Merge, curate and freeze the region set."""
        peak_files = {s.sample_id: s.peak_file for s in samples if s.peak_file}
        if not peak_files:
            raise SampleSheetError("No sample has a peak_file")

        merged = merge_peak_files(
            peak_files,
            max_gap=self.config.max_gap,
            standard_chroms_only=self.config.standard_chroms_only,
        )
        curated = apply_curation(merged, self.curation)
        return assign_region_ids(curated)

    def count(self, regions: pd.DataFrame, samples: List[Sample]) -> pd.DataFrame:
        """Count matrix with rows in region order and columns in sample order."""
        counts = self.counter(regions, samples)

        expected = pd.Index(regions[ID_COLUMN])
        if set(counts.index) != set(expected) or len(counts.index) != len(expected):
            extra = sorted(set(counts.index) - set(expected))[:5]
            absent = sorted(set(expected) - set(counts.index))[:5]
            raise CountTableFormatError(
                f"count table rows do not match merged regions "
                f"(unexpected: {extra}, missing: {absent})"
            )
        sample_ids = [s.sample_id for s in samples]
        absent = [s for s in sample_ids if s not in counts.columns]
        if absent:
            raise CountTableFormatError(f"count table is missing sample columns {absent}")

        return counts.loc[expected, sample_ids]

    def filter_regions(self, table: pd.DataFrame) -> Dict[str, FilterResult]:
        """Apply blacklist and proximity filters in the configured order."""
        results: Dict[str, FilterResult] = {}
        for step in self.config.filter_order:
            if step == "blacklist":
                result = exclude_overlapping(table, self.blacklist, allow=self.curation.rescue)
            else:
                annotated = join_first(table, self.annotator(table))
                result = filter_by_tss_distance(annotated, self.config.tss_distance)
                result.kept = result.kept[table.columns]
            results[step] = result
            table = result.kept
        return results

    def summarize(self, results: pd.DataFrame) -> Dict[str, int]:
        sig = (results["padj"] < self.config.fdr_threshold) & (
            results["log2FoldChange"].abs() > self.config.lfc_threshold
        )
        return {
            "significant": int(sig.sum()),
            "gained": int((sig & (results["log2FoldChange"] > 0)).sum()),
            "lost": int((sig & (results["log2FoldChange"] < 0)).sum()),
        }

    def run(self, samples: List[Sample]) -> PipelineResults:
        """
        Run the complete pipeline.

        Args:
            samples: Samples in count-matrix column order

        Returns:
            PipelineResults
        """
        logger.info(f"Starting run: {self.config.treatment} vs {self.config.control}")
        group1 = condition_indices(samples, self.config.treatment)
        group2 = condition_indices(samples, self.config.control)
        if self.config.s2n_group1 is not None:
            group1 = list(self.config.s2n_group1)
            group2 = list(self.config.s2n_group2)
            check_groups(group1, group2, len(samples))
        logger.info(f"Signal-to-noise groups: {group1} vs {group2}")

        # Step 1-2: regions
        regions = self.build_regions(samples)

        # Step 3: counts
        counts = self.count(regions, samples)

        # Step 4: filters
        filtered = self.filter_regions(regions)
        kept = filtered[self.config.filter_order[-1]].kept
        excluded = pd.concat(
            [r.dropped[[ID_COLUMN]].assign(reason=step) for step, r in filtered.items()],
            ignore_index=True,
        )
        logger.info(f"{len(kept)} of {len(regions)} regions pass filters")

        # Step 5: statistics
        diff = self.differential(counts.loc[kept[ID_COLUMN]], samples)

        # Step 6: signal-to-noise
        s2n = summarize_signal_to_noise(diff.normalized_counts[counts.columns], group1, group2)

        # Step 7: final table
        annotation = self.annotator(kept)
        final = assemble_results(diff.results, annotation, s2n)

        summary = self.summarize(final)
        results = PipelineResults(
            merged_regions=len(regions),
            blacklisted=filtered["blacklist"].n_dropped,
            outside_tss_distance=filtered["proximity"].n_dropped,
            tested=len(diff.results),
            s2n_undefined=int(s2n.isna().sum()),
            regions=regions,
            counts=counts,
            excluded=excluded,
            results=final,
            output_dir=self.config.output_dir,
            **summary,
        )

        if self.config.output_dir:
            self.write_outputs(results, diff)
        logger.info(f"Run finished: {results.to_dict()}")
        return results

    def write_outputs(self, results: PipelineResults, diff: DifferentialOutput):
        output_path = Path(self.config.output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        write_region_bed(results.regions, output_path / "merged_peaks.bed")
        write_saf(results.regions, output_path / "merged_peaks.saf")
        write_count_table(results.counts, output_path / "counts.tsv")
        write_count_table(diff.normalized_counts, output_path / "normalized_counts.tsv")
        results.excluded.to_csv(output_path / "excluded_regions.tsv", sep="\t", index=False)
        write_results(results.results, output_path / "differential_annotated.csv")
        (output_path / "summary.json").write_text(json.dumps(results.to_dict(), indent=2))

        logger.info(f"Results saved to {output_path}")
