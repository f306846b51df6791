"""
Command line entry point for atacdiff.

Subcommands:
- ``merge``: merge and curate peak files, write the region set
- ``run``: the full differential accessibility pipeline
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .config import Settings, get_settings
from .core.annotation import AnnotationConfig, GeneAnnotation, PeakAnnotator
from .core.counting import write_saf
from .core.curation import apply_curation, load_curation
from .core.differential import DifferentialAnalyzer, load_sample_sheet
from .core.exceptions import AtacDiffError
from .core.filters import assign_region_ids
from .core.genomic_utils import load_blacklist, write_region_bed
from .core.merging import merge_peak_files
from .core.pipeline import DifferentialPipeline, PipelineConfig, table_counter

logger = logging.getLogger(__name__)


def _parse_groups(value: str) -> Tuple[List[int], List[int]]:
    """Parse ``"4,5:0,1,2"`` into two index lists."""
    try:
        left, right = value.split(":")
        return [int(i) for i in left.split(",")], [int(i) for i in right.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid group spec {value!r} (expected e.g. 4,5:0,1,2)"
        ) from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="atacdiff",
        description="Merge ATAC-seq peak sets and test them for differential accessibility.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: ATACDIFF_LOG_LEVEL or INFO)")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-s", "--samples", required=True,
                        help="CSV sample sheet: sample_id,condition,bam_file,peak_file")
    common.add_argument("--curation", help="JSON file of manual deletions/insertions/rescues")
    common.add_argument("--max-gap", type=int, help="Merge peaks closer than this (bp)")
    common.add_argument("--all-chroms", action="store_true",
                        help="Keep peaks on random/Un/alt contigs")
    common.add_argument("-o", "--outdir", help="Output directory")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("merge", parents=[common], help="Merge and curate peak files only")

    run = sub.add_parser("run", parents=[common], help="Run the full pipeline")
    run.add_argument("--gtf", required=True, help="Gene model (GTF, optionally gzipped)")
    run.add_argument("--blacklist", help="Blacklist BED (chrom, start, end)")
    run.add_argument("--counts", help="Precomputed count table (skips BAM counting)")
    run.add_argument("--tss-distance", type=int, help="Keep regions closer than this to a TSS (bp)")
    run.add_argument("--treatment", help="Treatment condition name")
    run.add_argument("--control", help="Control condition name")
    run.add_argument("--proximity-first", action="store_true",
                     help="Apply the TSS proximity filter before the blacklist filter")
    run.add_argument("--s2n-groups", type=_parse_groups, metavar="G1:G2",
                     help="Sample indices (0-based, sample sheet order) for signal-to-noise, "
                          "e.g. 4,5:0,1,2 (default: treatment vs control)")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    groups = getattr(args, "s2n_groups", None)
    return get_settings(
        log_level=args.log_level,
        max_gap=args.max_gap,
        results_dir=args.outdir,
        standard_chroms_only=False if args.all_chroms else None,
        tss_distance=getattr(args, "tss_distance", None),
        treatment_condition=getattr(args, "treatment", None),
        control_condition=getattr(args, "control", None),
        s2n_group1=groups[0] if groups else None,
        s2n_group2=groups[1] if groups else None,
    )


def cmd_merge(args: argparse.Namespace, settings: Settings) -> int:
    samples = load_sample_sheet(args.samples)
    merged = merge_peak_files(
        {s.sample_id: s.peak_file for s in samples if s.peak_file},
        max_gap=settings.max_gap,
        standard_chroms_only=settings.standard_chroms_only,
    )
    regions = assign_region_ids(apply_curation(merged, load_curation(args.curation)))

    outdir = Path(settings.results_dir)
    write_region_bed(regions, outdir / "merged_peaks.bed")
    write_saf(regions, outdir / "merged_peaks.saf")
    logger.info(f"Wrote {len(regions)} merged regions to {outdir}")
    return 0


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    samples = load_sample_sheet(args.samples)
    config = PipelineConfig(
        treatment=settings.treatment_condition,
        control=settings.control_condition,
        max_gap=settings.max_gap,
        standard_chroms_only=settings.standard_chroms_only,
        tss_distance=settings.tss_distance,
        filter_order=("proximity", "blacklist") if args.proximity_first else ("blacklist", "proximity"),
        fdr_threshold=settings.fdr_threshold,
        lfc_threshold=settings.lfc_threshold,
        s2n_group1=settings.s2n_group1,
        s2n_group2=settings.s2n_group2,
        output_dir=str(settings.results_dir),
    )

    annotator = PeakAnnotator(
        GeneAnnotation(args.gtf),
        AnnotationConfig(tss_upstream=settings.tss_upstream, tss_downstream=settings.tss_downstream),
    )
    pipeline = DifferentialPipeline(
        config,
        annotator=annotator,
        blacklist=load_blacklist(args.blacklist) if args.blacklist else None,
        curation=load_curation(args.curation),
        counter=table_counter(args.counts) if args.counts else None,
        differential=DifferentialAnalyzer(config.treatment, config.control, n_cpus=settings.n_cpus),
    )
    results = pipeline.run(samples)
    print(json.dumps(results.to_dict(), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _settings_from_args(args)
    except PydanticValidationError as e:
        parser.error(str(e))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {"merge": cmd_merge, "run": cmd_run}
    try:
        return commands[args.command](args, settings)
    except AtacDiffError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
