"""
Peak Annotation Module

Nearest-TSS annotation of merged regions from a GTF gene model:
- Transcript and exon parsing from GTF/GFF (optionally gzipped)
- Nearest transcription start site per region, strand-aware signed distance
- Feature classification (promoter bins, exon, intron, distal intergenic)

All coordinates are 0-based half-open, matching the region model.
"""

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd

from .exceptions import GTFParseError, PeakAnnotationError, validate_dataframe
from .filters import ID_COLUMN, regions_from_ids

logger = logging.getLogger(__name__)

TRANSCRIPT_COLUMNS = ["chrom", "start", "end", "strand", "gene_id", "transcript_id", "gene_name"]


@dataclass
class AnnotationConfig:
    """Configuration for peak annotation."""
    # Promoter window around the TSS
    tss_upstream: int = 3000
    tss_downstream: int = 3000


class GeneAnnotation:
    """
    Transcript models loaded from a GTF file.

    Keeps one row per transcript (with its TSS) and the exon intervals
    of every transcript.
    """

    def __init__(self, gtf_file: Optional[Union[str, Path]] = None):
        self.transcripts = pd.DataFrame(columns=TRANSCRIPT_COLUMNS + ["tss"])
        self.exons: Dict[str, np.ndarray] = {}

        if gtf_file:
            self.load_gtf(gtf_file)

    def load_gtf(self, gtf_file: Union[str, Path]):
        """
        Load transcripts and exons from a GTF file.

        Args:
            gtf_file: Path to GTF/GFF file
        """
        logger.info(f"Loading GTF: {gtf_file}")
        df = self._parse_gtf(gtf_file)
        if df.empty:
            raise GTFParseError("no transcript records found", path=gtf_file)

        transcripts = df[df["feature"] == "transcript"].copy()
        if transcripts.empty:
            raise GTFParseError("no transcript records found", path=gtf_file)
        self.set_transcripts(transcripts)

        exons = df[df["feature"] == "exon"]
        self.exons = {
            tx: grp[["start", "end"]].to_numpy(dtype=np.int64)
            for tx, grp in exons.groupby("transcript_id", sort=False)
        }
        logger.info(f"Loaded {len(self.transcripts)} transcripts, {len(exons)} exons")

    def set_transcripts(self, transcripts: pd.DataFrame):
        """Install a transcript table (0-based half-open) and compute TSS positions."""
        transcripts = transcripts.copy()
        for col in ("gene_id", "transcript_id", "gene_name"):
            if col not in transcripts.columns:
                transcripts[col] = None
        transcripts["gene_name"] = transcripts["gene_name"].fillna(transcripts["gene_id"])

        # 0-based position of the first transcribed base
        transcripts["tss"] = np.where(
            transcripts["strand"] == "-",
            transcripts["end"] - 1,
            transcripts["start"],
        ).astype(np.int64)
        self.transcripts = transcripts[TRANSCRIPT_COLUMNS + ["tss"]].reset_index(drop=True)

    def _parse_gtf(self, gtf_file: Union[str, Path]) -> pd.DataFrame:
        """Parse transcript and exon records of a GTF file into a DataFrame."""
        records = []
        gtf_file = str(gtf_file)
        opener = gzip.open if gtf_file.endswith(".gz") else open

        try:
            with opener(gtf_file, "rt") as f:
                for lineno, line in enumerate(f, start=1):
                    if line.startswith("#") or not line.strip():
                        continue

                    fields = line.rstrip("\n").split("\t")
                    if len(fields) < 9:
                        raise GTFParseError(
                            f"expected 9 tab-separated fields, found {len(fields)}",
                            path=gtf_file, line=lineno,
                        )

                    chrom, _source, feature, start, end, _score, strand, _frame, attributes = fields[:9]
                    if feature not in ("transcript", "exon"):
                        continue
                    try:
                        start, end = int(start), int(end)
                    except ValueError:
                        raise GTFParseError(
                            f"non-integer coordinates {start!r}-{end!r}", path=gtf_file, line=lineno
                        ) from None

                    attrs = self._parse_attributes(attributes)
                    records.append({
                        "chrom": chrom,
                        "feature": feature,
                        "start": start - 1,
                        "end": end,
                        "strand": strand,
                        "gene_id": attrs.get("gene_id"),
                        "transcript_id": attrs.get("transcript_id") or attrs.get("ID"),
                        "gene_name": attrs.get("gene_name") or attrs.get("gene_symbol"),
                    })
        except OSError as e:
            raise GTFParseError(f"cannot read file: {e}", path=gtf_file) from e

        return pd.DataFrame(records)

    def _parse_attributes(self, attr_string: str) -> Dict[str, str]:
        """Parse GTF attribute string."""
        attrs = {}
        for item in attr_string.strip().split(";"):
            item = item.strip()
            if not item:
                continue

            # Handle both GTF and GFF formats
            if "=" in item:  # GFF3
                key, value = item.split("=", 1)
            elif " " in item:  # GTF
                key, value = item.split(" ", 1)
            else:
                continue

            attrs[key] = value.strip().strip('"')

        return attrs


class PeakAnnotator:
    """
    Annotate regions with their nearest transcription start site.

    Every transcript whose TSS ties for the smallest distance to a region
    is reported, so a region can produce several rows.
    """

    def __init__(self, gene_annotation: GeneAnnotation, config: AnnotationConfig = None):
        self.genes = gene_annotation
        self.config = config or AnnotationConfig()

        # Per chromosome: sorted unique TSS positions and the transcripts at each
        self._tss_index: Dict[str, tuple] = {}
        for chrom, grp in self.genes.transcripts.groupby("chrom", sort=False):
            grp = grp.sort_values("tss", kind="stable")
            positions, first = np.unique(grp["tss"].to_numpy(), return_index=True)
            bounds = np.append(first, len(grp))
            self._tss_index[chrom] = (positions, bounds, grp.reset_index(drop=True))

    def _nearest(self, chrom: str, start: int, end: int) -> List[pd.Series]:
        """Transcripts whose TSS is nearest to [start, end)."""
        if chrom not in self._tss_index:
            return []
        positions, bounds, grp = self._tss_index[chrom]

        lo = int(np.searchsorted(positions, start, side="left"))
        hi = int(np.searchsorted(positions, end, side="left"))
        if hi > lo:
            chosen = range(lo, hi)
        else:
            candidates = []
            if lo > 0:
                candidates.append((start - positions[lo - 1], lo - 1))
            if hi < len(positions):
                candidates.append((positions[hi] - (end - 1), hi))
            best = min(d for d, _ in candidates)
            chosen = [i for d, i in candidates if d == best]

        rows = []
        for i in chosen:
            rows.extend(grp.iloc[j] for j in range(bounds[i], bounds[i + 1]))
        return rows

    @staticmethod
    def signed_distance(start: int, end: int, tss: int, strand: str) -> int:
        """Distance from the TSS to the region; negative upstream, 0 if it contains the TSS."""
        if start <= tss < end:
            return 0
        raw = start - tss if tss < start else (end - 1) - tss
        return -raw if strand == "-" else raw

    def _classify(self, start: int, end: int, distance: int, tx: pd.Series) -> str:
        upstream, downstream = self.config.tss_upstream, self.config.tss_downstream
        if -upstream <= distance <= downstream:
            if abs(distance) <= 1000:
                return "Promoter (<=1kb)"
            if abs(distance) <= 2000:
                return "Promoter (1-2kb)"
            return f"Promoter (2-{max(upstream, downstream) // 1000}kb)"

        if start < tx["end"] and tx["start"] < end:
            exons = self.genes.exons.get(tx["transcript_id"])
            if exons is not None and np.any((exons[:, 0] < end) & (start < exons[:, 1])):
                return "Exon"
            return "Intron"
        return "Distal Intergenic"

    def _annotate_region(self, peak_id: str, chrom: str, start: int, end: int) -> List[Dict[str, Any]]:
        nearest = self._nearest(chrom, start, end)
        if not nearest:
            return [{ID_COLUMN: peak_id, "annotation": "Distal Intergenic"}]

        rows = []
        for tx in nearest:
            distance = self.signed_distance(start, end, int(tx["tss"]), tx["strand"])
            rows.append({
                ID_COLUMN: peak_id,
                "annotation": self._classify(start, end, distance, tx),
                "geneChr": tx["chrom"],
                "geneStart": int(tx["start"]),
                "geneEnd": int(tx["end"]),
                "geneStrand": tx["strand"],
                "geneId": tx["gene_id"],
                "transcriptId": tx["transcript_id"],
                "distanceToTSS": distance,
                "SYMBOL": tx["gene_name"],
            })
        return rows

    def annotate_regions(self, table: pd.DataFrame) -> pd.DataFrame:
        """
        Annotate every region id in ``table``.

        Args:
            table: Rows keyed by ``peak_id``

        Returns:
            One or more annotation rows per region, in input order
        """
        validate_dataframe(table, "region table", required_columns=[ID_COLUMN])
        columns = [ID_COLUMN, "annotation", "geneChr", "geneStart", "geneEnd", "geneStrand",
                   "geneId", "transcriptId", "distanceToTSS", "SYMBOL"]
        if table.empty:
            return pd.DataFrame(columns=columns)
        if self.genes.transcripts.empty:
            raise PeakAnnotationError("Gene annotation has no transcripts")

        coords = regions_from_ids(table[ID_COLUMN])
        rows: List[Dict[str, Any]] = []
        for peak_id, chrom, start, end in zip(table[ID_COLUMN], coords["chrom"], coords["start"], coords["end"]):
            rows.extend(self._annotate_region(peak_id, chrom, int(start), int(end)))

        result = pd.DataFrame(rows, columns=columns)
        result["distanceToTSS"] = result["distanceToTSS"].astype("Int64")
        logger.info(
            f"Annotated {len(table)} regions ({len(result)} rows, "
            f"{int(result['geneId'].notna().sum())} with a nearest gene)"
        )
        return result

    __call__ = annotate_regions
