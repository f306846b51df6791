"""
Differential Accessibility Module

Wraps PyDESeq2 to test merged regions for a change in accessibility
between two conditions:
- Sample sheet loading
- DESeq2 size factor (RLE) normalization
- Negative binomial GLM fit and Wald test per region

The statistics are returned keyed by region id, together with the
normalized count matrix used for signal-to-noise scoring.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.ds import DeseqStats

from .exceptions import (
    DifferentialAnalysisError,
    InsufficientSamplesError,
    SampleSheetError,
    validate_dataframe,
)
from .filters import ID_COLUMN

logger = logging.getLogger(__name__)

SAMPLE_SHEET_COLUMNS = ["sample_id", "condition", "bam_file", "peak_file"]


@dataclass
class Sample:
    """Sample metadata."""
    sample_id: str
    condition: str
    bam_file: Optional[str] = None
    peak_file: Optional[str] = None

    def __post_init__(self):
        self.sample_id = str(self.sample_id)
        self.condition = str(self.condition)


def load_sample_sheet(path: str, base_dir: Optional[Path] = None) -> List[Sample]:
    """Load a CSV sample sheet.

    Row order defines the column order of every count matrix. Relative
    file paths are resolved against ``base_dir`` (default: the sheet's
    directory).
    """
    path = Path(path)
    base_dir = Path(base_dir) if base_dir is not None else path.parent
    try:
        df = pd.read_csv(path, dtype=str).fillna("")
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise SampleSheetError(f"Cannot read sample sheet {path}: {e}") from e

    for col in ("sample_id", "condition"):
        if col not in df.columns:
            raise SampleSheetError(f"Sample sheet {path} is missing column '{col}'")

    dup = df["sample_id"].duplicated()
    if dup.any():
        raise SampleSheetError(
            f"Duplicate sample ids in {path}: {df.loc[dup, 'sample_id'].tolist()}"
        )

    def _resolve(value: str) -> Optional[str]:
        if not value:
            return None
        p = Path(value)
        return str(p if p.is_absolute() else base_dir / p)

    samples = [
        Sample(
            sample_id=row["sample_id"],
            condition=row["condition"],
            bam_file=_resolve(row.get("bam_file", "")),
            peak_file=_resolve(row.get("peak_file", "")),
        )
        for _, row in df.iterrows()
    ]
    logger.info(f"Loaded {len(samples)} samples from {path}")
    return samples


def condition_indices(samples: List[Sample], condition: str) -> List[int]:
    """Positional indices of the samples in ``condition``."""
    indices = [i for i, s in enumerate(samples) if s.condition == condition]
    if not indices:
        raise SampleSheetError(
            f"No samples with condition '{condition}' "
            f"(found {sorted({s.condition for s in samples})})"
        )
    return indices


@dataclass
class DifferentialOutput:
    """Per-region statistics and normalized counts."""
    results: pd.DataFrame
    normalized_counts: pd.DataFrame
    size_factors: pd.Series = field(default_factory=pd.Series)


class DifferentialAnalyzer:
    """
    Differential accessibility with PyDESeq2.

    Workflow:
    1. Align the count matrix with the sample sheet
    2. Fit the DESeq2 model (size factors, dispersions, LFCs)
    3. Wald test treatment vs control
    4. Return statistics keyed by region id
    """

    def __init__(self, treatment: str, control: str, n_cpus: Optional[int] = None):
        self.treatment = treatment
        self.control = control
        self.n_cpus = n_cpus

    def _metadata(self, counts: pd.DataFrame, samples: List[Sample]) -> pd.DataFrame:
        known = {s.sample_id: s.condition for s in samples}
        missing = [c for c in counts.columns if c not in known]
        if missing:
            raise SampleSheetError(f"Count columns without sample sheet entries: {missing}")

        metadata = pd.DataFrame(
            {"condition": [known[c] for c in counts.columns]},
            index=pd.Index(counts.columns, name="sample"),
        )
        for condition in (self.treatment, self.control):
            n = int((metadata["condition"] == condition).sum())
            if n < 2:
                raise InsufficientSamplesError(2, n, f"condition '{condition}'")
        return metadata

    def run_deseq2(self, counts: pd.DataFrame, samples: List[Sample]) -> DifferentialOutput:
        """
        Run differential analysis.

        Args:
            counts: Count matrix (regions x samples), indexed by region id
            samples: Sample metadata

        Returns:
            DifferentialOutput with columns peak_id, baseMean,
            log2FoldChange, lfcSE, stat, pvalue, padj
        """
        validate_dataframe(counts, "count matrix", min_rows=1)
        metadata = self._metadata(counts, samples)

        logger.info(
            f"Running DESeq2 on {counts.shape[0]} regions: "
            f"{self.treatment} vs {self.control}"
        )
        kwargs: Dict = {}
        if self.n_cpus:
            kwargs["n_cpus"] = self.n_cpus
        try:
            dds = DeseqDataSet(
                counts=counts.T.astype(int),
                metadata=metadata,
                design="~condition",
                quiet=True,
                **kwargs,
            )
            dds.deseq2()
            stat_res = DeseqStats(
                dds, contrast=["condition", self.treatment, self.control], quiet=True, **kwargs
            )
            stat_res.summary()
        except (ValueError, KeyError, np.linalg.LinAlgError) as e:
            raise DifferentialAnalysisError(f"DESeq2 failed: {e}") from e

        results = stat_res.results_df.reindex(counts.index)
        results.index.name = ID_COLUMN
        results = results.reset_index()[[ID_COLUMN, "baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]]

        normalized = pd.DataFrame(
            np.asarray(dds.layers["normed_counts"]).T,
            index=counts.index,
            columns=counts.columns,
        )
        size_factors = pd.Series(np.asarray(dds.obs["size_factors"]), index=counts.columns)

        n_tested = int(results["padj"].notna().sum())
        logger.info(f"DESeq2 finished: {n_tested} of {len(results)} regions with an adjusted p-value")
        return DifferentialOutput(results=results, normalized_counts=normalized, size_factors=size_factors)

    __call__ = run_deseq2
