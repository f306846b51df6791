"""
Shared test fixtures for the atacdiff test suite.
"""

import json
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from atacdiff.core.differential import DifferentialOutput
from atacdiff.core.regions import Region, RegionSet

# ============================================================================
# Synthetic study: 3 normal + 3 treatment samples on chr1
# ============================================================================

SAMPLE_IDS = ["normal_1", "normal_2", "normal_3", "treatment_1", "treatment_2", "treatment_3"]
CONDITIONS = ["normal"] * 3 + ["treatment"] * 3

# Each sample has the shared peak (jittered by 10 bp) and one unique peak.
SHARED_REGION_ID = "chr1:1000-1250"
UNIQUE_REGION_IDS = [f"chr1:{20000 * (i + 1)}-{20000 * (i + 1) + 300}" for i in range(6)]


def _narrowpeak_line(chrom, start, end, name, strand="."):
    return f"{chrom}\t{start}\t{end}\t{name}\t100\t{strand}\t5.5\t3.2\t2.1\t50"


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def peak_files(temp_dir):
    """One narrowPeak file per sample."""
    paths = {}
    for i, sample_id in enumerate(SAMPLE_IDS):
        unique_start = 20000 * (i + 1)
        lines = [
            _narrowpeak_line("chr1", 1000 + 10 * i, 1200 + 10 * i, f"{sample_id}_peak_1", "+"),
            _narrowpeak_line("chr1", unique_start, unique_start + 300, f"{sample_id}_peak_2"),
        ]
        path = temp_dir / f"{sample_id}.narrowPeak"
        path.write_text("\n".join(lines) + "\n")
        paths[sample_id] = path
    return paths


@pytest.fixture
def sample_sheet(temp_dir, peak_files):
    """CSV sample sheet with relative peak file paths."""
    sheet = pd.DataFrame({
        "sample_id": SAMPLE_IDS,
        "condition": CONDITIONS,
        "bam_file": [f"{s}.bam" for s in SAMPLE_IDS],
        "peak_file": [peak_files[s].name for s in SAMPLE_IDS],
    })
    path = temp_dir / "samples.csv"
    sheet.to_csv(path, index=False)
    return path


@pytest.fixture
def blacklist_file(temp_dir):
    """Blacklist covering the 80 kb peak and containing the 40 kb peak."""
    path = temp_dir / "blacklist.bed"
    path.write_text("chr1\t79000\t81000\nchr1\t39900\t40400\n")
    return path


@pytest.fixture
def curation_file(temp_dir):
    """Delete the 120 kb peak, insert a chr2 peak, rescue the 40 kb peak."""
    path = temp_dir / "curation.json"
    path.write_text(json.dumps({
        "delete": [{"chrom": "chr1", "start": 120000, "end": 120300, "strand": "*"}],
        "insert": [{"chrom": "chr2", "start": 5000, "end": 5200}],
        "rescue": ["chr1:40000-40300"],
    }))
    return path


GTF_LINES = [
    # 1-based closed coordinates
    ("chr1", "transcript", 1101, 5000, "+", "G1", "T1", "Gene1"),
    ("chr1", "exon", 1101, 1400, "+", "G1", "T1", "Gene1"),
    ("chr1", "exon", 4001, 5000, "+", "G1", "T1", "Gene1"),
    ("chr1", "transcript", 15000, 20500, "-", "G2", "T2", "Gene2"),
    ("chr1", "exon", 20001, 20500, "-", "G2", "T2", "Gene2"),
    ("chr1", "transcript", 40501, 45000, "+", "G3", "T3", "Gene3"),
    ("chr1", "transcript", 100101, 101000, "+", "G4", "T4a", "Gene4"),
    ("chr1", "transcript", 100101, 100800, "+", "G4", "T4b", "Gene4"),
]


@pytest.fixture
def gtf_file(temp_dir):
    """Small GTF with transcripts near the synthetic peaks."""
    path = temp_dir / "genes.gtf"
    lines = ["#!genome-build test"]
    for chrom, feature, start, end, strand, gene, tx, name in GTF_LINES:
        attrs = f'gene_id "{gene}"; transcript_id "{tx}"; gene_name "{name}";'
        lines.append(f"{chrom}\tTEST\t{feature}\t{start}\t{end}\t.\t{strand}\t.\t{attrs}")
    lines.append(f'chr1\tTEST\tgene\t1101\t5000\t.\t+\t.\tgene_id "G1"; gene_name "Gene1";')
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def simple_regions():
    """Unsorted, overlapping regions on two chromosomes."""
    return RegionSet([
        Region("chr2", 100, 200),
        Region("chr1", 500, 600, "+"),
        Region("chr1", 100, 200, "-"),
        Region("chr1", 150, 300),
    ])


@pytest.fixture
def sample_ids():
    return list(SAMPLE_IDS)


@pytest.fixture
def shared_region_id():
    return SHARED_REGION_ID


@pytest.fixture
def unique_region_ids():
    return list(UNIQUE_REGION_IDS)


# ============================================================================
# Differential statistics stand-in
# ============================================================================


def scale_to_library_size(counts):
    """Divide each sample by its total relative to the mean total."""
    totals = counts.sum(axis=0).astype(float)
    return counts.div(totals / totals.mean(), axis=1)


@pytest.fixture
def stub_differential():
    """Fixed statistics cycling through gained, lost, non-significant and gained."""
    def _run(counts, samples):
        n = len(counts)
        results = pd.DataFrame({
            "peak_id": counts.index.tolist(),
            "baseMean": counts.mean(axis=1).values,
            "log2FoldChange": np.resize([2.0, -1.5, 0.3, 1.0], n),
            "lfcSE": 0.2,
            "stat": 5.0,
            "pvalue": 0.001,
            "padj": np.resize([0.001, 0.01, 0.5, 0.02], n),
        })
        return DifferentialOutput(results=results, normalized_counts=scale_to_library_size(counts))
    return _run
