"""
Unit tests for joining statistics, annotation and scores.
"""

import numpy as np
import pandas as pd
import pytest

from atacdiff.core.assembly import OUTPUT_COLUMNS, assemble_results, join_first, write_results
from atacdiff.core.exceptions import MissingColumnError


@pytest.fixture
def stats():
    return pd.DataFrame({
        "peak_id": ["chr1:100-200", "chr1:500-700", "chr2:10-60"],
        "baseMean": [10.0, 20.0, 30.0],
        "log2FoldChange": [1.5, -2.0, 0.1],
        "lfcSE": [0.2, 0.3, 0.4],
        "stat": [7.5, -6.7, 0.25],
        "pvalue": [1e-5, 1e-4, 0.8],
        "padj": [1e-4, 5e-4, 0.9],
    })


@pytest.fixture
def annotation():
    return pd.DataFrame({
        "peak_id": ["chr1:500-700", "chr1:100-200", "chr1:100-200"],
        "annotation": ["Distal Intergenic", "Promoter (<=1kb)", "Promoter (1-2kb)"],
        "geneId": ["G2", "A", "B"],
        "transcriptId": ["T2", "TA", "TB"],
        "distanceToTSS": [5000, 0, 1500],
        "SYMBOL": ["Gene2", "GeneA", "GeneB"],
    })


class TestJoinFirst:
    """Tests for the left join with first-occurrence de-duplication."""

    def test_first_annotation_wins(self, stats, annotation):
        joined = join_first(stats, annotation)
        row = joined.set_index("peak_id").loc["chr1:100-200"]
        assert row["geneId"] == "A"
        assert row["transcriptId"] == "TA"

    def test_one_row_per_left_key_in_left_order(self, stats, annotation):
        joined = join_first(stats, annotation)
        assert joined["peak_id"].tolist() == stats["peak_id"].tolist()

    def test_missing_annotation_is_null(self, stats, annotation):
        joined = join_first(stats, annotation)
        row = joined.set_index("peak_id").loc["chr2:10-60"]
        assert pd.isna(row["geneId"])
        assert pd.isna(row["annotation"])

    def test_right_only_keys_dropped(self, stats, annotation):
        extra = pd.concat([annotation, pd.DataFrame({"peak_id": ["chr9:1-2"], "geneId": ["Z"]})])
        assert "chr9:1-2" not in join_first(stats, extra)["peak_id"].tolist()

    def test_shared_columns_not_duplicated(self, stats):
        right = pd.DataFrame({"peak_id": ["chr1:100-200"], "baseMean": [999.0], "geneId": ["A"]})
        joined = join_first(stats, right)
        assert "baseMean_x" not in joined.columns
        assert joined["baseMean"].tolist() == [10.0, 20.0, 30.0]

    def test_missing_key_column(self, stats):
        with pytest.raises(MissingColumnError):
            join_first(stats, pd.DataFrame({"id": ["chr1:100-200"]}))


class TestAssembleResults:
    """Tests for the final table."""

    def test_columns(self, stats, annotation):
        table = assemble_results(stats, annotation)
        assert list(table.columns) == OUTPUT_COLUMNS

    def test_coordinates_come_from_region_id(self, stats, annotation):
        table = assemble_results(stats, annotation).set_index("peak_id")
        row = table.loc["chr1:500-700"]
        assert row["seqnames"] == "chr1"
        assert row["start"] == 500
        assert row["end"] == 700
        assert row["width"] == 200
        assert row["strand"] == "*"

    def test_signal_to_noise_attached(self, stats, annotation):
        s2n = pd.Series({"chr1:100-200": 3.5, "chr1:500-700": np.nan}, name="s2n")
        table = assemble_results(stats, annotation, s2n).set_index("peak_id")
        assert table.loc["chr1:100-200", "s2n"] == 3.5
        assert np.isnan(table.loc["chr1:500-700", "s2n"])
        assert np.isnan(table.loc["chr2:10-60", "s2n"])

    def test_without_signal_to_noise(self, stats, annotation):
        assert assemble_results(stats, annotation)["s2n"].isna().all()

    def test_deduplicated(self, stats, annotation):
        table = assemble_results(stats, annotation)
        assert len(table) == 3
        assert table.loc[table["peak_id"] == "chr1:100-200", "SYMBOL"].item() == "GeneA"

    def test_write_results(self, stats, annotation, temp_dir):
        path = write_results(assemble_results(stats, annotation), temp_dir / "out" / "final.csv")
        written = pd.read_csv(path)
        assert list(written.columns) == OUTPUT_COLUMNS
        assert len(written) == 3
