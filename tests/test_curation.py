"""
Unit tests for manual curation of the merged region set.
"""

import json

import pytest

from atacdiff.core.curation import Curation, apply_curation, apply_overrides, load_curation
from atacdiff.core.exceptions import CurationFileError
from atacdiff.core.regions import Region, RegionSet, Strand


@pytest.fixture
def merged():
    return RegionSet([
        Region("chr1", 100, 200),
        Region("chr1", 500, 900),
        Region("chr2", 10, 50),
    ])


class TestApplyOverrides:
    """Tests for exact-match deletion and literal insertion."""

    def test_exact_deletion(self, merged):
        result = apply_overrides(merged, delete=[Region("chr1", 500, 900)])
        assert list(result) == [Region("chr1", 100, 200), Region("chr2", 10, 50)]

    def test_deletion_requires_matching_strand(self, merged):
        result = apply_overrides(merged, delete=[Region("chr1", 500, 900, "+")])
        assert result == merged

    def test_deletion_is_not_fuzzy(self, merged):
        result = apply_overrides(merged, delete=[Region("chr1", 500, 901), Region("chr1", 150, 200)])
        assert result == merged

    def test_insertions_appended_in_given_order(self, merged):
        inserts = [Region("chr9", 5, 10, "+"), Region("chr1", 1, 2)]
        result = apply_overrides(merged, delete=[Region("chr1", 100, 200)], insert=inserts)
        assert list(result) == [
            Region("chr1", 500, 900),
            Region("chr2", 10, 50),
            Region("chr9", 5, 10, Strand.PLUS),
            Region("chr1", 1, 2),
        ]

    def test_no_overrides_is_identity(self, merged):
        assert apply_overrides(merged) == merged

    def test_apply_curation(self, merged):
        curation = Curation(delete=(Region("chr2", 10, 50),), insert=(Region("chr3", 1, 9),))
        assert apply_curation(merged, curation).ids() == ["chr1:100-200", "chr1:500-900", "chr3:1-9"]


class TestLoadCuration:
    """Tests for the JSON curation file."""

    def test_load(self, curation_file):
        curation = load_curation(str(curation_file))
        assert curation.delete == (Region("chr1", 120000, 120300),)
        assert curation.insert == (Region("chr2", 5000, 5200),)
        assert curation.rescue == frozenset({"chr1:40000-40300"})

    def test_none_is_empty(self):
        assert load_curation(None) == Curation()

    def test_dot_strand_is_unknown(self, temp_dir):
        path = temp_dir / "c.json"
        path.write_text(json.dumps({"delete": [{"chrom": "chr1", "start": 1, "end": 5, "strand": "."}]}))
        assert load_curation(path).delete[0].strand is Strand.UNKNOWN

    def test_invalid_json(self, temp_dir):
        path = temp_dir / "c.json"
        path.write_text("{not json")
        with pytest.raises(CurationFileError, match="c.json"):
            load_curation(path)

    def test_invalid_interval(self, temp_dir):
        path = temp_dir / "c.json"
        path.write_text(json.dumps({"insert": [{"chrom": "chr1", "start": 10, "end": 5}]}))
        with pytest.raises(CurationFileError):
            load_curation(path)

    def test_invalid_rescue_id(self, temp_dir):
        path = temp_dir / "c.json"
        path.write_text(json.dumps({"rescue": ["chr1-10-20"]}))
        with pytest.raises(CurationFileError):
            load_curation(path)

    def test_missing_file(self, temp_dir):
        with pytest.raises(CurationFileError):
            load_curation(temp_dir / "absent.json")
