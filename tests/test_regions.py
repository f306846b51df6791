"""
Unit tests for the region model.

Tests cover:
- Region validation and strand parsing
- overlaps / gap semantics
- RegionId parse/format round-trip
- RegionSet DataFrame conversion
"""

import itertools

import pandas as pd
import pytest

from atacdiff.core.exceptions import (
    CrossChromosomeError,
    InvalidRegionError,
    MalformedRegionIdError,
    MissingColumnError,
)
from atacdiff.core.regions import (
    Region,
    RegionId,
    RegionSet,
    Strand,
    gap,
    overlaps,
    parse_region_id,
    region_id,
)


class TestRegion:
    """Tests for Region construction."""

    def test_defaults_to_unknown_strand(self):
        assert Region("chr1", 10, 20).strand is Strand.UNKNOWN

    def test_strand_string_is_parsed(self):
        assert Region("chr1", 10, 20, "+").strand is Strand.PLUS
        assert Region("chr1", 10, 20, ".").strand is Strand.UNKNOWN

    def test_start_must_be_less_than_end(self):
        with pytest.raises(InvalidRegionError):
            Region("chr1", 20, 20)
        with pytest.raises(InvalidRegionError):
            Region("chr1", 30, 20)

    def test_negative_start_rejected(self):
        with pytest.raises(InvalidRegionError):
            Region("chr1", -1, 20)

    def test_width(self):
        assert Region("chr1", 100, 250).width == 150

    def test_unknown_strand_symbol(self):
        with pytest.raises(ValueError):
            Strand.parse("x")


class TestOverlapsAndGap:
    """Tests for pairwise interval queries."""

    def test_overlapping(self):
        a, b = Region("chr1", 100, 200), Region("chr1", 150, 300)
        assert overlaps(a, b)
        assert gap(a, b) == -50

    def test_book_ended_do_not_overlap(self):
        a, b = Region("chr1", 100, 200), Region("chr1", 200, 300)
        assert not overlaps(a, b)
        assert gap(a, b) == 0

    def test_separated(self):
        a, b = Region("chr1", 100, 200), Region("chr1", 700, 800)
        assert not overlaps(a, b)
        assert gap(a, b) == 500
        assert gap(b, a) == 500

    def test_contained(self):
        outer, inner = Region("chr1", 100, 1000), Region("chr1", 200, 300)
        assert overlaps(outer, inner)
        assert gap(outer, inner) == -100

    def test_different_chromosomes_never_overlap(self):
        assert not overlaps(Region("chr1", 100, 200), Region("chr2", 100, 200))

    def test_gap_across_chromosomes_fails_fast(self):
        with pytest.raises(CrossChromosomeError):
            gap(Region("chr1", 100, 200), Region("chr2", 100, 200))

    def test_cross_chromosome_is_assertion(self):
        with pytest.raises(AssertionError):
            gap(Region("chr1", 100, 200), Region("chrX", 100, 200))

    def test_gap_nonpositive_iff_overlap(self):
        """Non-positive gap matches overlap except for book-ended pairs."""
        coords = [(0, 10), (5, 15), (10, 20), (20, 30), (3, 4), (0, 30)]
        for (s1, e1), (s2, e2) in itertools.product(coords, repeat=2):
            a, b = Region("chr1", s1, e1), Region("chr1", s2, e2)
            assert (gap(a, b) < 0) == overlaps(a, b)
            if overlaps(a, b):
                assert gap(a, b) <= 0


class TestRegionId:
    """Tests for the region identifier."""

    def test_format(self):
        assert region_id(Region("chr2", 152226670, 152226920, "+")) == "chr2:152226670-152226920"

    def test_strand_is_dropped(self):
        assert region_id(Region("chr1", 1, 5, "+")) == region_id(Region("chr1", 1, 5, "-"))

    @pytest.mark.parametrize("value", [
        "chr1:0-1",
        "chr2:152226670-152226920",
        "chrUn_GL456239:100-2000",
        "HLA-A*01:01:01:01:5-10",
    ])
    def test_round_trip(self, value):
        assert str(RegionId.parse(value)) == value
        assert region_id(parse_region_id(value)) == value

    @pytest.mark.parametrize("value", ["chr1", "chr1:100", "chr1:a-b", ":1-2", "chr1:200-100", "chr1:5-5"])
    def test_malformed(self, value):
        with pytest.raises(MalformedRegionIdError):
            RegionId.parse(value)

    def test_parsed_region_is_unstranded(self):
        assert parse_region_id("chr1:10-20") == Region("chr1", 10, 20, Strand.UNKNOWN)

    def test_ordering(self):
        ids = [RegionId.parse("chr1:20-30"), RegionId.parse("chr1:5-10")]
        assert [str(i) for i in sorted(ids)] == ["chr1:5-10", "chr1:20-30"]


class TestRegionSet:
    """Tests for RegionSet."""

    def test_sequence_protocol(self, simple_regions):
        assert len(simple_regions) == 4
        assert simple_regions[0] == Region("chr2", 100, 200)
        assert isinstance(simple_regions[1:], RegionSet)

    def test_dataframe_round_trip(self, simple_regions):
        df = simple_regions.to_dataframe()
        assert list(df.columns) == ["chrom", "start", "end", "strand"]
        assert RegionSet.from_dataframe(df) == simple_regions

    def test_from_dataframe_without_strand(self):
        df = pd.DataFrame({"chrom": ["chr1"], "start": [1], "end": [9]})
        assert RegionSet.from_dataframe(df)[0].strand is Strand.UNKNOWN

    def test_from_dataframe_missing_column(self):
        with pytest.raises(MissingColumnError):
            RegionSet.from_dataframe(pd.DataFrame({"chrom": ["chr1"], "start": [1]}))

    def test_empty_dataframe(self):
        df = RegionSet().to_dataframe()
        assert df.empty
        assert list(df.columns) == ["chrom", "start", "end", "strand"]
