"""
Tests for PR size classification.
"""

import pytest

from pr_pulse.sizing import SIZE_BUCKETS, classify_size, empty_size_distribution


class TestClassifySize:
    """Tests for classify_size."""

    @pytest.mark.parametrize(
        "additions,deletions,files,expected",
        [
            (0, 0, 0, "XS"),
            (5, 0, 1, "XS"),  # 3.5 + 6 = 9.5
            (50, 0, 5, "M"),  # 35 + 30 = 65
            (100, 0, 0, "M"),  # 70
            (400, 100, 20, "L"),  # 350 + 120 = 470
            (1500, 0, 0, "XXL"),  # 1050
        ],
    )
    def test_buckets(self, additions, deletions, files, expected):
        """Test representative PRs land in the expected bucket."""
        assert classify_size(additions, deletions, files) == expected

    def test_line_boundaries(self):
        """Test bucket edges reached through line counts alone."""
        assert classify_size(14, 0, 0) == "XS"  # 9.8
        assert classify_size(15, 0, 0) == "S"  # 10.5
        assert classify_size(71, 0, 0) == "S"  # 49.7
        assert classify_size(72, 0, 0) == "M"  # 50.4

    def test_file_boundaries(self):
        """Test bucket edges reached through file counts alone."""
        # Each file contributes 6 points
        assert classify_size(0, 0, 1) == "XS"  # 6
        assert classify_size(0, 0, 2) == "S"  # 12
        assert classify_size(0, 0, 8) == "S"  # 48
        assert classify_size(0, 0, 9) == "M"  # 54
        assert classify_size(0, 0, 33) == "M"  # 198
        assert classify_size(0, 0, 34) == "L"  # 204
        assert classify_size(0, 0, 83) == "L"  # 498
        assert classify_size(0, 0, 84) == "XL"  # 504
        assert classify_size(0, 0, 166) == "XL"  # 996
        assert classify_size(0, 0, 167) == "XXL"  # 1002

    def test_deletions_weigh_like_additions(self):
        """Test additions and deletions are interchangeable."""
        assert classify_size(30, 40, 2) == classify_size(70, 0, 2)


class TestEmptySizeDistribution:
    """Tests for empty_size_distribution."""

    def test_all_buckets_zero(self):
        """Test every bucket is present with zero count."""
        distribution = empty_size_distribution()
        assert list(distribution) == list(SIZE_BUCKETS)
        assert set(distribution.values()) == {0}

    def test_returns_fresh_dict(self):
        """Test callers can mutate the result safely."""
        first = empty_size_distribution()
        first["XS"] += 1
        assert empty_size_distribution()["XS"] == 0
