"""Tests for human-readable size formatting."""

import pytest

from large_file_cleaner.utils.size_format import (
    GIB,
    KIB,
    MIB,
    format_size,
    megabytes_to_bytes,
)


class TestFormatSize:
    """Test format_size unit selection and precision."""

    @pytest.mark.parametrize(
        "num_bytes,expected",
        [
            (0, "0 bytes"),
            (1023, "1023 bytes"),
            (KIB, "1.00 KB"),
            (1536, "1.50 KB"),
            (MIB, "1.00 MB"),
            (132120576, "126.00 MB"),
            (GIB, "1.00 GB"),
            (5 * GIB + GIB // 2, "5.50 GB"),
        ],
    )
    def test_units(self, num_bytes, expected):
        assert format_size(num_bytes) == expected

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            format_size(-1)


class TestMegabytesToBytes:
    """Test threshold conversion uses binary megabytes."""

    def test_default_threshold(self):
        assert megabytes_to_bytes(100) == 104857600

    def test_one_megabyte(self):
        assert megabytes_to_bytes(1) == 1048576
