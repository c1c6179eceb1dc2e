"""Tests for WAL position parsing and formatting."""

import pytest

from status_errors import MalformedPositionError, NodeDataError
from wal_position import Position, SegmentSizeConfig


class TestPositionParse:
    """Position.parse tests."""

    def test_parse_components(self):
        """Both parts are read as base-16."""
        position = Position.parse("3E/5B05DE30")

        assert position.segment_id == 0x3E
        assert position.byte_offset == 0x5B05DE30

    def test_parse_lower_case(self):
        assert Position.parse("3e/5b05de30") == Position(0x3E, 0x5B05DE30)

    def test_parse_zero(self):
        assert Position.parse("0/0") == Position(0, 0)

    def test_no_range_check(self):
        """Out-of-range offsets are accepted; only the syntax is checked."""
        position = Position.parse("1/1FFFFFFFF")

        assert position.byte_offset == 0x1FFFFFFFF

    @pytest.mark.parametrize("token", [
        "3E5B05DE30",
        "3E/5B05/DE30",
        "/5B05DE30",
        "3E/",
        "3G/5B05DE30",
        "3E/ZZ",
        "0x3E/5B05DE30",
        "-3E/5B05DE30",
        " 3E/5B05DE30",
        "",
    ])
    def test_malformed_tokens(self, token):
        """Anything but <hex>/<hex> is rejected."""
        with pytest.raises(MalformedPositionError) as excinfo:
            Position.parse(token)

        assert excinfo.value.token == token

    def test_non_string_rejected(self):
        with pytest.raises(MalformedPositionError):
            Position.parse(None)

    def test_malformed_is_data_error(self):
        """Callers can treat bad tokens as unusable node data."""
        with pytest.raises(NodeDataError):
            Position.parse("garbage")


class TestPositionFormat:
    """Position formatting tests."""

    @pytest.mark.parametrize("token", ["3E/5B05DE30", "0/0", "1/00000010", "00FF/0001"])
    def test_parse_then_format_with_same_widths(self, token):
        """Re-formatting with the token's own widths reproduces it."""
        segment, offset = token.split("/")

        formatted = Position.parse(token).format(segment_width=len(segment), offset_width=len(offset))

        assert formatted == token

    def test_str_is_unpadded_upper_case(self):
        assert str(Position(0x3E, 0x10)) == "3E/10"


class TestSegmentSizeConfig:
    """SegmentSizeConfig validation tests."""

    def test_defaults(self):
        config = SegmentSizeConfig(segment_size_bytes=16777216, retention_segments=64)

        assert config.segments_per_id == 0xFF
        assert config.block_size_bytes == 8192

    @pytest.mark.parametrize("size", [0, -1])
    def test_segment_size_must_be_positive(self, size):
        with pytest.raises(ValueError):
            SegmentSizeConfig(segment_size_bytes=size, retention_segments=64)

    def test_segments_per_id_must_be_positive(self):
        with pytest.raises(ValueError):
            SegmentSizeConfig(segment_size_bytes=16777216, retention_segments=64, segments_per_id=0)
