"""
WAL positions and the primary's segment configuration
A position is the textual "<segment-id-hex>/<offset-hex>" form PostgreSQL
reports for xlog/wal locations
"""
import re
from dataclasses import dataclass

from status_errors import MalformedPositionError

_HEX = re.compile(r"[0-9A-Fa-f]+")

# Slots per segment id in legacy 4-byte xlog addressing
LEGACY_SEGMENTS_PER_ID = 0xFF


@dataclass(frozen=True)
class Position:
    """A WAL write location"""
    segment_id: int
    byte_offset: int

    @classmethod
    def parse(cls, token: str) -> "Position":
        """
        Parse a "<hex>/<hex>" token

        Raises:
            MalformedPositionError: if the token has other than one '/' or
                either part is not plain hexadecimal
        """
        if not isinstance(token, str):
            raise MalformedPositionError(token)

        parts = token.split("/")
        if len(parts) != 2 or not all(_HEX.fullmatch(part) for part in parts):
            raise MalformedPositionError(token)

        return cls(segment_id=int(parts[0], 16), byte_offset=int(parts[1], 16))

    def format(self, segment_width: int = 0, offset_width: int = 0) -> str:
        """Format as upper-case hex, zero-padded to the given widths"""
        return f"{self.segment_id:0{segment_width}X}/{self.byte_offset:0{offset_width}X}"

    def __str__(self):
        return self.format()


@dataclass(frozen=True)
class SegmentSizeConfig:
    """Segment geometry and retention of the primary, read fresh every round"""
    segment_size_bytes: int
    retention_segments: int
    block_size_bytes: int = 8192
    segments_per_id: int = LEGACY_SEGMENTS_PER_ID

    def __post_init__(self):
        if self.segment_size_bytes <= 0:
            raise ValueError(f"segment size must be positive, got {self.segment_size_bytes}")
        if self.segments_per_id <= 0:
            raise ValueError(f"segments per id must be positive, got {self.segments_per_id}")
