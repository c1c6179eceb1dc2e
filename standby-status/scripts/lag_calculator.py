"""
Distance between two WAL positions, in segments and bytes

The segment id alone does not say how far into it a node is, so each side is
first mapped to its local segment slot: the number of segment-sized chunks
consumed within the 4-byte offset space of its segment id.
"""
from dataclasses import dataclass

from wal_position import Position, SegmentSizeConfig


@dataclass(frozen=True)
class LagMetrics:
    """How far a replica position trails the primary position"""
    segment_id_delta: int
    segment_count_delta: int
    primary_segment_id: int
    replica_segment_id: int
    primary_segment_slot: int
    replica_segment_slot: int
    backlog_bytes: int


BYTES_PER_MEGABYTE = 1024 * 1024


def _div_trunc(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero"""
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def segment_slot(byte_offset: int, config: SegmentSizeConfig) -> int:
    """
    Local segment slot of an offset within its segment id

    With the legacy width of 0xFF this is
    1 + 255 - (0xFF000000 - offset) / segment_size.
    Offsets past the top slot boundary make the numerator negative; the
    quotient then truncates toward zero.
    """
    width = config.segments_per_id
    top = width << 24
    return 1 + width - _div_trunc(top - byte_offset, config.segment_size_bytes)


def calculate_lag(primary: Position, replica: Position, config: SegmentSizeConfig) -> LagMetrics:
    """
    Compare a replica position against the primary position

    Deltas are primary minus replica. A replica that appears ahead of the
    primary (the two were read at different moments) yields negative values,
    which are returned unclamped.
    """
    width = config.segments_per_id
    primary_slot = segment_slot(primary.byte_offset, config)
    replica_slot = segment_slot(replica.byte_offset, config)

    count_delta = (primary.segment_id * width + primary_slot) - (replica.segment_id * width + replica_slot)

    return LagMetrics(
        segment_id_delta=primary.segment_id - replica.segment_id,
        segment_count_delta=count_delta,
        primary_segment_id=primary.segment_id,
        replica_segment_id=replica.segment_id,
        primary_segment_slot=primary_slot,
        replica_segment_slot=replica_slot,
        backlog_bytes=count_delta * config.segment_size_bytes,
    )


def backlog_megabytes(metrics: LagMetrics) -> int:
    """Backlog in whole megabytes, truncated toward zero with the sign kept"""
    return _div_trunc(metrics.backlog_bytes, BYTES_PER_MEGABYTE)
