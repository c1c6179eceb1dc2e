"""Shared fixtures: literal positions and in-memory nodes."""

import time

import pytest

from snapshots import PrimarySnapshot, ReplicaSnapshot
from wal_position import Position, SegmentSizeConfig

SEGMENT_SIZE = 16 * 1024 * 1024


class FakeNode:
    """NodeClient returning canned snapshots, or raising canned errors."""

    def __init__(self, address, snapshots=(), delay=0.0):
        self.address = address
        self.snapshots = list(snapshots)
        self.delay = delay
        self.cancelled = False
        self.closed = False

    def _next(self):
        if self.delay:
            time.sleep(self.delay)
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        return item

    def fetch_primary(self):
        return self._next()

    def fetch_replica(self):
        return self._next()

    def cancel(self):
        self.cancelled = True

    def close(self):
        self.closed = True


def primary_snapshot(token="3E/5B05DE30", retention=64, host="10.0.0.1", port=5432):
    return PrimarySnapshot(
        host=host,
        port=port,
        position=Position.parse(token),
        segment_config=SegmentSizeConfig(segment_size_bytes=SEGMENT_SIZE, retention_segments=retention),
    )


def replica_snapshot(replayed="3E/5B05DE30", received="3E/5B05DE30", in_recovery=True,
                     host="10.0.0.2", port=5432):
    return ReplicaSnapshot(
        host=host,
        port=port,
        in_recovery_mode=in_recovery,
        replayed_position=Position.parse(replayed) if replayed else None,
        received_position=Position.parse(received) if received else None,
    )


@pytest.fixture
def segment_config():
    """16 MiB segments, 64 kept."""
    return SegmentSizeConfig(segment_size_bytes=SEGMENT_SIZE, retention_segments=64)


@pytest.fixture
def primary_position():
    return Position.parse("3E/5B05DE30")
