"""
Recovery risk of a replica, judged from a single round
"""
from enum import Enum
from typing import Optional


class RiskStatus(Enum):
    STREAMING_POSSIBLE = "STREAMING possible"
    RECOVERY_FROM_ARCHIVE_REQUIRED = "RECOVER FROM ARCHIVE required"
    NOT_A_REPLICA = "not in recovery mode"
    UNKNOWN = "UNKNOWN"


def classify_risk(
    segment_count_delta: Optional[int],
    retention_segments: int,
    in_recovery_mode: bool = True
) -> RiskStatus:
    """
    Classify a replica against the primary's retention window

    A node that is not in recovery is never compared at all, so
    segment_count_delta may be None for it. Otherwise the replica can still
    stream while it trails by fewer segments than the primary keeps.
    Falling back under the threshold does not mean streaming resumes at once;
    the standby first replays what it needs from the archive.
    """
    if not in_recovery_mode:
        return RiskStatus.NOT_A_REPLICA

    if retention_segments > segment_count_delta:
        return RiskStatus.STREAMING_POSSIBLE
    return RiskStatus.RECOVERY_FROM_ARCHIVE_REQUIRED
