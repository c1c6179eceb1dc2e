"""
Per-round snapshots of the primary and its standbys
PostgresNode is the only place that knows the SQL; everything downstream
works on the snapshot records
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from db_config import WAL_SEGMENTS_PER_ID, DatabaseConfig
from db_connection import DatabaseConnection
from status_errors import MalformedPositionError, MissingConfigurationError, NodeDataError
from wal_position import Position, SegmentSizeConfig

logger = logging.getLogger(__name__)

# pg_settings units for segment sizes; '8kB' is resolved against wal_block_size
_UNIT_BYTES = {None: 1, "": 1, "B": 1, "kB": 1024, "MB": 1024 * 1024, "GB": 1024 * 1024 * 1024}


def _unit_bytes(unit) -> int:
    try:
        return _UNIT_BYTES[unit]
    except KeyError:
        raise NodeDataError(f"unsupported setting unit {unit!r}")


_SETTINGS = ("wal_segment_size", "wal_block_size", "wal_keep_segments", "wal_keep_size")


@dataclass(frozen=True)
class NodeDescriptor:
    """One configured node, fixed for the lifetime of the process"""
    role: str  # "primary" or "replica"
    config: DatabaseConfig

    @property
    def address(self) -> str:
        return self.config.address


@dataclass(frozen=True)
class PrimarySnapshot:
    host: str
    port: int
    position: Position
    segment_config: SegmentSizeConfig

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ReplicaSnapshot:
    host: str
    port: int
    in_recovery_mode: bool
    replayed_position: Optional[Position]
    received_position: Optional[Position]

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class NodeClient(Protocol):
    """What a poll round needs from a node"""

    address: str

    def fetch_primary(self) -> PrimarySnapshot: ...

    def fetch_replica(self) -> ReplicaSnapshot: ...

    def cancel(self) -> None: ...

    def close(self) -> None: ...


def function_names(server_version: int) -> dict:
    """WAL location functions were renamed from xlog to wal in PostgreSQL 10"""
    if server_version >= 100000:
        return {
            "current": "pg_current_wal_lsn",
            "receive": "pg_last_wal_receive_lsn",
            "replay": "pg_last_wal_replay_lsn",
        }
    return {
        "current": "pg_current_xlog_location",
        "receive": "pg_last_xlog_receive_location",
        "replay": "pg_last_xlog_replay_location",
    }


def segment_config_from_settings(settings: dict, segments_per_id: int = WAL_SEGMENTS_PER_ID) -> SegmentSizeConfig:
    """
    Derive segment geometry and retention from pg_settings rows

    Args:
        settings: name -> {"setting": str, "unit": str | None}
        segments_per_id: slot addressing width for the lag calculation

    Raises:
        MissingConfigurationError: if a required setting is absent
        NodeDataError: if a setting cannot be interpreted
    """
    for name in ("wal_segment_size", "wal_block_size"):
        if name not in settings:
            raise MissingConfigurationError(f"setting {name} not reported")

    try:
        return _segment_config(settings, segments_per_id)
    except (ValueError, ZeroDivisionError) as e:
        raise NodeDataError(f"unusable WAL settings: {e}") from e


def _segment_config(settings: dict, segments_per_id: int) -> SegmentSizeConfig:
    block_size = int(settings["wal_block_size"]["setting"])

    # Before PostgreSQL 11 wal_segment_size is a count of 8kB WAL blocks
    segment = settings["wal_segment_size"]
    if segment.get("unit") == "8kB":
        segment_size = int(segment["setting"]) * block_size
    else:
        segment_size = int(segment["setting"]) * _unit_bytes(segment.get("unit"))

    if "wal_keep_segments" in settings:
        retention = int(settings["wal_keep_segments"]["setting"])
    elif "wal_keep_size" in settings:
        # PostgreSQL 13 replaced the segment count with a size
        keep = settings["wal_keep_size"]
        retention = int(keep["setting"]) * _unit_bytes(keep.get("unit")) // segment_size
    else:
        raise MissingConfigurationError("neither wal_keep_segments nor wal_keep_size reported")

    return SegmentSizeConfig(
        segment_size_bytes=segment_size,
        retention_segments=retention,
        block_size_bytes=block_size,
        segments_per_id=segments_per_id,
    )


class PostgresNode:
    """Fetches snapshots from one PostgreSQL server"""

    def __init__(self, descriptor: NodeDescriptor, db: Optional[DatabaseConnection] = None,
                 segments_per_id: int = WAL_SEGMENTS_PER_ID):
        self.descriptor = descriptor
        self.db = db or DatabaseConnection(descriptor.config)
        self.segments_per_id = segments_per_id

    @property
    def address(self) -> str:
        return self.descriptor.address

    def _parse(self, token, operation: str) -> Position:
        try:
            return Position.parse(token)
        except MalformedPositionError as e:
            raise MalformedPositionError(token, node=self.address, operation=operation) from e

    def fetch_primary(self) -> PrimarySnapshot:
        """Current write position plus segment configuration, in one round-trip"""
        names = function_names(self.db.server_version())
        query = f"""
        SELECT
            l.location,
            s.name,
            s.setting,
            s.unit
        FROM (SELECT {names['current']}()::text AS location) l
        LEFT JOIN pg_settings s ON s.name IN %s
        """
        rows = self.db.execute_query(query, (_SETTINGS,), operation="fetch primary position")
        if not rows:
            raise NodeDataError("no position returned", node=self.address, operation="fetch primary position")

        settings = {row["name"]: row for row in rows if row["name"] is not None}
        try:
            segment_config = segment_config_from_settings(settings, self.segments_per_id)
        except NodeDataError as e:
            raise type(e)(e.message, node=self.address, operation="fetch primary settings") from e

        position = self._parse(rows[0]["location"], "fetch primary position")
        logger.debug(f"Primary {self.address} at {position}, keep {segment_config.retention_segments}")

        return PrimarySnapshot(
            host=self.descriptor.config.host,
            port=self.descriptor.config.port,
            position=position,
            segment_config=segment_config,
        )

    def fetch_replica(self) -> ReplicaSnapshot:
        """Recovery state plus last replayed and received positions"""
        names = function_names(self.db.server_version())
        query = f"""
        SELECT
            pg_is_in_recovery() AS in_recovery,
            {names['receive']}()::text AS received,
            {names['replay']}()::text AS replayed
        """
        rows = self.db.execute_query(query, operation="fetch standby position")
        if not rows:
            raise NodeDataError("no recovery status returned", node=self.address, operation="fetch standby position")
        row = rows[0]

        in_recovery = bool(row["in_recovery"])
        replayed = received = None
        if in_recovery:
            if row["replayed"] is None:
                raise NodeDataError("in recovery but no replay position", node=self.address,
                                    operation="fetch standby position")
            replayed = self._parse(row["replayed"], "fetch standby position")
            # No receive position until streaming has started
            if row["received"] is not None:
                received = self._parse(row["received"], "fetch standby position")

        return ReplicaSnapshot(
            host=self.descriptor.config.host,
            port=self.descriptor.config.port,
            in_recovery_mode=in_recovery,
            replayed_position=replayed,
            received_position=received,
        )

    def cancel(self):
        self.db.cancel()

    def close(self):
        self.db.close_pool()
