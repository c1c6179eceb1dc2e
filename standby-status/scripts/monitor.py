"""
Poll rounds and the monitoring loop
A round fetches every node, then computes lag and risk for each standby and
hands one RoundResult to the renderer
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from threading import Event
from typing import Optional, Sequence, Union
from dataclasses import dataclass

from db_config import MONITORING_INTERVAL_SECONDS, ROUND_FAILURE_POLICY
from lag_calculator import LagMetrics, backlog_megabytes, calculate_lag
from risk import RiskStatus, classify_risk
from snapshots import NodeClient, PrimarySnapshot, ReplicaSnapshot
from status_errors import NodeDataError, NodeError
from wal_position import Position

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ("fatal", "retry")


@dataclass(frozen=True)
class PrimaryReport:
    """Primary summary line"""
    address: str
    position: Position
    retention_segments: int
    segment_size_bytes: int


@dataclass(frozen=True)
class ReplicaReport:
    """
    One standby's row

    replay/receive hold the lag metrics; receive is None when the standby
    has no receive position yet, and both are None for a non-replica or a
    node whose fetch failed (error is set in that case).
    """
    address: str
    status: RiskStatus
    replayed_position: Optional[Position] = None
    replay: Optional[LagMetrics] = None
    received_position: Optional[Position] = None
    receive: Optional[LagMetrics] = None
    backlog_megabytes: Optional[int] = None
    error: Optional[NodeError] = None

    @property
    def has_streaming_data(self) -> bool:
        return self.receive is not None


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    timestamp: str
    primary: PrimaryReport
    replicas: tuple


def primary_report(primary: PrimarySnapshot) -> PrimaryReport:
    return PrimaryReport(
        address=primary.address,
        position=primary.position,
        retention_segments=primary.segment_config.retention_segments,
        segment_size_bytes=primary.segment_config.segment_size_bytes,
    )


def replica_report(primary: PrimarySnapshot, replica: ReplicaSnapshot) -> ReplicaReport:
    """
    Lag and risk of one standby against the primary

    Raises:
        NodeDataError: if a standby in recovery has no replay position
    """
    if not replica.in_recovery_mode:
        return ReplicaReport(address=replica.address, status=RiskStatus.NOT_A_REPLICA)

    if replica.replayed_position is None:
        raise NodeDataError("in recovery but no replay position", node=replica.address,
                            operation="compare positions")

    config = primary.segment_config
    replay = calculate_lag(primary.position, replica.replayed_position, config)
    receive = None
    if replica.received_position is not None:
        receive = calculate_lag(primary.position, replica.received_position, config)

    return ReplicaReport(
        address=replica.address,
        status=classify_risk(replay.segment_count_delta, config.retention_segments),
        replayed_position=replica.replayed_position,
        replay=replay,
        received_position=replica.received_position,
        receive=receive,
        backlog_megabytes=backlog_megabytes(replay),
    )


def failed_report(node: NodeClient, error: NodeError) -> ReplicaReport:
    return ReplicaReport(address=node.address, status=RiskStatus.UNKNOWN, error=error)


def _fetch_replica(node: NodeClient) -> Union[ReplicaSnapshot, NodeError]:
    try:
        return node.fetch_replica()
    except NodeError as e:
        logger.warning(f"Standby {node.address} unavailable this round: {e}")
        return e


def poll_round(
    primary_node: NodeClient,
    replica_nodes: Sequence[NodeClient],
    executor: Optional[ThreadPoolExecutor] = None,
    round_number: int = 1
) -> RoundResult:
    """
    Run one measurement cycle

    Standby failures are reported per node with RiskStatus.UNKNOWN. Any
    failure on the primary aborts the round, since no lag can be computed
    without its position and segment configuration.

    Raises:
        NodeError: if the primary snapshot cannot be fetched or parsed
    """
    primary = primary_node.fetch_primary()

    # executor.map keeps configured order regardless of completion order
    if executor is not None:
        fetched = list(executor.map(_fetch_replica, replica_nodes))
    else:
        fetched = [_fetch_replica(node) for node in replica_nodes]

    reports = []
    for node, snapshot in zip(replica_nodes, fetched):
        if isinstance(snapshot, NodeError):
            reports.append(failed_report(node, snapshot))
            continue
        try:
            reports.append(replica_report(primary, snapshot))
        except NodeDataError as e:
            logger.warning(f"Standby {node.address} unusable this round: {e}")
            reports.append(failed_report(node, e))

    return RoundResult(
        round_number=round_number,
        timestamp=datetime.now().isoformat(timespec="seconds"),
        primary=primary_report(primary),
        replicas=tuple(reports),
    )


class StandbyStatusMonitor:
    """Runs poll rounds on a fixed interval until stopped"""

    def __init__(
        self,
        primary: NodeClient,
        replicas: Sequence[NodeClient],
        renderer,
        interval_seconds: float = MONITORING_INTERVAL_SECONDS,
        failure_policy: str = ROUND_FAILURE_POLICY,
        concurrent_fetch: bool = True
    ):
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown round failure policy {failure_policy!r}, expected one of {FAILURE_POLICIES}")

        self.primary = primary
        self.replicas = tuple(replicas)
        self.renderer = renderer
        self.interval_seconds = interval_seconds
        self.failure_policy = failure_policy
        self.concurrent_fetch = concurrent_fetch
        self.stop_event = Event()
        self.rounds = 0

    @property
    def nodes(self) -> tuple:
        return (self.primary,) + self.replicas

    def stop(self):
        """Stop after the current round and abort in-flight queries"""
        self.stop_event.set()
        for node in self.nodes:
            node.cancel()

    def monitor(self, duration_seconds: Optional[float] = None, max_rounds: Optional[int] = None):
        """Run monitoring loop"""
        logger.info(
            f"Starting standby status monitoring of {self.primary.address} "
            f"with {len(self.replicas)} standby(s), every {self.interval_seconds}s"
        )

        start_time = time.monotonic()
        executor = None
        if self.concurrent_fetch and len(self.replicas) > 1:
            executor = ThreadPoolExecutor(max_workers=len(self.replicas), thread_name_prefix="standby-fetch")

        try:
            while not self.stop_event.is_set():
                self.rounds += 1

                try:
                    result = poll_round(self.primary, self.replicas, executor, self.rounds)
                except NodeError as e:
                    if self.stop_event.is_set():
                        break
                    if self.failure_policy == "fatal":
                        logger.error(f"Round {self.rounds} failed: {e}")
                        raise
                    logger.error(f"Round {self.rounds} aborted, retrying in {self.interval_seconds}s: {e}")
                    self.renderer.render_failure(self.rounds, e)
                else:
                    # Queries cut short by stop() would show up as UNKNOWN rows
                    if self.stop_event.is_set():
                        break
                    self.renderer.render(result)

                if max_rounds and self.rounds >= max_rounds:
                    break

                if duration_seconds and (time.monotonic() - start_time) >= duration_seconds:
                    logger.info(f"Monitoring duration reached ({duration_seconds}s)")
                    break

                # Wait for next round; stop() wakes this early
                self.stop_event.wait(self.interval_seconds)

        except KeyboardInterrupt:
            logger.info("Monitoring stopped by user")
            self.stop()
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
            for node in self.nodes:
                node.close()
            logger.info(f"Monitoring completed. Total rounds: {self.rounds}")
