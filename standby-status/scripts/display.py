"""
Terminal dashboard for poll round results
Only lays out and colours what the round computed; no numbers are derived here
"""
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from monitor import PrimaryReport, ReplicaReport, RoundResult
from risk import RiskStatus
from status_errors import NodeError

STATUS_STYLES = {
    RiskStatus.STREAMING_POSSIBLE: "cyan",
    RiskStatus.RECOVERY_FROM_ARCHIVE_REQUIRED: "red",
    RiskStatus.NOT_A_REPLICA: "red",
    RiskStatus.UNKNOWN: "bold red",
}

NO_STREAMING_DATA = "recv(no streaming data)"


def format_primary_line(primary: PrimaryReport) -> str:
    return f"M= {primary.address} {primary.position} keep {primary.retention_segments}"


def format_distance(label: str, metrics) -> str:
    return f"{label}(segid={metrics.segment_id_delta}/count={metrics.segment_count_delta})"


def format_replica_line(replica: ReplicaReport) -> str:
    """The S= line, without the status"""
    if replica.error is not None:
        return f"S= {replica.address} {format_error(replica.error)}"
    if replica.status is RiskStatus.NOT_A_REPLICA:
        return f"S= {replica.address} is not in recovery mode"

    receive = format_distance("recv", replica.receive) if replica.has_streaming_data else NO_STREAMING_DATA
    return f"S= {replica.address} {replica.replayed_position} {format_distance('replay', replica.replay)} {receive}"


def format_summary_line(replica: ReplicaReport) -> Optional[str]:
    """Segment id/slot of both sides and the backlog, for standbys with lag metrics"""
    if replica.replay is None:
        return None
    m = replica.replay
    return (
        f"   -M>>S=({m.primary_segment_id:X}/{m.primary_segment_slot} "
        f"{m.replica_segment_id:X}/{m.replica_segment_slot}) {replica.backlog_megabytes} MB"
    )


def format_error(error: NodeError) -> str:
    if error.operation:
        return f"ERROR {error.operation}: {error.message}"
    return f"ERROR {error.message}"


def format_round_text(result: RoundResult) -> str:
    """Plain text rendition of a round"""
    lines = [format_primary_line(result.primary)]
    for replica in result.replicas:
        line = format_replica_line(replica)
        if replica.status in (RiskStatus.STREAMING_POSSIBLE, RiskStatus.RECOVERY_FROM_ARCHIVE_REQUIRED):
            line = f"{line}   {replica.status.value}"
        lines.append(line)
        summary = format_summary_line(replica)
        if summary:
            lines.append(summary)
    return "\n".join(lines)


def build_round(result: RoundResult) -> Group:
    """Styled rendition of a round"""
    header = Text(f"pg_standby_status - round {result.round_number} - {result.timestamp}", style="dim")
    rows = [header, Text(format_primary_line(result.primary), style="bold")]

    for replica in result.replicas:
        style = STATUS_STYLES[replica.status]
        row = Text()
        if replica.error is not None or replica.status is RiskStatus.NOT_A_REPLICA:
            row.append(format_replica_line(replica), style=style)
        else:
            row.append(format_replica_line(replica))
            row.append(f"   {replica.status.value}", style=style)
            if not replica.has_streaming_data:
                row.highlight_words([NO_STREAMING_DATA], style="yellow")
        rows.append(row)

        summary = format_summary_line(replica)
        if summary:
            rows.append(Text(summary))

    return Group(*rows)


class Dashboard:
    """
    Redraws the round in place while live, otherwise prints each round

    Use as a context manager so the live display is torn down on exit.
    """

    def __init__(self, console: Optional[Console] = None, live: bool = True):
        self.console = console or Console()
        self.live = live and self.console.is_terminal
        self._live: Optional[Live] = None

    def __enter__(self):
        if self.live:
            self._live = Live(console=self.console, auto_refresh=False, transient=False)
            self._live.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _show(self, renderable):
        if self._live is not None:
            self._live.update(renderable, refresh=True)
        else:
            self.console.print(renderable)

    def render(self, result: RoundResult):
        self._show(build_round(result))

    def render_failure(self, round_number: int, error: NodeError):
        self._show(Text(f"round {round_number} failed: {error}", style="bold red"))
