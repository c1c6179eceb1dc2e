"""Tests for the command line entry point."""

from unittest.mock import patch

from conftest import primary_snapshot, replica_snapshot
from monitor import RoundResult, primary_report, replica_report
from pg_standby_status import build_nodes, main, parse_args
from status_errors import NodeConnectionError


def test_parse_args_defaults():
    args = parse_args(["host=db1"])

    assert args.primary == "host=db1"
    assert args.replicas == []
    assert args.duration is None
    assert args.once is False


def test_parse_args_replicas_and_options():
    args = parse_args(["host=db1", "host=db2", "host=db3 port=5433", "--interval", "2", "--retry-failed-rounds"])

    assert args.replicas == ["host=db2", "host=db3 port=5433"]
    assert args.interval == 2.0
    assert args.retry_failed_rounds is True


def test_build_nodes_keeps_command_line_order():
    primary, replicas = build_nodes(parse_args(["host=db1", "host=db3", "host=db2 port=5433"]))

    assert primary.descriptor.role == "primary"
    assert primary.descriptor.config.host == "db1"
    assert [r.descriptor.config.host for r in replicas] == ["db3", "db2"]
    assert replicas[1].address == "db2:5433"
    assert all(r.descriptor.role == "replica" for r in replicas)


@patch("pg_standby_status.poll_round")
def test_once_prints_round(mock_poll, capsys):
    primary = primary_snapshot()
    mock_poll.return_value = RoundResult(
        round_number=1,
        timestamp="2026-10-19T12:00:00",
        primary=primary_report(primary),
        replicas=(replica_report(primary, replica_snapshot()),),
    )

    assert main(["host=db1", "host=db2", "--once"]) == 0

    out = capsys.readouterr().out
    assert "M= 10.0.0.1:5432 3E/5B05DE30 keep 64" in out
    assert "-M>>S=(3E/93 3E/93) 0 MB" in out


@patch("pg_standby_status.poll_round")
def test_once_reports_failure(mock_poll):
    mock_poll.side_effect = NodeConnectionError("refused", node="db1:5432", operation="connect")

    assert main(["host=db1", "--once"]) == 1


def test_invalid_dsn():
    assert main(["not a dsn", "--once"]) == 2
