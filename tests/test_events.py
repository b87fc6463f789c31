"""Tests for run observers and the log recorder."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import Mock

from flowrunner.core.events import (
    SYSTEM_NODE_ID,
    SYSTEM_NODE_NAME,
    ObserverGroup,
    RunLogRecorder,
    RunObserver,
)
from flowrunner.core.models import ExecutionResult, LogLevel


class TestRunObserver:
    """Tests for optional observer hooks."""

    def test_missing_hooks_are_ignored(self):
        observer = RunObserver()

        observer.node_started("a")
        observer.node_completed("a", ExecutionResult(success=True))

    def test_hooks_receive_arguments(self):
        on_start = Mock()
        on_complete = Mock()
        observer = RunObserver(on_node_start=on_start, on_node_complete=on_complete)
        result = ExecutionResult(success=True, output=1)

        observer.node_started("a")
        observer.node_completed("a", result)

        on_start.assert_called_once_with("a")
        on_complete.assert_called_once_with("a", result)

    def test_group_fans_out_in_order(self):
        calls: list[str] = []
        group = ObserverGroup()
        group.add(RunObserver(on_node_start=lambda n: calls.append(f"first:{n}")))
        group.add(RunObserver(on_node_start=lambda n: calls.append(f"second:{n}")))

        group.node_started("x")

        assert calls == ["first:x", "second:x"]


class TestRunLogRecorder:
    """Tests for the append-only log trail."""

    def test_records_are_streamed(self):
        on_log = Mock()
        recorder = RunLogRecorder(RunObserver(on_log=on_log))

        record = recorder.add("n1", "Node 1", LogLevel.INFO, "hello", {"k": 1})

        assert recorder.records == [record]
        on_log.assert_called_once_with(record)
        assert record.data == {"k": 1}

    def test_system_records(self):
        recorder = RunLogRecorder()

        record = recorder.system(LogLevel.SUCCESS, "done")

        assert record.node_id == SYSTEM_NODE_ID
        assert record.node_name == SYSTEM_NODE_NAME
        assert record.level == LogLevel.SUCCESS

    def test_timestamps_strictly_increase_with_frozen_clock(self):
        """A clock that never advances still yields increasing timestamps."""
        frozen = datetime(2024, 1, 1, tzinfo=UTC)
        recorder = RunLogRecorder(clock=lambda: frozen)

        for i in range(5):
            recorder.add("n", "N", LogLevel.INFO, str(i))

        stamps = [r.timestamp for r in recorder.records]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))
        assert stamps[0] == frozen

    def test_timestamps_survive_clock_going_backwards(self):
        times = iter(
            [datetime(2024, 1, 1, 0, 0, 2, tzinfo=UTC), datetime(2024, 1, 1, tzinfo=UTC)]
        )
        recorder = RunLogRecorder(clock=lambda: next(times))

        first = recorder.add("n", "N", LogLevel.INFO, "a")
        second = recorder.add("n", "N", LogLevel.INFO, "b")

        assert second.timestamp > first.timestamp
