"""Run observers and the execution log recorder.

Observers are the only channel through which progress of a run becomes
visible while it is in flight. Every hook is optional.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from flowrunner.core.models import ExecutionLog, ExecutionResult, LogLevel

logger = logging.getLogger(__name__)

SYSTEM_NODE_ID = "system"
SYSTEM_NODE_NAME = "System"

NodeStartHook = Callable[[str], None]
NodeCompleteHook = Callable[[str, ExecutionResult], None]
LogHook = Callable[[ExecutionLog], None]


@dataclass
class RunObserver:
    """Callback hooks for a single run."""

    on_node_start: NodeStartHook | None = None
    on_node_complete: NodeCompleteHook | None = None
    on_log: LogHook | None = None

    def node_started(self, node_id: str) -> None:
        if self.on_node_start:
            self.on_node_start(node_id)

    def node_completed(self, node_id: str, result: ExecutionResult) -> None:
        if self.on_node_complete:
            self.on_node_complete(node_id, result)

    def log(self, record: ExecutionLog) -> None:
        if self.on_log:
            self.on_log(record)


@dataclass
class ObserverGroup(RunObserver):
    """Fan out every hook to a list of observers, in registration order."""

    observers: list[RunObserver] = field(default_factory=list)

    def add(self, observer: RunObserver) -> None:
        self.observers.append(observer)

    def node_started(self, node_id: str) -> None:
        for observer in self.observers:
            observer.node_started(node_id)

    def node_completed(self, node_id: str, result: ExecutionResult) -> None:
        for observer in self.observers:
            observer.node_completed(node_id, result)

    def log(self, record: ExecutionLog) -> None:
        for observer in self.observers:
            observer.log(record)


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class RunLogRecorder:
    """Append-only log trail for one run.

    Records are appended to ``records`` and streamed to the observer as they
    happen. Timestamps are strictly increasing within a recorder even when
    the clock does not advance between two records.
    """

    _TICK = timedelta(microseconds=1)

    def __init__(
        self,
        observer: RunObserver | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.observer = observer or RunObserver()
        self.records: list[ExecutionLog] = []
        self._clock = clock
        self._last: datetime | None = None

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self._last is not None and now <= self._last:
            now = self._last + self._TICK
        self._last = now
        return now

    def add(
        self,
        node_id: str,
        node_name: str,
        level: LogLevel,
        message: str,
        data: Any = None,
    ) -> ExecutionLog:
        record = ExecutionLog(
            node_id=node_id,
            node_name=node_name,
            timestamp=self._next_timestamp(),
            level=level,
            message=message,
            data=data,
        )
        self.records.append(record)
        logger.debug("[%s] %s: %s", level.value, node_name, message)
        self.observer.log(record)
        return record

    def system(self, level: LogLevel, message: str, data: Any = None) -> ExecutionLog:
        return self.add(SYSTEM_NODE_ID, SYSTEM_NODE_NAME, level, message, data)
