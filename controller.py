"""
Run controller: lifecycle, stop signal and final report.

    IDLE -> RUNNING -> DRAINING -> FINISHED

All state changes go through `_transition()`. A stop request moves a
running controller to DRAINING: work already in flight finishes, nothing
new is dispatched. FINISHED is entered exactly once; the report is built
from the frozen stats at that moment and never recomputed.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from aggregator import ProgressReporter, ResultAggregator, RunStats
from config import RunConfig
from distributor import DispatchSummary, ExecuteFn, create_distributor
from errors import RunStateError
from outcomes import Outcome
from reporting import console

StopCondition = Callable[[Outcome], Optional[str]]
ReportEmitter = Callable[["RunReport"], None]
ResourceCheck = Callable[[], None]


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"


_ALLOWED_TRANSITIONS = {
    RunState.IDLE: {RunState.RUNNING},
    RunState.RUNNING: {RunState.DRAINING},
    RunState.DRAINING: {RunState.FINISHED},
    RunState.FINISHED: set(),
}


def stop_on_rate_limit(outcome: Outcome) -> Optional[str]:
    """Stop condition: the target answered 429 Too Many Requests."""
    if outcome.status_code == 429:
        return "Rate limit hit (HTTP 429)"
    return None


@dataclass(frozen=True)
class RunReport:
    """Final, immutable summary of a finished run."""
    status: str
    total_requests: int
    processed: int
    successful: int
    failed: int
    timeouts: int
    duration_s: float
    requests_per_second: float
    requests_per_minute: float
    avg_ms: float
    min_ms: float
    max_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    errors: List[Tuple[str, int]] = field(default_factory=list)
    status_codes: Dict[int, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    started_at: float = 0
    finished_at: float = 0

    @property
    def success_rate(self) -> float:
        return (self.successful / self.processed * 100) if self.processed > 0 else 0

    @property
    def stopped_early(self) -> bool:
        return self.status == "stopped"

    @classmethod
    def from_stats(
        cls,
        stats: RunStats,
        total_requests: int,
        duration_s: float,
        stop_reason: Optional[str] = None,
        finished_at: Optional[float] = None,
    ) -> "RunReport":
        processed = stats.processed
        rps = processed / duration_s if duration_s > 0 else 0
        return cls(
            status="stopped" if stop_reason else "completed",
            total_requests=total_requests,
            processed=processed,
            successful=stats.success_count,
            failed=stats.failure_count,
            timeouts=stats.timeout_count,
            duration_s=duration_s,
            requests_per_second=rps,
            requests_per_minute=rps * 60,
            avg_ms=stats.avg_time,
            min_ms=stats.min_time,
            max_ms=stats.max_time,
            p50_ms=stats.percentile(50),
            p95_ms=stats.percentile(95),
            p99_ms=stats.percentile(99),
            errors=stats.sorted_errors(),
            status_codes=dict(sorted(stats.status_codes.items())),
            stop_reason=stop_reason,
            started_at=stats.started_at,
            finished_at=finished_at if finished_at is not None else time.time(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the report to a dictionary for JSON export."""
        return {
            "status": self.status,
            "stop_reason": self.stop_reason,
            "started_at": datetime.fromtimestamp(self.started_at, timezone.utc).isoformat(),
            "finished_at": datetime.fromtimestamp(self.finished_at, timezone.utc).isoformat(),
            "summary": {
                "total_requests": self.total_requests,
                "processed": self.processed,
                "successful_requests": self.successful,
                "failed_requests": self.failed,
                "timeout_requests": self.timeouts,
                "duration_seconds": round(self.duration_s, 2),
                "success_rate_percent": round(self.success_rate, 2),
            },
            "throughput": {
                "requests_per_second": round(self.requests_per_second, 2),
                "requests_per_minute": round(self.requests_per_minute, 2),
            },
            "latency_ms": {
                "average": round(self.avg_ms, 2),
                "min": round(self.min_ms, 2),
                "max": round(self.max_ms, 2),
                "p50": round(self.p50_ms, 2),
                "p95": round(self.p95_ms, 2),
                "p99": round(self.p99_ms, 2),
            },
            "status_codes": {str(code): count for code, count in self.status_codes.items()},
            "errors": [{"error": error, "count": count} for error, count in self.errors],
        }


class RunController:
    """
    Supervises one run. The controller never executes or classifies a
    request itself; it wires the distributor to the aggregator and decides
    when to stop dispatching.
    """

    def __init__(
        self,
        config: RunConfig,
        execute: ExecuteFn,
        check_resources: Optional[ResourceCheck] = None,
        report_progress: Optional[ProgressReporter] = None,
        emit_report: Optional[ReportEmitter] = None,
        stop_when: Optional[StopCondition] = None,
    ):
        self.config = config
        self.execute = execute
        self.check_resources = check_resources
        self.emit_report = emit_report
        self.stop_when = stop_when
        self.aggregator = ResultAggregator(
            config.total_requests,
            reporter=report_progress,
            progress_interval=config.progress_interval,
        )
        self.report: Optional[RunReport] = None
        self.summary: Optional[DispatchSummary] = None
        self.stop_reason: Optional[str] = None

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._started_perf = 0.0

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def may_dispatch(self) -> bool:
        return self._state is RunState.RUNNING

    def _transition(self, target: RunState, reason: Optional[str] = None) -> bool:
        """
        Move to `target`. Returns False when already there; raises
        RunStateError for any other illegal move.
        """
        with self._state_lock:
            if self._state is target:
                return False
            if target not in _ALLOWED_TRANSITIONS[self._state]:
                raise RunStateError(f"Illegal transition {self._state.value} -> {target.value}")
            self._state = target
            if target is RunState.DRAINING and reason and self.stop_reason is None:
                self.stop_reason = reason
            return True

    def request_stop(self, reason: str = "Stop requested") -> bool:
        """
        Stop dispatching new work. Safe to call repeatedly and from any
        state; only a RUNNING controller is affected.
        """
        try:
            changed = self._transition(RunState.DRAINING, reason)
        except RunStateError:
            # IDLE or FINISHED
            return False
        if changed:
            console.print(
                f"[yellow]⚠ {reason} after {self.aggregator.snapshot().processed} processed requests; "
                f"draining in-flight work[/yellow]"
            )
        return changed

    def _on_outcome(self, outcome: Outcome) -> None:
        self.aggregator.fold(outcome)
        if self.stop_when is not None:
            reason = self.stop_when(outcome)
            if reason:
                self.request_stop(reason)

    async def run(self) -> RunReport:
        if self._state is not RunState.IDLE:
            raise RunStateError(f"Run already started (state: {self._state.value})")

        # Pre-flight: failures here leave the controller IDLE with nothing produced
        distributor = create_distributor(self.config)
        if self.check_resources is not None:
            self.check_resources()

        self._transition(RunState.RUNNING)
        self.aggregator.start(time.time())
        self._started_perf = time.perf_counter()

        try:
            self.summary = await distributor.dispatch(
                self.execute,
                self._on_outcome,
                lambda: self.may_dispatch,
            )
        finally:
            self._finish()

        return self.report

    def _finish(self) -> None:
        duration_s = time.perf_counter() - self._started_perf
        self._transition(RunState.DRAINING)
        stats = self.aggregator.freeze()
        self.report = RunReport.from_stats(
            stats,
            total_requests=self.config.total_requests,
            duration_s=duration_s,
            stop_reason=self.stop_reason,
        )
        self._transition(RunState.FINISHED)
        if self.emit_report is not None:
            self.emit_report(self.report)
