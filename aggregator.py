"""
Result aggregation.

`RunStats` is the single shared accumulator for a run. It is only ever
mutated through `ResultAggregator.fold()`, which serializes updates with a
lock so folds from any number of tasks or threads are never lost.
"""

import copy
import statistics
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from errors import StatsFrozenError
from outcomes import Outcome, OutcomeKind


@dataclass(frozen=True)
class ProgressObservation:
    processed: int
    total: int
    success_count: int
    failure_count: int

    @property
    def percent(self) -> float:
        return (self.processed / self.total * 100) if self.total > 0 else 100.0


ProgressReporter = Callable[[ProgressObservation], None]


@dataclass
class RunStats:
    """Running statistics for one run."""
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0

    # Successes only, in fold order
    response_times: List[float] = field(default_factory=list)
    min_time: float = 0
    max_time: float = 0

    error_histogram: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    status_codes: Dict[int, int] = field(default_factory=lambda: defaultdict(int))

    started_at: float = 0
    frozen: bool = False

    @property
    def processed(self) -> int:
        return self.success_count + self.failure_count

    @property
    def avg_time(self) -> float:
        return statistics.mean(self.response_times) if self.response_times else 0

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile of successful response times."""
        if not self.response_times:
            return 0
        sorted_times = sorted(self.response_times)
        idx = int(len(sorted_times) * p / 100)
        return sorted_times[min(idx, len(sorted_times) - 1)]

    def sorted_errors(self) -> List[tuple]:
        """Error messages with counts, most frequent first."""
        return sorted(self.error_histogram.items(), key=lambda item: item[1], reverse=True)


class ResultAggregator:
    """
    Folds outcomes into a `RunStats` record.

    Every `progress_interval` processed outcomes, and once more when the
    last expected outcome lands, a `ProgressObservation` is passed to the
    reporter. Observations are emitted while the lock is held so they
    arrive in processed order.
    """

    def __init__(
        self,
        total_requests: int,
        reporter: Optional[ProgressReporter] = None,
        progress_interval: int = 10,
    ):
        self.total_requests = total_requests
        self.reporter = reporter
        self.progress_interval = progress_interval
        self.stats = RunStats()
        self._lock = threading.Lock()

    def start(self, started_at: Optional[float] = None) -> None:
        with self._lock:
            if not self.stats.started_at:
                self.stats.started_at = started_at if started_at is not None else time.time()

    def fold(self, outcome: Outcome) -> None:
        with self._lock:
            s = self.stats
            if s.frozen:
                raise StatsFrozenError(f"Run already finished; cannot fold request {outcome.request_id}")

            if outcome.status_code is not None:
                s.status_codes[outcome.status_code] += 1

            if outcome.is_success:
                s.success_count += 1
                s.response_times.append(outcome.elapsed_ms)
                if s.success_count == 1:
                    s.min_time = s.max_time = outcome.elapsed_ms
                else:
                    s.min_time = min(s.min_time, outcome.elapsed_ms)
                    s.max_time = max(s.max_time, outcome.elapsed_ms)
            else:
                s.failure_count += 1
                if outcome.kind is OutcomeKind.TIMEOUT:
                    s.timeout_count += 1
                s.error_histogram[outcome.histogram_key] += 1

            processed = s.processed
            if self.reporter and (
                processed % self.progress_interval == 0 or processed == self.total_requests
            ):
                self.reporter(ProgressObservation(
                    processed=processed,
                    total=self.total_requests,
                    success_count=s.success_count,
                    failure_count=s.failure_count,
                ))

    def freeze(self) -> RunStats:
        """Make the stats read-only and return them."""
        with self._lock:
            self.stats.frozen = True
            return self.stats

    def snapshot(self) -> RunStats:
        """Consistent copy of the current stats."""
        with self._lock:
            return copy.deepcopy(self.stats)
