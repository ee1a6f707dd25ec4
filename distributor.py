"""
Work distribution strategies.

Both strategies hand out every request id in `[0, total_requests)` exactly
once, in ascending order, unless the dispatch gate closes first:

- BatchDistributor: a single loop launches `concurrency` executions at a
  time and waits for the whole batch before starting the next one.
- WorkerPartitionDistributor: the id range is split into contiguous
  partitions, one independent worker task per partition; workers run their
  ids sequentially and pass outcomes back through a queue to one consumer.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from config import DispatchMode, RunConfig
from errors import ConfigurationError
from outcomes import Outcome

ExecuteFn = Callable[[int], Awaitable[Outcome]]
OutcomeSink = Callable[[Outcome], None]
DispatchGate = Callable[[], bool]


@dataclass(frozen=True)
class WorkRange:
    """Contiguous block of request ids `[start, start + count)`."""
    start: int
    count: int

    @property
    def stop(self) -> int:
        return self.start + self.count

    def ids(self) -> range:
        return range(self.start, self.stop)


@dataclass(frozen=True)
class DispatchSummary:
    dispatched: int
    planned: int

    @property
    def stopped_early(self) -> bool:
        return self.dispatched < self.planned


def plan_batches(total_requests: int, concurrency: int) -> List[WorkRange]:
    """Split the run into consecutive batches of at most `concurrency` ids."""
    if concurrency < 1:
        raise ConfigurationError(f"concurrency must be >= 1, got {concurrency}")
    return [
        WorkRange(start, min(concurrency, total_requests - start))
        for start in range(0, total_requests, concurrency)
    ]


def plan_partitions(total_requests: int, worker_count: int) -> List[WorkRange]:
    """
    Split the run into at most `worker_count` contiguous partitions of
    `ceil(total / workers)` ids. Workers that would get nothing are dropped.
    """
    if worker_count < 1:
        raise ConfigurationError(f"worker_count must be >= 1, got {worker_count}")
    per_worker = math.ceil(total_requests / worker_count)
    partitions = []
    start = 0
    for _ in range(worker_count):
        count = min(per_worker, total_requests - start)
        if count <= 0:
            break
        partitions.append(WorkRange(start, count))
        start += count
    return partitions


def _raise_first_error(results: list) -> None:
    for result in results:
        if isinstance(result, BaseException):
            raise result


class Distributor:
    """Base class for dispatch strategies."""

    def __init__(self, total_requests: int):
        self.total_requests = total_requests

    async def dispatch(
        self,
        execute: ExecuteFn,
        sink: OutcomeSink,
        may_dispatch: DispatchGate,
    ) -> DispatchSummary:
        """
        Run the work. `sink` receives each outcome as it completes;
        `may_dispatch` is consulted before any new work is started.
        Returns only once nothing is in flight. If an execution or the sink
        raises, no new work is started, every sibling still in flight is
        awaited and folded, and the first error is then re-raised.
        """
        raise NotImplementedError


class BatchDistributor(Distributor):

    def __init__(self, total_requests: int, concurrency: int, inter_batch_delay: float = 0):
        super().__init__(total_requests)
        self.concurrency = concurrency
        self.inter_batch_delay = inter_batch_delay
        self.batches = plan_batches(total_requests, concurrency)

    async def dispatch(self, execute, sink, may_dispatch) -> DispatchSummary:
        dispatched = 0

        async def run_one(request_id: int):
            outcome = await execute(request_id)
            sink(outcome)

        for batch_num, batch in enumerate(self.batches):
            if not may_dispatch():
                break

            dispatched += batch.count
            results = await asyncio.gather(*[run_one(i) for i in batch.ids()], return_exceptions=True)
            _raise_first_error(results)

            is_last = batch_num == len(self.batches) - 1
            if self.inter_batch_delay > 0 and not is_last and may_dispatch():
                await asyncio.sleep(self.inter_batch_delay)

        return DispatchSummary(dispatched=dispatched, planned=self.total_requests)


class WorkerPartitionDistributor(Distributor):

    def __init__(self, total_requests: int, worker_count: int):
        super().__init__(total_requests)
        self.worker_count = worker_count
        self.partitions = plan_partitions(total_requests, worker_count)

    async def dispatch(self, execute, sink, may_dispatch) -> DispatchSummary:
        queue: asyncio.Queue = asyncio.Queue()
        done = object()
        dispatched = 0
        crashed = False

        async def worker(partition: WorkRange):
            nonlocal dispatched, crashed
            for request_id in partition.ids():
                if crashed or not may_dispatch():
                    return
                dispatched += 1
                try:
                    outcome = await execute(request_id)
                except Exception:
                    crashed = True
                    raise
                await queue.put(outcome)

        async def consumer():
            nonlocal crashed
            errors = []
            while True:
                item = await queue.get()
                if item is done:
                    _raise_first_error(errors)
                    return
                try:
                    sink(item)
                except Exception as e:
                    crashed = True
                    errors.append(e)

        consumer_task = asyncio.create_task(consumer())
        try:
            results = await asyncio.gather(*[worker(p) for p in self.partitions], return_exceptions=True)
        finally:
            await queue.put(done)
            await consumer_task

        _raise_first_error(results)
        return DispatchSummary(dispatched=dispatched, planned=self.total_requests)


def create_distributor(config: RunConfig) -> Distributor:
    """Build the dispatch strategy selected by `config.mode`."""
    if config.mode is DispatchMode.BATCH:
        return BatchDistributor(config.total_requests, config.concurrency, config.inter_batch_delay)
    if config.mode is DispatchMode.WORKERS:
        return WorkerPartitionDistributor(config.total_requests, config.worker_count)
    raise ConfigurationError(f"Unsupported dispatch mode: {config.mode!r}")
