import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import distributor
from config import DispatchMode, RunConfig
from distributor import (
    BatchDistributor,
    WorkRange,
    WorkerPartitionDistributor,
    create_distributor,
    plan_batches,
    plan_partitions,
)
from errors import ConfigurationError

from factories import FakeExecutor


def _always():
    return True


# =============================================================================
# Planning
# =============================================================================

class TestPlanBatches:
    def test_even_split(self) -> None:
        assert plan_batches(20, 5) == [WorkRange(0, 5), WorkRange(5, 5), WorkRange(10, 5), WorkRange(15, 5)]

    def test_last_batch_is_remainder(self) -> None:
        batches = plan_batches(23, 10)
        assert [b.count for b in batches] == [10, 10, 3]
        assert batches[-1].ids() == range(20, 23)

    def test_empty_run(self) -> None:
        assert plan_batches(0, 10) == []

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ConfigurationError):
            plan_batches(10, 0)


class TestPlanPartitions:
    def test_ceil_sized_ranges(self) -> None:
        assert plan_partitions(10, 3) == [WorkRange(0, 4), WorkRange(4, 4), WorkRange(8, 2)]

    def test_workers_without_work_are_skipped(self) -> None:
        # ceil(5 / 4) == 2 -> 2, 2, 1 and the fourth worker gets nothing
        assert plan_partitions(5, 4) == [WorkRange(0, 2), WorkRange(2, 2), WorkRange(4, 1)]

    def test_more_workers_than_requests(self) -> None:
        assert plan_partitions(2, 8) == [WorkRange(0, 1), WorkRange(1, 1)]

    def test_empty_run(self) -> None:
        assert plan_partitions(0, 4) == []

    def test_invalid_worker_count(self) -> None:
        with pytest.raises(ConfigurationError):
            plan_partitions(10, 0)


@given(total=st.integers(min_value=0, max_value=5000), size=st.integers(min_value=1, max_value=300))
def test_plans_cover_range_exactly_once(total: int, size: int) -> None:
    for plan in (plan_batches(total, size), plan_partitions(total, size)):
        ids = [i for r in plan for i in r.ids()]
        assert ids == list(range(total))
        assert all(r.count > 0 for r in plan)


@given(total=st.integers(min_value=1, max_value=5000), workers=st.integers(min_value=1, max_value=64))
def test_partitions_bounded_by_worker_count(total: int, workers: int) -> None:
    partitions = plan_partitions(total, workers)
    assert len(partitions) <= workers
    assert max(p.count for p in partitions) == -(-total // workers)


# =============================================================================
# Batch mode
# =============================================================================

class TestBatchDistributor:
    @pytest.mark.asyncio
    async def test_dispatches_every_id_once_in_order(self) -> None:
        fake, folded = FakeExecutor(delay=0.001), []
        summary = await BatchDistributor(23, 5).dispatch(fake, folded.append, _always)
        assert fake.dispatched == list(range(23))
        assert sorted(o.request_id for o in folded) == list(range(23))
        assert summary.dispatched == 23 and not summary.stopped_early

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self) -> None:
        fake = FakeExecutor(delay=0.005)
        await BatchDistributor(40, 7).dispatch(fake, lambda o: None, _always)
        assert fake.max_in_flight == 7

    @pytest.mark.asyncio
    async def test_batches_do_not_overlap(self) -> None:
        events = []

        async def execute(request_id):
            events.append(("start", request_id))
            await asyncio.sleep(0.001 * (request_id % 3))
            events.append(("end", request_id))
            return FakeExecutor().outcome_for(request_id)

        await BatchDistributor(9, 3).dispatch(execute, lambda o: None, _always)
        for batch_start in (3, 6):
            first_start = events.index(("start", batch_start))
            finished_before = {rid for kind, rid in events[:first_start] if kind == "end"}
            assert set(range(batch_start)) <= finished_before

    @pytest.mark.asyncio
    async def test_delay_only_between_batches(self, monkeypatch) -> None:
        sleeps = []
        real_sleep = asyncio.sleep

        async def recording_sleep(seconds, *args, **kwargs):
            sleeps.append(seconds)
            await real_sleep(0)

        monkeypatch.setattr(distributor.asyncio, "sleep", recording_sleep)
        await BatchDistributor(10, 4, inter_batch_delay=0.25).dispatch(FakeExecutor(), lambda o: None, _always)
        assert sleeps.count(0.25) == 2

    @pytest.mark.asyncio
    async def test_closed_gate_stops_before_next_batch(self) -> None:
        fake = FakeExecutor()
        folded = []

        def gate():
            return len(folded) < 12

        summary = await BatchDistributor(50, 10, inter_batch_delay=0.01).dispatch(fake, folded.append, gate)
        # the second batch (ids 10-19) is drained, not cut short
        assert fake.dispatched == list(range(20))
        assert len(folded) == 20
        assert summary.stopped_early and summary.dispatched == 20

    @pytest.mark.asyncio
    async def test_empty_run(self) -> None:
        fake = FakeExecutor()
        summary = await BatchDistributor(0, 10).dispatch(fake, lambda o: None, _always)
        assert fake.dispatched == [] and summary.dispatched == 0


# =============================================================================
# Worker-partition mode
# =============================================================================

class TestWorkerPartitionDistributor:
    @pytest.mark.asyncio
    async def test_each_worker_runs_its_range_sequentially(self) -> None:
        fake, folded = FakeExecutor(delay=0.001), []
        summary = await WorkerPartitionDistributor(10, 3).dispatch(fake, folded.append, _always)

        assert sorted(fake.dispatched) == list(range(10))
        assert sorted(o.request_id for o in folded) == list(range(10))
        assert fake.max_in_flight <= 3
        for part in plan_partitions(10, 3):
            own = [i for i in fake.dispatched if i in part.ids()]
            assert own == list(part.ids())
        assert summary.dispatched == 10

    @pytest.mark.asyncio
    async def test_outcomes_pass_through_single_consumer(self) -> None:
        consumer_tasks = set()

        def sink(outcome):
            consumer_tasks.add(asyncio.current_task())

        await WorkerPartitionDistributor(30, 4).dispatch(FakeExecutor(), sink, _always)
        assert len(consumer_tasks) == 1

    @pytest.mark.asyncio
    async def test_closed_gate_stops_all_workers(self) -> None:
        fake = FakeExecutor(delay=0.001)
        folded = []

        summary = await WorkerPartitionDistributor(100, 4).dispatch(
            fake, folded.append, lambda: len(folded) < 10
        )
        assert len(fake.dispatched) < 100
        assert len(folded) == len(fake.dispatched) == summary.dispatched
        assert summary.stopped_early


# =============================================================================
# Both modes
# =============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [DispatchMode.BATCH, DispatchMode.WORKERS])
async def test_factory_builds_requested_strategy(mode) -> None:
    config = RunConfig(total_requests=12, concurrency=5, worker_count=5, mode=mode, inter_batch_delay=0)
    dist = create_distributor(config)
    expected = BatchDistributor if mode is DispatchMode.BATCH else WorkerPartitionDistributor
    assert isinstance(dist, expected)

    fake = FakeExecutor()
    await dist.dispatch(fake, lambda o: None, _always)
    assert sorted(fake.dispatched) == list(range(12))


@settings(max_examples=40, deadline=None)
@given(
    total=st.integers(min_value=0, max_value=200),
    parallelism=st.integers(min_value=1, max_value=25),
    mode=st.sampled_from(list(DispatchMode)),
)
def test_every_request_dispatched_exactly_once(total: int, parallelism: int, mode: DispatchMode) -> None:
    config = RunConfig(
        total_requests=total,
        concurrency=parallelism,
        worker_count=parallelism,
        mode=mode,
        inter_batch_delay=0,
    )
    fake, folded = FakeExecutor(), []
    asyncio.run(create_distributor(config).dispatch(fake, folded.append, _always))

    assert sorted(fake.dispatched) == list(range(total))
    assert len(set(fake.dispatched)) == total
    assert sorted(o.request_id for o in folded) == list(range(total))


# =============================================================================
# Failures inside dispatch
# =============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [DispatchMode.BATCH, DispatchMode.WORKERS])
async def test_sink_error_surfaces_after_siblings_settle(mode) -> None:
    config = RunConfig(total_requests=12, concurrency=4, worker_count=4, mode=mode, inter_batch_delay=0)
    fake, folded = FakeExecutor(delay=0.01), []

    def sink(outcome):
        if outcome.request_id == 0:
            raise ValueError("sink rejected 0")
        folded.append(outcome.request_id)

    with pytest.raises(ValueError, match="sink rejected 0"):
        await create_distributor(config).dispatch(fake, sink, _always)

    assert fake.in_flight == 0
    assert sorted(folded + [0]) == sorted(fake.completed)
    assert len(fake.dispatched) < 12
