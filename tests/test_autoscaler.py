"""Tests for the autoscaler decision and loop."""

import asyncio

import pytest

from citus_control.cluster.autoscaler import (
    FAILED,
    NO_ACTION,
    SCALE_OUT,
    SKIPPED,
    Autoscaler,
    evaluate,
)
from citus_control.cluster.catalog import LoadSample
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.reconciler import WorkerReconciler
from citus_control.config import ScalingPolicy
from tests.conftest import FakeCatalog, FakeDriver, add_ok

POLICY = ScalingPolicy(max_connections_per_node=100, max_workers=5, check_interval_ms=1000)


def make_autoscaler(catalog: FakeCatalog, locks: ClusterLocks, **kwargs) -> Autoscaler:
    reconciler = WorkerReconciler(FakeDriver(), catalog, locks, policy=POLICY)
    return Autoscaler(catalog, reconciler, locks, POLICY, cluster_id="citus", **kwargs)


class TestEvaluate:
    """Test the scale-out rule."""

    def test_high_load_below_ceiling_scales_out(self) -> None:
        decision = evaluate(LoadSample(worker_count=2, total_connections=250), POLICY)
        assert decision.action == SCALE_OUT
        assert decision.target_ordinal == 3

    def test_at_ceiling_no_action(self) -> None:
        decision = evaluate(LoadSample(worker_count=5, total_connections=1000), POLICY)
        assert decision.action == NO_ACTION
        assert decision.reason == "max_workers_reached"

    def test_threshold_is_exclusive(self) -> None:
        decision = evaluate(LoadSample(worker_count=2, total_connections=200), POLICY)
        assert decision.action == NO_ACTION
        assert decision.reason == "load_within_threshold"

    def test_zero_workers_is_guarded(self) -> None:
        decision = evaluate(LoadSample(worker_count=0, total_connections=500), POLICY)
        assert decision.action == NO_ACTION
        assert decision.reason == "no_active_workers"


class TestTick:
    """Test a single autoscaler tick."""

    @pytest.mark.asyncio
    async def test_scale_out_registers_next_ordinal_once(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=250)
        autoscaler = make_autoscaler(catalog, locks)

        decision = await autoscaler.tick()

        assert decision.action == SCALE_OUT
        assert decision.host == "worker-3"
        assert catalog.added_nodes == [("worker-3", 5432)]
        assert catalog.rebalance_calls == 1

    @pytest.mark.asyncio
    async def test_no_scale_out_at_max_workers(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=5, total_connections=1250)
        autoscaler = make_autoscaler(catalog, locks)

        decision = await autoscaler.tick()

        assert decision.action == NO_ACTION
        assert catalog.added_nodes == []
        assert catalog.rebalance_calls == 0

    @pytest.mark.asyncio
    async def test_catalog_error_is_swallowed(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=250)
        catalog.fail_reads = True
        autoscaler = make_autoscaler(catalog, locks)

        decision = await autoscaler.tick()

        assert decision.action == FAILED
        assert "unreachable" in decision.reason
        assert not locks.is_locked("citus")

    @pytest.mark.asyncio
    async def test_busy_cluster_skips_tick(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=250)
        autoscaler = make_autoscaler(catalog, locks)

        async with locks.hold("citus", "add_worker"):
            decision = await autoscaler.tick()

        assert decision.action == SKIPPED
        assert catalog.added_nodes == []

    @pytest.mark.asyncio
    async def test_manual_add_under_another_id_skips_tick(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=250)
        in_driver = asyncio.Event()
        release = asyncio.Event()

        class BlockingDriver(FakeDriver):
            async def run(self, operation, args=None):
                in_driver.set()
                await release.wait()
                return await super().run(operation, args)

        driver = BlockingDriver()
        driver.outputs["add_worker"] = add_ok("172.18.0.5")
        manual = WorkerReconciler(driver, catalog, locks, policy=POLICY)
        autoscaler = make_autoscaler(catalog, locks)

        add = asyncio.create_task(manual.add_worker("prod"))
        await asyncio.wait_for(in_driver.wait(), timeout=1)
        decision = await autoscaler.tick()
        release.set()
        outcome = await add

        assert decision.action == SKIPPED
        assert catalog.added_nodes == []
        assert outcome.success
        assert driver.calls_for("add_worker") == [["prod", "3"]]

    @pytest.mark.asyncio
    async def test_status_reports_last_decision(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=250)
        autoscaler = make_autoscaler(catalog, locks, clock=lambda: 1234.5)

        await autoscaler.tick()
        status = autoscaler.status()

        assert status["ticks"] == 1
        assert status["last_tick_at"] == 1234.5
        assert status["last_decision"]["action"] == SCALE_OUT
        assert status["last_decision"]["worker_count"] == 2
        assert status["running"] is False


class TestLoop:
    """Test the background loop lifecycle."""

    @pytest.mark.asyncio
    async def test_loop_ticks_each_interval_and_survives_errors(self, locks: ClusterLocks) -> None:
        catalog = FakeCatalog(worker_count=2, total_connections=0)
        catalog.fail_reads = True
        intervals: list[float] = []
        three_ticks = asyncio.Event()

        async def fake_sleep(seconds: float) -> None:
            intervals.append(seconds)
            if len(intervals) > 3:
                three_ticks.set()
                await asyncio.Event().wait()
            await asyncio.sleep(0)

        autoscaler = make_autoscaler(catalog, locks, sleep=fake_sleep)
        autoscaler.start()
        assert autoscaler.running

        await asyncio.wait_for(three_ticks.wait(), timeout=1)
        await autoscaler.stop()

        assert intervals[:3] == [1.0, 1.0, 1.0]
        assert autoscaler.status()["ticks"] == 3
        assert not autoscaler.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, locks: ClusterLocks) -> None:
        autoscaler = make_autoscaler(FakeCatalog(), locks)
        autoscaler.start()
        task = autoscaler._task
        autoscaler.start()

        assert autoscaler._task is task
        await autoscaler.stop()
