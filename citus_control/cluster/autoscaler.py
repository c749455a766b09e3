"""Connection-load autoscaler for the Citus cluster.

A background task samples the Catalog on a fixed interval and adds one
worker when the average connection count per worker exceeds the policy
threshold. There is no scale-in and no cooldown beyond the interval.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

import structlog

from citus_control.cluster.catalog import ClusterCatalog, LoadSample
from citus_control.cluster.errors import ClusterBusyError
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.reconciler import WorkerReconciler
from citus_control.config import ScalingPolicy

logger = structlog.get_logger(__name__)

SCALE_OUT = "scale_out"
NO_ACTION = "none"
SKIPPED = "skipped"
FAILED = "error"


@dataclass(frozen=True)
class ScalingDecision:
    """What one tick decided, and why."""

    action: str
    reason: str
    sample: Optional[LoadSample] = None
    target_ordinal: Optional[int] = None
    host: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "reason": self.reason,
            "worker_count": self.sample.worker_count if self.sample else None,
            "total_connections": self.sample.total_connections if self.sample else None,
            "target_ordinal": self.target_ordinal,
            "host": self.host,
        }


def evaluate(sample: LoadSample, policy: ScalingPolicy) -> ScalingDecision:
    """Decide whether a load sample calls for a new worker."""
    avg = sample.avg_connections_per_node
    if avg is None:
        return ScalingDecision(action=NO_ACTION, reason="no_active_workers", sample=sample)

    if avg <= policy.max_connections_per_node:
        return ScalingDecision(action=NO_ACTION, reason="load_within_threshold", sample=sample)

    if sample.worker_count >= policy.max_workers:
        return ScalingDecision(action=NO_ACTION, reason="max_workers_reached", sample=sample)

    return ScalingDecision(
        action=SCALE_OUT,
        reason="high_load",
        sample=sample,
        target_ordinal=sample.worker_count + 1,
    )


class Autoscaler:
    """Periodic scale-out loop tied to the application lifecycle.

    Ticks share the cluster's execution slot with manual operations. A
    tick that finds the slot taken is skipped rather than queued.

    Args:
        catalog: Cluster Catalog to sample
        reconciler: Performs the scale-out
        locks: Per-cluster execution slots shared with the manual API
        policy: Thresholds and interval
        cluster_id: Cluster the loop acts on
        sleep: Awaitable sleep, replaceable in tests
        clock: Wall clock used for tick timestamps
    """

    def __init__(
        self,
        catalog: ClusterCatalog,
        reconciler: WorkerReconciler,
        locks: ClusterLocks,
        policy: ScalingPolicy,
        cluster_id: str,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.catalog = catalog
        self.reconciler = reconciler
        self.locks = locks
        self.policy = policy
        self.cluster_id = cluster_id
        self._sleep = sleep
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._tick_count = 0
        self._last_tick_at: Optional[float] = None
        self._last_decision: Optional[ScalingDecision] = None

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "autoscaler_started",
            cluster_id=self.cluster_id,
            interval_seconds=self.policy.check_interval_seconds,
            max_connections_per_node=self.policy.max_connections_per_node,
            max_workers=self.policy.max_workers,
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await logger.ainfo("autoscaler_stopped", cluster_id=self.cluster_id, ticks=self._tick_count)

    async def _loop(self) -> None:
        while self._running:
            try:
                await self._sleep(self.policy.check_interval_seconds)
                await self.tick()
            except asyncio.CancelledError:
                return
            except Exception as e:
                await logger.aerror("autoscaler_loop_error", error=str(e))

    # ── Tick ──────────────────────────────────────────────────────

    async def tick(self) -> ScalingDecision:
        """Sample once and scale out if needed. Never raises."""
        self._tick_count += 1
        self._last_tick_at = self._clock()

        try:
            async with self.locks.hold(self.cluster_id, "autoscale", wait=0):
                sample = await self.catalog.sample_load()
                decision = evaluate(sample, self.policy)

                if decision.action == SCALE_OUT:
                    await logger.ainfo(
                        "autoscaler_high_load",
                        cluster_id=self.cluster_id,
                        worker_count=sample.worker_count,
                        total_connections=sample.total_connections,
                        avg_connections_per_node=sample.avg_connections_per_node,
                        target_ordinal=decision.target_ordinal,
                    )
                    host = await self.reconciler.scale_out(self.cluster_id, decision.target_ordinal)
                    decision = replace(decision, host=host)
                else:
                    logger.debug(
                        "autoscaler_no_action",
                        cluster_id=self.cluster_id,
                        reason=decision.reason,
                        worker_count=sample.worker_count,
                        total_connections=sample.total_connections,
                    )
        except ClusterBusyError:
            decision = ScalingDecision(action=SKIPPED, reason="cluster_busy")
        except Exception as e:
            await logger.aerror("autoscaler_tick_failed", cluster_id=self.cluster_id, error=str(e))
            decision = ScalingDecision(action=FAILED, reason=str(e))

        self._last_decision = decision
        return decision

    def status(self) -> dict[str, Any]:
        """Report loop state for health endpoints."""
        return {
            "enabled": self.policy.enabled,
            "running": self.running,
            "cluster_id": self.cluster_id,
            "ticks": self._tick_count,
            "last_tick_at": self._last_tick_at,
            "last_decision": self._last_decision.to_dict() if self._last_decision else None,
        }
