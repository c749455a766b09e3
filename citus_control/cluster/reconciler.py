"""Worker Reconciler: add and remove workers, verified against the Catalog.

Each mutation reads the Catalog's live worker count first, asks the
driver to converge on a target, and checks the outcome. The Catalog count
is shared with the autoscaler, so every path runs inside the cluster's
execution slot.
"""

from typing import Optional

import structlog

from citus_control.cluster.catalog import ClusterCatalog
from citus_control.cluster.driver import ProvisioningDriver
from citus_control.cluster.errors import GuardError, OperationFailedError
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.models import OperationOutcome
from citus_control.cluster.outcomes import parse_result
from citus_control.config import ScalingPolicy

logger = structlog.get_logger(__name__)


class WorkerReconciler:
    """Adds and removes worker nodes.

    Args:
        driver: Provisioning Driver running the worker scripts
        catalog: Cluster Catalog holding the authoritative membership
        locks: Per-cluster execution slots
        policy: Scaling policy, used for autoscaler scale-out
        lock_wait: Seconds a manual call queues for a busy cluster (None: forever)
    """

    def __init__(
        self,
        driver: ProvisioningDriver,
        catalog: ClusterCatalog,
        locks: ClusterLocks,
        policy: Optional[ScalingPolicy] = None,
        lock_wait: Optional[float] = None,
    ) -> None:
        self.driver = driver
        self.catalog = catalog
        self.locks = locks
        self.policy = policy or ScalingPolicy()
        self.lock_wait = lock_wait

    # ── Manual operations ─────────────────────────────────────────

    async def add_worker(self, cluster_id: str) -> OperationOutcome:
        """Add one worker and return its address.

        The operation fails unless the driver reports the registration
        marker, does not report a registration failure, and names the new
        worker's IP.
        """
        async with self.locks.hold(cluster_id, "add_worker", wait=self.lock_wait):
            try:
                current = await self.catalog.count_active_workers()
            except Exception as exc:
                await logger.aerror("worker_count_read_failed", cluster_id=cluster_id, error=str(exc))
                return OperationOutcome(
                    success=False,
                    message=f"Failed to read worker count for cluster {cluster_id}: {exc}",
                )

            target = current + 1
            await logger.ainfo("worker_adding", cluster_id=cluster_id, current=current, target=target)

            outcome = parse_result(await self.driver.run("add_worker", [cluster_id, str(target)]))
            if not outcome.success or not outcome.worker_ip:
                await logger.aerror(
                    "worker_add_failed",
                    cluster_id=cluster_id,
                    target=target,
                    marker_matched=outcome.success,
                    error=outcome.error or None,
                )
                return OperationOutcome(
                    success=False,
                    message=f"Failed to start new worker for cluster {cluster_id}",
                    expected_workers=target,
                )

            await logger.ainfo("worker_added", cluster_id=cluster_id, worker_ip=outcome.worker_ip, target=target)
            return OperationOutcome(
                success=True,
                message="Worker node added successfully",
                node=outcome.worker_ip,
                expected_workers=target,
            )

    async def remove_worker(self, cluster_id: str) -> OperationOutcome:
        """Remove one worker, never the last one.

        After a successful driver call the Catalog is re-read. A count that
        differs from the target is logged, not treated as a failure: the
        Catalog may lag behind the infrastructure.

        Raises:
            GuardError: The cluster has one worker or fewer.
        """
        async with self.locks.hold(cluster_id, "remove_worker", wait=self.lock_wait):
            try:
                current = await self.catalog.count_active_workers()
            except Exception as exc:
                await logger.aerror("worker_count_read_failed", cluster_id=cluster_id, error=str(exc))
                return OperationOutcome(
                    success=False,
                    message=f"Failed to read worker count for cluster {cluster_id}: {exc}",
                )

            if current <= 1:
                await logger.awarning("last_worker_removal_rejected", cluster_id=cluster_id, current=current)
                raise GuardError("Cannot remove the last worker node", cluster_id=cluster_id)

            target = current - 1
            await logger.ainfo("worker_removing", cluster_id=cluster_id, current=current, target=target)

            outcome = parse_result(await self.driver.run("remove_worker", [cluster_id, str(target)]))
            if not outcome.success:
                await logger.aerror("worker_remove_failed", cluster_id=cluster_id, target=target, error=outcome.error or None)
                return OperationOutcome(
                    success=False,
                    message=f"Failed to remove workers from cluster {cluster_id}",
                    expected_workers=target,
                )

            try:
                remaining = await self.catalog.count_active_workers()
            except Exception as exc:
                await logger.aerror("worker_count_read_failed", cluster_id=cluster_id, error=str(exc))
                return OperationOutcome(
                    success=False,
                    message=f"Workers removed but the remaining count could not be read: {exc}",
                    expected_workers=target,
                )

            if remaining != target:
                await logger.awarning(
                    "worker_count_mismatch",
                    cluster_id=cluster_id,
                    expected=target,
                    actual=remaining,
                )

            await logger.ainfo("workers_removed", cluster_id=cluster_id, remaining=remaining)
            return OperationOutcome(
                success=True,
                message=f"Workers removed successfully. Remaining workers: {remaining}",
                remaining_workers=remaining,
                expected_workers=target,
            )

    # ── Autoscaler path ───────────────────────────────────────────

    async def scale_out(self, cluster_id: str, ordinal: int) -> str:
        """Bring worker ``ordinal`` into the cluster and rebalance shards.

        Must be called with the cluster's slot already held. By default the
        worker host is registered with the Catalog directly; with
        ``provision_on_scale_out`` the driver provisions and registers it.

        Returns:
            Host name or address of the new worker.

        Raises:
            OperationFailedError: Provisioning did not succeed.
        """
        if self.policy.provision_on_scale_out:
            outcome = parse_result(await self.driver.run("add_worker", [cluster_id, str(ordinal)]))
            if not outcome.success or not outcome.worker_ip:
                raise OperationFailedError(
                    f"Failed to provision worker {ordinal} for cluster {cluster_id}",
                    cluster_id=cluster_id,
                )
            host = outcome.worker_ip
        else:
            host = self.policy.worker_host(ordinal)
            await self.catalog.add_node(host, self.policy.worker_port)

        await logger.ainfo("scale_out_node_added", cluster_id=cluster_id, host=host, ordinal=ordinal)
        await self.catalog.rebalance_shards()
        await logger.ainfo("scale_out_shards_rebalanced", cluster_id=cluster_id)
        return host
