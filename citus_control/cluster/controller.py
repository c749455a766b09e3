"""Cluster Controller: start and stop a whole cluster."""

from typing import Optional

import structlog

from citus_control.cluster.driver import ProvisioningDriver
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.models import ClusterStatus, OperationOutcome
from citus_control.cluster.outcomes import parse_result
from citus_control.cluster.status import StatusReader

logger = structlog.get_logger(__name__)


class ClusterController:
    """Drives cluster start/stop through the Provisioning Driver.

    Args:
        driver: Provisioning Driver running the lifecycle scripts
        status_reader: Used to report the cluster's state after a start
        locks: Per-cluster execution slots shared with the reconciler
        lock_wait: Seconds a call queues for a busy cluster (None: forever)
    """

    def __init__(
        self,
        driver: ProvisioningDriver,
        status_reader: StatusReader,
        locks: ClusterLocks,
        lock_wait: Optional[float] = None,
    ) -> None:
        self.driver = driver
        self.status_reader = status_reader
        self.locks = locks
        self.lock_wait = lock_wait

    async def start(self, cluster_id: str, workers_count: int) -> OperationOutcome:
        """Start a cluster with ``workers_count`` workers.

        On success the returned status is read back from the Catalog. A
        failed start is not rolled back.
        """
        async with self.locks.hold(cluster_id, "start", wait=self.lock_wait):
            await logger.ainfo("cluster_starting", cluster_id=cluster_id, workers_count=workers_count)
            result = await self.driver.run("start", [cluster_id, str(workers_count)])
            outcome = parse_result(result)

            if not outcome.success:
                await logger.aerror(
                    "cluster_start_failed",
                    cluster_id=cluster_id,
                    error=outcome.error or None,
                )
                return OperationOutcome(
                    success=False,
                    message=f"Failed to start cluster {cluster_id}",
                    status=ClusterStatus.empty(),
                )

            status = await self.status_reader.get_status(cluster_id)
            await logger.ainfo(
                "cluster_started",
                cluster_id=cluster_id,
                worker_count=status.worker_count,
                worker_ip=outcome.worker_ip,
            )
            return OperationOutcome(
                success=True,
                message=f"Cluster {cluster_id} started successfully",
                status=status,
            )

    async def stop(self, cluster_id: str) -> OperationOutcome:
        """Stop a cluster. Success is judged from the driver output alone."""
        async with self.locks.hold(cluster_id, "stop", wait=self.lock_wait):
            await logger.ainfo("cluster_stopping", cluster_id=cluster_id)
            outcome = parse_result(await self.driver.run("stop", [cluster_id]))

            if not outcome.success:
                await logger.aerror("cluster_stop_failed", cluster_id=cluster_id, error=outcome.error or None)
                return OperationOutcome(success=False, message=f"Failed to stop cluster {cluster_id}")

            await logger.ainfo("cluster_stopped", cluster_id=cluster_id)
            return OperationOutcome(success=True, message=f"Cluster {cluster_id} stopped successfully")
