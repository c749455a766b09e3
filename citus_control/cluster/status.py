"""Read-only view of the cluster's active workers."""

from typing import Optional

import structlog

from citus_control.cluster.catalog import ClusterCatalog
from citus_control.cluster.models import ClusterStatus, WorkerNode

logger = structlog.get_logger(__name__)


class StatusReader:
    """Builds ClusterStatus snapshots straight from the Catalog.

    ``get_status`` fails open: a Catalog error yields a degraded empty
    status instead of an exception.
    """

    def __init__(self, catalog: ClusterCatalog) -> None:
        self.catalog = catalog
        self._catalog_reachable: Optional[bool] = None
        self._last_error: Optional[str] = None

    @property
    def catalog_reachable(self) -> Optional[bool]:
        """Outcome of the last status read; None before the first read."""
        return self._catalog_reachable

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def get_status(self, cluster_id: str) -> ClusterStatus:
        try:
            workers = await self.catalog.list_active_workers()
        except Exception as exc:
            self._catalog_reachable = False
            self._last_error = str(exc)
            await logger.aerror("get_cluster_status_failed", cluster_id=cluster_id, error=str(exc))
            return ClusterStatus.empty(degraded=True)

        self._catalog_reachable = True
        self._last_error = None
        return ClusterStatus.from_workers(workers)

    async def list_workers(self, cluster_id: str) -> list[WorkerNode]:
        """Active workers, with Catalog errors propagated to the caller."""
        workers = await self.catalog.list_active_workers()
        await logger.ainfo("workers_listed", cluster_id=cluster_id, worker_count=len(workers))
        return workers
