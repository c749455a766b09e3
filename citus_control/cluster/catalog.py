"""Cluster Catalog: the Citus control-plane queries the orchestrator relies on.

The Catalog is the single source of truth for node membership. Nothing
here caches; every call is a round-trip.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from citus_control.cluster.models import WorkerNode
from citus_control.storage.database import Database

logger = structlog.get_logger(__name__)

ACTIVE_WORKERS_SQL = "SELECT node_name, node_port FROM citus_get_active_worker_nodes()"
ACTIVE_WORKER_COUNT_SQL = "SELECT count(*) AS count FROM citus_get_active_worker_nodes()"
LOAD_SAMPLE_SQL = """
    SELECT
        (SELECT count(*) FROM citus_get_active_worker_nodes()) AS worker_count,
        (SELECT count(*) FROM pg_stat_activity) AS total_connections
"""
ADD_NODE_SQL = "SELECT * FROM citus_add_node(:host, :port)"
REBALANCE_SQL = "SELECT rebalance_table_shards()"


@dataclass(frozen=True)
class LoadSample:
    """Connection load across the cluster at one instant."""

    worker_count: int
    total_connections: int

    @property
    def avg_connections_per_node(self) -> Optional[float]:
        """Average connections per worker, None when there are no workers."""
        if self.worker_count <= 0:
            return None
        return self.total_connections / self.worker_count


class ClusterCatalog:
    """Query/command interface to the Citus coordinator."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def list_active_workers(self) -> list[WorkerNode]:
        rows = await self.database.fetch_all(ACTIVE_WORKERS_SQL)
        return [WorkerNode.from_row(row) for row in rows]

    async def count_active_workers(self) -> int:
        row = await self.database.fetch_one(ACTIVE_WORKER_COUNT_SQL)
        return int(row["count"]) if row else 0

    async def sample_load(self) -> LoadSample:
        """Worker count and total connection count in a single query."""
        row = await self.database.fetch_one(LOAD_SAMPLE_SQL)
        if not row:
            return LoadSample(worker_count=0, total_connections=0)
        return LoadSample(
            worker_count=int(row["worker_count"]),
            total_connections=int(row["total_connections"]),
        )

    async def add_node(self, host: str, port: int) -> None:
        """Register a node address with the coordinator.

        This records the address only; nothing is provisioned.
        """
        await self.database.execute(ADD_NODE_SQL, {"host": host, "port": port})
        await logger.ainfo("catalog_node_added", host=host, port=port)

    async def rebalance_shards(self) -> None:
        await self.database.execute(REBALANCE_SQL)
        await logger.ainfo("catalog_shards_rebalanced")

    async def ping(self) -> bool:
        return await self.database.health_check()

    @property
    def last_error(self) -> Optional[str]:
        """Reason the last ping failed; None after a successful ping."""
        return self.database.last_error
