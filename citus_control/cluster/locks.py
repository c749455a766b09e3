"""Exclusive execution slot for lifecycle mutations.

Every lifecycle-mutating operation (start, stop, add, remove and
autoscaler scale-out) runs inside :meth:`ClusterLocks.hold`. One catalog
connection serves one physical cluster and ClusterIds are not validated,
so by default every id maps onto a single catalog-scoped slot.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from citus_control.cluster.errors import ClusterBusyError

logger = structlog.get_logger(__name__)

CATALOG_SCOPE = "catalog"


class ClusterLocks:
    """asyncio.Lock slots, created on first use and dropped when idle.

    Args:
        scope: Key every ClusterId is serialized under. None gives each
            ClusterId its own slot.
    """

    def __init__(self, scope: Optional[str] = CATALOG_SCOPE) -> None:
        self.scope = scope
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._holders: dict[str, str] = {}

    def _key(self, cluster_id: str) -> str:
        return self.scope if self.scope is not None else cluster_id

    def is_locked(self, cluster_id: str) -> bool:
        lock = self._locks.get(self._key(cluster_id))
        return lock is not None and lock.locked()

    def holder(self, cluster_id: str) -> Optional[str]:
        """Name of the operation currently holding the slot, if any."""
        return self._holders.get(self._key(cluster_id))

    @property
    def active_slots(self) -> int:
        """Number of slots currently held or waited on."""
        return len(self._locks)

    @asynccontextmanager
    async def hold(
        self,
        cluster_id: str,
        operation: str,
        wait: Optional[float] = None,
    ) -> AsyncIterator[None]:
        """Hold the cluster's slot for the duration of the block.

        Args:
            cluster_id: Cluster to serialize on
            operation: Operation name, reported to callers that find the slot busy
            wait: Seconds to queue for the slot. None waits indefinitely,
                0 fails immediately when the slot is taken.

        Raises:
            ClusterBusyError: The slot was not obtained within ``wait``.
        """
        key = self._key(cluster_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1

        try:
            if wait is not None and wait <= 0:
                if lock.locked():
                    raise self._busy(key, cluster_id, operation)
                await lock.acquire()
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=wait)
                except asyncio.TimeoutError:
                    raise self._busy(key, cluster_id, operation) from None

            self._holders[key] = f"{operation}:{cluster_id}"
            logger.debug("cluster_slot_acquired", cluster_id=cluster_id, operation=operation)
            try:
                yield
            finally:
                self._holders.pop(key, None)
                lock.release()
                logger.debug("cluster_slot_released", cluster_id=cluster_id, operation=operation)
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def _busy(self, key: str, cluster_id: str, operation: str) -> ClusterBusyError:
        held_by = self._holders.get(key)
        logger.warning(
            "cluster_slot_busy",
            cluster_id=cluster_id,
            operation=operation,
            held_by=held_by,
        )
        return ClusterBusyError(
            f"Cluster {cluster_id} is busy with another operation ({held_by}); retry later",
            cluster_id=cluster_id,
            held_by=held_by,
        )
