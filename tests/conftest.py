"""Shared fixtures: in-memory stand-ins for the Catalog and the Driver."""

import asyncio
from typing import Callable, Optional, Union

import pytest

from citus_control.cluster.catalog import LoadSample
from citus_control.cluster.driver import DriverResult
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.models import WorkerNode
from citus_control.cluster.status import StatusReader

START_OK = (
    "Creating network...\n"
    "Registering worker 172.18.0.3\n"
    "🎉 Citus Cluster citus started successfully\n"
)
STOP_OK = "Removing containers...\n🧹 Citus Cluster citus stopped and cleaned up completely\n"
REMOVE_OK = "Stopping worker-3...\nWorkers removed successfully from both Docker and the Citus cluster\n"


def add_ok(ip: str) -> str:
    return (
        f"Starting container...\nRegistering worker {ip}\n"
        "Worker(s) added and registered to the Citus cluster successfully\n"
    )


class FakeCatalog:
    """In-memory Catalog holding a live worker list."""

    def __init__(self, worker_count: int = 0, total_connections: int = 0) -> None:
        self.workers = [
            WorkerNode(name=f"worker-{i}", port=5432) for i in range(1, worker_count + 1)
        ]
        self.total_connections = total_connections
        self.fail_reads = False
        self.reachable = True
        self.last_error: Optional[str] = None
        self.added_nodes: list[tuple[str, int]] = []
        self.rebalance_calls = 0

    def _check(self) -> None:
        if self.fail_reads:
            raise ConnectionError("catalog unreachable")

    async def list_active_workers(self) -> list[WorkerNode]:
        await asyncio.sleep(0)
        self._check()
        return list(self.workers)

    async def count_active_workers(self) -> int:
        await asyncio.sleep(0)
        self._check()
        return len(self.workers)

    async def sample_load(self) -> LoadSample:
        await asyncio.sleep(0)
        self._check()
        return LoadSample(worker_count=len(self.workers), total_connections=self.total_connections)

    async def add_node(self, host: str, port: int) -> None:
        self.added_nodes.append((host, port))
        self.workers.append(WorkerNode(name=host, port=port))

    async def rebalance_shards(self) -> None:
        self.rebalance_calls += 1

    async def ping(self) -> bool:
        self.last_error = None if self.reachable else "connection refused"
        return self.reachable


Output = Union[str, Callable[[list[str]], str]]


class FakeDriver:
    """Records driver calls and answers with scripted output."""

    def __init__(self) -> None:
        self.outputs: dict[str, Output] = {}
        self.calls: list[tuple[str, list[str]]] = []
        self.errors: dict[str, str] = {}

    async def run(self, operation: str, args: Optional[list[str]] = None) -> DriverResult:
        args = [str(a) for a in (args or [])]
        self.calls.append((operation, args))
        await asyncio.sleep(0)
        if operation in self.errors:
            return DriverResult(operation=operation, args=args, error=self.errors[operation])
        output = self.outputs.get(operation, "")
        if callable(output):
            output = output(args)
        return DriverResult(operation=operation, args=args, exit_code=0, output=output)

    def calls_for(self, operation: str) -> list[list[str]]:
        return [args for op, args in self.calls if op == operation]


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(worker_count=2)


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def locks() -> ClusterLocks:
    return ClusterLocks()


@pytest.fixture
def status_reader(catalog: FakeCatalog) -> StatusReader:
    return StatusReader(catalog)
