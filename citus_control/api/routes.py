"""HTTP routes for the cluster control surface.

Handlers are a pass-through to the core operations: they unpack the
request, call the controller/reconciler/status reader and shape the
response. Failed outcomes become OrchestratorErrors, which the
application maps onto status codes.
"""

from typing import Any, Awaitable, Callable, TypeVar

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from citus_control.cluster.errors import OperationFailedError, OrchestratorError
from citus_control.cluster.models import OperationOutcome

logger = structlog.get_logger(__name__)

T = TypeVar("T")

health_router = APIRouter(tags=["health"])
cluster_router = APIRouter(prefix="/cluster", tags=["cluster"])


class StartClusterRequest(BaseModel):
    """Body of ``POST /cluster/{cluster_id}/start``."""

    model_config = ConfigDict(populate_by_name=True)

    workers_count: int = Field(..., alias="workersCount", ge=1)


def _control_plane(request: Request):
    return request.app.state.control_plane


async def _call(cluster_id: str, operation: Callable[[], Awaitable[T]]) -> T:
    """Run a core operation, turning unexpected faults into 500s."""
    try:
        return await operation()
    except OrchestratorError:
        raise
    except Exception as exc:
        await logger.aerror("unexpected_operation_error", cluster_id=cluster_id, error=str(exc))
        raise OperationFailedError(str(exc), cluster_id=cluster_id) from exc


def _require_success(outcome: OperationOutcome, cluster_id: str) -> None:
    if not outcome.success:
        raise OperationFailedError(outcome.message, cluster_id=cluster_id)


# ── Health ────────────────────────────────────────────────────────


@health_router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    connected = await plane.catalog.ping()
    body: dict[str, Any] = {
        "status": "OK" if connected else "ERROR",
        "database": "connected" if connected else "disconnected",
        "catalog_reachable": plane.status_reader.catalog_reachable,
        "autoscaler": plane.autoscaler.status(),
    }
    if not connected:
        body["error"] = plane.catalog.last_error or plane.status_reader.last_error
    return body


# ── Cluster lifecycle ─────────────────────────────────────────────


@cluster_router.post("/{cluster_id}/start", summary="Start a cluster")
async def start_cluster(cluster_id: str, body: StartClusterRequest, request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    outcome = await _call(cluster_id, lambda: plane.controller.start(cluster_id, body.workers_count))
    _require_success(outcome, cluster_id)
    return {
        "success": True,
        "message": outcome.message,
        "status": outcome.status.to_response() if outcome.status else None,
    }


@cluster_router.post("/{cluster_id}/stop", summary="Stop a cluster")
async def stop_cluster(cluster_id: str, request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    outcome = await _call(cluster_id, lambda: plane.controller.stop(cluster_id))
    _require_success(outcome, cluster_id)
    return {"success": True, "message": outcome.message}


# ── Workers ───────────────────────────────────────────────────────


@cluster_router.get("/{cluster_id}/workers", summary="Get cluster workers")
async def list_workers(cluster_id: str, request: Request) -> list[dict[str, Any]]:
    plane = _control_plane(request)
    try:
        workers = await plane.status_reader.list_workers(cluster_id)
    except Exception as exc:
        await logger.aerror("workers_fetch_failed", cluster_id=cluster_id, error=str(exc))
        raise OperationFailedError("Failed to fetch worker nodes", cluster_id=cluster_id) from exc
    return [worker.model_dump(by_alias=True) for worker in workers]


@cluster_router.post("/{cluster_id}/workers/add", summary="Add a worker to the cluster")
async def add_worker(cluster_id: str, request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    outcome = await _call(cluster_id, lambda: plane.reconciler.add_worker(cluster_id))
    _require_success(outcome, cluster_id)
    return {"success": True, "message": outcome.message, "node": outcome.node}


@cluster_router.post("/{cluster_id}/workers/remove", summary="Remove a worker from the cluster")
async def remove_worker(cluster_id: str, request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    outcome = await _call(cluster_id, lambda: plane.reconciler.remove_worker(cluster_id))
    _require_success(outcome, cluster_id)
    return {
        "success": True,
        "message": outcome.message,
        "remainingWorkers": outcome.remaining_workers,
    }


# ── Status ────────────────────────────────────────────────────────


@cluster_router.get("/{cluster_id}/status", summary="Get cluster status")
async def cluster_status(cluster_id: str, request: Request) -> dict[str, Any]:
    plane = _control_plane(request)
    status = await plane.status_reader.get_status(cluster_id)
    return {"success": True, "status": status.to_response()}
