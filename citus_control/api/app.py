"""FastAPI application factory and control-plane wiring."""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from citus_control import __version__
from citus_control.api.routes import cluster_router, health_router
from citus_control.cluster.autoscaler import Autoscaler
from citus_control.cluster.catalog import ClusterCatalog
from citus_control.cluster.controller import ClusterController
from citus_control.cluster.driver import ProvisioningDriver
from citus_control.cluster.errors import ClusterBusyError, OrchestratorError
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.reconciler import WorkerReconciler
from citus_control.cluster.status import StatusReader
from citus_control.config import Settings
from citus_control.storage.database import Database

logger = structlog.get_logger(__name__)


@dataclass
class ControlPlane:
    """Everything the routes and the lifespan need, wired together."""

    settings: Settings
    catalog: ClusterCatalog
    driver: ProvisioningDriver
    locks: ClusterLocks
    status_reader: StatusReader
    controller: ClusterController
    reconciler: WorkerReconciler
    autoscaler: Autoscaler
    database: Optional[Database] = None


def build_control_plane(settings: Settings) -> ControlPlane:
    """Wire the production collaborators from settings."""
    database = Database.from_config(settings.database)
    catalog = ClusterCatalog(database)
    driver = ProvisioningDriver(settings.driver)
    locks = ClusterLocks()
    status_reader = StatusReader(catalog)
    reconciler = WorkerReconciler(
        driver,
        catalog,
        locks,
        policy=settings.scaling,
        lock_wait=settings.lock_wait_seconds,
    )
    return ControlPlane(
        settings=settings,
        catalog=catalog,
        driver=driver,
        locks=locks,
        status_reader=status_reader,
        controller=ClusterController(driver, status_reader, locks, lock_wait=settings.lock_wait_seconds),
        reconciler=reconciler,
        autoscaler=Autoscaler(
            catalog,
            reconciler,
            locks,
            settings.scaling,
            cluster_id=settings.autoscaler_cluster_id,
        ),
        database=database,
    )


def create_app(
    settings: Optional[Settings] = None,
    control_plane: Optional[ControlPlane] = None,
) -> FastAPI:
    """Create the HTTP application.

    Args:
        settings: Used to build the control plane when none is given
        control_plane: Pre-wired collaborators, e.g. fakes in tests
    """
    plane = control_plane or build_control_plane(settings or Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if plane.database is not None:
            await plane.database.connect()
        if plane.settings.scaling.enabled:
            plane.autoscaler.start()
        await logger.ainfo("control_plane_started", version=__version__)
        try:
            yield
        finally:
            await plane.autoscaler.stop()
            if plane.database is not None:
                await plane.database.disconnect()
            await logger.ainfo("control_plane_stopped")

    app = FastAPI(title="Citus Control Plane", version=__version__, lifespan=lifespan)
    app.state.control_plane = plane

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        logger.info("request_received", method=request.method, path=request.url.path)
        response = await call_next(request)
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    @app.exception_handler(OrchestratorError)
    async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
        await logger.aerror(
            "route_error",
            path=request.url.path,
            cluster_id=exc.cluster_id,
            status_code=exc.status_code,
            error=exc.message,
        )
        body = {"success": False, "error": exc.message}
        if isinstance(exc, ClusterBusyError):
            body["retryable"] = True
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        await logger.awarning("request_validation_failed", path=request.url.path, errors=exc.errors())
        return JSONResponse({"success": False, "error": str(exc.errors())}, status_code=400)

    app.include_router(health_router)
    app.include_router(cluster_router)
    return app
