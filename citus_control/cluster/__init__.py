"""Citus cluster lifecycle: provisioning, reconciliation and autoscaling.

  - controller: start/stop a whole cluster.
  - reconciler: add/remove workers with pre/post Catalog checks.
  - status: fail-open status snapshots.
  - autoscaler: periodic connection-load scale-out.
"""

from citus_control.cluster.autoscaler import Autoscaler, ScalingDecision
from citus_control.cluster.catalog import ClusterCatalog, LoadSample
from citus_control.cluster.controller import ClusterController
from citus_control.cluster.driver import DriverResult, ProvisioningDriver
from citus_control.cluster.errors import (
    ClusterBusyError,
    GuardError,
    OperationFailedError,
    OrchestratorError,
)
from citus_control.cluster.locks import ClusterLocks
from citus_control.cluster.models import ClusterStatus, OperationOutcome, WorkerNode
from citus_control.cluster.reconciler import WorkerReconciler
from citus_control.cluster.status import StatusReader

__all__ = [
    "Autoscaler",
    "ClusterBusyError",
    "ClusterCatalog",
    "ClusterController",
    "ClusterLocks",
    "ClusterStatus",
    "DriverResult",
    "GuardError",
    "LoadSample",
    "OperationFailedError",
    "OperationOutcome",
    "OrchestratorError",
    "ProvisioningDriver",
    "ScalingDecision",
    "StatusReader",
    "WorkerNode",
    "WorkerReconciler",
]
