"""Data model shared by the controller, reconciler, status reader and API."""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkerNode(BaseModel):
    """A shard-serving node as reported by the Catalog's live registry."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., alias="node_name")
    port: int = Field(..., alias="node_port")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WorkerNode":
        return cls(name=row["node_name"], port=int(row["node_port"]))


class ClusterStatus(BaseModel):
    """Snapshot of the cluster's active workers.

    ``degraded`` is set when the snapshot comes from the fail-open path,
    which lets callers tell "no workers" apart from "catalog unreachable".
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_running: bool = Field(default=False, alias="isRunning")
    worker_count: int = Field(default=0, ge=0, alias="workerCount")
    workers: list[WorkerNode] = Field(default_factory=list)
    degraded: bool = False

    @classmethod
    def from_workers(cls, workers: list[WorkerNode]) -> "ClusterStatus":
        return cls(
            is_running=len(workers) > 0,
            worker_count=len(workers),
            workers=list(workers),
        )

    @classmethod
    def empty(cls, degraded: bool = False) -> "ClusterStatus":
        return cls(is_running=False, worker_count=0, workers=[], degraded=degraded)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class OperationOutcome:
    """Typed result of a lifecycle operation, as handed to the API layer.

    Attributes:
        success: Whether the operation reached its goal
        message: Human-readable summary
        status: Cluster status after a start
        node: Address of a newly added worker
        remaining_workers: Worker count observed after a removal
        expected_workers: Worker count a removal aimed for
    """

    success: bool
    message: str
    status: Optional[ClusterStatus] = None
    node: Optional[str] = None
    remaining_workers: Optional[int] = None
    expected_workers: Optional[int] = None
