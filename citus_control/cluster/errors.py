"""Errors raised by cluster lifecycle operations.

Each error carries the HTTP status the API layer reports it with.
"""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for expected lifecycle failures."""

    status_code = 500
    retryable = False

    def __init__(self, message: str, cluster_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cluster_id = cluster_id


class GuardError(OrchestratorError):
    """A precondition rejected the operation before anything was mutated."""

    status_code = 400


class ClusterBusyError(OrchestratorError):
    """Another mutating operation holds the cluster's execution slot."""

    status_code = 409
    retryable = True

    def __init__(
        self,
        message: str,
        cluster_id: Optional[str] = None,
        held_by: Optional[str] = None,
    ) -> None:
        super().__init__(message, cluster_id)
        self.held_by = held_by


class OperationFailedError(OrchestratorError):
    """The driver or catalog reported that an operation did not succeed."""

    status_code = 500
