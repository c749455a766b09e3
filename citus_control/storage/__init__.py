"""Storage layer for the control plane.

Provides the asynchronous PostgreSQL connection pool that the Cluster
Catalog runs its queries over.
"""

from citus_control.storage.database import Database

__all__ = ["Database"]
