"""Citus cluster control plane.

HTTP control surface over the lifecycle of a sharded PostgreSQL (Citus)
cluster: start/stop the cluster, add/remove worker nodes, read status and
scale out automatically from a background control loop.
"""

__version__ = "0.1.0"
