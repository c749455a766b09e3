"""HTTP surface of the control plane."""

from citus_control.api.app import ControlPlane, build_control_plane, create_app

__all__ = ["ControlPlane", "build_control_plane", "create_app"]
