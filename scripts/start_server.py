#!/usr/bin/env python3
"""Start the Citus control plane HTTP server.

Usage:
    python scripts/start_server.py [--config config/orchestrator.yaml] [--port 3000]

Configuration:
    The server reads configuration from config/orchestrator.yaml.
    Environment variables override YAML configuration:
      - DATABASE_URL: Coordinator connection URL
      - CITUS_SCRIPTS_DIR: Provisioning scripts directory
      - CITUS_MAX_CONNECTIONS_PER_NODE / CITUS_MAX_WORKERS / CITUS_CHECK_INTERVAL_MS
      - CITUS_AUTOSCALER_CLUSTER_ID: Cluster id the autoscaler serializes on
      - CITUS_PORT: HTTP port
"""

import sys

from citus_control.server import main

if __name__ == "__main__":
    sys.exit(main())
