"""Translation of driver output into typed provisioning outcomes.

The provisioning scripts have no structured result protocol: whether an
operation succeeded is read from marker phrases in their output. This
module is the only place that knows those phrases.
"""

import re
from dataclasses import dataclass
from typing import Optional

from citus_control.cluster.driver import DriverResult

CLUSTER_BANNER = "🎉 Citus Cluster"
CLUSTER_NAME = "Citus Cluster"
STARTED = "started successfully"
STOPPED = "stopped and cleaned up completely"
WORKER_ADDED = "Worker(s) added and registered to the Citus cluster successfully"
WORKER_REGISTRATION_FAILED = "Failed to register worker"
WORKERS_REMOVED = "Workers removed successfully from both Docker and the Citus cluster"

WORKER_IP_PATTERN = re.compile(r"Registering worker (\d+\.\d+\.\d+\.\d+)")


@dataclass(frozen=True)
class OutputRule:
    """Marker rule for one operation.

    Attributes:
        required: Phrases that must all appear for success
        forbidden: Phrases whose presence means failure, whatever else matched
        extracts_worker_ip: Pull the registered worker's address from the output
    """

    required: tuple[str, ...]
    forbidden: tuple[str, ...] = ()
    extracts_worker_ip: bool = False


MARKERS: dict[str, OutputRule] = {
    "start": OutputRule(required=(CLUSTER_BANNER, STARTED), extracts_worker_ip=True),
    "stop": OutputRule(required=(CLUSTER_NAME, STOPPED)),
    "add_worker": OutputRule(
        required=(WORKER_ADDED,),
        forbidden=(WORKER_REGISTRATION_FAILED,),
        extracts_worker_ip=True,
    ),
    "remove_worker": OutputRule(required=(WORKERS_REMOVED,)),
}


@dataclass
class ProvisioningOutcome:
    """Business result of a driver call."""

    success: bool
    raw_output: str
    worker_ip: Optional[str] = None
    error: str = ""


def extract_worker_ip(output: str) -> Optional[str]:
    match = WORKER_IP_PATTERN.search(output)
    return match.group(1) if match else None


def parse_output(operation: str, output: str) -> ProvisioningOutcome:
    """Apply the marker table to raw script output."""
    try:
        rule = MARKERS[operation]
    except KeyError:
        raise ValueError(f"No output markers for operation: {operation}") from None

    success = all(marker in output for marker in rule.required)
    if any(marker in output for marker in rule.forbidden):
        success = False

    worker_ip = extract_worker_ip(output) if rule.extracts_worker_ip else None
    return ProvisioningOutcome(success=success, raw_output=output, worker_ip=worker_ip)


def parse_result(result: DriverResult) -> ProvisioningOutcome:
    """Interpret a DriverResult.

    A call that failed as a call (timeout, spawn error) is a failure no
    matter what it printed. The exit code is not consulted.
    """
    if result.call_failed:
        return ProvisioningOutcome(
            success=False,
            raw_output=result.output or result.error,
            error=result.error,
        )
    return parse_output(result.operation, result.output)
