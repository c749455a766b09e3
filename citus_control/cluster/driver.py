"""Provisioning Driver.

Runs the infrastructure scripts that create and destroy Citus nodes. A
call is bounded by a hard timeout; the driver reports the combined
stdout/stderr text and leaves its interpretation to
:mod:`citus_control.cluster.outcomes`.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from citus_control.config import DriverConfig

logger = structlog.get_logger(__name__)


@dataclass
class DriverResult:
    """Result of one driver call.

    Attributes:
        operation: Operation name (start, stop, add_worker, remove_worker)
        args: Positional arguments passed to the script
        exit_code: Process exit code, -1 if the process never finished
        output: Combined stdout and stderr text
        timed_out: The call hit the driver timeout
        error: Reason the call itself failed (spawn error, timeout)
        duration_seconds: Wall-clock duration
    """

    operation: str
    args: list[str] = field(default_factory=list)
    exit_code: int = -1
    output: str = ""
    timed_out: bool = False
    error: str = ""
    duration_seconds: float = 0.0

    @property
    def call_failed(self) -> bool:
        """True when the call did not run to completion."""
        return self.timed_out or bool(self.error)


def find_scripts_dir(start: Optional[Path] = None) -> Path:
    """Locate the ``docker`` scripts directory above ``start``.

    Raises:
        FileNotFoundError: No ancestor contains a ``docker`` directory.
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "docker"
        if candidate.is_dir():
            return candidate
    raise FileNotFoundError("Docker directory not found in project structure")


class ProvisioningDriver:
    """Executes named provisioning operations as shell scripts."""

    def __init__(self, config: DriverConfig) -> None:
        self.config = config
        self._scripts_dir: Optional[Path] = (
            Path(config.scripts_dir) if config.scripts_dir else None
        )

    @property
    def scripts_dir(self) -> Path:
        if self._scripts_dir is None:
            self._scripts_dir = find_scripts_dir()
        return self._scripts_dir

    def script_for(self, operation: str) -> str:
        try:
            return self.config.scripts[operation]
        except KeyError:
            raise ValueError(f"Unknown provisioning operation: {operation}") from None

    async def run(self, operation: str, args: Optional[list[str]] = None) -> DriverResult:
        """Run a provisioning operation.

        Never raises: spawn errors and timeouts come back as a failed
        DriverResult. On timeout the script is killed, but whatever it
        already changed on the infrastructure side stays changed.

        Args:
            operation: Operation name from the configured script table
            args: Positional script arguments

        Returns:
            DriverResult with the combined output
        """
        args = [str(a) for a in (args or [])]
        result = DriverResult(operation=operation, args=args)
        started = datetime.now(timezone.utc)
        process: Optional[asyncio.subprocess.Process] = None

        try:
            script = self.script_for(operation)
            cwd = self.scripts_dir

            logger.debug(
                "driver_execution_starting",
                operation=operation,
                script=script,
                args=args,
                cwd=str(cwd),
                timeout_seconds=self.config.timeout_seconds,
            )

            process = await asyncio.create_subprocess_exec(
                self.config.shell,
                script,
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )

            try:
                stdout_data, _ = await asyncio.wait_for(
                    process.communicate(),
                    timeout=self.config.timeout_seconds,
                )
            except asyncio.TimeoutError:
                result.timed_out = True
                result.error = (
                    f"Execution timeout after {self.config.timeout_seconds} seconds"
                )
                logger.error(
                    "driver_execution_timeout",
                    operation=operation,
                    args=args,
                    timeout_seconds=self.config.timeout_seconds,
                )
                await self._kill_process(process)
            else:
                result.exit_code = process.returncode if process.returncode is not None else -1
                result.output = (stdout_data or b"").decode(errors="replace")

        except Exception as e:
            result.error = str(e)
            logger.error(
                "driver_execution_error",
                operation=operation,
                args=args,
                error=str(e),
                error_type=type(e).__name__,
            )
            if process is not None:
                await self._kill_process(process)

        result.duration_seconds = (datetime.now(timezone.utc) - started).total_seconds()
        if not result.call_failed:
            logger.debug(
                "driver_execution_completed",
                operation=operation,
                exit_code=result.exit_code,
                duration_seconds=result.duration_seconds,
                output=result.output,
            )
        return result

    @staticmethod
    async def _kill_process(process: asyncio.subprocess.Process) -> None:
        """Kill a running script."""
        if process.returncode is None:
            try:
                process.kill()
                await process.wait()
                logger.info("driver_process_killed", pid=process.pid)
            except ProcessLookupError:
                pass
            except Exception as e:
                logger.error("failed_to_kill_process", error=str(e))
