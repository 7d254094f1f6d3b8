"""
Server environment probe: which interpreters and package managers exist.
"""

import subprocess
from dataclasses import dataclass
from typing import Any

from ..core.config import ServiceConfig
from ..core.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class ToolHealth:
    """Availability information for one command-line tool."""

    tool: str
    available: bool
    version: str | None = None
    detail: str = ""


@dataclass(slots=True)
class EnvironmentStatus:
    """Availability of the runtimes one-shot runs and installs depend on."""

    python_available: bool
    python_version: str | None
    node_available: bool
    node_version: str | None
    npm_available: bool
    npm_version: str | None
    working_directory: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pythonAvailable": self.python_available,
            "pythonVersion": self.python_version,
            "nodeAvailable": self.node_available,
            "nodeVersion": self.node_version,
            "npmAvailable": self.npm_available,
            "npmVersion": self.npm_version,
            "workingDirectory": self.working_directory,
        }


def check_tool(command: str, timeout_seconds: float = 5.0) -> ToolHealth:
    """Run ``<command> --version``; never raises."""
    try:
        result = subprocess.run(
            [command, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except (FileNotFoundError, PermissionError):
        return ToolHealth(tool=command, available=False, detail=f"{command} not found")
    except subprocess.TimeoutExpired:
        return ToolHealth(tool=command, available=False, detail=f"{command} --version timed out")
    except OSError as e:
        return ToolHealth(tool=command, available=False, detail=str(e))

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip() or f"exit code {result.returncode}"
        return ToolHealth(tool=command, available=False, detail=detail)

    # Older Pythons print the version on stderr.
    version = (result.stdout.strip() or result.stderr.strip()).splitlines()
    return ToolHealth(
        tool=command,
        available=True,
        version=version[0].strip() if version else "unknown",
        detail="ok",
    )


def check_environment(config: ServiceConfig | None = None) -> EnvironmentStatus:
    """Probe python, node and npm as configured."""
    config = config or ServiceConfig()
    python = check_tool(config.execution.python_command)
    node = check_tool(config.execution.node_command)
    npm = check_tool(config.install.npm_command)
    for health in (python, node, npm):
        if not health.available:
            logger.debug(f"{health.tool} unavailable: {health.detail}")

    return EnvironmentStatus(
        python_available=python.available,
        python_version=python.version,
        node_available=node.available,
        node_version=node.version,
        npm_available=npm.available,
        npm_version=npm.version,
        working_directory=str(config.base_path),
    )
