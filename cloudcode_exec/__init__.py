"""
cloudcode-exec: run untrusted project code once or through interactive shells.
"""

from .core.config import ConfigManager, ServiceConfig
from .core.exceptions import CloudCodeExecError
from .environment import (
    DependencyInstaller,
    DependencySpec,
    EnvironmentProvisioner,
    InstallResult,
    ProjectEnvironment,
    ProvisionResult,
    WorkspaceLayout,
    check_environment,
)
from .execution import ExecutionEngine, RunRequest, RunResult, RunStatus
from .languages import Language, resolve_language, supported_languages
from .terminal import TerminalSessionManager

__version__ = "0.1.0"

__all__ = [
    "CloudCodeExecError",
    "ConfigManager",
    "DependencyInstaller",
    "DependencySpec",
    "EnvironmentProvisioner",
    "ExecutionEngine",
    "InstallResult",
    "Language",
    "ProjectEnvironment",
    "ProvisionResult",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "ServiceConfig",
    "TerminalSessionManager",
    "WorkspaceLayout",
    "__version__",
    "check_environment",
    "resolve_language",
    "supported_languages",
]
