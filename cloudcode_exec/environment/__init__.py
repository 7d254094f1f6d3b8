"""
Per-project environments: layout, provisioning, dependency installs, probing.
"""

from .installer import DependencyInstaller, DependencySpec, InstallOutcome, InstallResult
from .probe import EnvironmentStatus, ToolHealth, check_environment, check_tool
from .provisioner import EnvironmentProvisioner, ProjectEnvironment, ProvisionResult
from .workspace import WorkspaceLayout, validate_project_id

__all__ = [
    "DependencyInstaller",
    "DependencySpec",
    "EnvironmentProvisioner",
    "EnvironmentStatus",
    "InstallOutcome",
    "InstallResult",
    "ProjectEnvironment",
    "ProvisionResult",
    "ToolHealth",
    "WorkspaceLayout",
    "check_environment",
    "check_tool",
    "validate_project_id",
]
