"""
Per-project environment provisioning.

Creates the project working directory and the language-specific isolated
environment (a venv for Python, ``package.json`` for Node) on first use.
Check-then-create runs under a per-project lock so concurrent callers never
race to build the same environment.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.config import ProvisioningConfig
from ..core.exceptions import EnvironmentProvisioningError, ProcessSpawnError
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..core.process_utils import CommandOutcome, run_command
from ..core.venv_utils import get_venv_pip, get_venv_python, is_valid_venv, list_venv_distributions
from ..languages import EnvironmentKind, Language, resolve_language
from .workspace import WorkspaceLayout

logger = get_logger(__name__)

CommandRunner = Callable[..., CommandOutcome]

STEP_CREATE_VENV = "create virtual environment"
STEP_INIT_NODE = "initialise Node project"


@dataclass(slots=True)
class ProvisionResult:
    """Outcome of making a project's environment ready."""

    ready: bool
    created: bool = False
    error: str | None = None
    environment_kind: EnvironmentKind | None = None
    root_path: Path | None = None

    def raise_for_error(self) -> None:
        if not self.ready:
            raise EnvironmentProvisioningError("provisioning", self.error or "environment not ready")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "created": self.created,
            "error": self.error,
            "environmentKind": self.environment_kind.value if self.environment_kind else None,
            "rootPath": str(self.root_path) if self.root_path else None,
        }


@dataclass(slots=True)
class ProjectEnvironment:
    """Snapshot of what exists on disk for one project."""

    project_id: str
    kind: EnvironmentKind | None
    root_path: Path
    exists: bool
    has_venv: bool = False
    venv_path: Path | None = None
    has_node_modules: bool = False
    node_modules_path: Path | None = None
    has_package_json: bool = False
    installed_entries: list[str] = field(default_factory=list)
    size_bytes: int = 0
    file_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "kind": self.kind.value if self.kind else None,
            "rootPath": str(self.root_path),
            "exists": self.exists,
            "hasVenv": self.has_venv,
            "venvPath": str(self.venv_path) if self.venv_path else None,
            "hasNodeModules": self.has_node_modules,
            "nodeModulesPath": str(self.node_modules_path) if self.node_modules_path else None,
            "hasPackageJson": self.has_package_json,
            "installedEntries": list(self.installed_entries),
            "sizeBytes": self.size_bytes,
            "fileCount": self.file_count,
        }


def _directory_usage(paths: list[Path]) -> tuple[int, int]:
    """Total size and file count under the given directories."""
    size = 0
    count = 0
    for root in paths:
        if not root.is_dir():
            continue
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in filenames:
                try:
                    size += os.lstat(os.path.join(dirpath, name)).st_size
                except OSError:
                    continue
                count += 1
    return size, count


def list_node_packages(node_modules: Path) -> list[str]:
    """Top-level packages in node_modules, scoped ones as ``@scope/name``."""
    if not node_modules.is_dir():
        return []
    packages: list[str] = []
    for entry in sorted(node_modules.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        if entry.name.startswith("@"):
            packages.extend(
                f"{entry.name}/{child.name}"
                for child in sorted(entry.iterdir())
                if child.is_dir() and not child.name.startswith(".")
            )
        else:
            packages.append(entry.name)
    return packages


class EnvironmentProvisioner:
    """Creates and inspects per-project runtime environments."""

    def __init__(
        self,
        layout: WorkspaceLayout,
        config: ProvisioningConfig | None = None,
        locks: KeyedLock | None = None,
        runner: CommandRunner | None = None,
    ):
        self.layout = layout
        self.config = config or ProvisioningConfig()
        self.locks = locks or KeyedLock()
        self.runner = runner or run_command

    def ensure(self, project_id: str, language: "str | Language") -> ProvisionResult:
        """
        Make the project's environment for ``language`` ready.

        Idempotent: once the environment exists this is an existence check.

        Args:
            project_id: Project identifier
            language: Language selector

        Returns:
            ProvisionResult; failures are reported, not raised
        """
        spec = resolve_language(language)
        if spec.environment is EnvironmentKind.INTERPRETED_VENV:
            return self.create_python_venv(project_id)

        with self.locks.hold(project_id):
            project_dir, error = self._make_project_dir(project_id)
        if error is not None:
            return ProvisionResult(
                ready=False, error=error, environment_kind=spec.environment, root_path=project_dir
            )
        # node_modules is created by the first npm install
        return ProvisionResult(
            ready=True,
            environment_kind=spec.environment,
            root_path=project_dir,
        )

    def create_python_venv(self, project_id: str) -> ProvisionResult:
        """Create ``<project>/venv`` unless a usable one already exists."""
        kind = EnvironmentKind.INTERPRETED_VENV
        with self.locks.hold(project_id):
            project_dir, error = self._make_project_dir(project_id)
            venv_dir = self.layout.venv_dir(project_id)
            if error is not None:
                return ProvisionResult(ready=False, error=error, environment_kind=kind, root_path=venv_dir)
            if is_valid_venv(venv_dir):
                return ProvisionResult(ready=True, environment_kind=kind, root_path=venv_dir)

            logger.info(f"Creating virtual environment for project {project_id} at {venv_dir}")
            args = [self.config.python_command, "-m", "venv", str(venv_dir)]
            error = self._run_step(STEP_CREATE_VENV, args, project_dir, self.config.venv_timeout_seconds)
            if error is None and not is_valid_venv(venv_dir):
                error = f"Failed to {STEP_CREATE_VENV}: no interpreter found in {venv_dir}"
            if error is not None:
                logger.warning(error)
                return ProvisionResult(ready=False, error=error, environment_kind=kind, root_path=venv_dir)

            if self.config.upgrade_pip:
                self._upgrade_pip(venv_dir, project_dir)
            return ProvisionResult(ready=True, created=True, environment_kind=kind, root_path=venv_dir)

    def init_node_project(self, project_id: str) -> ProvisionResult:
        """Run ``npm init -y`` unless the project already has a package.json."""
        kind = EnvironmentKind.PACKAGE_DIR
        with self.locks.hold(project_id):
            project_dir, error = self._make_project_dir(project_id)
            if error is not None:
                return ProvisionResult(ready=False, error=error, environment_kind=kind, root_path=project_dir)
            package_json = self.layout.package_json(project_id)
            if package_json.exists():
                return ProvisionResult(ready=True, environment_kind=kind, root_path=project_dir)

            logger.info(f"Initialising Node project {project_id}")
            args = [self.config.npm_command, "init", "-y"]
            error = self._run_step(STEP_INIT_NODE, args, project_dir, self.config.npm_init_timeout_seconds)
            if error is None and not package_json.exists():
                error = f"Failed to {STEP_INIT_NODE}: package.json was not created"
            if error is not None:
                logger.warning(error)
                return ProvisionResult(ready=False, error=error, environment_kind=kind, root_path=project_dir)
            return ProvisionResult(ready=True, created=True, environment_kind=kind, root_path=project_dir)

    def describe(self, project_id: str, language: "str | Language | None" = None) -> ProjectEnvironment:
        """Report what exists on disk for the project without creating anything."""
        project_dir = self.layout.project_dir(project_id)
        venv_dir = self.layout.venv_dir(project_id)
        node_modules = self.layout.node_modules_dir(project_id)

        has_venv = is_valid_venv(venv_dir)
        has_node_modules = node_modules.is_dir()
        has_package_json = self.layout.package_json(project_id).is_file()

        if language is not None:
            kind = resolve_language(language).environment
        elif has_venv:
            kind = EnvironmentKind.INTERPRETED_VENV
        elif has_node_modules or has_package_json:
            kind = EnvironmentKind.PACKAGE_DIR
        else:
            kind = None

        entries: list[str] = []
        if has_venv:
            entries.extend(list_venv_distributions(venv_dir))
        entries.extend(list_node_packages(node_modules))

        size, count = _directory_usage([venv_dir, node_modules])
        if kind is EnvironmentKind.INTERPRETED_VENV:
            root_path = venv_dir
            exists = has_venv
        elif kind is EnvironmentKind.PACKAGE_DIR:
            root_path = project_dir
            exists = has_package_json or has_node_modules
        else:
            root_path = project_dir
            exists = project_dir.is_dir()

        return ProjectEnvironment(
            project_id=project_id,
            kind=kind,
            root_path=root_path,
            exists=exists,
            has_venv=has_venv,
            venv_path=venv_dir if has_venv else None,
            has_node_modules=has_node_modules,
            node_modules_path=node_modules if has_node_modules else None,
            has_package_json=has_package_json,
            installed_entries=entries,
            size_bytes=size,
            file_count=count,
        )

    def _make_project_dir(self, project_id: str) -> tuple[Path, str | None]:
        """Create the project directory; return it with an error message or None."""
        project_dir = self.layout.project_dir(project_id)
        try:
            self.layout.ensure_project_dir(project_id)
        except OSError as e:
            error = f"Failed to create project directory: {e}"
            logger.warning(error)
            return project_dir, error
        return project_dir, None

    def _run_step(self, step: str, args: list[str], cwd: Path, timeout: int) -> str | None:
        """Run one provisioning command; return an error message or None."""
        try:
            outcome = self.runner(args, cwd=cwd, timeout=timeout)
        except ProcessSpawnError as e:
            return f"Failed to {step}: {e}"
        if outcome.timed_out:
            return f"Failed to {step}: timed out after {timeout}s"
        if not outcome.ok:
            return f"Failed to {step}: {outcome.describe_failure()}"
        return None

    def _upgrade_pip(self, venv_dir: Path, project_dir: Path) -> None:
        """Upgrade the venv's pip; failures are logged and ignored."""
        pip = get_venv_pip(venv_dir)
        python = get_venv_python(venv_dir)
        if python is not None:
            args = [str(python), "-m", "pip", "install", "--upgrade", "pip"]
        elif pip is not None:
            args = [str(pip), "install", "--upgrade", "pip"]
        else:
            return
        try:
            outcome = self.runner(args, cwd=project_dir, timeout=self.config.upgrade_timeout_seconds)
        except ProcessSpawnError as e:
            logger.debug(f"pip upgrade skipped: {e}")
            return
        if not outcome.ok:
            logger.debug(f"pip upgrade failed in {venv_dir}: {outcome.describe_failure()}")
