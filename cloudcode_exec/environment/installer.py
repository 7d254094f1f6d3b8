"""
Dependency installation into a project's isolated environment.

Each dependency gets its own package-manager invocation, run one after the
other. A failing item is recorded and the remaining items still run.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.config import InstallConfig
from ..core.exceptions import DependencyInstallError, ProcessSpawnError
from ..core.logging import get_logger
from ..core.venv_utils import get_venv_pip, get_venv_python, venv_has_module
from ..languages import Language, LanguageSpec, PackageManager, resolve_language
from .provisioner import CommandRunner, EnvironmentProvisioner, ProvisionResult

logger = get_logger(__name__)


@dataclass(slots=True)
class DependencySpec:
    """A named dependency with an optional version pin."""

    name: str
    version: str | None = None

    @classmethod
    def parse(cls, text: str) -> "DependencySpec":
        """
        Parse ``name``, ``name==version``, ``name@version`` or ``@scope/name@version``.

        Raises:
            ValueError: If no package name is present
        """
        value = str(text or "").strip()
        name, version = value, None
        if "==" in value:
            name, _, version = value.partition("==")
        elif value.startswith("@"):
            scope_and_name, sep, tail = value[1:].partition("@")
            name = "@" + scope_and_name
            version = tail if sep else None
        elif "@" in value:
            name, _, version = value.partition("@")

        name = name.strip()
        version = (version or "").strip() or None
        if not name or name == "@" or (name.startswith("@") and "/" not in name):
            raise ValueError(f"Invalid dependency: {text!r}")
        return cls(name=name, version=version)

    def format(self, separator: str = "==") -> str:
        if self.version:
            return f"{self.name}{separator}{self.version}"
        return self.name


@dataclass(slots=True)
class InstallOutcome:
    """Result for one dependency."""

    name: str
    version: str | None
    installed: bool
    error: str | None = None
    installed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "installed": self.installed,
            "error": self.error,
            "installedAt": self.installed_at.isoformat() if self.installed_at else None,
        }


@dataclass(slots=True)
class InstallResult:
    """Aggregate result of one install call."""

    success: bool
    installed_count: int = 0
    failed_count: int = 0
    raw_output: str = ""
    error: str | None = None
    outcomes: list[InstallOutcome] = field(default_factory=list)

    @property
    def failures(self) -> dict[str, str]:
        return {o.name: o.error or "failed" for o in self.outcomes if not o.installed}

    def raise_for_failures(self) -> None:
        if self.success:
            return
        failures = self.failures
        if not failures and self.error:
            failures = {"(environment)": self.error}
        raise DependencyInstallError(failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "installedCount": self.installed_count,
            "failedCount": self.failed_count,
            "output": self.raw_output,
            "error": self.error,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def _coerce_specs(dependencies: Iterable["DependencySpec | str"]) -> list[DependencySpec]:
    return [dep if isinstance(dep, DependencySpec) else DependencySpec.parse(dep) for dep in dependencies]


class DependencyInstaller:
    """Installs dependencies with pip or npm, scoped to the project."""

    def __init__(
        self,
        provisioner: EnvironmentProvisioner,
        config: InstallConfig | None = None,
        runner: CommandRunner | None = None,
    ):
        self.provisioner = provisioner
        self.config = config or InstallConfig()
        self.runner = runner or provisioner.runner

    @property
    def layout(self):
        return self.provisioner.layout

    def install(
        self,
        project_id: str,
        language: "str | Language",
        dependencies: Iterable["DependencySpec | str"],
    ) -> InstallResult:
        """
        Install every dependency, one invocation per item.

        Args:
            project_id: Project identifier
            language: Language selector, decides pip or npm
            dependencies: DependencySpec items or strings to parse

        Returns:
            InstallResult with per-item outcomes; environment problems are
            reported in ``error`` rather than raised
        """
        spec = resolve_language(language)
        deps = _coerce_specs(dependencies)
        if spec.package_manager is None or not deps:
            return InstallResult(success=True)

        with self.provisioner.locks.hold(project_id):
            provision = self._prepare_environment(project_id, spec)
            if not provision.ready:
                return self._fail_all(deps, f"Environment provisioning failed: {provision.error}")

            base_command = self._resolve_command(project_id, spec.package_manager)
            if base_command is None:
                base_command = self._system_fallback(project_id, spec.package_manager)
            if base_command is None:
                manager = spec.package_manager.value
                return self._fail_all(deps, f"No {manager} executable available for project {project_id}")

            return self._install_each(project_id, spec, base_command, deps)

    def _prepare_environment(self, project_id: str, spec: LanguageSpec) -> ProvisionResult:
        if spec.package_manager is PackageManager.NPM:
            return self.provisioner.init_node_project(project_id)
        return self.provisioner.ensure(project_id, spec.language)

    def _resolve_command(self, project_id: str, manager: PackageManager) -> list[str] | None:
        """Argv prefix for ``<manager> install``; None if nothing usable."""
        if manager is PackageManager.NPM:
            project_dir = self.layout.project_dir(project_id)
            return [self.config.npm_command, "install", "--prefix", str(project_dir)]

        venv_dir = self.layout.venv_dir(project_id)
        pip = get_venv_pip(venv_dir)
        if pip is not None:
            return [str(pip), "install"]
        python = get_venv_python(venv_dir)
        if python is not None and venv_has_module(venv_dir, "pip"):
            return [str(python), "-m", "pip", "install"]
        return None

    def _system_fallback(self, project_id: str, manager: PackageManager) -> list[str] | None:
        """System-wide pip, only when explicitly allowed."""
        if manager is not PackageManager.PIP or not self.config.allow_system_fallback:
            return None
        logger.warning(
            f"No usable pip for project {project_id}; falling back to system "
            f"'{self.config.system_pip_command}', packages will be installed outside the project environment"
        )
        return [self.config.system_pip_command, "install"]

    def _install_each(
        self,
        project_id: str,
        spec: LanguageSpec,
        base_command: list[str],
        deps: list[DependencySpec],
    ) -> InstallResult:
        project_dir: Path = self.layout.project_dir(project_id)
        timeout = self.config.timeout_seconds
        transcript: list[str] = []
        outcomes: list[InstallOutcome] = []

        for dep in deps:
            target = dep.format(spec.version_separator)
            args = base_command + [target]
            transcript.append(f"$ {' '.join(args)}")
            logger.info(f"Installing {target} into project {project_id}")
            try:
                result = self.runner(args, cwd=project_dir, timeout=timeout)
            except ProcessSpawnError as e:
                transcript.append(str(e))
                outcomes.append(InstallOutcome(dep.name, dep.version, installed=False, error=str(e)))
                continue

            if result.output:
                transcript.append(result.output)
            if result.timed_out:
                error = f"Installation of {target} timed out after {timeout}s"
            elif result.returncode != 0:
                error = f"Installation of {target} failed: {result.describe_failure()}"
            else:
                error = None

            if error is None:
                outcomes.append(
                    InstallOutcome(dep.name, dep.version, installed=True, installed_at=datetime.now(timezone.utc))
                )
            else:
                logger.warning(error)
                outcomes.append(InstallOutcome(dep.name, dep.version, installed=False, error=error))

        failed = sum(1 for o in outcomes if not o.installed)
        return InstallResult(
            success=failed == 0,
            installed_count=len(outcomes) - failed,
            failed_count=failed,
            raw_output="\n".join(transcript),
            error=None if failed == 0 else f"{failed} of {len(outcomes)} dependencies failed to install",
            outcomes=outcomes,
        )

    @staticmethod
    def _fail_all(deps: list[DependencySpec], message: str) -> InstallResult:
        logger.warning(message)
        return InstallResult(
            success=False,
            failed_count=len(deps),
            error=message,
            outcomes=[InstallOutcome(dep.name, dep.version, installed=False, error=message) for dep in deps],
        )
