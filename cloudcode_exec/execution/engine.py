"""
One-shot execution engine.

Handles request validation, environment preparation, the scratch-file run and
result processing.
"""

import time
import uuid
from pathlib import Path

from ..core.config import ExecutionConfig
from ..core.exceptions import ProcessSpawnError, RunRequestValidationError
from ..core.logging import get_logger
from ..core.venv_utils import get_venv_python
from ..environment.installer import DependencyInstaller
from ..environment.provisioner import EnvironmentProvisioner
from ..languages import EnvironmentKind, LanguageSpec, resolve_language
from .models import NO_EXIT_CODE, RunRequest, RunResult, RunStatus
from .runner import LocalProcessRunner, ProcessRequest, ProcessRunner

logger = get_logger(__name__)

SCRATCH_PREFIX = "cloudcode_"


def truncate_output(text: str, max_length: int, marker: str) -> str:
    """Cut ``text`` to ``max_length`` characters and append ``marker`` if cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + marker


class ExecutionEngine:
    """Runs submitted source text once and captures the result."""

    def __init__(
        self,
        provisioner: EnvironmentProvisioner,
        installer: DependencyInstaller | None = None,
        config: ExecutionConfig | None = None,
        runner: ProcessRunner | None = None,
    ):
        """
        Initialize execution engine.

        Args:
            provisioner: Environment provisioner for the project working directories
            installer: Dependency installer; defaults to one sharing the provisioner
            config: Execution limits and defaults
            runner: Process runner; defaults to a local child process runner
        """
        self.provisioner = provisioner
        self.installer = installer or DependencyInstaller(provisioner)
        self.config = config or ExecutionConfig()
        self.runner = runner or LocalProcessRunner(kill_wait_seconds=self.config.kill_wait_seconds)

    @property
    def layout(self):
        return self.provisioner.layout

    def validate(self, request: RunRequest) -> int:
        """
        Validate a run request before any side effect.

        Args:
            request: Request to check

        Returns:
            The effective timeout in seconds

        Raises:
            RunRequestValidationError: If a limit is violated
        """
        config = self.config
        if not request.source_text or not request.source_text.strip():
            raise RunRequestValidationError("Code is required")
        if len(request.source_text) > config.max_code_length:
            raise RunRequestValidationError(f"Code cannot exceed {config.max_code_length} characters")
        if request.stdin is not None and len(request.stdin) > config.max_stdin_length:
            raise RunRequestValidationError(f"Input cannot exceed {config.max_stdin_length} characters")

        timeout = request.timeout_seconds
        if timeout is None:
            timeout = config.default_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, int):
            raise RunRequestValidationError("Timeout must be a whole number of seconds")
        if timeout < 1 or timeout > config.max_timeout_seconds:
            raise RunRequestValidationError(
                f"Timeout must be between 1 and {config.max_timeout_seconds} seconds"
            )
        return timeout

    def run(self, request: RunRequest) -> RunResult:
        """
        Run one request to completion, failure or timeout.

        Raises only for invalid requests (validation, unsupported language,
        bad project id); everything after that is reported in the result.
        """
        timeout = self.validate(request)
        spec = resolve_language(request.language)
        project_dir = self.layout.project_dir(request.project_id)
        started = time.monotonic()

        provision = self.provisioner.ensure(request.project_id, spec.language)
        if not provision.ready:
            return RunResult.failed(f"Environment error: {provision.error}", self._elapsed(started))

        if request.dependencies and spec.package_manager is not None:
            install = self.installer.install(request.project_id, spec.language, request.dependencies)
            if not install.success:
                lines = [f"- {name}: {error}" for name, error in install.failures.items()]
                detail = "\n".join([install.error or "installation failed", *lines])
                return RunResult.failed(
                    f"Dependency installation failed:\n{detail}", self._elapsed(started)
                )

        scratch_file = project_dir / f"{SCRATCH_PREFIX}{uuid.uuid4().hex}{spec.extension}"
        try:
            scratch_file.write_text(request.source_text, encoding="utf-8")
            argv = spec.build_command(
                str(scratch_file),
                python=self._python_for(request.project_id, spec),
                node=self.config.node_command,
            )
            logger.info(f"Running {spec.id} in project {request.project_id} (timeout={timeout}s)")
            return self._execute(argv, project_dir, timeout, request.stdin)
        finally:
            self._remove_scratch(scratch_file)

    def _execute(self, argv: list[str], workdir: Path, timeout: int, stdin: str | None) -> RunResult:
        try:
            outcome = self.runner.execute(
                ProcessRequest(argv=argv, workdir=workdir, timeout_seconds=timeout, stdin=stdin)
            )
        except ProcessSpawnError as e:
            logger.warning(str(e))
            return RunResult.failed(str(e))

        max_length = self.config.max_output_length
        marker = self.config.truncation_marker
        output = truncate_output(outcome.stdout.rstrip(), max_length, marker)
        error_output = outcome.stderr.rstrip()

        if outcome.timed_out:
            notice = f"Execution timed out after {timeout} seconds"
            error_output = f"{error_output}\n{notice}" if error_output else notice
            logger.warning(f"{notice}: {argv[0]}")
            return RunResult(
                output=output,
                error_output=truncate_output(error_output, max_length, marker),
                exit_code=self.config.timeout_exit_code,
                status=RunStatus.TIMEOUT,
                elapsed_ms=outcome.elapsed_ms,
                timeout_seconds=timeout,
            )

        exit_code = outcome.returncode if outcome.returncode is not None else NO_EXIT_CODE
        return RunResult(
            output=output,
            error_output=truncate_output(error_output, max_length, marker),
            exit_code=exit_code,
            status=RunStatus.COMPLETED if exit_code == 0 else RunStatus.FAILED,
            elapsed_ms=outcome.elapsed_ms,
            timeout_seconds=timeout,
        )

    def _python_for(self, project_id: str, spec: LanguageSpec) -> str:
        """Project venv interpreter when present, else the configured one."""
        if spec.environment is EnvironmentKind.INTERPRETED_VENV:
            python = get_venv_python(self.layout.venv_dir(project_id))
            if python is not None:
                return str(python)
        return self.config.python_command

    @staticmethod
    def _remove_scratch(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove scratch file {path}: {e}")

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
