"""Tests for the one-shot execution engine."""

import os
import shutil
import threading
from textwrap import dedent

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cloudcode_exec.core.config import ExecutionConfig, ProvisioningConfig
from cloudcode_exec.core.exceptions import (
    ExecutionFailedError,
    ExecutionTimeoutError,
    InvalidProjectIdError,
    RunRequestValidationError,
    UnsupportedLanguageError,
)
from cloudcode_exec.environment.provisioner import EnvironmentProvisioner
from cloudcode_exec.environment.workspace import WorkspaceLayout
from cloudcode_exec.execution.engine import SCRATCH_PREFIX, ExecutionEngine, truncate_output
from cloudcode_exec.execution.models import RunRequest, RunResult, RunStatus

from conftest import FakeRunner, pid_alive, posix_only, wait_until

pytestmark = posix_only


def _engine(layout, runner=None, **execution_overrides):
    runner = runner or FakeRunner()
    provisioner = EnvironmentProvisioner(layout, ProvisioningConfig(upgrade_pip=False), runner=runner)
    return ExecutionEngine(provisioner, config=ExecutionConfig(**execution_overrides))


def _scratch_files(layout, project_id):
    return sorted(layout.project_dir(project_id).glob(f"{SCRATCH_PREFIX}*"))


@pytest.fixture
def engine(layout):
    return _engine(layout)


def test_successful_run(engine, layout):
    result = engine.run(RunRequest(project_id="p1", language="python", source_text="print('hello')"))

    assert result.status is RunStatus.COMPLETED
    assert result.succeeded
    assert result.output == "hello"
    assert result.error_output == ""
    assert result.exit_code == 0
    assert result.elapsed_ms >= 0
    assert _scratch_files(layout, "p1") == []


def test_non_zero_exit_is_failed(engine):
    code = "import sys\nsys.stderr.write('bad things\\n\\n')\nsys.exit(2)\n"
    result = engine.run(RunRequest(project_id="p1", language="python", source_text=code))

    assert result.status is RunStatus.FAILED
    assert result.exit_code == 2
    assert result.error_output == "bad things"


def test_uncaught_exception_is_failed(engine):
    result = engine.run(RunRequest(project_id="p1", language="py", source_text="raise ValueError('nope')"))

    assert result.status is RunStatus.FAILED
    assert result.exit_code == 1
    assert "ValueError: nope" in result.error_output


def test_stdin_is_delivered(engine):
    code = "name = input()\nprint(f'Hello, {name}!')"
    result = engine.run(RunRequest(project_id="p1", language="python", source_text=code, stdin="Ada\n"))

    assert result.output == "Hello, Ada!"


def test_missing_stdin_reads_end_of_file(engine):
    result = engine.run(
        RunRequest(project_id="p1", language="python", source_text="input()", timeout_seconds=10)
    )

    assert result.status is RunStatus.FAILED
    assert "EOFError" in result.error_output


def test_runs_in_project_directory(engine, layout):
    code = "import os\nprint(os.getcwd())\nopen('data.txt', 'w').write('x')\n"
    result = engine.run(RunRequest(project_id="p1", language="python", source_text=code))

    assert os.path.realpath(result.output) == os.path.realpath(layout.project_dir("p1"))
    assert (layout.project_dir("p1") / "data.txt").exists()


def test_timeout_kills_process_tree(engine, layout):
    code = dedent(
        """
        import subprocess, sys, time
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        print(child.pid, flush=True)
        time.sleep(60)
        """
    )
    result = engine.run(RunRequest(project_id="p1", language="python", source_text=code, timeout_seconds=1))

    assert result.status is RunStatus.TIMEOUT
    assert result.exit_code == -1
    assert result.error_output.endswith("Execution timed out after 1 seconds")
    assert result.elapsed_ms < 10000
    grandchild = int(result.output.split()[0])
    assert wait_until(lambda: not pid_alive(grandchild), timeout=5)
    assert _scratch_files(layout, "p1") == []
    with pytest.raises(ExecutionTimeoutError):
        result.raise_for_status()


def test_output_is_truncated(layout):
    engine = _engine(layout, max_output_length=100)
    result = engine.run(RunRequest(project_id="p1", language="python", source_text="print('x' * 500)"))

    assert result.output == "x" * 100 + "\n... (output truncated)"


@pytest.mark.parametrize(
    "request_kwargs, message",
    [
        ({"source_text": ""}, "Code is required"),
        ({"source_text": "   \n"}, "Code is required"),
        ({"source_text": "x" * 100001}, "Code cannot exceed 100000 characters"),
        ({"stdin": "y" * 10001}, "Input cannot exceed 10000 characters"),
        ({"timeout_seconds": 0}, "Timeout must be between 1 and 30 seconds"),
        ({"timeout_seconds": 31}, "Timeout must be between 1 and 30 seconds"),
    ],
)
def test_validation_happens_before_side_effects(layout, request_kwargs, message):
    runner = FakeRunner()
    engine = _engine(layout, runner)
    fields = {"project_id": "p1", "language": "python", "source_text": "print(1)", **request_kwargs}

    with pytest.raises(RunRequestValidationError) as excinfo:
        engine.run(RunRequest(**fields))

    assert excinfo.value.user_message == message
    assert runner.calls == []
    assert not layout.project_dir("p1").exists()


def test_unsupported_language_is_rejected(layout):
    runner = FakeRunner()
    with pytest.raises(UnsupportedLanguageError):
        _engine(layout, runner).run(RunRequest(project_id="p1", language="cobol", source_text="DISPLAY 'x'"))
    assert runner.calls == []
    assert not layout.project_dir("p1").exists()


def test_invalid_project_id_is_rejected(engine):
    with pytest.raises(InvalidProjectIdError):
        engine.run(RunRequest(project_id="../escape", language="python", source_text="print(1)"))


def test_provisioning_failure_is_a_failed_result(layout):
    engine = _engine(layout, FakeRunner(fail_on=("-m venv",)))
    result = engine.run(RunRequest(project_id="p1", language="python", source_text="print(1)"))

    assert result.status is RunStatus.FAILED
    assert result.exit_code == -1
    assert result.error_output.startswith("Environment error: Failed to create virtual environment")


def test_unwritable_base_directory_is_a_failed_result(tmp_path):
    base = tmp_path / "not-a-directory"
    base.write_text("occupied")
    engine = _engine(WorkspaceLayout(base))

    result = engine.run(RunRequest(project_id="p1", language="bash", source_text="echo hi"))

    assert result.status is RunStatus.FAILED
    assert result.error_output.startswith("Environment error: Failed to create project directory")


def test_dependency_failure_is_a_failed_result(layout):
    engine = _engine(layout, FakeRunner(fail_on=("badpkg",)))
    request = RunRequest(
        project_id="p1", language="python", source_text="print(1)", dependencies=["requests", "badpkg"]
    )

    result = engine.run(request)

    assert result.status is RunStatus.FAILED
    assert result.exit_code == -1
    assert result.error_output.startswith("Dependency installation failed:")
    assert "- badpkg: Installation of badpkg failed" in result.error_output
    assert _scratch_files(layout, "p1") == []


def test_dependencies_installed_before_run(layout):
    runner = FakeRunner()
    engine = _engine(layout, runner)
    request = RunRequest(project_id="p1", language="python", source_text="print(1)", dependencies=["six"])

    result = engine.run(request)

    assert result.succeeded
    assert runner.calls_matching("install six")


def test_missing_interpreter_is_a_failed_result(layout):
    engine = _engine(layout, node_command="node-binary-that-does-not-exist")
    result = engine.run(RunRequest(project_id="web", language="javascript", source_text="console.log(1)"))

    assert result.status is RunStatus.FAILED
    assert result.exit_code == -1
    assert "node-binary-that-does-not-exist" in result.error_output
    assert _scratch_files(layout, "web") == []


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
def test_bash_script(engine):
    result = engine.run(RunRequest(project_id="s1", language="bash", source_text="echo one; echo two >&2"))

    assert result.succeeded
    assert result.output == "one"
    assert result.error_output == "two"


def test_concurrent_runs_in_one_project_do_not_mix(engine):
    results: dict[int, RunResult] = {}

    def run(index: int):
        code = f"import time\ntime.sleep(0.2)\nprint('run-{index}')"
        results[index] = engine.run(RunRequest(project_id="shared", language="python", source_text=code))

    threads = [threading.Thread(target=run, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(30)

    assert {i: r.output for i, r in results.items()} == {i: f"run-{i}" for i in range(4)}


def test_result_to_dict(engine):
    data = engine.run(RunRequest(project_id="p1", language="python", source_text="print(1)")).to_dict()

    assert data["output"] == "1"
    assert data["errorOutput"] == ""
    assert data["exitCode"] == 0
    assert data["status"] == "Completed"
    assert data["statusDescription"]
    assert isinstance(data["executionTimeMs"], int)
    assert data["executedAt"]


def test_failed_result_raises_for_status():
    result = RunResult(output="", error_output="boom", exit_code=3, status=RunStatus.FAILED, elapsed_ms=1)

    with pytest.raises(ExecutionFailedError) as excinfo:
        result.raise_for_status()
    assert excinfo.value.exit_code == 3

    assert RunResult.failed("x").exit_code == -1


@given(st.text(), st.integers(min_value=0, max_value=50))
def test_truncate_output_bounds(text, max_length):
    marker = "\n... (output truncated)"
    result = truncate_output(text, max_length, marker)

    assert len(result) <= max_length + len(marker)
    if len(text) <= max_length:
        assert result == text
    else:
        assert result == text[:max_length] + marker


@pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")
def test_javascript_run(engine, layout):
    result = engine.run(
        RunRequest(project_id="web", language="javascript", source_text="console.log(6 * 7)")
    )

    assert result.succeeded
    assert result.output == "42"
    assert _scratch_files(layout, "web") == []
