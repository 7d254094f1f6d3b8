"""Tests for the cloudcode-exec command line."""

import json

import pytest

from cloudcode_exec import cli
from cloudcode_exec.environment import provisioner as provisioner_module
from cloudcode_exec.environment.probe import EnvironmentStatus

from conftest import FakeRunner, make_fake_venv, posix_only


@pytest.fixture
def project(base_dir):
    make_fake_venv(base_dir / "p1" / "venv")
    return base_dir


def _main(base_dir, *args):
    return cli.main(["--base-dir", str(base_dir), "--log-level", "WARNING", *args])


def test_languages(base_dir, capsys):
    assert _main(base_dir, "languages") == cli.EXIT_OK

    out = capsys.readouterr().out
    for language in ("python", "javascript", "typescript", "bash"):
        assert language in out


@posix_only
def test_run_success(project, tmp_path, capsys):
    source = tmp_path / "hello.py"
    source.write_text("print('hello from cli')\n")

    code = _main(project, "run", str(source), "-l", "python", "-p", "p1")

    assert code == cli.EXIT_OK
    assert "hello from cli" in capsys.readouterr().out


@posix_only
def test_run_with_stdin_and_json(project, tmp_path, capsys):
    source = tmp_path / "echo.py"
    source.write_text("print(input().upper())\n")
    stdin = tmp_path / "input.txt"
    stdin.write_text("quiet\n")

    code = _main(project, "run", str(source), "-l", "py", "-p", "p1", "--stdin-file", str(stdin), "--json")

    assert code == cli.EXIT_OK
    out = capsys.readouterr().out
    assert '"output": "QUIET"' in out
    assert '"status": "Completed"' in out


@posix_only
def test_run_failure_exit_code(project, tmp_path):
    source = tmp_path / "fail.py"
    source.write_text("raise SystemExit(4)\n")

    assert _main(project, "run", str(source), "-l", "python", "-p", "p1") == cli.EXIT_FAILED


@posix_only
def test_run_timeout_exit_code(project, tmp_path):
    source = tmp_path / "slow.py"
    source.write_text("import time\ntime.sleep(20)\n")

    assert _main(project, "run", str(source), "-l", "python", "-p", "p1", "-t", "1") == cli.EXIT_TIMEOUT


def test_run_unsupported_language(base_dir, tmp_path, capsys):
    source = tmp_path / "prog.cob"
    source.write_text("DISPLAY 'HI'.\n")

    assert _main(base_dir, "run", str(source), "-l", "cobol", "-p", "p1") == cli.EXIT_FAILED
    assert "not supported" in capsys.readouterr().err


def test_run_missing_file(base_dir, tmp_path):
    assert _main(base_dir, "run", str(tmp_path / "nope.py"), "-l", "python", "-p", "p1") == cli.EXIT_FAILED


@posix_only
def test_install(project, monkeypatch, capsys):
    runner = FakeRunner(fail_on=("broken-pkg",))
    monkeypatch.setattr(provisioner_module, "run_command", runner)

    code = _main(project, "install", "p1", "requests==2.31.0", "broken-pkg", "-l", "python")

    assert code == cli.EXIT_FAILED
    captured = capsys.readouterr()
    assert "requests" in captured.out
    assert "installed" in captured.out
    assert "1 of 2 dependencies failed to install" in captured.err
    assert runner.calls_matching("requests==2.31.0")


def test_doctor(base_dir, monkeypatch, capsys):
    status = EnvironmentStatus(
        python_available=True,
        python_version="Python 3.12.1",
        node_available=False,
        node_version=None,
        npm_available=False,
        npm_version=None,
        working_directory=str(base_dir),
    )
    monkeypatch.setattr(cli, "check_environment", lambda config: status)

    assert _main(base_dir, "doctor") == cli.EXIT_OK
    assert "Python 3.12.1" in capsys.readouterr().out


def test_doctor_without_python(base_dir, monkeypatch):
    status = EnvironmentStatus(False, None, False, None, False, None, str(base_dir))
    monkeypatch.setattr(cli, "check_environment", lambda config: status)

    assert _main(base_dir, "doctor") == cli.EXIT_FAILED


def test_config_file_is_used(tmp_path, monkeypatch, capsys):
    config_path = tmp_path / "custom.json"
    config_path.write_text(json.dumps({"base_directory": str(tmp_path / "from-config")}))
    seen = {}

    def fake_check(config):
        seen["base"] = config.base_directory
        return EnvironmentStatus(True, "Python 3", False, None, False, None, config.base_directory)

    monkeypatch.delenv("CLOUDCODE_EXEC_BASE_DIR", raising=False)
    monkeypatch.setattr(cli, "check_environment", fake_check)

    assert cli.main(["--config", str(config_path), "doctor"]) == cli.EXIT_OK
    assert seen["base"] == str(tmp_path / "from-config")
