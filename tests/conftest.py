"""
Pytest configuration and fixtures for cloudcode-exec tests.
"""

import os
import stat
import sys
import threading
import time
from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

from cloudcode_exec.core.config import ServiceConfig
from cloudcode_exec.core.process_utils import CommandOutcome
from cloudcode_exec.environment.workspace import WorkspaceLayout

# Configure hypothesis settings for property-based testing
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for slow operations
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs POSIX process groups")


def make_fake_venv(venv_dir: Path, with_pip: bool = False, pip_module: bool = True) -> Path:
    """Create ``venv/bin/python`` as a wrapper around the running interpreter.

    ``with_pip`` adds a ``bin/pip`` script; ``pip_module`` adds a ``pip``
    package to site-packages so ``python -m pip`` counts as available.
    """
    bin_dir = venv_dir / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    python = bin_dir / "python"
    python.write_text(f'#!/bin/sh\nexec "{sys.executable}" "$@"\n')
    python.chmod(python.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    if with_pip:
        pip = bin_dir / "pip"
        pip.write_text("#!/bin/sh\nexit 0\n")
        pip.chmod(pip.stat().st_mode | stat.S_IXUSR)
    if pip_module:
        (venv_dir / "lib" / "python3" / "site-packages" / "pip").mkdir(parents=True, exist_ok=True)
    return python


def pid_alive(pid: int) -> bool:
    """True if ``pid`` exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    stat_file = Path(f"/proc/{pid}/stat")
    try:
        # state is the field after the parenthesised command name
        state = stat_file.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state not in ("Z", "X")


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeRunner:
    """Stands in for run_command; records calls and fakes their effects."""

    def __init__(self, fail_on: tuple[str, ...] = (), timeout_on: tuple[str, ...] = (), delay: float = 0.0):
        self.calls: list[list[str]] = []
        self.fail_on = fail_on
        self.timeout_on = timeout_on
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, args, cwd=None, timeout=None, env=None, input_text=None, kill_wait=2.0):
        argv = [str(arg) for arg in args]
        with self._lock:
            self.calls.append(argv)
        if self.delay:
            time.sleep(self.delay)

        joined = " ".join(argv)
        if any(token in joined for token in self.timeout_on):
            return CommandOutcome(args=argv, returncode=-9, timed_out=True)
        if any(token in joined for token in self.fail_on):
            return CommandOutcome(args=argv, returncode=1, stderr=f"ERROR: could not satisfy {argv[-1]}")

        if argv[1:3] == ["-m", "venv"]:
            make_fake_venv(Path(argv[3]), with_pip=True)
        elif argv[1:3] == ["init", "-y"] and cwd is not None:
            (Path(cwd) / "package.json").write_text('{"name": "project"}')
        return CommandOutcome(args=argv, returncode=0, stdout=f"ok: {joined}")

    def calls_matching(self, token: str) -> list[list[str]]:
        return [call for call in self.calls if token in " ".join(call)]


class RecordingTransport:
    """Transport that keeps every event it is sent."""

    def __init__(self):
        self.events: list[tuple[str, object]] = []
        self._lock = threading.Lock()

    def send(self, event, payload=None):
        with self._lock:
            self.events.append((event, payload))

    def payloads(self, event: str) -> list:
        with self._lock:
            return [payload for name, payload in self.events if name == event]

    def text(self, event: str) -> str:
        return "".join(str(p) for p in self.payloads(event))

    def wait_for(self, event: str, contains: str | None = None, timeout: float = 5.0) -> bool:
        def _seen():
            if contains is None:
                return bool(self.payloads(event))
            return contains in self.text(event)

        return wait_until(_seen, timeout=timeout)


class FailingTransport:
    """Transport whose connection is already gone."""

    def __init__(self):
        self.attempts = 0

    def send(self, event, payload=None):
        self.attempts += 1
        raise ConnectionError("client disconnected")


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def layout(base_dir: Path) -> WorkspaceLayout:
    return WorkspaceLayout(base_dir)


@pytest.fixture
def service_config(base_dir: Path) -> ServiceConfig:
    config = ServiceConfig(base_directory=str(base_dir))
    config.terminal.shell = "/bin/sh"
    config.provisioning.upgrade_pip = False
    return config


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
