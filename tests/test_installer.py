"""Tests for dependency parsing and per-item installation."""

import pytest

from cloudcode_exec.core.config import InstallConfig, ProvisioningConfig
from cloudcode_exec.core.exceptions import DependencyInstallError, ProcessSpawnError
from cloudcode_exec.environment.installer import DependencyInstaller, DependencySpec
from cloudcode_exec.environment.provisioner import EnvironmentProvisioner

from conftest import FakeRunner, make_fake_venv, posix_only


def _installer(layout, runner, **install_overrides):
    provisioner = EnvironmentProvisioner(layout, ProvisioningConfig(upgrade_pip=False), runner=runner)
    return DependencyInstaller(provisioner, InstallConfig(**install_overrides))


@pytest.mark.parametrize(
    "text, name, version",
    [
        ("requests", "requests", None),
        ("requests==2.31.0", "requests", "2.31.0"),
        (" numpy == 1.26 ", "numpy", "1.26"),
        ("lodash@4.17.21", "lodash", "4.17.21"),
        ("@types/node", "@types/node", None),
        ("@types/node@20.1.0", "@types/node", "20.1.0"),
        ("express@", "express", None),
    ],
)
def test_dependency_spec_parse(text, name, version):
    spec = DependencySpec.parse(text)
    assert (spec.name, spec.version) == (name, version)


@pytest.mark.parametrize("text", ["", "   ", "==1.0", "@", "@1.0"])
def test_dependency_spec_rejects_missing_name(text):
    with pytest.raises(ValueError):
        DependencySpec.parse(text)


def test_dependency_spec_format():
    assert DependencySpec("requests", "2.31.0").format("==") == "requests==2.31.0"
    assert DependencySpec("lodash", "4.17.21").format("@") == "lodash@4.17.21"
    assert DependencySpec("flask").format("==") == "flask"


@posix_only
def test_pip_install_runs_one_invocation_per_item(layout, fake_runner):
    installer = _installer(layout, fake_runner)

    result = installer.install("p1", "python", ["requests==2.31.0", "flask"])

    assert result.success
    assert result.installed_count == 2
    assert result.failed_count == 0
    assert result.error is None
    pip = str(layout.venv_dir("p1") / "bin" / "pip")
    installs = [call for call in fake_runner.calls if call[:2] == [pip, "install"]]
    assert installs == [[pip, "install", "requests==2.31.0"], [pip, "install", "flask"]]
    assert "$ " + pip + " install flask" in result.raw_output
    assert all(o.installed_at is not None for o in result.outcomes)


@posix_only
def test_partial_failure_keeps_going(layout):
    runner = FakeRunner(fail_on=("not-a-real-package",))
    installer = _installer(layout, runner)

    result = installer.install("p1", "python", ["requests", "not-a-real-package", "flask"])

    assert not result.success
    assert result.installed_count == 2
    assert result.failed_count == 1
    assert result.error == "1 of 3 dependencies failed to install"
    assert list(result.failures) == ["not-a-real-package"]
    assert "Installation of not-a-real-package failed" in result.failures["not-a-real-package"]
    with pytest.raises(DependencyInstallError):
        result.raise_for_failures()


@posix_only
def test_install_timeout_is_per_item(layout):
    runner = FakeRunner(timeout_on=("slowpkg",))
    result = _installer(layout, runner, timeout_seconds=9).install("p1", "python", ["slowpkg", "fast"])

    assert result.failed_count == 1
    assert result.failures["slowpkg"] == "Installation of slowpkg timed out after 9s"
    assert result.outcomes[1].installed


@posix_only
def test_spawn_error_for_one_item_is_recorded(layout):
    inner = FakeRunner()

    def runner(args, **kwargs):
        if args[-1] == "broken":
            raise ProcessSpawnError(args[0], "exec format error")
        return inner(args, **kwargs)

    result = _installer(layout, runner).install("p1", "python", ["broken", "ok"])

    assert result.failed_count == 1
    assert result.installed_count == 1


@posix_only
def test_venv_python_used_when_pip_missing(layout, fake_runner):
    make_fake_venv(layout.venv_dir("p1"), with_pip=False)
    installer = _installer(layout, fake_runner)

    installer.install("p1", "python", ["rich"])

    python = str(layout.venv_dir("p1") / "bin" / "python")
    assert fake_runner.calls == [[python, "-m", "pip", "install", "rich"]]


def test_npm_install_initialises_project_and_uses_prefix(layout, fake_runner):
    installer = _installer(layout, fake_runner)

    result = installer.install("web", "javascript", ["lodash@4.17.21", "@types/node"])

    project_dir = str(layout.project_dir("web"))
    assert result.success
    assert fake_runner.calls == [
        ["npm", "init", "-y"],
        ["npm", "install", "--prefix", project_dir, "lodash@4.17.21"],
        ["npm", "install", "--prefix", project_dir, "@types/node"],
    ]


def test_provisioning_failure_fails_every_item(layout):
    runner = FakeRunner(fail_on=("-m venv",))
    result = _installer(layout, runner).install("p1", "python", ["a", "b"])

    assert not result.success
    assert result.failed_count == 2
    assert result.installed_count == 0
    assert result.error.startswith("Environment provisioning failed: Failed to create virtual environment")
    assert [call for call in runner.calls if "install" in call] == []


@posix_only
def test_system_fallback_only_when_allowed(layout, fake_runner):
    make_fake_venv(layout.venv_dir("p1"), with_pip=False, pip_module=False)

    refused = _installer(layout, fake_runner).install("p1", "python", ["requests"])

    assert not refused.success
    assert refused.error == "No pip executable available for project p1"
    assert fake_runner.calls == []

    allowed = _installer(layout, fake_runner, allow_system_fallback=True, system_pip_command="pip3").install(
        "p1", "python", ["requests"]
    )

    assert allowed.success
    assert fake_runner.calls == [["pip3", "install", "requests"]]


def test_system_fallback_never_follows_provisioning_failure(layout):
    runner = FakeRunner(fail_on=("-m venv",))
    result = _installer(layout, runner, allow_system_fallback=True, system_pip_command="pip3").install(
        "p1", "python", ["requests"]
    )

    assert not result.success
    assert result.error.startswith("Environment provisioning failed")
    assert runner.calls_matching("pip3") == []


def test_language_without_package_manager_is_a_no_op(layout, fake_runner):
    result = _installer(layout, fake_runner).install("p1", "bash", ["jq"])

    assert result.success
    assert result.outcomes == []
    assert fake_runner.calls == []


def test_empty_dependency_list_is_a_no_op(layout, fake_runner):
    result = _installer(layout, fake_runner).install("p1", "python", [])

    assert result.success
    assert fake_runner.calls == []


@posix_only
def test_install_result_to_dict(layout, fake_runner):
    data = _installer(layout, fake_runner).install("p1", "python", ["requests==2.0"]).to_dict()

    assert data["success"] is True
    assert data["installedCount"] == 1
    assert data["outcomes"][0]["name"] == "requests"
    assert data["outcomes"][0]["version"] == "2.0"
    assert data["outcomes"][0]["installedAt"]
