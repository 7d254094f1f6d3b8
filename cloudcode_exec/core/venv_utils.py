"""
Utilities for locating executables inside a project's virtual environment.
"""

import os
from pathlib import Path


def _bin_dir(venv_path: Path) -> Path:
    if os.name == "nt":  # Windows
        return venv_path / "Scripts"
    return venv_path / "bin"


def _exe_name(name: str) -> str:
    return f"{name}.exe" if os.name == "nt" else name


def is_valid_venv(venv_path: Path) -> bool:
    """Check if directory is a valid virtual environment."""
    return get_venv_python(venv_path) is not None


def get_venv_python(venv_path: Path) -> Path | None:
    """
    Get Python executable path from venv.

    Args:
        venv_path: Path to virtual environment directory

    Returns:
        Path to Python executable, or None if not found
    """
    python_exe = _bin_dir(venv_path) / _exe_name("python")
    return python_exe if python_exe.exists() else None


def get_venv_pip(venv_path: Path) -> Path | None:
    """Get the venv's own pip executable, or None if the venv has none."""
    pip_exe = _bin_dir(venv_path) / _exe_name("pip")
    return pip_exe if pip_exe.exists() else None


def site_packages_dirs(venv_path: Path) -> list[Path]:
    """Return every site-packages directory inside the venv."""
    if os.name == "nt":
        candidates = [venv_path / "Lib" / "site-packages"]
    else:
        candidates = sorted((venv_path / "lib").glob("python*/site-packages"))
    return [path for path in candidates if path.is_dir()]


def venv_has_module(venv_path: Path, module: str) -> bool:
    """True if a top-level package named ``module`` sits in the venv's site-packages."""
    return any((site_dir / module).is_dir() for site_dir in site_packages_dirs(venv_path))


def list_venv_distributions(venv_path: Path) -> list[str]:
    """
    List distribution names installed in the venv.

    Names come from ``*.dist-info`` directory names, so no interpreter is
    started.

    Args:
        venv_path: Path to virtual environment directory

    Returns:
        Sorted, de-duplicated distribution names
    """
    names: set[str] = set()
    for site_dir in site_packages_dirs(venv_path):
        for entry in site_dir.glob("*.dist-info"):
            # <name>-<version>.dist-info
            names.add(entry.name[: -len(".dist-info")].rsplit("-", 1)[0])
    return sorted(names, key=str.lower)
