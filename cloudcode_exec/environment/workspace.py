"""
Deterministic per-project directory layout.
"""

import re
from pathlib import Path

from ..core.exceptions import InvalidProjectIdError

_PROJECT_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

VENV_DIRNAME = "venv"
NODE_MODULES_DIRNAME = "node_modules"
PACKAGE_JSON_FILENAME = "package.json"


def validate_project_id(project_id: str) -> str:
    """Return ``project_id`` if it is a single safe path component."""
    value = str(project_id or "")
    if value in (".", "..") or len(value) > 128 or not _PROJECT_ID_PATTERN.fullmatch(value):
        raise InvalidProjectIdError(value)
    return value


class WorkspaceLayout:
    """Maps project identifiers to ``<base>/<projectId>`` and its contents."""

    def __init__(self, base_directory: Path | str):
        self.base_directory = Path(base_directory).expanduser()

    def project_dir(self, project_id: str) -> Path:
        return self.base_directory / validate_project_id(project_id)

    def venv_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / VENV_DIRNAME

    def node_modules_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / NODE_MODULES_DIRNAME

    def package_json(self, project_id: str) -> Path:
        return self.project_dir(project_id) / PACKAGE_JSON_FILENAME

    def ensure_project_dir(self, project_id: str) -> Path:
        path = self.project_dir(project_id)
        path.mkdir(parents=True, exist_ok=True)
        return path
