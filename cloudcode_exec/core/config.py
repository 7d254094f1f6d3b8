"""
Configuration management for cloudcode-exec.
"""

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

BASE_DIR_ENV = "CLOUDCODE_EXEC_BASE_DIR"
LOG_LEVEL_ENV = "CLOUDCODE_EXEC_LOG_LEVEL"


def default_base_directory() -> str:
    return str(Path(tempfile.gettempdir()) / "cloudcode_projects")


@dataclass
class ExecutionConfig:
    """Limits and defaults for one-shot runs."""

    default_timeout_seconds: int = 5
    max_timeout_seconds: int = 30
    max_output_length: int = 50000
    max_code_length: int = 100000
    max_stdin_length: int = 10000
    timeout_exit_code: int = -1
    truncation_marker: str = "\n... (output truncated)"
    python_command: str = "python3"
    node_command: str = "node"
    kill_wait_seconds: float = 2.0


@dataclass
class ProvisioningConfig:
    """Configuration for per-project environment creation."""

    python_command: str = "python3"
    npm_command: str = "npm"
    venv_timeout_seconds: int = 60
    upgrade_pip: bool = True
    upgrade_timeout_seconds: int = 120
    npm_init_timeout_seconds: int = 60


@dataclass
class InstallConfig:
    """Configuration for dependency installation."""

    timeout_seconds: int = 300
    allow_system_fallback: bool = False
    system_pip_command: str = "pip3"
    npm_command: str = "npm"


@dataclass
class TerminalConfig:
    """Configuration for interactive shell sessions."""

    shell: str | None = None
    deliver_interrupt: bool = True
    welcome_banner: bool = True
    close_wait_seconds: float = 1.5


@dataclass
class LoggingConfig:
    """Configuration for log output."""

    level: str = "INFO"
    rich: bool = True


_SECTIONS: dict[str, type] = {
    "execution": ExecutionConfig,
    "provisioning": ProvisioningConfig,
    "install": InstallConfig,
    "terminal": TerminalConfig,
    "logging": LoggingConfig,
}


def _build_section(section_cls: type, raw: Any):
    """Build a section dataclass from raw mapping data, ignoring unknown keys."""
    if raw is None:
        return section_cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Section must be a mapping, got {type(raw).__name__}")
    valid = {f.name for f in fields(section_cls)}
    return section_cls(**{k: v for k, v in raw.items() if k in valid})


@dataclass
class ServiceConfig:
    """Main service configuration."""

    base_directory: str = field(default_factory=default_base_directory)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    provisioning: ProvisioningConfig = field(default_factory=ProvisioningConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def base_path(self) -> Path:
        return Path(self.base_directory).expanduser()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ServiceConfig":
        """Build configuration from a plain mapping."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        kwargs: dict[str, Any] = {}
        for name, section_cls in _SECTIONS.items():
            if name in data:
                kwargs[name] = _build_section(section_cls, data[name])
        if data.get("base_directory"):
            kwargs["base_directory"] = str(data["base_directory"])
        return cls(**kwargs)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "ServiceConfig":
        """Load configuration from file."""
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path) as f:
                if config_path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            config = cls.from_dict(data)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

        config.apply_env_overrides()
        return config

    def apply_env_overrides(self, environ: dict[str, str] | None = None) -> None:
        """Apply CLOUDCODE_EXEC_* environment variables on top of file values."""
        environ = os.environ if environ is None else environ
        base_dir = environ.get(BASE_DIR_ENV, "").strip()
        if base_dir:
            self.base_directory = base_dir
        level = environ.get(LOG_LEVEL_ENV, "").strip()
        if level:
            self.logging.level = level

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to file."""
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            data = asdict(self)
            with open(config_path, "w") as f:
                if config_path.suffix.lower() == ".json":
                    json.dump(data, f, indent=2)
                else:
                    yaml.dump(data, f, default_flow_style=False, indent=2)
        except Exception as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")


class ConfigManager:
    """Locates and loads the service configuration."""

    CONFIG_FILENAME = "cloudcode_exec.yaml"

    def __init__(self, config_path: Path | None = None, root: Path | None = None):
        self.root = root or Path.cwd()
        self.config_path = config_path or (self.root / self.CONFIG_FILENAME)
        self._config: ServiceConfig | None = None

    @property
    def config(self) -> ServiceConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load_config()
        return self._config

    def load_config(self) -> ServiceConfig:
        """Load configuration from file, falling back to defaults."""
        if self.config_path.exists():
            self._config = ServiceConfig.load_from_file(self.config_path)
        else:
            self._config = ServiceConfig()
            self._config.apply_env_overrides()
        return self._config
