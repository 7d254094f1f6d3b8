"""
Core functionality for cloudcode-exec.
"""

from .config import (
    ConfigManager,
    ExecutionConfig,
    InstallConfig,
    LoggingConfig,
    ProvisioningConfig,
    ServiceConfig,
    TerminalConfig,
)
from .exceptions import (
    CloudCodeExecError,
    ConfigurationError,
    DependencyInstallError,
    EnvironmentProvisioningError,
    ExecutionError,
    ExecutionFailedError,
    ExecutionTimeoutError,
    InvalidProjectIdError,
    ProcessSpawnError,
    RunRequestValidationError,
    SessionError,
    SessionNotFoundError,
    TransportDeliveryError,
    UnsupportedLanguageError,
    format_error_message,
)
from .locks import KeyedLock
from .logging import get_logger, setup_logging

__all__ = [
    "CloudCodeExecError",
    "ConfigManager",
    "ConfigurationError",
    "DependencyInstallError",
    "EnvironmentProvisioningError",
    "ExecutionConfig",
    "ExecutionError",
    "ExecutionFailedError",
    "ExecutionTimeoutError",
    "InstallConfig",
    "InvalidProjectIdError",
    "KeyedLock",
    "LoggingConfig",
    "ProcessSpawnError",
    "ProvisioningConfig",
    "RunRequestValidationError",
    "ServiceConfig",
    "SessionError",
    "SessionNotFoundError",
    "TerminalConfig",
    "TransportDeliveryError",
    "UnsupportedLanguageError",
    "format_error_message",
    "get_logger",
    "setup_logging",
]
