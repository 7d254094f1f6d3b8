"""
Custom exceptions for cloudcode-exec.

Provides specific exception types for better error handling and user feedback.
"""


class CloudCodeExecError(Exception):
    """Base exception for cloudcode-exec errors."""


class ConfigurationError(CloudCodeExecError):
    """Error in configuration."""


class UnsupportedLanguageError(CloudCodeExecError):
    """Language selector does not map to a runnable language."""

    def __init__(self, language: str):
        super().__init__(f"Unsupported language: {language}")
        self.language = language
        self.user_message = f"Language '{language}' is not supported for execution."
        self.recovery_hint = "Use /api/execution/languages to list supported languages."


class InvalidProjectIdError(CloudCodeExecError):
    """Project identifier cannot be used as a directory name."""

    def __init__(self, project_id: str):
        super().__init__(f"Invalid project id: {project_id!r}")
        self.project_id = project_id
        self.user_message = "The project identifier is not valid."
        self.recovery_hint = "Project ids may only contain letters, digits, '-', '_' and '.'."


# Environment Errors


class EnvironmentProvisioningError(CloudCodeExecError):
    """Per-project runtime environment could not be created."""

    def __init__(self, step: str, details: str):
        super().__init__(f"{step} failed: {details}")
        self.step = step
        self.details = details
        self.user_message = f"Could not prepare the project environment ({step})."
        self.recovery_hint = "Check that the interpreter is installed on the server and retry."


class DependencyInstallError(CloudCodeExecError):
    """One or more dependencies failed to install."""

    def __init__(self, failures: dict[str, str]):
        names = ", ".join(sorted(failures)) or "(none)"
        super().__init__(f"Dependency installation failed for: {names}")
        self.failures = failures
        self.user_message = f"Some packages could not be installed: {names}."
        self.recovery_hint = "Check the package names and versions, then install again."


# Execution Errors


class ExecutionError(CloudCodeExecError):
    """Base exception for execution errors."""


class RunRequestValidationError(ExecutionError):
    """Run request failed validation checks."""

    def __init__(self, message: str):
        super().__init__(f"Invalid run request: {message}")
        self.user_message = message
        self.recovery_hint = "Fix the request and submit it again."


class ExecutionTimeoutError(ExecutionError):
    """Code execution exceeded time limit."""

    def __init__(self, timeout: int):
        super().__init__(f"Execution exceeded {timeout}s timeout")
        self.timeout = timeout
        self.user_message = f"Code execution took longer than {timeout} seconds."
        self.recovery_hint = "Look for infinite loops or reads from stdin without input."


class ExecutionFailedError(ExecutionError):
    """Program ran to completion with a non-zero exit code."""

    def __init__(self, exit_code: int, error_output: str = ""):
        super().__init__(f"Program exited with code {exit_code}")
        self.exit_code = exit_code
        self.error_output = error_output
        self.user_message = f"The program exited with code {exit_code}."
        self.recovery_hint = "See the error output for the traceback or message."


class ProcessSpawnError(ExecutionError):
    """Interpreter or shell binary could not be started."""

    def __init__(self, executable: str, details: str = ""):
        message = f"Could not start '{executable}'"
        if details:
            message += f": {details}"
        super().__init__(message)
        self.executable = executable
        self.user_message = f"'{executable}' is not available on the server."
        self.recovery_hint = "Install the runtime or point the configuration at it."


# Session Errors


class SessionError(CloudCodeExecError):
    """Base exception for terminal session errors."""


class SessionNotFoundError(SessionError):
    """No live terminal session for the given key."""

    def __init__(self, user_id: str, project_id: str):
        super().__init__(f"Session not found: {user_id}_{project_id}")
        self.user_id = user_id
        self.project_id = project_id
        self.user_message = "Session not found."
        self.recovery_hint = "Open a new terminal session for this project."


class TransportDeliveryError(CloudCodeExecError):
    """A message could not be pushed to the caller's connection."""


def format_error_message(error: Exception) -> str:
    """
    Format an error message for display to user.

    Args:
        error: Exception to format

    Returns:
        Formatted error message with recovery hints
    """
    if isinstance(error, CloudCodeExecError) and hasattr(error, "user_message"):
        message = error.user_message
        if hasattr(error, "recovery_hint"):
            message += f"\n\nHint: {error.recovery_hint}"
        return message
    return str(error)
