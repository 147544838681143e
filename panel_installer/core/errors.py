"""
Error taxonomy.

Errors split into two groups so the engine can react correctly:

Fatal (propagate, never routed through the failure policy):
    UnsupportedPlatformError, InsufficientPrivilegesError, ValidationError,
    ConfigError.

Step failures (recoverable, become a failed StepResult and go through
the failure policy):
    CommandFailure, MissingPlaceholderError, StaleCredentialsError.
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base class for all installer exceptions."""


class UnsupportedPlatformError(InstallerError):
    """Raised when the host OS cannot be mapped to a known platform family."""


class InsufficientPrivilegesError(InstallerError, PermissionError):
    """Raised at startup when the installer is not running as root."""


class ConfigError(InstallerError):
    """Raised when an answers file is missing or unreadable."""


class ValidationError(InstallerError):
    """Raised when the install configuration is invalid.

    Carries every offending field so the operator can fix them in one go.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class StepError(InstallerError):
    """A recoverable failure inside a step."""

    exit_code: int | None = None


class CommandFailure(StepError):
    """Raised when an external command exits non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"'{command}' exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MissingPlaceholderError(StepError):
    """Raised when a template references keys absent from the mapping."""

    def __init__(self, missing: list[str], template: str = ""):
        self.missing = sorted(set(missing))
        self.template = template
        where = f" in {template}" if template else ""
        tokens = ", ".join(f"<{key}>" for key in self.missing)
        super().__init__(f"Unresolved placeholders{where}: {tokens}")


class StaleCredentialsError(StepError):
    """Raised when a database user exists and password rotation was declined."""
