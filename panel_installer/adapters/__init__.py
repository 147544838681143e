"""Adapters — the boundary between the installer and the host.

Public re-exports for convenient access.
"""

from panel_installer.adapters.mock import RecordingRunner
from panel_installer.adapters.shell.command import CommandResult, CommandRunner, require_root

__all__ = [
    "CommandResult",
    "CommandRunner",
    "RecordingRunner",
    "require_root",
]
