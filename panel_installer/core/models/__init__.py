"""
Domain models for the installer.

    from panel_installer.core.models import InstallConfig, Platform, Step, StepResult, RunReport
"""

from panel_installer.core.models.config import AdminUser, InstallConfig
from panel_installer.core.models.platform import PackageManager, Platform, PlatformFamily
from panel_installer.core.models.report import ReportEntry, RunReport, RunStatus
from panel_installer.core.models.step import Step, StepResult, StepState

__all__ = [
    "AdminUser",
    "InstallConfig",
    "PackageManager",
    "Platform",
    "PlatformFamily",
    "ReportEntry",
    "RunReport",
    "RunStatus",
    "Step",
    "StepResult",
    "StepState",
]
