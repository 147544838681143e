"""
Platform model — what the environment probe found.

Created once at startup, passed explicitly to every step, never mutated.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class PlatformFamily(str, Enum):
    """OS grouping that decides package names, services and paths."""

    DEBIAN = "debian"
    RHEL = "rhel"
    UNKNOWN = "unknown"


class PackageManager(str, Enum):
    APT = "apt"
    DNF = "dnf"


class Platform(BaseModel):
    """Immutable descriptor of the host operating system."""

    model_config = ConfigDict(frozen=True)

    family: PlatformFamily
    distro: str                     # os-release ID (ubuntu, debian, rocky, ...)
    major_version: int = 0
    version: str = ""               # full VERSION_ID
    codename: str = ""              # upstream release codename, used for apt sources
    id_like: tuple[str, ...] = ()   # ID_LIKE tokens (linuxmint: ubuntu, debian)
    package_manager: PackageManager | None = None

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``ubuntu 22.04``."""
        return f"{self.distro} {self.version or self.major_version}"

    def based_on(self, distro: str) -> bool:
        """True for *distro* itself and for derivatives listing it in ID_LIKE."""
        return self.distro == distro or distro in self.id_like
