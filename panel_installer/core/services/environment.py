"""
Environment probe — which OS family are we installing on?

Read-only: parses ``/etc/os-release`` and maps the distribution onto a
platform family. Called exactly once per run; the result is cached on
the probe and passed explicitly to everything downstream.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from panel_installer.core.errors import UnsupportedPlatformError
from panel_installer.core.models.platform import PackageManager, Platform, PlatformFamily

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")

# Distribution IDs that map directly onto a family
_FAMILY_BY_ID: dict[str, PlatformFamily] = {
    "ubuntu": PlatformFamily.DEBIAN,
    "debian": PlatformFamily.DEBIAN,
    "rocky": PlatformFamily.RHEL,
    "almalinux": PlatformFamily.RHEL,
    "rhel": PlatformFamily.RHEL,
    "centos": PlatformFamily.RHEL,
}

# ID_LIKE tokens that identify a family for derivatives
_FAMILY_BY_LIKE: dict[str, PlatformFamily] = {
    "debian": PlatformFamily.DEBIAN,
    "ubuntu": PlatformFamily.DEBIAN,
    "rhel": PlatformFamily.RHEL,
    "fedora": PlatformFamily.RHEL,
    "centos": PlatformFamily.RHEL,
}

_PACKAGE_MANAGER: dict[PlatformFamily, PackageManager] = {
    PlatformFamily.DEBIAN: PackageManager.APT,
    PlatformFamily.RHEL: PackageManager.DNF,
}

# Major versions the install steps are known to work on
SUPPORTED_VERSIONS: dict[str, set[int]] = {
    "ubuntu": {20, 22, 24},
    "debian": {10, 11, 12},
    "rocky": {8, 9},
    "almalinux": {8, 9},
}


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release ``KEY=value`` lines (shell-style quoting)."""
    info: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        info[key.strip()] = parts[0] if parts else ""
    return info


def _major(version_id: str) -> int:
    head = version_id.split(".", 1)[0]
    return int(head) if head.isdigit() else 0


def _codename(info: dict[str, str]) -> str:
    # derivatives name their own release; apt sources need the upstream one
    return (
        info.get("UBUNTU_CODENAME")
        or info.get("DEBIAN_CODENAME")
        or info.get("VERSION_CODENAME", "")
    )


def platform_from_os_release(info: dict[str, str]) -> Platform:
    """Map parsed os-release fields onto a Platform.

    Raises:
        UnsupportedPlatformError: when neither ID nor ID_LIKE is known.
    """
    distro = info.get("ID", "").lower()
    id_like = tuple(info.get("ID_LIKE", "").lower().split())
    family = _FAMILY_BY_ID.get(distro)
    if family is None:
        for token in id_like:
            if token in _FAMILY_BY_LIKE:
                family = _FAMILY_BY_LIKE[token]
                break

    if family is None:
        name = info.get("PRETTY_NAME") or distro or "unknown"
        raise UnsupportedPlatformError(
            f"Unsupported operating system: {name}. "
            "Supported families are Debian/Ubuntu and RHEL (Rocky, AlmaLinux)."
        )

    version = info.get("VERSION_ID", "")
    platform = Platform(
        family=family,
        distro=distro,
        major_version=_major(version),
        version=version,
        codename=_codename(info),
        id_like=id_like,
        package_manager=_PACKAGE_MANAGER[family],
    )

    tested = SUPPORTED_VERSIONS.get(distro)
    if tested is not None and platform.major_version not in tested:
        logger.warning(
            "%s is not a tested release (tested: %s) — continuing anyway",
            platform.label,
            ", ".join(str(v) for v in sorted(tested)),
        )
    return platform


class EnvironmentProbe:
    """Detects the host platform once and caches the answer."""

    def __init__(self, os_release_path: Path = OS_RELEASE_PATH):
        self._path = os_release_path
        self._platform: Platform | None = None

    def detect(self) -> Platform:
        """Return the host Platform.

        Raises:
            UnsupportedPlatformError: if the OS cannot be identified or
                belongs to no known family.
        """
        if self._platform is not None:
            return self._platform

        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise UnsupportedPlatformError(
                f"Cannot identify the operating system ({self._path}: {e})"
            ) from e

        self._platform = platform_from_os_release(parse_os_release(text))
        logger.info(
            "Detected %s (family=%s, package manager=%s)",
            self._platform.label,
            self._platform.family.value,
            self._platform.package_manager.value if self._platform.package_manager else "-",
        )
        return self._platform
