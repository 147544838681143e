"""
Platform handler base — everything that differs between OS families.

Steps never branch on distribution names. They ask the handler for
package names, service names, paths and the web-server account, and
let it run the family-specific command sequences. Adding a platform
means adding a PlatformFamily variant and a handler subclass.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import Platform, PlatformFamily
from panel_installer.core.models.step import Step
from panel_installer.core.services.provisioner import ResourceProvisioner

FIREWALL_PORTS = (22, 80, 443)


class PlatformHandler(ABC):
    """Family-specific knowledge used by the install steps."""

    family: ClassVar[PlatformFamily]

    web_user: ClassVar[str]                 # account nginx and php-fpm run as
    redis_service: ClassVar[str]
    php_socket: ClassVar[str]
    php_binary: ClassVar[str] = "/usr/bin/php"
    nginx_site_dir: ClassVar[Path]
    nginx_enabled_dir: ClassVar[Path | None] = None   # None: sites load from nginx_site_dir
    systemd_unit_dir: ClassVar[Path] = Path("/etc/systemd/system")

    def __init__(self, platform: Platform, provisioner: ResourceProvisioner):
        self.platform = platform
        self.provisioner = provisioner
        self.runner = provisioner.runner

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} platform={self.platform.label!r}>"

    # ── Package management ──────────────────────────────────────

    @abstractmethod
    def update_repositories(self) -> None:
        """Refresh the package index."""

    @abstractmethod
    def install_packages(self, packages: list[str]) -> None:
        """Install packages non-interactively, streaming progress."""

    @abstractmethod
    def add_repositories(self) -> None:
        """Register the third-party repositories that provide PHP 8.3."""

    @abstractmethod
    def packages(self, config: InstallConfig) -> list[str]:
        """Everything the panel needs from the package manager."""

    # ── Host configuration ──────────────────────────────────────

    @abstractmethod
    def configure_firewall(self, ports: tuple[int, ...] = FIREWALL_PORTS) -> None:
        """Install and enable the family's firewall, allowing *ports*."""

    def post_install_steps(self) -> list[Step]:
        """Extra steps that run right after package installation."""
        return []

    def nginx_site_path(self) -> Path:
        return self.nginx_site_dir / "pterodactyl.conf"

    def nginx_default_site(self) -> Path:
        """The distribution's default site, removed so ours answers on :80."""
        return (self.nginx_enabled_dir or self.nginx_site_dir) / "default"
