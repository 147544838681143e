"""
Debian family — Ubuntu and Debian.

PHP 8.3 comes from the ondrej PPA on Ubuntu and its derivatives (Mint,
Pop!_OS, ...) and from packages.sury.org on Debian. Web server account is ``www-data``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import PlatformFamily
from panel_installer.core.platforms.base import FIREWALL_PORTS, PlatformHandler

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

SURY_KEY_URL = "https://packages.sury.org/php/apt.gpg"

_PREREQUISITES = [
    "software-properties-common",
    "apt-transport-https",
    "ca-certificates",
    "gnupg",
    "curl",
]

_PHP_PACKAGES = [
    "php8.3", "php8.3-cli", "php8.3-common", "php8.3-gd", "php8.3-mysql",
    "php8.3-mbstring", "php8.3-bcmath", "php8.3-xml", "php8.3-fpm",
    "php8.3-curl", "php8.3-zip",
]


class DebianHandler(PlatformHandler):
    family = PlatformFamily.DEBIAN

    web_user = "www-data"
    redis_service = "redis-server"
    php_socket = "/run/php/php8.3-fpm.sock"
    nginx_site_dir = Path("/etc/nginx/sites-available")
    nginx_enabled_dir = Path("/etc/nginx/sites-enabled")
    sury_key_path = Path("/etc/apt/trusted.gpg.d/php.gpg")
    sury_sources_path = Path("/etc/apt/sources.list.d/php.list")

    def update_repositories(self) -> None:
        self.runner.run("apt-get", ["update", "-y"], _APT_ENV, stream=True).check()

    def install_packages(self, packages: list[str]) -> None:
        self.runner.run(
            "apt-get", ["install", "-y", *packages], _APT_ENV, stream=True
        ).check()

    def add_repositories(self) -> None:
        self.install_packages(_PREREQUISITES)

        if self.platform.based_on("ubuntu"):
            self.runner.run("add-apt-repository", ["universe", "-y"]).check()
            self.runner.run(
                "add-apt-repository", ["-y", "ppa:ondrej/php"], {"LC_ALL": "C.UTF-8"}
            ).check()
        else:
            self.install_packages(["dirmngr", "lsb-release"])
            self.runner.run(
                "curl", ["-fsSL", SURY_KEY_URL, "-o", str(self.sury_key_path)]
            ).check()
            codename = self.platform.codename or self._codename()
            self.provisioner.write_file(
                self.sury_sources_path,
                f"deb https://packages.sury.org/php/ {codename} main\n",
            )

        self.update_repositories()

    def _codename(self) -> str:
        return self.runner.run("lsb_release", ["-sc"]).check().stdout.strip()

    def packages(self, config: InstallConfig) -> list[str]:
        packages = [
            *_PHP_PACKAGES,
            "mariadb-common", "mariadb-server", "mariadb-client",
            "nginx",
            "redis-server",
            "zip", "unzip", "tar",
            "git", "cron",
        ]
        if config.use_lets_encrypt:
            packages += ["certbot", "python3-certbot-nginx"]
        return packages

    def configure_firewall(self, ports: tuple[int, ...] = FIREWALL_PORTS) -> None:
        self.install_packages(["ufw"])
        for port in ports:
            self.runner.run("ufw", ["allow", f"{port}/tcp"]).check()
        self.runner.run("ufw", ["--force", "enable"]).check()
        logger.info("ufw enabled, allowing ports %s", ", ".join(map(str, ports)))
