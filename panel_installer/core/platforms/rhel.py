"""
RHEL family — Rocky Linux, AlmaLinux, RHEL, CentOS.

PHP 8.3 comes from the remi module stream on top of EPEL. PHP-FPM gets
a dedicated pool (``www-pterodactyl.conf``) running as the ``nginx``
account, and SELinux is told to let the web server reach the network.
"""

from __future__ import annotations

import logging
from pathlib import Path

from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import Platform, PlatformFamily
from panel_installer.core.models.step import Step, StepResult
from panel_installer.core.platforms.base import FIREWALL_PORTS, PlatformHandler
from panel_installer.core.services.templates import render_template

logger = logging.getLogger(__name__)

REMI_RELEASE_URL = "https://rpms.remirepo.net/enterprise/remi-release-{major}.rpm"

SELINUX_BOOLEANS = ("httpd_can_network_connect", "httpd_execmem", "httpd_unified")

_SELINUX_PACKAGES = [
    "policycoreutils", "selinux-policy", "selinux-policy-targeted",
    "setroubleshoot-server", "setools", "setools-console", "mcstrans",
]

_PHP_PACKAGES = [
    "php", "php-common", "php-fpm", "php-cli", "php-json", "php-mysqlnd",
    "php-gd", "php-mbstring", "php-pdo", "php-zip", "php-bcmath", "php-dom",
    "php-opcache", "php-posix",
]


class RhelHandler(PlatformHandler):
    family = PlatformFamily.RHEL

    web_user = "nginx"
    redis_service = "redis"
    php_socket = "/var/run/php-fpm/pterodactyl.sock"
    nginx_site_dir = Path("/etc/nginx/conf.d")
    php_fpm_pool_path = Path("/etc/php-fpm.d/www-pterodactyl.conf")

    def update_repositories(self) -> None:
        self.runner.run("dnf", ["-y", "makecache"], stream=True).check()

    def install_packages(self, packages: list[str]) -> None:
        self.runner.run("dnf", ["install", "-y", *packages], stream=True).check()

    def add_repositories(self) -> None:
        major = self.platform.major_version
        self.install_packages(["epel-release", REMI_RELEASE_URL.format(major=major)])
        self.runner.run("dnf", ["module", "enable", "-y", "php:remi-8.3"]).check()

    def packages(self, config: InstallConfig) -> list[str]:
        packages = [
            *_SELINUX_PACKAGES,
            *_PHP_PACKAGES,
            "mariadb", "mariadb-server",
            "nginx",
            "redis",
            "zip", "unzip", "tar",
            "git", "cronie",
        ]
        if config.use_lets_encrypt:
            packages += ["certbot", "python3-certbot-nginx"]
        return packages

    def configure_firewall(self, ports: tuple[int, ...] = FIREWALL_PORTS) -> None:
        self.install_packages(["firewalld"])
        self.provisioner.enable_service("firewalld")
        for port in ports:
            self.runner.run(
                "firewall-cmd", ["--permanent", f"--add-port={port}/tcp"]
            ).check()
        self.runner.run("firewall-cmd", ["--reload"]).check()
        logger.info("firewalld enabled, allowing ports %s", ", ".join(map(str, ports)))

    # ── Extra steps ─────────────────────────────────────────────

    def post_install_steps(self) -> list[Step]:
        return [
            Step(
                "configure_selinux",
                self.configure_selinux,
                critical=False,
                description="Allow nginx and PHP-FPM through SELinux",
            ),
            Step(
                "configure_php_fpm",
                self.configure_php_fpm,
                description="Install the panel's PHP-FPM pool",
            ),
        ]

    def configure_selinux(self, platform: Platform, config: InstallConfig) -> StepResult:
        """Set each boolean persistently; failures are collected, not fatal."""
        failed = []
        for boolean in SELINUX_BOOLEANS:
            result = self.runner.run("setsebool", ["-P", boolean, "1"])
            if not result.ok:
                logger.warning("setsebool %s failed (exit %d)", boolean, result.exit_code)
                failed.append((boolean, result.exit_code))
        if failed:
            names = ", ".join(name for name, _ in failed)
            return StepResult.failure(
                f"Could not set SELinux booleans: {names}", exit_code=failed[-1][1]
            )
        return StepResult.success()

    def configure_php_fpm(self, platform: Platform, config: InstallConfig) -> StepResult:
        pool = render_template(
            "www-pterodactyl.conf",
            {"user": self.web_user, "php_socket": self.php_socket},
        )
        self.provisioner.write_file(self.php_fpm_pool_path, pool)
        self.provisioner.enable_service("php-fpm")
        return StepResult.success(f"pool written to {self.php_fpm_pool_path}")
