"""
Panel installation steps — the concrete, ordered step list.

Built once per run from a platform handler and the validated config.
Optional steps (firewall, Let's Encrypt) are included or left out at
build time, so the list the engine receives is final.

Each step method has the ``(Platform, InstallConfig) -> StepResult``
shape. Commands that fail raise ``CommandFailure`` through
``CommandResult.check()``; the engine turns that into a failed result.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from panel_installer.core.engine.policy import FailurePolicy
from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import Platform
from panel_installer.core.models.step import Step, StepResult
from panel_installer.core.platforms.base import PlatformHandler
from panel_installer.core.services.templates import render_template

logger = logging.getLogger(__name__)

COMPOSER_PATH = Path("/usr/local/bin/composer")
COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"

DB_HOST = "127.0.0.1"
DB_PORT = "3306"
QUEUE_UNIT = "pteroq.service"


def schedule_line(panel_path: str) -> str:
    """The once-per-minute Laravel scheduler entry."""
    return f"* * * * * php {panel_path}/artisan schedule:run >> /dev/null 2>&1"


def env_has_app_key(env_file: Path) -> bool:
    """True if *env_file* sets a non-empty ``APP_KEY``."""
    try:
        text = env_file.read_text(encoding="utf-8")
    except OSError:
        return False
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key.strip() == "APP_KEY":
            return bool(value.strip().strip("\"'"))
    return False


def nginx_template(config: InstallConfig) -> str:
    """``nginx_ssl.conf`` only when TLS is assumed and not obtained by certbot."""
    if config.assume_ssl and not config.use_lets_encrypt:
        return "nginx_ssl.conf"
    return "nginx.conf"


class PanelInstaller:
    """Builds and implements the panel install steps.

    Args:
        handler: Platform handler for the detected family.
        policy: Used by steps that need an operator answer.
        composer_path: Where Composer is installed.
    """

    def __init__(
        self,
        handler: PlatformHandler,
        policy: FailurePolicy,
        *,
        composer_path: Path = COMPOSER_PATH,
    ):
        self.handler = handler
        self.provisioner = handler.provisioner
        self.runner = handler.runner
        self.policy = policy
        self.composer_path = Path(composer_path)

    def steps(self, config: InstallConfig) -> list[Step]:
        """The full, ordered step list for *config*."""
        steps = [
            Step("update_repositories", self.update_repositories,
                 description="Refresh the package index"),
        ]
        if config.configure_firewall:
            steps.append(Step("configure_firewall", self.configure_firewall, critical=False,
                              description="Open ports 22, 80 and 443"))
        steps += [
            Step("add_repositories", self.add_repositories,
                 description="Register the PHP 8.3 repositories"),
            Step("install_packages", self.install_packages,
                 description="Install PHP, MariaDB, nginx, redis and tools"),
        ]
        steps += self.handler.post_install_steps()
        steps += [
            Step("enable_services", self.enable_services,
                 description="Enable redis, MariaDB and nginx"),
            Step("install_composer", self.install_composer,
                 description="Install Composer"),
            Step("download_panel", self.download_panel,
                 description="Download and unpack the panel release"),
            Step("install_panel_dependencies", self.install_panel_dependencies,
                 description="composer install"),
            Step("create_database", self.create_database,
                 description="Create the panel database and user"),
            Step("configure_environment", self.configure_environment,
                 description="Write the panel's .env settings"),
            Step("migrate_database", self.migrate_database,
                 description="Run migrations and seeders"),
            Step("create_admin_user", self.create_admin_user,
                 description="Create the first administrator"),
            Step("set_permissions", self.set_permissions,
                 description="Hand the panel files to the web server account"),
            Step("install_cron", self.install_cron,
                 description="Install the scheduler cron entry"),
            Step("install_queue_worker", self.install_queue_worker,
                 description="Install the pteroq queue worker unit"),
            Step("configure_nginx", self.configure_nginx,
                 description="Install the nginx site"),
        ]
        if config.use_lets_encrypt:
            steps.append(Step("setup_letsencrypt", self.setup_letsencrypt, critical=False,
                              description="Obtain a Let's Encrypt certificate"))
        return steps

    # ── Helpers ─────────────────────────────────────────────────

    def _artisan(
        self,
        config: InstallConfig,
        *args: str,
        stream: bool = False,
        secrets: tuple[str, ...] = (),
    ) -> None:
        self.runner.run(
            "php",
            ["artisan", *args],
            cwd=config.panel_path,
            stream=stream,
            secrets=secrets,
        ).check()

    # ── Packages ────────────────────────────────────────────────

    def update_repositories(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.handler.update_repositories()
        return StepResult.success()

    def configure_firewall(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.handler.configure_firewall()
        return StepResult.success()

    def add_repositories(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.handler.add_repositories()
        return StepResult.success()

    def install_packages(self, platform: Platform, config: InstallConfig) -> StepResult:
        packages = self.handler.packages(config)
        self.handler.install_packages(packages)
        return StepResult.success(f"{len(packages)} packages")

    def enable_services(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.provisioner.enable_service(self.handler.redis_service)
        self.provisioner.enable_service("mariadb")
        # started once its site is configured
        self.provisioner.enable_service("nginx", restart=False)
        return StepResult.success()

    # ── Panel files ─────────────────────────────────────────────

    def install_composer(self, platform: Platform, config: InstallConfig) -> StepResult:
        if self.composer_path.exists():
            logger.info("Composer already installed at %s", self.composer_path)
            return StepResult.success("already installed")

        setup = Path(tempfile.gettempdir()) / "composer-setup.php"
        self.runner.run("curl", ["-sS", COMPOSER_INSTALLER_URL, "-o", str(setup)]).check()
        self.runner.run(
            "php",
            [
                str(setup),
                f"--install-dir={self.composer_path.parent}",
                f"--filename={self.composer_path.name}",
            ],
        ).check()
        return StepResult.success()

    def download_panel(self, platform: Platform, config: InstallConfig) -> StepResult:
        panel = Path(config.panel_path)
        panel.mkdir(parents=True, exist_ok=True)

        self.runner.run(
            "curl", ["-sSL", "-o", "panel.tar.gz", config.panel_download_url], cwd=panel
        ).check()
        self.runner.run("tar", ["-xzf", "panel.tar.gz"], cwd=panel).check()
        self.runner.run("chmod", ["-R", "755", "storage", "bootstrap/cache"], cwd=panel).check()

        if (panel / ".env").exists():
            logger.info("Keeping existing %s/.env", panel)
        else:
            self.runner.run("cp", [".env.example", ".env"], cwd=panel).check()
        return StepResult.success()

    def install_panel_dependencies(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.runner.run(
            str(self.composer_path),
            ["install", "--no-dev", "--optimize-autoloader"],
            {"COMPOSER_ALLOW_SUPERUSER": "1"},
            cwd=config.panel_path,
            stream=True,
        ).check()
        return StepResult.success()

    # ── Database & application ──────────────────────────────────

    def create_database(self, platform: Platform, config: InstallConfig) -> StepResult:
        outcome = self.provisioner.ensure_database_user(
            config.db_user,
            config.db_password.get_secret_value(),
            host=DB_HOST,
            rotate_password=config.rotate_db_password,
        )
        self.provisioner.ensure_database(config.db_name)
        self.provisioner.grant_all_privileges(config.db_name, config.db_user, DB_HOST)
        return StepResult.success(f"user {outcome}")

    def configure_environment(self, platform: Platform, config: InstallConfig) -> StepResult:
        env_file = Path(config.panel_path) / ".env"
        if env_has_app_key(env_file):
            logger.info("APP_KEY already set, not regenerating")
        else:
            self._artisan(config, "key:generate", "--force")

        self._artisan(
            config,
            "p:environment:setup",
            f"--author={config.admin_email}",
            f"--url={config.app_url}",
            f"--timezone={config.timezone}",
            "--cache=redis",
            "--session=redis",
            "--queue=redis",
            "--redis-host=localhost",
            "--redis-pass=null",
            "--redis-port=6379",
            "--settings-ui=true",
        )

        password = config.db_password.get_secret_value()
        self._artisan(
            config,
            "p:environment:database",
            f"--host={DB_HOST}",
            f"--port={DB_PORT}",
            f"--database={config.db_name}",
            f"--username={config.db_user}",
            f"--password={password}",
            secrets=(password,),
        )
        return StepResult.success()

    def migrate_database(self, platform: Platform, config: InstallConfig) -> StepResult:
        self._artisan(config, "migrate", "--seed", "--force", stream=True)
        return StepResult.success()

    def create_admin_user(self, platform: Platform, config: InstallConfig) -> StepResult:
        admin = config.admin
        password = admin.password.get_secret_value()
        self._artisan(
            config,
            "p:user:make",
            f"--email={admin.email}",
            f"--username={admin.username}",
            f"--name-first={admin.first_name}",
            f"--name-last={admin.last_name}",
            f"--password={password}",
            "--admin=1",
            secrets=(password,),
        )
        return StepResult.success(f"admin {admin.username}")

    # ── Host wiring ─────────────────────────────────────────────

    def set_permissions(self, platform: Platform, config: InstallConfig) -> StepResult:
        self.provisioner.set_ownership(Path(config.panel_path), self.handler.web_user)
        return StepResult.success()

    def install_cron(self, platform: Platform, config: InstallConfig) -> StepResult:
        changed = self.provisioner.ensure_cron_line(
            self.handler.web_user, schedule_line(config.panel_path)
        )
        return StepResult.success("installed" if changed else "already present")

    def install_queue_worker(self, platform: Platform, config: InstallConfig) -> StepResult:
        unit = render_template(
            "pteroq.service",
            {
                "redis_service": self.handler.redis_service,
                "user": self.handler.web_user,
                "php_binary": self.handler.php_binary,
                "panel_path": config.panel_path,
            },
        )
        self.provisioner.install_system_unit(self.handler.systemd_unit_dir / QUEUE_UNIT, unit)
        return StepResult.success()

    def configure_nginx(self, platform: Platform, config: InstallConfig) -> StepResult:
        template = nginx_template(config)
        site = render_template(
            template,
            {
                "domain": config.domain,
                "panel_path": config.panel_path,
                "php_socket": self.handler.php_socket,
            },
        )

        self.provisioner.remove_file(self.handler.nginx_default_site())
        site_path = self.handler.nginx_site_path()
        self.provisioner.write_file(site_path, site)
        if self.handler.nginx_enabled_dir is not None:
            self.provisioner.symlink(site_path, self.handler.nginx_enabled_dir / site_path.name)

        # certificate files do not exist yet for an assumed-SSL site
        if not (config.assume_ssl and not config.use_lets_encrypt):
            self.provisioner.restart_service("nginx")
        return StepResult.success(template)

    def setup_letsencrypt(self, platform: Platform, config: InstallConfig) -> StepResult:
        result = self.runner.run(
            "certbot",
            [
                "--nginx",
                "--redirect",
                "--non-interactive",
                "--agree-tos",
                "--no-eff-email",
                "--email", config.admin_email,
                "-d", config.domain,
            ],
            stream=True,
        )
        if result.ok:
            self.provisioner.restart_service("nginx")
            return StepResult.success("certificate issued")

        logger.warning("Failed to obtain a Let's Encrypt certificate for %s", config.domain)
        assume_ssl = self.policy.confirm("Still assume SSL?", default=False)
        fallback = config.model_copy(update={"assume_ssl": assume_ssl, "use_lets_encrypt": False})
        self.configure_nginx(platform, fallback)
        return StepResult.failure(
            f"certbot exited with code {result.exit_code}; "
            f"nginx configured {'for' if assume_ssl else 'without'} SSL",
            exit_code=result.exit_code,
        )
