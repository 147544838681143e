"""
Shared test fixtures and configuration.
"""

import re
import textwrap
from pathlib import Path

import pytest

from panel_installer.adapters.mock import RecordedCall, RecordingRunner
from panel_installer.core.config.loader import build_config
from panel_installer.core.models.platform import PackageManager, Platform, PlatformFamily
from panel_installer.core.platforms import DebianHandler, PlatformHandler, RhelHandler
from panel_installer.core.services.provisioner import ResourceProvisioner

UBUNTU_OS_RELEASE = textwrap.dedent("""\
    PRETTY_NAME="Ubuntu 22.04.4 LTS"
    NAME="Ubuntu"
    VERSION_ID="22.04"
    VERSION="22.04.4 LTS (Jammy Jellyfish)"
    VERSION_CODENAME=jammy
    ID=ubuntu
    ID_LIKE=debian
""")

ROCKY_OS_RELEASE = textwrap.dedent("""\
    NAME="Rocky Linux"
    VERSION="9.3 (Blue Onyx)"
    ID="rocky"
    ID_LIKE="rhel centos fedora"
    VERSION_ID="9.3"
    PRETTY_NAME="Rocky Linux 9.3 (Blue Onyx)"
""")

DB_PASSWORD = "s3cretDbPassw0rd"
ADMIN_PASSWORD = "AdminPassw0rd99"


# ── Fake host services ──────────────────────────────────────────


class FakeMySQL:
    """Stateful stand-in for ``mysql -u root``: tracks users and schemas."""

    def __init__(self) -> None:
        self.users: set[tuple[str, str]] = set()
        self.databases: set[str] = set()
        self.statements: list[str] = []

    def __call__(self, call: RecordedCall) -> tuple[int, str, str]:
        sql = (call.input or "").strip()
        self.statements.append(sql)
        if sql.startswith("SELECT COUNT(*)"):
            m = re.search(r"User='([^']*)' AND Host='([^']*)'", sql)
            return 0, ("1\n" if m and m.groups() in self.users else "0\n"), ""
        if sql.startswith("CREATE USER"):
            m = re.search(r"'([^']*)'@'([^']*)'", sql)
            self.users.add(m.groups())
        elif sql.startswith("CREATE DATABASE"):
            self.databases.add(re.search(r"`([^`]*)`", sql).group(1))
        return 0, "", ""


class FakeCrontab:
    """Stateful stand-in for ``crontab -u USER -l`` / ``crontab -u USER -``."""

    def __init__(self) -> None:
        self.tables: dict[str, str] = {}

    def __call__(self, call: RecordedCall) -> tuple[int, str, str]:
        user = call.argv[call.argv.index("-u") + 1]
        if call.argv[-1] == "-l":
            if user not in self.tables:
                return 1, "", f"no crontab for {user}"
            return 0, self.tables[user], ""
        self.tables[user] = call.input or ""
        return 0, "", ""

    def lines(self, user: str) -> list[str]:
        return self.tables.get(user, "").splitlines()


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def mysql(runner: RecordingRunner) -> FakeMySQL:
    fake = FakeMySQL()
    runner.set_handler("mysql", fake)
    return fake


@pytest.fixture
def crontab(runner: RecordingRunner) -> FakeCrontab:
    fake = FakeCrontab()
    runner.set_handler("crontab", fake)
    return fake


@pytest.fixture
def provisioner(runner: RecordingRunner) -> ResourceProvisioner:
    return ResourceProvisioner(runner)


@pytest.fixture
def ubuntu() -> Platform:
    return Platform(
        family=PlatformFamily.DEBIAN,
        distro="ubuntu",
        major_version=22,
        version="22.04",
        codename="jammy",
        package_manager=PackageManager.APT,
    )


@pytest.fixture
def rocky() -> Platform:
    return Platform(
        family=PlatformFamily.RHEL,
        distro="rocky",
        major_version=9,
        version="9.3",
        package_manager=PackageManager.DNF,
    )


@pytest.fixture
def host(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every host path the handlers write to under tmp_path/etc."""
    etc = tmp_path / "etc"
    monkeypatch.setattr(PlatformHandler, "systemd_unit_dir", etc / "systemd" / "system")
    monkeypatch.setattr(DebianHandler, "nginx_site_dir", etc / "nginx" / "sites-available")
    monkeypatch.setattr(DebianHandler, "nginx_enabled_dir", etc / "nginx" / "sites-enabled")
    monkeypatch.setattr(DebianHandler, "sury_key_path", etc / "apt" / "trusted.gpg.d" / "php.gpg")
    monkeypatch.setattr(DebianHandler, "sury_sources_path", etc / "apt" / "sources.list.d" / "php.list")
    monkeypatch.setattr(RhelHandler, "nginx_site_dir", etc / "nginx" / "conf.d")
    monkeypatch.setattr(RhelHandler, "php_fpm_pool_path", etc / "php-fpm.d" / "www-pterodactyl.conf")
    return etc


@pytest.fixture
def values(tmp_path: Path) -> dict:
    """A complete, valid set of install values."""
    return {
        "domain": "panel.test.local",
        "admin_email": "ops@example.com",
        "db_password": DB_PASSWORD,
        "panel_path": str(tmp_path / "panel"),
        "admin": {
            "email": "admin@example.com",
            "username": "admin",
            "first_name": "Ada",
            "last_name": "Admin",
            "password": ADMIN_PASSWORD,
        },
    }


@pytest.fixture
def config(values: dict):
    return build_config(values)


@pytest.fixture
def os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_OS_RELEASE)
    return path
