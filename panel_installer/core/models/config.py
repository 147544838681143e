"""
Install configuration — the single read-only input of every step.

Built once from the answers file, environment variables and CLI flags,
validated before the engine starts, then frozen. Secrets are held as
``SecretStr`` so they never show up in reprs or logs.
"""

from __future__ import annotations

import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

# ── Defaults ────────────────────────────────────────────────────

DEFAULT_DOMAIN = "panel.example.com"
DEFAULT_DB_NAME = "panel"
DEFAULT_DB_USER = "pterodactyl"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_PANEL_PATH = "/var/www/pterodactyl"
DEFAULT_PANEL_URL = "https://github.com/pterodactyl/panel/releases/latest/download/panel.tar.gz"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DOMAIN_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?$")
_IDENTIFIER = r"^[A-Za-z0-9_]+$"


def _check_email(value: str) -> str:
    if not _EMAIL_RE.match(value):
        raise ValueError(f"not a valid email address: {value!r}")
    return value


class AdminUser(BaseModel):
    """The first administrative panel account."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    email: str = Field(min_length=1)
    username: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    password: SecretStr

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def _password_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("password must not be empty")
        return value


class InstallConfig(BaseModel):
    """Everything the install steps need to know, fixed before step 1."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    domain: str = Field(default=DEFAULT_DOMAIN, pattern=_DOMAIN_RE.pattern)
    admin_email: str = Field(min_length=1)       # panel author + Let's Encrypt contact
    timezone: str = DEFAULT_TIMEZONE

    db_name: str = Field(default=DEFAULT_DB_NAME, pattern=_IDENTIFIER)
    db_user: str = Field(default=DEFAULT_DB_USER, pattern=_IDENTIFIER)
    db_password: SecretStr

    admin: AdminUser

    assume_ssl: bool = False
    use_lets_encrypt: bool = False
    configure_firewall: bool = True

    panel_path: str = DEFAULT_PANEL_PATH
    panel_download_url: str = DEFAULT_PANEL_URL
    rotate_db_password: bool = True

    # Names of secrets the loader generated (operator has not seen them yet)
    generated_secrets: tuple[str, ...] = ()

    @field_validator("admin_email")
    @classmethod
    def _valid_admin_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value == "UTC":
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value!r}") from e
        return value

    @field_validator("db_password")
    @classmethod
    def _db_password_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("password must not be empty")
        return value

    @field_validator("panel_path")
    @classmethod
    def _absolute_panel_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"panel path must be absolute: {value!r}")
        return value.rstrip("/") or "/"

    @property
    def uses_https(self) -> bool:
        return self.assume_ssl or self.use_lets_encrypt

    @property
    def app_url(self) -> str:
        scheme = "https" if self.uses_https else "http"
        return f"{scheme}://{self.domain}"
