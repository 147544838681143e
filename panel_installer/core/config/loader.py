"""
Configuration loader — answers file + overrides → InstallConfig.

Sources in increasing precedence:
    answers file (YAML)  <  environment variables / CLI flags

The result is validated in one go: every offending field is reported
together, before a single command runs. Missing passwords are
generated here and remembered in ``InstallConfig.generated_secrets``.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from panel_installer.core.errors import ConfigError, ValidationError
from panel_installer.core.models.config import InstallConfig

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits
PASSWORD_LENGTH = 32


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Random alphanumeric password from a CSPRNG."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def load_answers(path: Path) -> dict[str, Any]:
    """Read a YAML answers file.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Answers file not found: {path}")

    logger.debug("Loading answers from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge *overrides* over *base*. Unset override values are ignored."""
    merged = dict(base)
    for key, value in overrides.items():
        if _is_unset(value):
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _drop_unset(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            cleaned[key] = _drop_unset(value)
        elif not _is_unset(value):
            cleaned[key] = value
    return cleaned


def _format_errors(error: PydanticValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        where = ".".join(str(part) for part in item["loc"]) or "config"
        messages.append(f"{where}: {item['msg']}")
    return messages


def build_config(
    answers: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> InstallConfig:
    """Build and validate the install configuration.

    Args:
        answers: Values from the answers file (lowest precedence).
        overrides: Values from flags / environment variables. ``None`` and
            empty strings mean "not given".

    Returns:
        A frozen, validated InstallConfig.

    Raises:
        ValidationError: listing every invalid or missing field.
    """
    data = _drop_unset(merge(answers or {}, overrides or {}))
    admin = dict(data.get("admin") or {})
    generated: list[str] = []

    if _is_unset(data.get("db_password")):
        data["db_password"] = generate_password()
        generated.append("db_password")

    if _is_unset(admin.get("password")):
        admin["password"] = generate_password()
        generated.append("admin.password")

    data["admin"] = admin
    data["generated_secrets"] = tuple(generated)

    try:
        config = InstallConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_format_errors(e)) from None

    if generated:
        logger.info("Generated secrets: %s", ", ".join(generated))
    logger.debug(
        "Config: domain=%s db=%s user=%s https=%s",
        config.domain,
        config.db_name,
        config.db_user,
        config.uses_https,
    )
    return config
