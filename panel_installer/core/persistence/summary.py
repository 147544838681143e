"""
Installation summary — the one place credentials are written in clear.

Only written when asked for (``--summary-file``) or when the installer
generated a password the operator has never seen. The file is created
atomically with mode 0600.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.report import RunReport
from panel_installer.core.platforms.base import PlatformHandler

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_PATH = Path("/root/pterodactyl_installation_summary.txt")


def render_summary(
    config: InstallConfig,
    report: RunReport,
    handler: PlatformHandler | None = None,
) -> str:
    """Plain-text summary of the install, including the database password."""
    lines = [
        "Pterodactyl Panel Installation Summary",
        f"Date: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"Run: {report.run_id} ({report.status.value})",
        f"Panel URL: {config.app_url}",
        "",
        "Administrator:",
        f"  - Username: {config.admin.username}",
        f"  - Email: {config.admin.email}",
    ]
    if "admin.password" in config.generated_secrets:
        lines.append(f"  - Password: {config.admin.password.get_secret_value()}")
    lines += [
        "",
        "Database Information:",
        f"  - Database: {config.db_name}",
        f"  - Username: {config.db_user}",
        f"  - Password: {config.db_password.get_secret_value()}",
        "",
        f"Installation Path: {config.panel_path}",
        "Service Name: pteroq.service",
    ]
    if handler is not None:
        lines.append(f"Nginx Config: {handler.nginx_site_path()}")
    if report.failures:
        lines += ["", "Failed steps:"]
        lines += [f"  - {e.step}: {e.result.reason}" for e in report.failures]
    return "\n".join(lines) + "\n"


def write_summary(path: Path, content: str) -> None:
    """Atomically write *content* to *path*, readable by the owner only."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".summary_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Installation summary saved to %s", path)
