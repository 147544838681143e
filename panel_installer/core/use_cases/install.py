"""
Install use case — the full vertical slice of a panel installation.

validate config → privilege check → probe platform → build steps →
run engine → write ledger entry → write summary (if requested)

Configuration errors surface before any command runs. Fatal errors
(``ValidationError``, ``InsufficientPrivilegesError``,
``UnsupportedPlatformError``, ``ConfigError``) propagate to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from panel_installer.adapters.shell.command import CommandRunner, require_root
from panel_installer.core.config.loader import build_config, load_answers
from panel_installer.core.engine.executor import StepEngine
from panel_installer.core.engine.policy import FailurePolicy
from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import Platform
from panel_installer.core.models.report import RunReport, generate_run_id
from panel_installer.core.observability.logging_config import mask_secret
from panel_installer.core.persistence.ledger import DEFAULT_LEDGER_PATH, LedgerEntry, RunLedger
from panel_installer.core.persistence.summary import (
    DEFAULT_SUMMARY_PATH,
    render_summary,
    write_summary,
)
from panel_installer.core.platforms import SUPPORTED_FAMILIES, handler_for
from panel_installer.core.services.environment import EnvironmentProbe
from panel_installer.core.services.panel_steps import COMPOSER_PATH, PanelInstaller
from panel_installer.core.services.provisioner import ResourceProvisioner

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of an install run."""

    config: InstallConfig
    platform: Platform
    report: RunReport
    ledger_path: Path | None = None
    summary_path: Path | None = None
    generated_secrets: tuple[str, ...] = field(default_factory=tuple)

    @property
    def exit_code(self) -> int:
        return self.report.exit_code

    def to_dict(self) -> dict:
        return {
            "platform": self.platform.model_dump(mode="json"),
            "domain": self.config.domain,
            "panel_url": self.config.app_url,
            "ledger": str(self.ledger_path) if self.ledger_path else None,
            "summary": str(self.summary_path) if self.summary_path else None,
            "generated_secrets": list(self.generated_secrets),
            "report": self.report.to_dict(),
        }


def install_panel(
    values: Mapping[str, Any] | None = None,
    *,
    policy: FailurePolicy,
    answers_file: Path | None = None,
    runner: CommandRunner | None = None,
    probe: EnvironmentProbe | None = None,
    euid: int | None = None,
    ledger_path: Path | None = DEFAULT_LEDGER_PATH,
    summary_path: Path | None = None,
    composer_path: Path = COMPOSER_PATH,
) -> InstallResult:
    """Install the panel on this host.

    Args:
        values: Flag / environment values, overriding the answers file.
        policy: Failure policy for critical steps and step questions.
        answers_file: Optional YAML answers file.
        runner: Command runner (a RecordingRunner in tests).
        probe: Environment probe (reads /etc/os-release by default).
        euid: Effective uid override for the privilege check.
        ledger_path: NDJSON run ledger, or None to skip it.
        summary_path: Write the credentials summary here. Without a
            path, the policy is asked "Generate installation summary?"
            (default yes only if a secret was generated) and a yes writes
            it to DEFAULT_SUMMARY_PATH.
        composer_path: Composer binary location.

    Returns:
        InstallResult with the run report.
    """
    answers = load_answers(answers_file) if answers_file else {}
    config = build_config(answers, values or {})
    mask_secret(config.db_password.get_secret_value())
    mask_secret(config.admin.password.get_secret_value())

    require_root(euid)

    probe = probe or EnvironmentProbe()
    platform = probe.detect()

    runner = runner or CommandRunner()
    handler = handler_for(platform, ResourceProvisioner(runner))
    installer = PanelInstaller(handler, policy, composer_path=composer_path)
    steps = installer.steps(config)

    run_id = generate_run_id()
    logger.info(
        "Installing Pterodactyl panel for %s on %s (%d steps, run %s)",
        config.domain,
        platform.label,
        len(steps),
        run_id,
    )

    engine = StepEngine(policy, supported_families=SUPPORTED_FAMILIES)
    report = engine.run(platform, config, steps, run_id=run_id)

    result = InstallResult(
        config=config,
        platform=platform,
        report=report,
        generated_secrets=config.generated_secrets,
    )

    # ── Persist ──────────────────────────────────────────────────
    if ledger_path is not None:
        ledger = RunLedger(ledger_path)
        if ledger.write(LedgerEntry.from_report(report, config)):
            result.ledger_path = ledger.path

    if summary_path is None:
        if policy.confirm("Generate installation summary?", default=bool(config.generated_secrets)):
            summary_path = DEFAULT_SUMMARY_PATH
    if summary_path is not None:
        try:
            write_summary(summary_path, render_summary(config, report, handler))
        except OSError as e:
            logger.error("Failed to write installation summary %s: %s", summary_path, e)
        else:
            result.summary_path = Path(summary_path)

    return result
