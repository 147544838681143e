"""
Run ledger — append-only history of install runs.

Every run writes one entry to an NDJSON (newline-delimited JSON) file:
which platform, which domain, how each step ended. Entries never hold
secrets; the failure reasons come from already-redacted command output.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from panel_installer import __version__
from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.report import RunReport

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_PATH = Path("/var/lib/panel-installer/runs.ndjson")


class LedgerEntry(BaseModel):
    """A single run."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""

    # Where and what
    platform: str = ""
    family: str = ""
    domain: str = ""
    panel_path: str = ""

    # Results
    status: str = ""               # succeeded, completed_with_warnings, aborted
    exit_code: int = 0
    steps_total: int = 0
    steps_succeeded: int = 0
    steps_failed: int = 0
    aborted_at: str | None = None
    started_at: str = ""
    ended_at: str = ""

    # "step: reason" per failed step
    failures: list[str] = Field(default_factory=list)

    # Options the run was made with; generated secrets by name only
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: RunReport, config: InstallConfig) -> LedgerEntry:
        platform = report.platform
        return cls(
            run_id=report.run_id,
            platform=platform.label if platform else "",
            family=platform.family.value if platform else "",
            domain=config.domain,
            panel_path=config.panel_path,
            status=report.status.value,
            exit_code=report.exit_code,
            steps_total=report.total,
            steps_succeeded=report.succeeded,
            steps_failed=report.failed,
            aborted_at=report.aborted_at,
            started_at=report.started_at,
            ended_at=report.ended_at,
            failures=[f"{e.step}: {e.result.reason}" for e in report.failures],
            context={
                "installer_version": __version__,
                "assume_ssl": config.assume_ssl,
                "use_lets_encrypt": config.use_lets_encrypt,
                "configure_firewall": config.configure_firewall,
                "generated_secrets": list(config.generated_secrets),
            },
        )


class RunLedger:
    """Append-only run ledger writer.

    Each call to write() appends a single JSON line. The file and its
    directory are created on first write.
    """

    def __init__(self, path: Path = DEFAULT_LEDGER_PATH):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: LedgerEntry) -> bool:
        """Append *entry*. Returns False if the ledger could not be written."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write run ledger %s: %s", self._path, e)
            return False
        logger.debug("Ledger entry written: %s", entry.run_id)
        return True

    def read_all(self) -> list[LedgerEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(LedgerEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[LedgerEntry]:
        """The last *n* entries, oldest first."""
        if n <= 0:
            return []
        return self.read_all()[-n:]
