"""
Run report — the externally visible summary of an install run.

Append-only and owned by the step engine. Every executed step adds one
entry in execution order; steps that never ran (after an abort) do not
appear.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from panel_installer.core.models.platform import Platform
from panel_installer.core.models.step import StepResult, StepState


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    ABORTED = "aborted"


# Process exit code per run status
EXIT_CODES: dict[RunStatus, int] = {
    RunStatus.SUCCEEDED: 0,
    RunStatus.COMPLETED_WITH_WARNINGS: 2,
    RunStatus.ABORTED: 1,
}


@dataclass(frozen=True)
class ReportEntry:
    """One executed step."""

    step: str
    result: StepResult
    critical: bool = True
    timestamp: str = field(default_factory=_now_iso)

    @property
    def state(self) -> StepState:
        return StepState.SUCCEEDED if self.result.ok else StepState.FAILED

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "state": self.state.value,
            "critical": self.critical,
            "timestamp": self.timestamp,
            "reason": self.result.reason,
            "exit_code": self.result.exit_code,
            "detail": self.result.detail,
        }


@dataclass
class RunReport:
    """Ordered record of a run."""

    run_id: str = ""
    platform: Platform | None = None
    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""
    aborted_at: str | None = None   # name of the step the operator aborted on
    _entries: list[ReportEntry] = field(default_factory=list)

    def record(self, step: str, result: StepResult, critical: bool = True) -> ReportEntry:
        """Append an entry. Entries are never modified or removed."""
        entry = ReportEntry(step=step, result=result, critical=critical)
        self._entries.append(entry)
        return entry

    def abort(self, step: str) -> None:
        self.aborted_at = step

    def finish(self) -> None:
        self.ended_at = _now_iso()

    @property
    def entries(self) -> tuple[ReportEntry, ...]:
        return tuple(self._entries)

    @property
    def total(self) -> int:
        return len(self._entries)

    @property
    def succeeded(self) -> int:
        return sum(1 for e in self._entries if e.result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for e in self._entries if e.result.failed)

    @property
    def failures(self) -> list[ReportEntry]:
        return [e for e in self._entries if e.result.failed]

    @property
    def status(self) -> RunStatus:
        if self.aborted_at is not None:
            return RunStatus.ABORTED
        if self.failed:
            return RunStatus.COMPLETED_WITH_WARNINGS
        return RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    def get(self, step: str) -> ReportEntry | None:
        """Look up the entry for a step name."""
        for entry in self._entries:
            if entry.step == step:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "platform": self.platform.model_dump(mode="json") if self.platform else None,
            "status": self.status.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "aborted_at": self.aborted_at,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "steps": [e.to_dict() for e in self._entries],
        }


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
