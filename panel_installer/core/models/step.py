"""
Step and StepResult — the unit of work the engine runs.

A step is a named callable of ``(Platform, InstallConfig) -> StepResult``.
Persistent effects happen on the host, never in engine state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Literal

from pydantic import BaseModel

if TYPE_CHECKING:
    from panel_installer.core.models.config import InstallConfig
    from panel_installer.core.models.platform import Platform


class StepState(str, Enum):
    """Lifecycle of a step inside a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepResult(BaseModel):
    """Outcome of a single step. Consumed immediately by the engine."""

    status: Literal["succeeded", "failed"] = "succeeded"
    reason: str = ""
    exit_code: int | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, detail: str = "") -> StepResult:
        """Create a success result."""
        return cls(status="succeeded", detail=detail)

    @classmethod
    def failure(cls, reason: str, exit_code: int | None = None) -> StepResult:
        """Create a failure result."""
        return cls(status="failed", reason=reason, exit_code=exit_code)


StepFn = Callable[["Platform", "InstallConfig"], StepResult]


@dataclass(frozen=True)
class Step:
    """A named provisioning action.

    critical steps consult the failure policy when they fail.
    Non-critical steps are logged, recorded and skipped.
    """

    name: str
    run: StepFn
    critical: bool = True
    description: str = ""
