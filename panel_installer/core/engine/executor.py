"""
Step engine — the central orchestration loop.

Runs a fixed, ordered list of steps against one platform and one
configuration. Each step either succeeds or fails; a failed critical
step is handed to the failure policy, which says continue or abort. The
engine owns the run report and never re-orders, retries or skips steps
on its own.

Flow:
    family check → for each step: run → record → (policy on failure) → report
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from panel_installer.core.engine.policy import Decision, FailurePolicy
from panel_installer.core.errors import InstallerError, StepError, UnsupportedPlatformError
from panel_installer.core.models.config import InstallConfig
from panel_installer.core.models.platform import Platform, PlatformFamily
from panel_installer.core.models.report import RunReport, generate_run_id
from panel_installer.core.models.step import Step, StepResult, StepState

logger = logging.getLogger(__name__)


def _run_step(step: Step, platform: Platform, config: InstallConfig) -> StepResult:
    """Execute one step, turning a StepError, file or decoding error into a failed result."""
    try:
        result = step.run(platform, config)
    except StepError as e:
        return StepResult.failure(str(e), exit_code=e.exit_code)
    except OSError as e:
        if isinstance(e, InstallerError):
            raise
        return StepResult.failure(f"{type(e).__name__}: {e}")
    except UnicodeError as e:
        return StepResult.failure(f"{type(e).__name__}: {e}")
    if not isinstance(result, StepResult):
        raise TypeError(f"Step {step.name!r} returned {type(result).__name__}, not StepResult")
    return result


class StepEngine:
    """Runs steps strictly in order and applies the failure policy.

    Args:
        policy: Consulted when a critical step fails.
        supported_families: Families the engine accepts. Checked before
            the first step; anything else raises UnsupportedPlatformError.
    """

    def __init__(
        self,
        policy: FailurePolicy,
        supported_families: Iterable[PlatformFamily] = (PlatformFamily.DEBIAN, PlatformFamily.RHEL),
    ):
        self.policy = policy
        self.supported_families = frozenset(supported_families)

    def run(
        self,
        platform: Platform,
        config: InstallConfig,
        steps: Sequence[Step],
        run_id: str = "",
    ) -> RunReport:
        """Run *steps* and return the report.

        Raises:
            UnsupportedPlatformError: platform family is not supported.
                Raised before any step runs.
            ValueError: two steps share a name.
        """
        if platform.family not in self.supported_families:
            raise UnsupportedPlatformError(
                f"Unsupported platform family {platform.family.value!r} ({platform.label})"
            )

        names = [step.name for step in steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate step names: {', '.join(duplicates)}")

        steps = tuple(steps)
        report = RunReport(run_id=run_id or generate_run_id(), platform=platform)
        total = len(steps)

        for index, step in enumerate(steps, start=1):
            logger.info("[%d/%d] %s — %s", index, total, step.name, StepState.RUNNING.value)
            result = _run_step(step, platform, config)
            report.record(step.name, result, critical=step.critical)

            if result.ok:
                logger.info("✓ %s", step.name)
                continue

            exit_info = f"exit code {result.exit_code}" if result.exit_code is not None else "no exit code"
            if not step.critical:
                logger.warning("⚠ %s failed (%s): %s — continuing", step.name, exit_info, result.reason)
                continue

            logger.error("✗ %s failed (%s): %s", step.name, exit_info, result.reason)
            decision = self.policy.decide(step.name, result.reason)
            if decision is Decision.ABORT:
                logger.error("Run aborted at %s", step.name)
                report.abort(step.name)
                break
            logger.warning("Continuing after failed step %s", step.name)

        report.finish()
        logger.info(
            "Run %s finished: %s (%d/%d steps succeeded)",
            report.run_id,
            report.status.value,
            report.succeeded,
            report.total,
        )
        return report
