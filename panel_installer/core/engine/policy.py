"""
Failure policy — what happens when a critical step fails.

The engine never decides by itself: it asks the injected policy.
``PromptPolicy`` asks the operator at the terminal; ``FixedPolicy``
answers the same way every time for unattended runs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

import click

logger = logging.getLogger(__name__)

_YES = frozenset({"y", "yes"})
_NO = frozenset({"n", "no"})


class Decision(str, Enum):
    CONTINUE = "continue"
    ABORT = "abort"


def parse_answer(answer: str, default: bool) -> bool | None:
    """Interpret a yes/no answer.

    Returns True/False, the default for an empty answer, or None when
    the answer is not recognised.
    """
    normalized = answer.strip().lower()
    if not normalized:
        return default
    if normalized in _YES:
        return True
    if normalized in _NO:
        return False
    return None


class FailurePolicy(ABC):
    """Decides whether a run continues after a failed step."""

    @abstractmethod
    def decide(self, step_name: str, reason: str) -> Decision:
        """Continue or abort after *step_name* failed with *reason*."""

    @abstractmethod
    def confirm(self, question: str, default: bool = False) -> bool:
        """Ask a yes/no question raised by a step."""


class FixedPolicy(FailurePolicy):
    """Unattended policy: always the same decision, every question defaulted."""

    def __init__(self, decision: Decision = Decision.ABORT):
        self.decision = Decision(decision)

    def __repr__(self) -> str:
        return f"<FixedPolicy {self.decision.value}>"

    def decide(self, step_name: str, reason: str) -> Decision:
        logger.info("Step %s failed; policy says %s", step_name, self.decision.value)
        return self.decision

    def confirm(self, question: str, default: bool = False) -> bool:
        logger.info("%s → %s (unattended default)", question, "yes" if default else "no")
        return default


class PromptPolicy(FailurePolicy):
    """Asks the operator on the terminal.

    Args:
        default: Decision taken on an empty answer or when stdin closes.
        prompt: ``click.prompt``-compatible callable, replaced in tests.
    """

    QUESTION = "Would you like to continue anyway?"

    def __init__(
        self,
        default: Decision = Decision.ABORT,
        prompt: Callable[..., str] = click.prompt,
    ):
        self.default = Decision(default)
        self._prompt = prompt

    def decide(self, step_name: str, reason: str) -> Decision:
        click.secho(f"✗ {step_name} failed: {reason}", fg="red", err=True)
        proceed = self._ask(self.QUESTION, default=self.default is Decision.CONTINUE)
        return Decision.CONTINUE if proceed else Decision.ABORT

    def confirm(self, question: str, default: bool = False) -> bool:
        return self._ask(question, default=default)

    def _ask(self, question: str, default: bool) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        while True:
            try:
                answer = self._prompt(
                    f"{question} {suffix}",
                    default="",
                    show_default=False,
                    err=True,
                )
            except (EOFError, click.Abort):
                logger.warning("No answer on stdin; using default (%s)", "yes" if default else "no")
                return default

            parsed = parse_answer(answer, default)
            if parsed is not None:
                return parsed
            click.secho("Please answer yes (y) or no (n).", fg="yellow", err=True)
