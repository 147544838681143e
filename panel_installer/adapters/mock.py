"""
Recording runner — test double for the command runner.

Never starts a process. Records every call and answers with scripted
results: by default every command succeeds with empty output. Responses
are matched by substring against the full (unredacted) command line, the
most recently registered match wins.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from panel_installer.adapters.shell.command import CommandRunner


@dataclass
class RecordedCall:
    """One command the code under test tried to run."""

    argv: list[str]
    env: dict[str, str] | None = None
    cwd: str | None = None
    input: str | None = None
    stream: bool = False

    @property
    def line(self) -> str:
        return shlex.join(self.argv)


Handler = Callable[[RecordedCall], tuple[int, str, str]]


@dataclass
class _Response:
    pattern: str
    handler: Handler
    remaining: int | None = None    # None = unlimited


class RecordingRunner(CommandRunner):
    """Command runner that records calls instead of executing them."""

    def __init__(self) -> None:
        self._calls: list[RecordedCall] = []
        self._responses: list[_Response] = []

    @property
    def calls(self) -> list[RecordedCall]:
        """All calls received, in order."""
        return self._calls

    @property
    def call_count(self) -> int:
        return len(self._calls)

    @property
    def lines(self) -> list[str]:
        """Every call rendered as a shell line."""
        return [c.line for c in self._calls]

    def set_result(
        self,
        pattern: str,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        *,
        times: int | None = None,
    ) -> None:
        """Answer commands containing *pattern* with a fixed result."""
        self.set_handler(pattern, lambda _call: (exit_code, stdout, stderr), times=times)

    def set_failure(self, pattern: str, exit_code: int = 1, stderr: str = "Mock failure") -> None:
        """Configure commands containing *pattern* to fail."""
        self.set_result(pattern, exit_code=exit_code, stderr=stderr)

    def set_handler(self, pattern: str, handler: Handler, *, times: int | None = None) -> None:
        """Answer commands containing *pattern* by calling *handler*."""
        self._responses.append(_Response(pattern=pattern, handler=handler, remaining=times))

    def find(self, pattern: str) -> list[RecordedCall]:
        """Calls whose command line contains *pattern*."""
        return [c for c in self._calls if pattern in c.line]

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._calls.clear()
        self._responses.clear()

    def _execute(
        self,
        cmd: list[str],
        *,
        env: dict[str, str] | None,
        cwd: str | None,
        input: str | None,
        stream: bool,
        secrets: Sequence[str],
    ) -> tuple[int, str, str]:
        call = RecordedCall(argv=list(cmd), env=env, cwd=cwd, input=input, stream=stream)
        self._calls.append(call)

        haystack = call.line + ("\n" + input if input else "")
        for response in reversed(self._responses):
            if response.pattern not in haystack:
                continue
            if response.remaining is not None:
                if response.remaining <= 0:
                    continue
                response.remaining -= 1
            return response.handler(call)

        return 0, "", ""
