"""
Command runner — execute one external process and capture its outcome.

This is the SINGLE PLACE where processes are started for install
operations. Every step, provisioner and platform handler goes through it.

Contract:
    - Never raises on a non-zero exit; callers interpret exit codes
      (``CommandResult.check()`` turns a failure into ``CommandFailure``).
    - A missing executable is reported as exit code 127.
    - ``stream=True`` forwards output line by line to the logger while the
      command runs (package installs, composer, migrations).
    - Values passed in ``secrets`` are masked in every logged command line
      and streamed output line.
    - Output is decoded as UTF-8; undecodable bytes are replaced.
    - No timeout: a hung command blocks the run.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Mapping, Sequence

from pydantic import BaseModel

from panel_installer.core.errors import CommandFailure, InsufficientPrivilegesError

logger = logging.getLogger(__name__)

_MASK = "********"

# Exit codes used when the process could not be started at all
EXIT_NOT_FOUND = 127
EXIT_CANNOT_EXECUTE = 126


class CommandResult(BaseModel):
    """Outcome of one command. ``command`` is the redacted display form."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self) -> CommandResult:
        """Return self on success, raise ``CommandFailure`` otherwise."""
        if not self.ok:
            raise CommandFailure(self.command, self.exit_code, self.stderr or self.stdout)
        return self


def redact(text: str, secrets: Sequence[str]) -> str:
    """Mask every non-empty secret in *text*."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, _MASK)
    return text


class CommandRunner:
    """Runs external commands with the caller's privileges."""

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        *,
        cwd: str | os.PathLike[str] | None = None,
        input: str | None = None,
        stream: bool = False,
        secrets: Sequence[str] = (),
    ) -> CommandResult:
        """Run ``command args...`` and return its result.

        Args:
            command: Executable name or path.
            args: Arguments, passed without a shell.
            env: Extra environment variables merged over the current ones.
            cwd: Working directory.
            input: Text fed to stdin (SQL, crontab contents).
            stream: Log output as it arrives instead of buffering silently.
            secrets: Values to mask in logs and in the result.
        """
        cmd = [command, *args]
        display = redact(shlex.join(cmd), secrets)
        logger.debug("Executing: %s (cwd=%s)", display, cwd or ".")

        full_env: dict[str, str] | None = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        start = time.monotonic()
        exit_code, stdout, stderr = self._execute(
            cmd,
            env=full_env,
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            stream=stream,
            secrets=secrets,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if exit_code != 0:
            logger.debug("%s → exit %d after %dms", display, exit_code, elapsed_ms)

        return CommandResult(
            command=display,
            exit_code=exit_code,
            stdout=redact(stdout, secrets),
            stderr=redact(stderr, secrets),
            duration_ms=elapsed_ms,
        )

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
        try:
            if stream:
                return self._stream(cmd, env=env, cwd=cwd, input=input, secrets=secrets)

            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                input=input,
                env=env,
                cwd=cwd,
            )
            return result.returncode, result.stdout or "", result.stderr or ""

        except FileNotFoundError:
            return EXIT_NOT_FOUND, "", f"Command not found: {cmd[0]}"
        except OSError as e:
            return EXIT_CANNOT_EXECUTE, "", f"Cannot execute {cmd[0]}: {e}"

    def _stream(
        self,
        cmd: list[str],
        *,
        env: dict[str, str] | None,
        cwd: str | None,
        input: str | None,
        secrets: Sequence[str],
    ) -> tuple[int, str, str]:
        """Run with stderr merged into stdout, logging each line."""
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=env,
            cwd=cwd,
        )
        if input is not None and proc.stdin:
            proc.stdin.write(input)
            proc.stdin.close()

        lines: list[str] = []
        if proc.stdout:
            for line in proc.stdout:
                line = line.rstrip()
                lines.append(line)
                logger.info("  │ %s", redact(line, secrets))
        proc.wait()
        return proc.returncode, "\n".join(lines), ""


def require_root(euid: int | None = None) -> None:
    """Fail fast unless running with root privileges.

    Raises:
        InsufficientPrivilegesError: when the effective uid is not 0.
    """
    uid = os.geteuid() if euid is None else euid
    if uid != 0:
        raise InsufficientPrivilegesError(
            "This installer must be run as root (try: sudo panel-installer install ...)"
        )
