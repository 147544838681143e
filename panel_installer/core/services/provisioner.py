"""
Resource provisioner — idempotent creators for host resources.

Every operation converges: running it twice with the same inputs does
not fail and leaves the host in the same state as running it once.
Re-running the whole install therefore starts at step 1 without harm.

Commands go through the CommandRunner; file contents are written
directly (atomic replace).
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from panel_installer.adapters.shell.command import CommandResult, CommandRunner
from panel_installer.core.errors import StaleCredentialsError

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")

# crontab schedule field: digits, ranges, steps, lists, names, or *
_CRON_FIELD_RE = re.compile(r"^[\d*/,\-A-Za-z]+$")


# ── SQL quoting ─────────────────────────────────────────────────


def sql_string(value: str) -> str:
    """Quote *value* as a MySQL string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def sql_identifier(name: str) -> str:
    """Quote a database or user name; only ``[A-Za-z0-9_]`` is accepted."""
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f"`{name}`"


def _account(user: str, host: str) -> str:
    return f"{sql_string(user)}@{sql_string(host)}"


# ── Cron helpers ────────────────────────────────────────────────


def cron_signature(line: str) -> str:
    """The command part of a crontab line, used to detect duplicates.

    ``* * * * * php artisan schedule:run`` and ``*/5 * * * * php artisan
    schedule:run`` share a signature. Comments and env lines are their
    own signature.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return stripped
    if stripped.startswith("@"):
        parts = stripped.split(None, 1)
        return parts[1].strip() if len(parts) == 2 else stripped
    parts = stripped.split(None, 5)
    if len(parts) == 6 and all(_CRON_FIELD_RE.match(p) for p in parts[:5]):
        return parts[5].strip()
    return stripped


class ResourceProvisioner:
    """Idempotent operations on users, databases, cron, units and files."""

    def __init__(self, runner: CommandRunner, mysql_user: str = "root"):
        self.runner = runner
        self._mysql_user = mysql_user

    # ── Database ────────────────────────────────────────────────

    def _sql(self, statement: str, *, secrets: tuple[str, ...] = ()) -> CommandResult:
        """Run SQL through the mysql client. The statement goes via stdin."""
        return self.runner.run(
            "mysql",
            ["-u", self._mysql_user, "-N", "-B"],
            input=statement + "\n",
            secrets=secrets,
        ).check()

    def database_user_exists(self, name: str, host: str = "127.0.0.1") -> bool:
        result = self._sql(
            f"SELECT COUNT(*) FROM mysql.user WHERE User={sql_string(name)} "
            f"AND Host={sql_string(host)};"
        )
        count = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else "0"
        return count.strip() not in ("", "0")

    def ensure_database_user(
        self,
        name: str,
        password: str,
        *,
        host: str = "127.0.0.1",
        rotate_password: bool = True,
    ) -> str:
        """Make sure ``name@host`` exists with *password*.

        An existing user gets its password rotated to *password*. With
        ``rotate_password=False`` an existing user is an error instead,
        because its stored password may not match the configured one.

        Returns:
            ``"created"`` or ``"rotated"``.

        Raises:
            StaleCredentialsError: user exists and rotation was declined.
        """
        sql_identifier(name)
        account = _account(name, host)

        if not self.database_user_exists(name, host):
            self._sql(
                f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {sql_string(password)};",
                secrets=(password,),
            )
            logger.info("Created database user %s@%s", name, host)
            return "created"

        if not rotate_password:
            raise StaleCredentialsError(
                f"Database user {name}@{host} already exists and password rotation "
                "is disabled; its password may not match the configured one"
            )

        self._sql(
            f"ALTER USER {account} IDENTIFIED BY {sql_string(password)};",
            secrets=(password,),
        )
        logger.info("Database user %s@%s exists — password rotated", name, host)
        return "rotated"

    def ensure_database(self, name: str) -> None:
        """Create the schema if it does not exist."""
        self._sql(f"CREATE DATABASE IF NOT EXISTS {sql_identifier(name)};")
        logger.info("Database %s is present", name)

    def grant_all_privileges(self, db: str, user: str, host: str = "127.0.0.1") -> None:
        """Grant *user* full rights on *db* only. Safe to repeat."""
        self._sql(
            f"GRANT ALL PRIVILEGES ON {sql_identifier(db)}.* TO {_account(user, host)}; "
            "FLUSH PRIVILEGES;"
        )
        logger.info("Granted %s@%s all privileges on %s", user, host, db)

    # ── Cron ────────────────────────────────────────────────────

    def read_crontab(self, user: str) -> list[str]:
        """Current crontab lines for *user* (no crontab → empty)."""
        result = self.runner.run("crontab", ["-u", user, "-l"])
        if not result.ok:
            # crontab -l exits 1 with "no crontab for <user>"
            return []
        return result.stdout.splitlines()

    def ensure_cron_line(self, user: str, line: str) -> bool:
        """Install *line* in *user*'s crontab exactly once.

        Existing lines with the same command signature are replaced, other
        lines are kept untouched.

        Returns:
            True if the crontab was rewritten, False if already in place.
        """
        signature = cron_signature(line)
        existing = self.read_crontab(user)
        matches = [entry for entry in existing if cron_signature(entry) == signature]

        if matches == [line]:
            logger.info("Cron entry for %s already installed", user)
            return False

        kept = [entry for entry in existing if cron_signature(entry) != signature]
        content = "\n".join(kept + [line]) + "\n"
        self.runner.run("crontab", ["-u", user, "-"], input=content).check()
        logger.info("Installed cron entry for %s", user)
        return True

    # ── systemd ─────────────────────────────────────────────────

    def install_system_unit(
        self,
        path: Path,
        rendered_content: str,
        *,
        enable: bool = True,
        restart: bool = True,
    ) -> None:
        """Write a unit file, reload systemd, then enable and (re)start it.

        The daemon-reload always happens before enable/start so systemd
        never starts a stale definition.
        """
        path = Path(path)
        self.write_file(path, rendered_content, mode=0o644)
        self.runner.run("systemctl", ["daemon-reload"]).check()
        if enable:
            self.runner.run("systemctl", ["enable", path.name]).check()
        if restart:
            self.runner.run("systemctl", ["restart", path.name]).check()
        logger.info("Installed unit %s", path.name)

    def enable_service(self, name: str, *, restart: bool = True) -> None:
        """Enable a service at boot and optionally (re)start it now."""
        self.runner.run("systemctl", ["enable", name]).check()
        if restart:
            self.runner.run("systemctl", ["restart", name]).check()

    def restart_service(self, name: str) -> None:
        self.runner.run("systemctl", ["restart", name]).check()

    # ── Files ───────────────────────────────────────────────────

    def set_ownership(self, path: Path, owner: str, *, group: str | None = None, recursive: bool = True) -> None:
        """chown *path* to ``owner:group`` (group defaults to owner)."""
        args = ["-R"] if recursive else []
        args += [f"{owner}:{group or owner}", str(path)]
        self.runner.run("chown", args).check()
        logger.info("Ownership of %s set to %s", path, owner)

    def write_file(self, path: Path, content: str, *, mode: int = 0o644) -> bool:
        """Atomically write *content* to *path*.

        Returns:
            True if the file changed, False if it already had this content.
        """
        path = Path(path)
        if path.is_file():
            try:
                if path.read_text(encoding="utf-8") == content:
                    os.chmod(path, mode)
                    logger.debug("%s unchanged", path)
                    return False
            except (OSError, UnicodeDecodeError):
                pass

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, mode)
            os.replace(tmp, path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Wrote %s", path)
        return True

    def remove_file(self, path: Path) -> bool:
        """Remove a file or symlink if present."""
        path = Path(path)
        if path.is_symlink() or path.exists():
            path.unlink()
            logger.info("Removed %s", path)
            return True
        return False

    def symlink(self, target: Path, link: Path) -> None:
        """Point *link* at *target*, replacing whatever was there."""
        link = Path(link)
        if link.is_symlink() and os.readlink(link) == str(target):
            return
        if link.is_symlink() or link.exists():
            link.unlink()
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target)
        logger.debug("Linked %s → %s", link, target)
