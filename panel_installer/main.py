"""
Pterodactyl panel installer — CLI entrypoint.

Usage:
    panel-installer --help
    panel-installer detect
    panel-installer history -n 5
    panel-installer install --domain panel.example.com --email admin@example.com ...
    panel-installer render nginx.conf -s domain=panel.example.com ...
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
from click.core import ParameterSource

from panel_installer import __version__
from panel_installer.core.errors import InstallerError, ValidationError
from panel_installer.core.observability.logging_config import setup_logging

DEFAULT_LOG_FILE = "/var/log/pterodactyl-installer.log"

# Flag → config field. Nested fields use a dotted path.
_FIELD_BY_OPTION = {
    "domain": "domain",
    "db_name": "db_name",
    "db_user": "db_user",
    "db_password": "db_password",
    "timezone": "timezone",
    "assume_ssl": "assume_ssl",
    "letsencrypt": "use_lets_encrypt",
    "firewall": "configure_firewall",
    "email": "admin_email",
    "admin_email": "admin.email",
    "admin_username": "admin.username",
    "admin_first_name": "admin.first_name",
    "admin_last_name": "admin.last_name",
    "admin_password": "admin.password",
    "panel_path": "panel_path",
    "rotate_db_password": "rotate_db_password",
}

_STATUS_STYLE = {
    "succeeded": ("✅", "green"),
    "completed_with_warnings": ("⚠️ ", "yellow"),
    "aborted": ("❌", "red"),
}


def _default_log_file(subcommand: str | None) -> str | None:
    """Installs log to DEFAULT_LOG_FILE when its directory is writable."""
    if subcommand != "install":
        return None
    if os.access(os.path.dirname(DEFAULT_LOG_FILE), os.W_OK):
        return DEFAULT_LOG_FILE
    return None


@click.group()
@click.version_option(version=__version__, prog_name="panel-installer")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """Install the Pterodactyl panel on a Debian/Ubuntu or RHEL-family host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "WARNING"
    else:
        level = os.environ.get("PANEL_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("PANEL_LOG_FILE") or _default_log_file(ctx.invoked_subcommand),
        log_file_level=os.environ.get("PANEL_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Install ─────────────────────────────────────────────────────


def _collect_values(ctx: click.Context, params: dict) -> dict:
    """Explicitly given options as a nested config mapping.

    Options left at their default are omitted so they never override
    the answers file.
    """
    values: dict = {}
    for option, path in _FIELD_BY_OPTION.items():
        source = ctx.get_parameter_source(option)
        if source is None or source is ParameterSource.DEFAULT:
            continue
        value = params.get(option)
        if value is None:
            continue
        target = values
        *parents, leaf = path.split(".")
        for parent in parents:
            target = target.setdefault(parent, {})
        target[leaf] = value
    return values


def _make_policy(on_failure: str):
    from panel_installer.core.engine.policy import Decision, FixedPolicy, PromptPolicy

    if on_failure == "prompt":
        return PromptPolicy(default=Decision.ABORT)
    return FixedPolicy(Decision(on_failure))


def _print_report(result) -> None:
    report = result.report
    click.echo()
    click.secho(f"📋 Run {report.run_id} on {result.platform.label}", fg="cyan", bold=True)
    for entry in report.entries:
        if entry.result.ok:
            click.echo(f"   ✓ {entry.step}")
        elif entry.critical:
            click.secho(f"   ✗ {entry.step}: {entry.result.reason}", fg="red")
        else:
            click.secho(f"   ⚠ {entry.step}: {entry.result.reason}", fg="yellow")

    icon, color = _STATUS_STYLE[report.status.value]
    click.echo()
    click.secho(f"{icon} {report.status.value.replace('_', ' ')}", fg=color, bold=True)
    if report.aborted_at:
        click.echo(f"   Aborted at: {report.aborted_at}")
    click.echo(f"   Panel URL: {result.config.app_url}")
    click.echo(f"   Admin: {result.config.admin.username}")

    if result.summary_path:
        click.echo(f"   Summary: {result.summary_path} (contains credentials)")
    if result.generated_secrets:
        names = ", ".join(result.generated_secrets)
        if result.summary_path:
            click.secho(f"   🔑 Generated {names}; see the summary file.", fg="yellow")
        else:
            click.secho(
                f"   🔑 Generated {names} but no summary was saved.",
                fg="red",
            )
    click.echo()


@cli.command()
@click.option("--domain", envvar="FQDN", help="Panel FQDN [env FQDN] (default: panel.example.com).")
@click.option("--email", envvar="email", help="Panel author / Let's Encrypt email [env email].")
@click.option("--timezone", envvar="timezone", help="PHP timezone [env timezone] (default: UTC).")
@click.option("--db-name", envvar="MYSQL_DB", help="Database name [env MYSQL_DB] (default: panel).")
@click.option("--db-user", envvar="MYSQL_USER", help="Database user [env MYSQL_USER] (default: pterodactyl).")
@click.option("--db-password", envvar="MYSQL_PASSWORD", help="Database password [env MYSQL_PASSWORD] (default: generated).")
@click.option("--admin-email", envvar="user_email", help="Admin account email [env user_email].")
@click.option("--admin-username", envvar="user_username", help="Admin username [env user_username].")
@click.option("--admin-first-name", envvar="user_firstname", help="Admin first name [env user_firstname].")
@click.option("--admin-last-name", envvar="user_lastname", help="Admin last name [env user_lastname].")
@click.option("--admin-password", envvar="user_password", help="Admin password [env user_password] (default: generated).")
@click.option("--assume-ssl/--no-assume-ssl", envvar="ASSUME_SSL", default=False, help="Serve HTTPS with an existing certificate [env ASSUME_SSL].")
@click.option("--letsencrypt/--no-letsencrypt", envvar="CONFIGURE_LETSENCRYPT", default=False, help="Obtain a Let's Encrypt certificate [env CONFIGURE_LETSENCRYPT].")
@click.option("--firewall/--no-firewall", envvar="CONFIGURE_FIREWALL", default=True, help="Configure ufw/firewalld [env CONFIGURE_FIREWALL].")
@click.option("--rotate-db-password/--keep-db-password", default=True, help="Reset the password of an existing database user.")
@click.option("--panel-path", help="Install directory (default: /var/www/pterodactyl).")
@click.option("--answers", "answers_file", type=click.Path(dir_okay=False, path_type=Path), help="YAML answers file.")
@click.option("--on-failure", type=click.Choice(["prompt", "continue", "abort"]), default="prompt", show_default=True, help="What to do when a critical step fails.")
@click.option("--summary-file", type=click.Path(dir_okay=False, path_type=Path), help="Write a credentials summary (mode 0600).")
@click.option("--ledger", "ledger_path", type=click.Path(dir_okay=False, path_type=Path), help="Run ledger (default: /var/lib/panel-installer/runs.ndjson).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the run report as JSON.")
@click.pass_context
def install(ctx: click.Context, answers_file: Path | None, on_failure: str,
            summary_file: Path | None, ledger_path: Path | None, as_json: bool,
            **params) -> None:
    """Install the panel on this host."""
    from panel_installer.core.persistence.ledger import DEFAULT_LEDGER_PATH
    from panel_installer.core.use_cases.install import install_panel

    values = _collect_values(ctx, params)

    try:
        result = install_panel(
            values,
            policy=_make_policy(on_failure),
            answers_file=answers_file,
            ledger_path=ledger_path or DEFAULT_LEDGER_PATH,
            summary_path=summary_file,
        )
    except ValidationError as e:
        click.secho("❌ Invalid configuration:", fg="red", bold=True, err=True)
        for err in e.errors:
            click.echo(f"   • {err}", err=True)
        sys.exit(1)
    except InstallerError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_report(result)
    sys.exit(result.exit_code)


# ── History ─────────────────────────────────────────────────────


@cli.command()
@click.option("--ledger", "ledger_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Run ledger (default: /var/lib/panel-installer/runs.ndjson).")
@click.option("-n", "count", default=10, type=click.IntRange(min=1), help="Number of runs.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def history(ledger_path: Path | None, count: int, as_json: bool) -> None:
    """List recent install runs from the run ledger."""
    from panel_installer.core.persistence.ledger import DEFAULT_LEDGER_PATH, RunLedger

    entries = RunLedger(ledger_path or DEFAULT_LEDGER_PATH).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.secho("No install runs recorded.", fg="yellow")
        return

    click.secho(f"📜 Install runs ({len(entries)}):", fg="cyan", bold=True)
    for e in entries:
        icon, _ = _STATUS_STYLE.get(e.status, ("❓", None))
        when = e.started_at or e.timestamp
        click.echo(f"   {icon} {when}  {e.domain or '?'} on {e.platform or '?'}  [{e.status}]")
        if e.aborted_at:
            click.echo(f"      Aborted at: {e.aborted_at}")
        for failure in e.failures:
            click.echo(f"      • {failure}")
    click.echo()


# ── Detect ──────────────────────────────────────────────────────


@cli.command()
@click.option("--os-release", "os_release", type=click.Path(dir_okay=False, path_type=Path),
              default="/etc/os-release", show_default=True, help="os-release file to read.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def detect(os_release: Path, as_json: bool) -> None:
    """Show the detected platform and what the installer would use."""
    from panel_installer.core.errors import UnsupportedPlatformError
    from panel_installer.core.platforms import HANDLERS
    from panel_installer.core.services.environment import EnvironmentProbe

    try:
        platform = EnvironmentProbe(Path(os_release)).detect()
    except UnsupportedPlatformError as e:
        if as_json:
            click.echo(json.dumps({"supported": False, "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    handler_cls = HANDLERS[platform.family]
    info = {
        "supported": True,
        "platform": platform.model_dump(mode="json"),
        "web_user": handler_cls.web_user,
        "redis_service": handler_cls.redis_service,
        "php_socket": handler_cls.php_socket,
        "nginx_site_dir": str(handler_cls.nginx_site_dir),
    }

    if as_json:
        click.echo(json.dumps(info, indent=2))
        return

    click.secho(f"🖥️  {platform.label}", fg="cyan", bold=True)
    click.echo(f"   Family: {platform.family.value}")
    if platform.package_manager:
        click.echo(f"   Package manager: {platform.package_manager.value}")
    click.echo(f"   Web user: {info['web_user']}")
    click.echo(f"   Redis service: {info['redis_service']}")
    click.echo(f"   PHP-FPM socket: {info['php_socket']}")
    click.echo(f"   nginx sites: {info['nginx_site_dir']}")


# ── Render ──────────────────────────────────────────────────────


def _parse_assignments(assignments: tuple[str, ...]) -> dict[str, str]:
    values = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--set")
        values[key.strip()] = value
    return values


@cli.command()
@click.argument("template", required=False)
@click.option("--set", "-s", "assignments", multiple=True, metavar="KEY=VALUE",
              help="Placeholder value (repeatable).")
def render(template: str | None, assignments: tuple[str, ...]) -> None:
    """Render a shipped TEMPLATE to stdout (lists templates when omitted)."""
    from panel_installer.core.errors import MissingPlaceholderError
    from panel_installer.core.services.templates import (
        list_templates,
        load_template,
        render as render_text,
        unresolved_tokens,
    )

    if template is None:
        for name in list_templates():
            tokens = ", ".join(unresolved_tokens(load_template(name)))
            click.echo(f"{name}  ({tokens})")
        return

    values = _parse_assignments(assignments)
    try:
        click.echo(render_text(load_template(template), values, name=template), nl=False)
    except FileNotFoundError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    except MissingPlaceholderError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
