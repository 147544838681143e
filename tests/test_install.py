"""
Tests for the install use case — the full run against a recording runner.
"""

import json
import textwrap
from pathlib import Path

import pytest

from panel_installer.core.engine.policy import Decision, FixedPolicy
from panel_installer.core.errors import (
    InsufficientPrivilegesError,
    UnsupportedPlatformError,
    ValidationError,
)
from panel_installer.core.models.report import RunStatus
from panel_installer.core.services.environment import EnvironmentProbe
from panel_installer.core.use_cases import install as install_module
from panel_installer.core.use_cases.install import install_panel

from conftest import DB_PASSWORD, ROCKY_OS_RELEASE


class SummaryAnswer(FixedPolicy):
    """Answers the summary question with a fixed value."""

    def __init__(self, answer: bool):
        super().__init__(Decision.ABORT)
        self.answer = answer
        self.questions: list[tuple[str, bool]] = []

    def confirm(self, question, default=False):
        self.questions.append((question, default))
        return self.answer if question == "Generate installation summary?" else default


@pytest.fixture
def run(runner, mysql, crontab, host, os_release, tmp_path: Path):
    """install_panel wired to the recording runner and tmp host paths."""

    def _run(values, **kwargs):
        kwargs.setdefault("policy", FixedPolicy(Decision.ABORT))
        kwargs.setdefault("probe", EnvironmentProbe(os_release))
        kwargs.setdefault("euid", 0)
        kwargs.setdefault("ledger_path", tmp_path / "state" / "runs.ndjson")
        kwargs.setdefault("composer_path", tmp_path / "bin" / "composer")
        return install_panel(values, runner=runner, **kwargs)

    return _run


class TestHappyPath:
    def test_ubuntu_install(self, run, values, runner, mysql, crontab, host, tmp_path):
        result = run(values)

        assert result.report.status is RunStatus.SUCCEEDED
        assert result.exit_code == 0
        assert result.platform.distro == "ubuntu"
        assert result.report.entries[-1].step == "configure_nginx"

        assert mysql.databases == {"panel"}
        assert crontab.lines("www-data")
        assert (host / "systemd" / "system" / "pteroq.service").is_file()
        assert (host / "nginx" / "sites-enabled" / "pterodactyl.conf").is_symlink()
        assert runner.find("p:user:make")

    def test_ledger_entry_written(self, run, values, tmp_path):
        result = run(values)
        lines = (tmp_path / "state" / "runs.ndjson").read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["run_id"] == result.report.run_id
        assert entry["status"] == "succeeded"
        assert DB_PASSWORD not in lines[0]
        assert result.ledger_path == tmp_path / "state" / "runs.ndjson"

    def test_no_summary_without_generated_secrets(self, run, values):
        result = run(values)
        assert result.summary_path is None

    def test_rerun_converges(self, run, values, mysql, crontab):
        run(values)
        second = run(values)
        assert second.report.status is RunStatus.SUCCEEDED
        assert second.report.get("create_database").result.detail == "user rotated"
        assert len(crontab.lines("www-data")) == 1

    def test_rocky_install(self, run, values, runner, tmp_path):
        path = tmp_path / "rocky-release"
        path.write_text(ROCKY_OS_RELEASE)
        result = run(values, probe=EnvironmentProbe(path))
        assert result.report.status is RunStatus.SUCCEEDED
        assert result.report.get("configure_selinux") is not None
        assert runner.find("dnf module enable -y php:remi-8.3")
        assert not runner.find("apt-get")


class TestFailures:
    def test_abort_stops_run(self, run, values, runner):
        runner.set_failure("php8.3-fpm", exit_code=100, stderr="E: Unable to locate package")
        result = run(values)
        assert result.report.status is RunStatus.ABORTED
        assert result.report.aborted_at == "install_packages"
        assert result.report.entries[-1].step == "install_packages"
        assert result.exit_code == 1
        assert not runner.find("getcomposer.org")

    def test_continue_completes_with_warnings(self, run, values, runner):
        runner.set_failure("migrate", exit_code=1)
        result = run(values, policy=FixedPolicy(Decision.CONTINUE))
        assert result.report.status is RunStatus.COMPLETED_WITH_WARNINGS
        assert result.exit_code == 2
        assert result.report.entries[-1].step == "configure_nginx"

    def test_firewall_failure_is_a_warning(self, run, values, runner):
        runner.set_failure("ufw", exit_code=1)
        result = run(values)
        assert result.report.status is RunStatus.COMPLETED_WITH_WARNINGS
        assert result.report.aborted_at is None


class TestPreconditions:
    def test_invalid_config_runs_nothing(self, run, values, runner):
        del values["admin_email"]
        with pytest.raises(ValidationError):
            run(values)
        assert runner.call_count == 0

    def test_not_root_runs_nothing(self, run, values, runner):
        with pytest.raises(InsufficientPrivilegesError):
            run(values, euid=1000)
        assert runner.call_count == 0

    def test_unsupported_os_runs_nothing(self, run, values, runner, tmp_path):
        path = tmp_path / "arch-release"
        path.write_text('NAME="Arch Linux"\nID=arch\n')
        with pytest.raises(UnsupportedPlatformError):
            run(values, probe=EnvironmentProbe(path))
        assert runner.call_count == 0


class TestSecretsAndAnswers:
    def test_generated_password_writes_summary(self, run, values, monkeypatch, tmp_path):
        summary = tmp_path / "root" / "summary.txt"
        monkeypatch.setattr(install_module, "DEFAULT_SUMMARY_PATH", summary)
        del values["db_password"]

        result = run(values)

        assert result.generated_secrets == ("db_password",)
        assert result.summary_path == summary
        assert result.config.db_password.get_secret_value() in summary.read_text()

    def test_declined_summary_not_written(self, run, values, monkeypatch, tmp_path):
        summary = tmp_path / "root" / "summary.txt"
        monkeypatch.setattr(install_module, "DEFAULT_SUMMARY_PATH", summary)
        del values["db_password"]
        policy = SummaryAnswer(False)

        result = run(values, policy=policy)

        assert policy.questions == [("Generate installation summary?", True)]
        assert result.summary_path is None
        assert not summary.exists()

    def test_accepted_summary_without_generated_secrets(self, run, values, monkeypatch, tmp_path):
        summary = tmp_path / "root" / "summary.txt"
        monkeypatch.setattr(install_module, "DEFAULT_SUMMARY_PATH", summary)
        policy = SummaryAnswer(True)

        result = run(values, policy=policy)

        assert policy.questions == [("Generate installation summary?", False)]
        assert result.summary_path == summary
        assert DB_PASSWORD in summary.read_text()

    def test_explicit_summary_path_not_asked(self, run, values, tmp_path):
        policy = SummaryAnswer(False)
        result = run(values, policy=policy, summary_path=tmp_path / "summary.txt")
        assert policy.questions == []
        assert result.summary_path == tmp_path / "summary.txt"

    def test_explicit_summary_path(self, run, values, tmp_path):
        summary = tmp_path / "summary.txt"
        result = run(values, summary_path=summary)
        assert result.summary_path == summary
        assert DB_PASSWORD in summary.read_text()

    def test_answers_file(self, run, values, tmp_path):
        answers = tmp_path / "answers.yml"
        answers.write_text(textwrap.dedent("""\
            domain: panel.answers.io
            db_name: panel_answers
        """))
        result = run({**values, "domain": None}, answers_file=answers)
        assert result.config.domain == "panel.answers.io"
        assert result.config.db_name == "panel_answers"

    def test_to_dict(self, run, values):
        data = run(values).to_dict()
        assert data["panel_url"] == "http://panel.test.local"
        assert data["report"]["status"] == "succeeded"
        assert data["generated_secrets"] == []
        assert DB_PASSWORD not in json.dumps(data)
