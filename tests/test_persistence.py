"""
Tests for the run ledger and the installation summary.
"""

import stat
from pathlib import Path

import pytest

from panel_installer import __version__
from panel_installer.core.config.loader import build_config
from panel_installer.core.models.report import RunReport
from panel_installer.core.models.step import StepResult
from panel_installer.core.persistence.ledger import LedgerEntry, RunLedger
from panel_installer.core.persistence.summary import render_summary, write_summary
from panel_installer.core.platforms import DebianHandler

from conftest import ADMIN_PASSWORD, DB_PASSWORD


@pytest.fixture
def report(ubuntu) -> RunReport:
    report = RunReport(run_id="run-test-1", platform=ubuntu)
    report.record("update_repositories", StepResult.success())
    report.record("configure_firewall", StepResult.failure("ufw: command not found", 127), critical=False)
    report.record("install_packages", StepResult.success("31 packages"))
    report.finish()
    return report


# ── Ledger ──────────────────────────────────────────────────────


class TestLedgerEntry:
    def test_from_report(self, report, config):
        entry = LedgerEntry.from_report(report, config)
        assert entry.run_id == "run-test-1"
        assert entry.platform == "ubuntu 22.04"
        assert entry.family == "debian"
        assert entry.domain == "panel.test.local"
        assert entry.status == "completed_with_warnings"
        assert entry.exit_code == 2
        assert (entry.steps_total, entry.steps_succeeded, entry.steps_failed) == (3, 2, 1)
        assert entry.failures == ["configure_firewall: ufw: command not found"]

    def test_context_records_run_options(self, report, config):
        context = LedgerEntry.from_report(report, config).context
        assert context["installer_version"] == __version__
        assert context["assume_ssl"] is config.assume_ssl
        assert context["use_lets_encrypt"] is config.use_lets_encrypt
        assert context["configure_firewall"] is config.configure_firewall
        assert context["generated_secrets"] == []

    def test_generated_secrets_by_name_only(self, report, values):
        del values["db_password"]
        config = build_config(values)
        entry = LedgerEntry.from_report(report, config)
        assert entry.context["generated_secrets"] == ["db_password"]
        assert config.db_password.get_secret_value() not in entry.model_dump_json()

    def test_no_secrets(self, report, config):
        text = LedgerEntry.from_report(report, config).model_dump_json()
        assert DB_PASSWORD not in text
        assert ADMIN_PASSWORD not in text


class TestRunLedger:
    def test_write_and_read(self, tmp_path: Path, report, config):
        ledger = RunLedger(tmp_path / "state" / "runs.ndjson")
        assert ledger.write(LedgerEntry.from_report(report, config))
        assert ledger.write(LedgerEntry(run_id="run-test-2", status="succeeded"))

        entries = ledger.read_all()
        assert [e.run_id for e in entries] == ["run-test-1", "run-test-2"]
        assert ledger.path.read_text().count("\n") == 2

    def test_read_recent(self, tmp_path: Path):
        ledger = RunLedger(tmp_path / "runs.ndjson")
        for i in range(5):
            ledger.write(LedgerEntry(run_id=f"run-{i}"))
        assert [e.run_id for e in ledger.read_recent(2)] == ["run-3", "run-4"]
        assert ledger.read_recent(0) == []

    def test_missing_file_is_empty(self, tmp_path: Path):
        assert RunLedger(tmp_path / "nothing.ndjson").read_all() == []

    def test_corrupt_line_skipped(self, tmp_path: Path):
        path = tmp_path / "runs.ndjson"
        ledger = RunLedger(path)
        ledger.write(LedgerEntry(run_id="run-a"))
        with path.open("a") as f:
            f.write("{not json\n\n")
        ledger.write(LedgerEntry(run_id="run-b"))
        assert [e.run_id for e in ledger.read_all()] == ["run-a", "run-b"]

    def test_unwritable_path(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        ledger = RunLedger(blocker / "runs.ndjson")
        assert ledger.write(LedgerEntry(run_id="run-x")) is False


# ── Summary ─────────────────────────────────────────────────────


class TestRenderSummary:
    def test_contents(self, report, config, ubuntu, provisioner):
        text = render_summary(config, report, DebianHandler(ubuntu, provisioner))
        assert "Panel URL: http://panel.test.local" in text
        assert f"Password: {DB_PASSWORD}" in text
        assert f"Installation Path: {config.panel_path}" in text
        assert "Service Name: pteroq.service" in text
        assert "Nginx Config: " in text
        assert "configure_firewall: ufw: command not found" in text

    def test_supplied_admin_password_left_out(self, report, config):
        assert ADMIN_PASSWORD not in render_summary(config, report)

    def test_generated_admin_password_included(self, report, values):
        del values["admin"]["password"]
        config = build_config(values)
        text = render_summary(config, report)
        assert config.admin.password.get_secret_value() in text


class TestWriteSummary:
    def test_owner_only(self, tmp_path: Path):
        path = tmp_path / "root" / "summary.txt"
        write_summary(path, "secret\n")
        assert path.read_text() == "secret\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path):
        path = tmp_path / "summary.txt"
        write_summary(path, "one\n")
        write_summary(path, "two\n")
        assert path.read_text() == "two\n"
        assert [p.name for p in tmp_path.iterdir()] == ["summary.txt"]
