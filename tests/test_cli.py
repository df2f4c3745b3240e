"""End-to-end CLI tests against the sandbox backend."""
import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

import paytrack.cli as cli
from conftest import TOKEN
from paytrack.api.client import PayrollClient, static_token
from paytrack.config import settings
from paytrack.sandbox.app import create_app

runner = CliRunner()


@pytest.fixture
def sandbox_cli(store, tmp_path, monkeypatch):
    """Point the CLI at the in-memory sandbox, poll fast, download into tmp_path."""
    monkeypatch.setattr(
        cli, "PayrollClient",
        lambda: PayrollClient(token_provider=static_token(TOKEN), http=TestClient(create_app(store))),
    )
    monkeypatch.setattr(settings, "POLL_INTERVAL_SECONDS", 0.01)
    monkeypatch.setattr(settings, "DOWNLOAD_DIR", tmp_path)
    return store


def _calculate(store, run_id: str) -> None:
    for _ in range(10):
        store.read_status(run_id)


def test_run_follows_all_stages(sandbox_cli, tmp_path):
    result = runner.invoke(cli.app, ["run", "January", "2026", "--send-emails", "--files"])

    assert result.exit_code == 0, result.output
    assert "Payroll initiation accepted for January 2026." in result.output
    assert "Calculated payroll for 20 employees." in result.output
    assert "Payslip dispatch started for 20 employees." in result.output
    assert (tmp_path / "statutory_files_January_2026.zip").exists()


def test_run_rejects_duplicate_period(sandbox_cli):
    sandbox_cli.create_run("January", "2026")
    result = runner.invoke(cli.app, ["run", "January", "2026", "--skip-emails", "--skip-files"])

    assert result.exit_code == 1
    assert "Payroll for January 2026 has already been initiated." in result.output


def test_track_failed_run_exits_nonzero(sandbox_cli):
    run = sandbox_cli.create_run("February", "2026", fail_after=10, fail_reason="Missing tax table")
    result = runner.invoke(cli.app, ["track", run.id, "--period", "February 2026"])

    assert result.exit_code == 1
    assert "Missing tax table" in result.output


def test_track_with_prompts_declined(sandbox_cli, tmp_path):
    run = sandbox_cli.create_run("March", "2026", employees=5)
    result = runner.invoke(cli.app, ["track", run.id], input="n\nn\n")

    assert result.exit_code == 0, result.output
    assert "Email payslips to employees now?" in result.output
    assert "Payslip dispatch skipped." in result.output
    assert "File generation skipped." in result.output
    assert list(tmp_path.iterdir()) == []


def test_download_single_report(sandbox_cli, tmp_path):
    run = sandbox_cli.create_run("April", "2026")
    _calculate(sandbox_cli, run.id)

    result = runner.invoke(cli.app, ["download", run.id, "--type", "NSSF_Return"])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "NSSF_Return_April_2026.csv").exists()


def test_download_before_calculation_fails(sandbox_cli):
    run = sandbox_cli.create_run("May", "2026")
    result = runner.invoke(cli.app, ["download", run.id])

    assert result.exit_code == 1
    assert "has not finished calculating" in result.output
