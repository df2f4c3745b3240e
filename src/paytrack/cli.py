import sys
import time
from pathlib import Path

import httpx
import typer

from paytrack.api.client import APIError, PayrollClient
from paytrack.api.schemas.payroll import InitiateRunRequest, ReportType
from paytrack.config import settings
from paytrack.domain.exceptions import PaytrackError
from paytrack.domain.stages import StageStatus
from paytrack.logging import logger, get_session_id
from paytrack.progress.coordinator import PayrollJobProgressCoordinator
from paytrack.progress.models import CoordinatorView, JobHandle, Notice
from paytrack.services.downloads_service import DownloadService

app = typer.Typer(no_args_is_help=True)

_NOTICE_ICONS = {"info": "ℹ️ ", "success": "✅", "warning": "⚠️ ", "error": "❌"}


@app.callback()
def main():
    """
    Payroll run tracker CLI.
    """
    pass


@app.command(name="doctor")
def doctor():
    """
    Check configuration and backend reachability.
    """
    logger.info("Running doctor check...")

    failures: list[str] = []
    passed = 0

    print("\n🩺 Paytrack Doctor\n")

    # ── Check 1: Environment ────────────────────────────────────────────────
    print("[Environment]")
    print(f"  Python:     {sys.version.split()[0]}")
    print(f"  Session ID: {get_session_id()}")
    passed += 1

    # ── Check 2: Configuration ──────────────────────────────────────────────
    print("\n[Configuration]")
    print(f"  API_BASE_URL:             {settings.API_BASE_URL}")
    print(f"  POLL_INTERVAL_SECONDS:    {settings.POLL_INTERVAL_SECONDS}")
    print(f"  REQUEST_TIMEOUT_SECONDS:  {settings.REQUEST_TIMEOUT_SECONDS}")
    if settings.token():
        print("  API_TOKEN:                ✅ Set")
        passed += 1
    else:
        print("  API_TOKEN:                ❌ Missing")
        failures.append("API_TOKEN is not set — add it to .env")

    # ── Check 3: Download directory ─────────────────────────────────────────
    print("\n[Downloads]")
    download_dir = Path(settings.DOWNLOAD_DIR)
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
        probe = download_dir / ".write_test"
        probe.touch()
        probe.unlink()
        print(f"  {download_dir}/  ✅ Writable: {download_dir.absolute()}")
        passed += 1
    except OSError as e:
        print(f"  {download_dir}/  ❌ Not writable: {e}")
        failures.append(f"{download_dir} is not writable — set DOWNLOAD_DIR")

    # ── Check 4: Backend ────────────────────────────────────────────────────
    print("\n[Backend]")
    try:
        with PayrollClient() as client:
            client.health()
        print(f"  /health                   ✅ Reachable")
        passed += 1
    except (APIError, httpx.HTTPError) as e:
        print(f"  /health                   ❌ {e}")
        failures.append(f"Backend at {settings.API_BASE_URL} is not reachable")

    # ── Summary ─────────────────────────────────────────────────────────────
    total = passed + len(failures)
    print(f"\n{'─' * 50}")
    if failures:
        print(f"Result: {passed}/{total} checks passed\n")
        for msg in failures:
            print(f"  ❌ {msg}")
        print()
        raise typer.Exit(code=1)
    else:
        print(f"Result: {passed}/{total} checks passed — all good ✅")
        print()


def _print_notice(notice: Notice) -> None:
    print(f"{_NOTICE_ICONS.get(notice.level, '')} {notice.text}")


def _decide(choice: bool | None, question: str) -> bool:
    if choice is not None:
        return choice
    return typer.confirm(question, default=True)


def follow_run(
    client: PayrollClient,
    handle: JobHandle,
    *,
    send_emails: bool | None = None,
    generate_files: bool | None = None,
    downloads: DownloadService | None = None,
    poll_interval: float | None = None,
) -> bool:
    """Track *handle* in the terminal until the user finishes; returns overall success."""
    downloads = downloads or DownloadService()
    saved: list[Path] = []
    printed = 0

    def _on_change(view: CoordinatorView) -> None:
        nonlocal printed
        for line in view.activity[printed:]:
            print(f"  {line}")
        printed = len(view.activity)

    coordinator = PayrollJobProgressCoordinator(
        client,
        poll_interval=poll_interval,
        on_notice=_print_notice,
        download_sink=lambda payload: saved.append(downloads.save(payload)),
    )
    coordinator.subscribe(_on_change)
    with coordinator:
        coordinator.open(handle)
        while coordinator.is_polling:
            time.sleep(0.1)

        view = coordinator.view()
        if view is None or not view.board.calculation_succeeded:
            return coordinator.finish()

        if _decide(send_emails, "Email payslips to employees now?"):
            coordinator.send_emails()
        else:
            coordinator.skip_emails()

        view = coordinator.view()
        if view.board.email_dispatch is StageStatus.ERROR:
            coordinator.skip_emails()

        if _decide(generate_files, "Generate statutory files now?"):
            coordinator.generate_files()
        else:
            coordinator.skip_files()

        for failed in coordinator.view().failed_emails:
            print(f"  ⚠️  {failed.employee_id or 'N/A'} <{failed.email or 'N/A'}>: {failed.reason}")
        for path in saved:
            print(f"  📦 Saved {path}")
        return coordinator.finish()


@app.command("run")
def run(
    month: str = typer.Argument(..., help="Payroll month, e.g. January"),
    year: str = typer.Argument(..., help="Payroll year, e.g. 2026"),
    send_emails: bool | None = typer.Option(None, "--send-emails/--skip-emails", help="Skip the prompt"),
    generate_files: bool | None = typer.Option(None, "--files/--skip-files", help="Skip the prompt"),
):
    """Initiate a payroll run and follow it to completion."""
    request = InitiateRunRequest(payroll_month=month, payroll_year=year)
    with PayrollClient() as client:
        try:
            started = client.initiate_run(request)
        except (APIError, httpx.HTTPError, PaytrackError) as e:
            logger.error(f"Failed to initiate payroll: {e}")
            print(f"❌ Failed to initiate payroll: {getattr(e, 'detail', e)}")
            raise typer.Exit(code=1)
        print(f"▶️  {started.message or 'Payroll initiation accepted.'} (run {started.payroll_run_id})")
        ok = follow_run(
            client,
            JobHandle(run_id=started.payroll_run_id, period_label=request.period_label),
            send_emails=send_emails,
            generate_files=generate_files,
        )
    if not ok:
        raise typer.Exit(code=1)


@app.command("track")
def track(
    run_id: str = typer.Argument(..., help="Payroll run ID"),
    period: str = typer.Option("", help="Display label, e.g. 'January 2026'"),
    send_emails: bool | None = typer.Option(None, "--send-emails/--skip-emails", help="Skip the prompt"),
    generate_files: bool | None = typer.Option(None, "--files/--skip-files", help="Skip the prompt"),
):
    """Attach to an existing payroll run (re-polls its status from scratch)."""
    with PayrollClient() as client:
        ok = follow_run(
            client,
            JobHandle(run_id=run_id, period_label=period),
            send_emails=send_emails,
            generate_files=generate_files,
        )
    if not ok:
        raise typer.Exit(code=1)


@app.command("download")
def download(
    run_id: str = typer.Argument(..., help="Payroll run ID"),
    file_type: ReportType = typer.Option(ReportType.PAYROLL_SUMMARY, "--type", help="Report to generate"),
    period: str = typer.Option("", help="Label used for the fallback filename"),
):
    """Generate one statutory file for a calculated payroll run."""
    with PayrollClient() as client:
        try:
            payload = client.generate_file(run_id, file_type, period)
        except (APIError, httpx.HTTPError, PaytrackError) as e:
            logger.error(f"Failed to generate {file_type.value}: {e}")
            print(f"❌ Failed: {getattr(e, 'detail', e)}")
            raise typer.Exit(code=1)
    path = DownloadService().save(payload)
    print(f"✅ Saved {path}")


@app.command("sandbox")
def sandbox(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
    employees: int = typer.Option(25, help="Employees per simulated run"),
):
    """Serve the in-memory sandbox backend for local development."""
    import uvicorn

    from paytrack.sandbox.app import create_app
    from paytrack.sandbox.store import SandboxPayrollStore

    logger.info(f"Starting sandbox backend on http://{host}:{port}")
    uvicorn.run(create_app(SandboxPayrollStore(default_employees=employees)), host=host, port=port)


if __name__ == "__main__":
    app()
