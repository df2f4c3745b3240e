"""In-memory payroll runs for the sandbox backend.

Calculation advances one batch of employees per status read, so a client
polling the sandbox sees the same ``Initiated → Calculating → terminal``
sequence a real backend produces.
"""
from __future__ import annotations

import csv
import io
import threading
import uuid
import zipfile
from dataclasses import dataclass, field

from paytrack.api.schemas.payroll import (
    FailedEmail,
    PayrollStatusResponse,
    ProgressDetails,
    ReportType,
    RunStatus,
)
from paytrack.domain.exceptions import ConflictError, NotFoundError

BULK_REPORTS = (
    ReportType.PAYROLL_SUMMARY,
    ReportType.KRA_PAYE,
    ReportType.NSSF,
    ReportType.SHIF,
    ReportType.HOUSING_LEVY,
)


@dataclass
class SandboxRun:
    id: str
    payroll_month: str
    payroll_year: str
    employees: int = 25
    batch: int = 5
    fail_after: int | None = None
    fail_reason: str = "Calculation failed."
    bounced_emails: list[FailedEmail] = field(default_factory=list)
    processed: int = 0
    reads: int = 0
    payslips_sent: bool = False

    @property
    def period_label(self) -> str:
        return f"{self.payroll_month} {self.payroll_year}"

    @property
    def failed(self) -> bool:
        return self.fail_after is not None and self.processed >= self.fail_after

    @property
    def calculated(self) -> bool:
        return not self.failed and self.processed >= self.employees

    def status(self) -> PayrollStatusResponse:
        if self.failed:
            return self._response(RunStatus.CALCULATION_FAILED, ProgressDetails(
                stage="Calculation_Failed", message="Payroll calculation failed.",
                error=self.fail_reason,
            ))
        if self.employees == 0:
            return self._response(RunStatus.COMPLETED_NO_EMPLOYEES, ProgressDetails(
                stage="Calculation_Complete", message="No active employees for this period.",
                progress=100, total_employees_processed=0,
            ))
        if self.calculated:
            return self._response(RunStatus.CALCULATION_COMPLETE, ProgressDetails(
                stage="Calculation_Complete",
                message=f"Calculated payroll for {self.employees} employees.",
                progress=100,
                total_employees_processed=self.employees,
                failed_emails_count=len(self.bounced_emails) if self.payslips_sent else None,
                failed_emails_list=self.bounced_emails if self.payslips_sent else [],
            ))
        if self.processed == 0:
            return self._response(RunStatus.INITIATED, ProgressDetails(
                stage="Initiated", message=f"Payroll run queued for {self.period_label}.",
                progress=0, total_employees_to_process=self.employees,
            ))
        return self._response(RunStatus.CALCULATING, ProgressDetails(
            stage="Calculating",
            message=f"Processing employee {self.processed} of {self.employees}: EMP{self.processed:04d}",
            progress=self.processed / self.employees * 100,
            total_employees_processed=self.processed,
            total_employees_to_process=self.employees,
        ))

    def _response(self, status: RunStatus, details: ProgressDetails) -> PayrollStatusResponse:
        return PayrollStatusResponse(
            id=self.id, status=status.value, payroll_month=self.period_label,
            progress_details=details,
        )

    def advance(self) -> None:
        self.reads += 1
        if self.reads == 1 or self.failed or self.calculated:
            return
        step = self.batch
        if self.fail_after is not None:
            step = min(step, self.fail_after - self.processed)
        self.processed = min(self.employees, self.processed + step)


def _report_csv(run: SandboxRun, report: ReportType) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["report", "period", "employee_id", "amount"])
    for n in range(1, run.employees + 1):
        writer.writerow([report.value, run.period_label, f"EMP{n:04d}", f"{1000 + n * 10:.2f}"])
    return buf.getvalue().encode("utf-8")


class SandboxPayrollStore:
    def __init__(self, *, default_employees: int = 25, default_batch: int = 5) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, SandboxRun] = {}
        self.default_employees = default_employees
        self.default_batch = default_batch

    def create_run(
        self,
        payroll_month: str,
        payroll_year: str,
        *,
        employees: int | None = None,
        batch: int | None = None,
        fail_after: int | None = None,
        fail_reason: str = "Calculation failed.",
        bounced_emails: list[FailedEmail] | None = None,
    ) -> SandboxRun:
        with self._lock:
            for existing in self._runs.values():
                if (existing.payroll_month, existing.payroll_year) == (payroll_month, payroll_year):
                    raise ConflictError(
                        f"Payroll for {payroll_month} {payroll_year} has already been initiated."
                    )
            run = SandboxRun(
                id=uuid.uuid4().hex[:12],
                payroll_month=payroll_month,
                payroll_year=payroll_year,
                employees=self.default_employees if employees is None else employees,
                batch=batch or self.default_batch,
                fail_after=fail_after,
                fail_reason=fail_reason,
                bounced_emails=list(bounced_emails or []),
            )
            self._runs[run.id] = run
            return run

    def get(self, run_id: str) -> SandboxRun:
        run = self._runs.get(run_id)
        if run is None:
            raise NotFoundError(f"Payroll run {run_id} not found")
        return run

    def read_status(self, run_id: str) -> PayrollStatusResponse:
        with self._lock:
            run = self.get(run_id)
            run.advance()
            return run.status()

    def _require_calculated(self, run: SandboxRun) -> None:
        if not run.calculated:
            raise ConflictError(f"Payroll run {run.id} has not finished calculating")

    def send_payslips(self, run_id: str) -> str:
        with self._lock:
            run = self.get(run_id)
            self._require_calculated(run)
            run.payslips_sent = True
            return f"Payslip dispatch started for {run.employees} employees."

    def bulk_archive(self, run_id: str) -> tuple[str, bytes]:
        with self._lock:
            run = self.get(run_id)
            self._require_calculated(run)
            buf = io.BytesIO()
            with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
                for report in BULK_REPORTS:
                    zf.writestr(f"{report.value}.csv", _report_csv(run, report))
            filename = f"statutory_files_{run.payroll_month}_{run.payroll_year}.zip"
            return filename, buf.getvalue()

    def report_file(self, run_id: str, report: ReportType) -> tuple[str, bytes]:
        with self._lock:
            run = self.get(run_id)
            self._require_calculated(run)
            filename = f"{report.value}_{run.payroll_month}_{run.payroll_year}.csv"
            return filename, _report_csv(run, report)
