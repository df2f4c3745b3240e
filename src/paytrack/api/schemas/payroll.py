"""Payroll run DTOs — pure Pydantic, shared by the API client and the sandbox backend.

Field names follow the backend's wire format (camelCase at the top level,
snake_case inside ``progressDetails``); Python code reads the snake_case
attribute names.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RunStatus(str, Enum):
    """Overall run status values the backend is known to report."""

    INITIATED = "Initiated"
    CALCULATING = "Calculating"
    CALCULATION_COMPLETE = "Calculation_Complete"
    COMPLETED_NO_EMPLOYEES = "Completed_No_Employees"
    CALCULATION_FAILED = "Calculation_Failed"


CALCULATION_SUCCESS_STATUSES = frozenset({
    RunStatus.CALCULATION_COMPLETE.value,
    RunStatus.COMPLETED_NO_EMPLOYEES.value,
})
CALCULATION_FAILURE_STATUSES = frozenset({RunStatus.CALCULATION_FAILED.value})
CALCULATION_TERMINAL_STATUSES = CALCULATION_SUCCESS_STATUSES | CALCULATION_FAILURE_STATUSES


class ReportType(str, Enum):
    PAYROLL_SUMMARY = "Payroll_Summary_Report"
    KRA_PAYE = "KRA_SEC_B1_PAYE"
    NSSF = "NSSF_Return"
    SHIF = "NHIF_Return"
    HOUSING_LEVY = "Housing_Levy_Return"
    BANK_PAYMENT = "Bank_Payment_File"
    MPESA_PAYMENT = "Mpesa_Payment_File"
    DEDUCTIONS = "Deduction_Report"


class FailedEmail(BaseModel):
    employee_id: str | None = None
    email: str | None = None
    reason: str = ""


class ProgressDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stage: str | None = None
    message: str = ""
    progress: float | None = None
    error: str | None = None
    total_employees_processed: int | None = None
    total_employees_to_process: int | None = None
    failed_emails_count: int | None = None
    failed_emails_list: list[FailedEmail] = Field(default_factory=list)

    @field_validator("message", mode="before")
    @classmethod
    def none_message_is_empty(cls, v: object) -> object:
        return "" if v is None else v


class PayrollStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    status: str
    payroll_month: str | None = Field(default=None, alias="payrollMonth")
    progress_details: ProgressDetails | None = Field(default=None, alias="progressDetails")

    @field_validator("status")
    @classmethod
    def status_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("status must not be empty")
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in CALCULATION_TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status in CALCULATION_SUCCESS_STATUSES


class InitiateRunRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payroll_month: str = Field(alias="payrollMonth")
    payroll_year: str = Field(alias="payrollYear")

    @field_validator("payroll_month", "payroll_year")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @property
    def period_label(self) -> str:
        return f"{self.payroll_month} {self.payroll_year}"


class InitiateRunResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    payroll_run_id: str = Field(alias="payrollRunId")
    message: str | None = None


class Acknowledgement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None


class GenerateFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_type: ReportType = Field(alias="fileType")
