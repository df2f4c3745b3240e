"""Value types exposed by the progress coordinator. All immutable."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from paytrack.api.schemas.payroll import FailedEmail, ProgressDetails
from paytrack.domain.stages import Stage, StageBoard, StageStatus

NoticeLevel = Literal["info", "success", "warning", "error"]


@dataclass(frozen=True)
class JobHandle:
    """Addresses one payroll run. ``period_label`` is for display only."""

    run_id: str
    period_label: str = ""

    def __post_init__(self) -> None:
        if not str(self.run_id).strip():
            raise ValueError("run_id must not be empty")

    @property
    def title(self) -> str:
        return self.period_label or f"run {self.run_id}"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Latest calculation progress reported by the server."""

    stage_name: str | None = None
    message: str = ""
    percent_complete: int | None = None
    error_detail: str | None = None

    @classmethod
    def from_details(cls, details: ProgressDetails) -> ProgressSnapshot:
        return cls(
            stage_name=details.stage or None,
            message=details.message,
            percent_complete=clamp_percent(details.progress),
            error_detail=details.error or None,
        )

    @classmethod
    def from_status(cls, status: str) -> ProgressSnapshot:
        return cls(message=status.replace("_", " "))


def clamp_percent(value: float | None) -> int | None:
    """Round to an int in 0..100; negative or missing progress means "unknown"."""
    if value is None or value < 0:
        return None
    return min(100, int(round(value)))


@dataclass(frozen=True)
class Notice:
    """A transient user-facing notification (toast)."""

    level: NoticeLevel
    text: str


@dataclass(frozen=True)
class CoordinatorView:
    handle: JobHandle
    board: StageBoard
    snapshot: ProgressSnapshot | None = None
    server_status: str | None = None
    polling: bool = False
    activity: tuple[str, ...] = ()
    failed_emails: tuple[FailedEmail, ...] = field(default_factory=tuple)

    def status(self, stage: Stage) -> StageStatus:
        return self.board.status_of(stage)

    @property
    def active_stage(self) -> Stage:
        return self.board.active
