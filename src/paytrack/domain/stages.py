"""Stage board for a payroll run: three sequential stages, pure transitions.

Every transition takes a ``StageBoard`` and returns a new one, or raises
``StageTransitionError`` when the stage is not eligible yet. Nothing here
touches the network, threads or a UI.

Invariants held by every board reachable from ``initial_board()``:
- ``EMAIL_DISPATCH`` leaves ``PENDING`` only after ``CALCULATION`` is ``SUCCESS``.
- ``FILE_GENERATION`` leaves ``PENDING`` only after ``EMAIL_DISPATCH`` is
  ``SUCCESS`` or ``SKIPPED``.
- ``CALCULATION`` never changes again once it is ``SUCCESS`` or ``ERROR``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from paytrack.domain.exceptions import StageTransitionError


class Stage(str, Enum):
    CALCULATION = "Calculation"
    EMAIL_DISPATCH = "EmailDispatch"
    FILE_GENERATION = "FileGeneration"


class StageStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"
    ERROR = "Error"
    SKIPPED = "Skipped"


TERMINAL_CALCULATION = frozenset({StageStatus.SUCCESS, StageStatus.ERROR})
RESOLVED_EMAIL = frozenset({StageStatus.SUCCESS, StageStatus.SKIPPED})
SKIPPABLE = frozenset({StageStatus.PENDING, StageStatus.ERROR})


@dataclass(frozen=True)
class StageBoard:
    calculation: StageStatus = StageStatus.IN_PROGRESS
    email_dispatch: StageStatus = StageStatus.PENDING
    file_generation: StageStatus = StageStatus.PENDING
    active: Stage = Stage.CALCULATION
    messages: dict[Stage, str] = field(default_factory=dict)

    def status_of(self, stage: Stage) -> StageStatus:
        return {
            Stage.CALCULATION: self.calculation,
            Stage.EMAIL_DISPATCH: self.email_dispatch,
            Stage.FILE_GENERATION: self.file_generation,
        }[stage]

    def message_of(self, stage: Stage) -> str:
        return self.messages.get(stage, "")

    @property
    def calculation_terminal(self) -> bool:
        return self.calculation in TERMINAL_CALCULATION

    @property
    def calculation_succeeded(self) -> bool:
        return self.calculation is StageStatus.SUCCESS

    def can_send_emails(self) -> bool:
        return self.calculation_succeeded and self.email_dispatch in SKIPPABLE

    def can_skip_emails(self) -> bool:
        return self.calculation_succeeded and self.email_dispatch in SKIPPABLE

    def can_generate_files(self) -> bool:
        return self.email_dispatch in RESOLVED_EMAIL and self.file_generation in SKIPPABLE

    def can_skip_files(self) -> bool:
        return self.email_dispatch in RESOLVED_EMAIL and self.file_generation in SKIPPABLE


def initial_board() -> StageBoard:
    return StageBoard()


def _with_message(board: StageBoard, stage: Stage, message: str | None) -> dict[Stage, str]:
    messages = dict(board.messages)
    if message is not None:
        messages[stage] = message
    return messages


# ---------------------------------------------------------------------------
# Calculation (driven by polling)
# ---------------------------------------------------------------------------


def complete_calculation(board: StageBoard, message: str | None = None) -> StageBoard:
    if board.calculation_terminal:
        raise StageTransitionError(f"Calculation is already {board.calculation.value}")
    return replace(
        board,
        calculation=StageStatus.SUCCESS,
        active=Stage.EMAIL_DISPATCH,
        messages=_with_message(board, Stage.CALCULATION, message),
    )


def fail_calculation(board: StageBoard, message: str | None = None) -> StageBoard:
    if board.calculation_terminal:
        raise StageTransitionError(f"Calculation is already {board.calculation.value}")
    return replace(
        board,
        calculation=StageStatus.ERROR,
        messages=_with_message(board, Stage.CALCULATION, message),
    )


# ---------------------------------------------------------------------------
# Email dispatch
# ---------------------------------------------------------------------------


def start_emails(board: StageBoard) -> StageBoard:
    if not board.can_send_emails():
        raise StageTransitionError(
            "Payslips can only be sent once calculation has succeeded "
            f"(calculation={board.calculation.value}, emails={board.email_dispatch.value})"
        )
    return replace(
        board,
        email_dispatch=StageStatus.IN_PROGRESS,
        messages=_with_message(board, Stage.EMAIL_DISPATCH, "Sending payslips..."),
    )


def finish_emails(board: StageBoard, ok: bool, message: str | None = None) -> StageBoard:
    if board.email_dispatch is not StageStatus.IN_PROGRESS:
        raise StageTransitionError("Payslip dispatch is not in progress")
    if ok:
        return replace(
            board,
            email_dispatch=StageStatus.SUCCESS,
            active=Stage.FILE_GENERATION,
            messages=_with_message(board, Stage.EMAIL_DISPATCH, message),
        )
    return replace(
        board,
        email_dispatch=StageStatus.ERROR,
        messages=_with_message(board, Stage.EMAIL_DISPATCH, message),
    )


def skip_emails(board: StageBoard) -> StageBoard:
    if not board.can_skip_emails():
        raise StageTransitionError(
            f"Payslip dispatch cannot be skipped (emails={board.email_dispatch.value})"
        )
    return replace(
        board,
        email_dispatch=StageStatus.SKIPPED,
        active=Stage.FILE_GENERATION,
        messages=_with_message(board, Stage.EMAIL_DISPATCH, "Skipped."),
    )


# ---------------------------------------------------------------------------
# File generation
# ---------------------------------------------------------------------------


def start_files(board: StageBoard) -> StageBoard:
    if not board.can_generate_files():
        raise StageTransitionError(
            "Statutory files can only be generated after payslips were sent or skipped "
            f"(emails={board.email_dispatch.value}, files={board.file_generation.value})"
        )
    return replace(
        board,
        file_generation=StageStatus.IN_PROGRESS,
        messages=_with_message(board, Stage.FILE_GENERATION, "Generating files..."),
    )


def finish_files(board: StageBoard, ok: bool, message: str | None = None) -> StageBoard:
    if board.file_generation is not StageStatus.IN_PROGRESS:
        raise StageTransitionError("File generation is not in progress")
    return replace(
        board,
        file_generation=StageStatus.SUCCESS if ok else StageStatus.ERROR,
        messages=_with_message(board, Stage.FILE_GENERATION, message),
    )


def skip_files(board: StageBoard) -> StageBoard:
    if not board.can_skip_files():
        raise StageTransitionError(
            f"File generation cannot be skipped (emails={board.email_dispatch.value}, "
            f"files={board.file_generation.value})"
        )
    return replace(
        board,
        file_generation=StageStatus.SKIPPED,
        messages=_with_message(board, Stage.FILE_GENERATION, "Skipped."),
    )
