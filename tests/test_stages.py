"""Pure unit tests for the stage board: no network, no threads."""

import pytest

from paytrack.domain import stages
from paytrack.domain.exceptions import StageTransitionError
from paytrack.domain.stages import Stage, StageBoard, StageStatus

P = StageStatus


def _calculated() -> StageBoard:
    return stages.complete_calculation(stages.initial_board(), "ready")


# -------------------------------------------------------------------
# Initial board
# -------------------------------------------------------------------
def test_initial_board():
    board = stages.initial_board()
    assert board.calculation is P.IN_PROGRESS
    assert board.email_dispatch is P.PENDING
    assert board.file_generation is P.PENDING
    assert board.active is Stage.CALCULATION
    assert board.message_of(Stage.CALCULATION) == ""


def test_transitions_return_new_boards():
    board = stages.initial_board()
    done = stages.complete_calculation(board, "ready")
    assert board.calculation is P.IN_PROGRESS
    assert done.calculation is P.SUCCESS
    assert done.active is Stage.EMAIL_DISPATCH
    assert done.message_of(Stage.CALCULATION) == "ready"


# -------------------------------------------------------------------
# Calculation
# -------------------------------------------------------------------
def test_calculation_terminal_states_are_final():
    for terminal in (_calculated(), stages.fail_calculation(stages.initial_board(), "boom")):
        with pytest.raises(StageTransitionError):
            stages.complete_calculation(terminal)
        with pytest.raises(StageTransitionError):
            stages.fail_calculation(terminal)


def test_failed_calculation_keeps_focus_and_blocks_emails():
    board = stages.fail_calculation(stages.initial_board(), "Missing tax table")
    assert board.calculation is P.ERROR
    assert board.active is Stage.CALCULATION
    assert not board.can_send_emails()
    assert not board.can_skip_emails()


# -------------------------------------------------------------------
# Email dispatch
# -------------------------------------------------------------------
def test_email_flow_success():
    board = stages.start_emails(_calculated())
    assert board.email_dispatch is P.IN_PROGRESS
    assert not board.can_send_emails()
    board = stages.finish_emails(board, ok=True, message="queued")
    assert board.email_dispatch is P.SUCCESS
    assert board.active is Stage.FILE_GENERATION
    assert board.can_generate_files()


def test_email_error_allows_retry_and_skip():
    board = stages.finish_emails(stages.start_emails(_calculated()), ok=False, message="smtp down")
    assert board.email_dispatch is P.ERROR
    assert board.active is Stage.EMAIL_DISPATCH
    assert not board.can_generate_files()
    assert stages.start_emails(board).email_dispatch is P.IN_PROGRESS
    assert stages.skip_emails(board).email_dispatch is P.SKIPPED


def test_finish_emails_requires_in_progress():
    with pytest.raises(StageTransitionError):
        stages.finish_emails(_calculated(), ok=True)


def test_skip_emails_moves_focus():
    board = stages.skip_emails(_calculated())
    assert board.email_dispatch is P.SKIPPED
    assert board.active is Stage.FILE_GENERATION


# -------------------------------------------------------------------
# File generation
# -------------------------------------------------------------------
def test_files_require_resolved_emails():
    with pytest.raises(StageTransitionError):
        stages.start_files(_calculated())
    with pytest.raises(StageTransitionError):
        stages.skip_files(_calculated())


def test_file_flow_after_skip():
    board = stages.start_files(stages.skip_emails(_calculated()))
    assert board.file_generation is P.IN_PROGRESS
    assert not board.can_skip_files()
    board = stages.finish_files(board, ok=False, message="disk full")
    assert board.file_generation is P.ERROR
    assert stages.skip_files(board).file_generation is P.SKIPPED
    assert stages.start_files(board).file_generation is P.IN_PROGRESS


# -------------------------------------------------------------------
# Invariants over every reachable board
# -------------------------------------------------------------------
TRANSITIONS = [
    lambda b: stages.complete_calculation(b),
    lambda b: stages.fail_calculation(b),
    stages.start_emails,
    lambda b: stages.finish_emails(b, ok=True),
    lambda b: stages.finish_emails(b, ok=False),
    stages.skip_emails,
    stages.start_files,
    lambda b: stages.finish_files(b, ok=True),
    lambda b: stages.finish_files(b, ok=False),
    stages.skip_files,
]


def _key(board: StageBoard) -> tuple:
    return board.calculation, board.email_dispatch, board.file_generation, board.active


def _reachable() -> list[tuple[StageBoard, list[StageBoard]]]:
    start = stages.initial_board()
    seen = {_key(start)}
    frontier = [start]
    edges = []
    while frontier:
        board = frontier.pop()
        successors = []
        for transition in TRANSITIONS:
            try:
                nxt = transition(board)
            except StageTransitionError:
                continue
            successors.append(nxt)
            if _key(nxt) not in seen:
                seen.add(_key(nxt))
                frontier.append(nxt)
        edges.append((board, successors))
    return edges


def test_precedence_holds_for_all_reachable_boards():
    edges = _reachable()
    assert len(edges) > 10
    for board, _ in edges:
        if board.email_dispatch is not P.PENDING:
            assert board.calculation is P.SUCCESS
        if board.file_generation is not P.PENDING:
            assert board.email_dispatch in (P.SUCCESS, P.SKIPPED)


def test_terminal_calculation_never_changes():
    for board, successors in _reachable():
        if board.calculation_terminal:
            assert all(s.calculation is board.calculation for s in successors)
