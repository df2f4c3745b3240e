from datetime import datetime

from paytrack.progress.activity_log import ActivityLog, LogEntry


def _clock():
    return datetime(2026, 1, 31, 9, 15, 0)


def test_records_distinct_messages_once():
    log = ActivityLog(clock=_clock)
    assert log.record("Tracking payroll for January 2026...")
    assert not log.record("Tracking payroll for January 2026...")
    assert not log.record("   ")
    assert log.lines() == ["09:15:00: Tracking payroll for January 2026..."]


def test_small_runs_keep_every_employee_line():
    log = ActivityLog(clock=_clock)
    for n in range(1, 11):
        log.record(f"Processing employee {n} of 10: EMP{n:04d}")
    assert len(log) == 10


def test_large_runs_are_condensed_to_buckets():
    log = ActivityLog(clock=_clock)
    for n in range(1, 51):
        log.record(f"Processing employee {n} of 50: EMP{n:04d}")

    kept = [e.message.split(":")[0] for e in log.entries]
    assert kept == [
        "Processing employee 1 of 50",
        "Processing employee 10 of 50",
        "Processing employee 20 of 50",
        "Processing employee 30 of 50",
        "Processing employee 40 of 50",
        "Processing employee 50 of 50",
    ]


def test_sparse_polls_keep_each_new_bucket():
    log = ActivityLog(clock=_clock)
    for n in (5, 10, 15, 20):
        log.record(f"Processing employee {n} of 20: EMP{n:04d}")
    assert len(log) == 4


def test_other_messages_are_not_condensed():
    log = ActivityLog(clock=_clock)
    log.record("Processing employee 1 of 100: EMP0001")
    log.record("Processing employee 2 of 100: EMP0002")
    log.record("Calculated payroll for 100 employees.")
    assert [e.message for e in log.entries] == [
        "Processing employee 1 of 100: EMP0001",
        "Calculated payroll for 100 employees.",
    ]


def test_error_entries():
    assert LogEntry(_clock(), "Payroll calculation failed.").is_error
    assert LogEntry(_clock(), "Error: Missing tax table").is_error
    assert not LogEntry(_clock(), "Payslips sent.").is_error
