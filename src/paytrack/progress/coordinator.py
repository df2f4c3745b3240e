"""Client-side tracker for one server-side payroll run.

The server owns the job; this object keeps a best-effort derived view of it:
the calculation stage is followed by polling the run-status endpoint, and the
two follow-up stages (payslip dispatch, statutory files) are driven by
explicit user actions. State lives behind one re-entrant lock and network
calls are always made outside it. Every response is applied only if the same
session is still open, so late answers after ``finish()`` or a reopen are
dropped.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

import httpx
from pydantic import ValidationError

from paytrack.api.client import APIError, FilePayload, PayrollClient
from paytrack.api.schemas.payroll import FailedEmail, PayrollStatusResponse, RunStatus
from paytrack.config import settings
from paytrack.domain import stages
from paytrack.domain.exceptions import AuthenticationError, StageTransitionError
from paytrack.domain.stages import StageBoard
from paytrack.progress.activity_log import ActivityLog
from paytrack.progress.models import CoordinatorView, JobHandle, Notice, ProgressSnapshot
from paytrack.progress.poller import StatusPoller

logger = logging.getLogger(__name__)

# Failures of a single request; all of them become stage errors.
TRANSPORT_ERRORS = (APIError, httpx.HTTPError, AuthenticationError, ValidationError)

READY_MESSAGE = "Calculation complete. Ready to proceed."
DEFAULT_STAGE_NAME = "Calculation"
CALCULATION_FAILED_MESSAGE = "Payroll calculation failed."
STATUS_FETCH_FAILED_MESSAGE = "Could not fetch payroll status."
EMAILS_FAILED_MESSAGE = "Failed to start sending payslips."
FILES_FAILED_MESSAGE = "Failed to generate statutory files."

Listener = Callable[[CoordinatorView], None]
NoticeSink = Callable[[Notice], None]
DownloadSink = Callable[[FilePayload], object]
PollerFactory = Callable[[Callable[[], None], float, str], StatusPoller]


def _describe(exc: Exception, fallback: str) -> str:
    if isinstance(exc, APIError) and exc.detail:
        return exc.detail
    if isinstance(exc, AuthenticationError):
        return exc.message
    return fallback


class PayrollJobProgressCoordinator:
    def __init__(
        self,
        client: PayrollClient,
        *,
        poll_interval: float | None = None,
        on_notice: NoticeSink | None = None,
        download_sink: DownloadSink | None = None,
        poller_factory: PollerFactory = StatusPoller,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS
        self._on_notice = on_notice
        self._download_sink = download_sink
        self._poller_factory = poller_factory
        self._clock = clock

        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._generation = 0
        self._handle: JobHandle | None = None
        self._board: StageBoard | None = None
        self._snapshot: ProgressSnapshot | None = None
        self._server_status: str | None = None
        self._failed_emails: tuple[FailedEmail, ...] = ()
        self._activity: ActivityLog | None = None
        self._poller: StatusPoller | None = None
        self._poll_in_flight = False
        self._last_outcome = False

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._handle is not None

    @property
    def is_polling(self) -> bool:
        with self._lock:
            return self._poller is not None and self._poller.running

    def view(self) -> CoordinatorView | None:
        with self._lock:
            return self._view_locked()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every state change; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _view_locked(self) -> CoordinatorView | None:
        if self._handle is None or self._board is None:
            return None
        return CoordinatorView(
            handle=self._handle,
            board=self._board,
            snapshot=self._snapshot,
            server_status=self._server_status,
            polling=self._poller is not None and self._poller.running,
            activity=tuple(self._activity.lines()) if self._activity else (),
            failed_emails=self._failed_emails,
        )

    def _publish(self, view: CoordinatorView | None, notice: Notice | None = None) -> None:
        if notice is not None and self._on_notice is not None:
            self._on_notice(notice)
        if view is None:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(view)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, handle: JobHandle) -> CoordinatorView | None:
        """Start tracking *handle* from scratch and fetch its status once right away."""
        if self.is_open:
            self.finish()
        with self._lock:
            self._generation += 1
            self._handle = handle
            self._board = stages.initial_board()
            self._snapshot = None
            self._server_status = None
            self._failed_emails = ()
            self._activity = ActivityLog(clock=self._clock)
            self._activity.record(f"Tracking payroll for {handle.title}...")
            self._poll_in_flight = False
            self._last_outcome = False
            self._poller = self._poller_factory(
                self.poll_status, self._poll_interval, f"payroll-poller-{handle.run_id}",
            )
            poller = self._poller
            view = self._view_locked()
        logger.info("Tracking payroll run %s (%s)", handle.run_id, handle.title)
        poller.start()
        self._publish(view)
        self.poll_status()
        return self.view()

    def finish(self) -> bool:
        """Close the session and report whether the calculation succeeded.

        Safe to call in any state and any number of times.
        """
        with self._lock:
            if self._handle is None or self._board is None:
                return self._last_outcome
            handle = self._handle
            success = self._board.calculation_succeeded
            poller, self._poller = self._poller, None
            self._generation += 1
            self._handle = None
            self._board = None
            self._snapshot = None
            self._server_status = None
            self._failed_emails = ()
            self._activity = None
            self._poll_in_flight = False
            self._last_outcome = success
        if poller is not None:
            poller.stop()
        logger.info("Stopped tracking payroll run %s (success=%s)", handle.run_id, success)
        return success

    def __enter__(self) -> PayrollJobProgressCoordinator:
        return self

    def __exit__(self, *exc: object) -> None:
        self.finish()

    def _current_view(self, generation: int) -> CoordinatorView | None:
        """The view of session *generation*, or None once that session is gone."""
        with self._lock:
            return self._view_locked() if self._is_current(generation) else None

    def _is_current(self, generation: int) -> bool:
        return self._handle is not None and self._generation == generation

    def _require_open(self) -> JobHandle:
        if self._handle is None or self._board is None:
            raise StageTransitionError("No payroll run is being tracked")
        return self._handle

    # ------------------------------------------------------------------
    # Calculation stage: polling
    # ------------------------------------------------------------------

    def poll_status(self) -> None:
        """Fetch the run status once and apply it to the calculation stage."""
        with self._lock:
            if self._handle is None or self._board is None or self._board.calculation_terminal:
                return
            if self._poll_in_flight:
                logger.debug("Status poll for %s already in flight; skipping", self._handle.run_id)
                return
            self._poll_in_flight = True
            generation = self._generation
            run_id = self._handle.run_id
        try:
            try:
                response = self._client.get_run_status(run_id)
            except TRANSPORT_ERRORS as exc:
                logger.warning("Status fetch for payroll run %s failed: %s", run_id, exc)
                self._apply_poll_failure(generation)
                return
            self._apply_poll_response(generation, response)
        finally:
            with self._lock:
                if self._generation == generation:
                    self._poll_in_flight = False

    def _apply_poll_response(self, generation: int, response: PayrollStatusResponse) -> None:
        notice: Notice | None = None
        with self._lock:
            if not self._is_current(generation) or self._board.calculation_terminal:
                logger.debug("Discarding stale status response (%s)", response.status)
                return
            handle = self._handle
            details = response.progress_details
            self._server_status = response.status
            if details is not None:
                snapshot = ProgressSnapshot.from_details(details)
                self._activity.record(details.message, details.total_employees_to_process)
                if details.failed_emails_list:
                    self._failed_emails = tuple(details.failed_emails_list)
            else:
                snapshot = ProgressSnapshot.from_status(response.status)
            self._snapshot = snapshot

            if response.is_terminal:
                if response.succeeded:
                    self._snapshot = ProgressSnapshot(
                        stage_name=snapshot.stage_name or DEFAULT_STAGE_NAME,
                        message=READY_MESSAGE,
                        percent_complete=snapshot.percent_complete,
                    )
                    self._board = stages.complete_calculation(self._board, READY_MESSAGE)
                    self._activity.record(READY_MESSAGE)
                    if response.status == RunStatus.COMPLETED_NO_EMPLOYEES.value:
                        notice = Notice("info", f"Payroll for {handle.title} completed: no employees to process.")
                    else:
                        notice = Notice("success", f"Payroll for {handle.title} processed: {snapshot.message or response.status}")
                else:
                    detail = (details.error if details else None) or CALCULATION_FAILED_MESSAGE
                    self._snapshot = ProgressSnapshot(
                        stage_name=snapshot.stage_name,
                        message=detail,
                        percent_complete=snapshot.percent_complete,
                        error_detail=detail,
                    )
                    self._board = stages.fail_calculation(self._board, detail)
                    self._activity.record(f"Calculation failed: {detail}")
                    notice = Notice("error", f"Payroll for {handle.title} failed: {detail}")
            view = self._view_locked()
            poller = self._poller
        if response.is_terminal:
            logger.info("Payroll run %s calculation finished: %s", handle.run_id, response.status)
            if poller is not None:
                poller.stop()
            view = self._current_view(generation)
            if view is None:
                return
        self._publish(view, notice)

    def _apply_poll_failure(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation) or self._board.calculation_terminal:
                return
            self._snapshot = ProgressSnapshot(
                stage_name=DEFAULT_STAGE_NAME,
                message=STATUS_FETCH_FAILED_MESSAGE,
                error_detail=STATUS_FETCH_FAILED_MESSAGE,
            )
            self._board = stages.fail_calculation(self._board, STATUS_FETCH_FAILED_MESSAGE)
            self._activity.record(STATUS_FETCH_FAILED_MESSAGE)
            poller = self._poller
        if poller is not None:
            poller.stop()
        view = self._current_view(generation)
        if view is not None:
            self._publish(view, Notice("error", "Failed to get payroll status update."))

    # ------------------------------------------------------------------
    # Stage actions
    # ------------------------------------------------------------------

    def _begin(
        self, transition: Callable[[StageBoard], StageBoard], log_line: str | None = None,
    ) -> tuple[JobHandle, int]:
        with self._lock:
            handle = self._require_open()
            self._board = transition(self._board)
            if log_line:
                self._activity.record(log_line)
            generation = self._generation
            view = self._view_locked()
        self._publish(view)
        return handle, generation

    def _settle(
        self,
        generation: int,
        transition: Callable[[StageBoard], StageBoard],
        notice: Notice | None = None,
        log_line: str | None = None,
    ) -> bool:
        with self._lock:
            if not self._is_current(generation):
                logger.debug("Discarding stage result for a closed session")
                return False
            self._board = transition(self._board)
            if log_line:
                self._activity.record(log_line)
            view = self._view_locked()
        self._publish(view, notice)
        return True

    def send_emails(self) -> bool:
        """Ask the server to email payslips. Returns True once the request was accepted."""
        handle, generation = self._begin(stages.start_emails)
        try:
            ack = self._client.send_payslips(handle.run_id)
        except TRANSPORT_ERRORS as exc:
            logger.warning("Payslip dispatch for payroll run %s failed: %s", handle.run_id, exc)
            message = _describe(exc, EMAILS_FAILED_MESSAGE)
            self._settle(
                generation,
                lambda b: stages.finish_emails(b, ok=False, message=message),
                Notice("error", EMAILS_FAILED_MESSAGE),
                f"Payslip dispatch failed: {message}",
            )
            return False
        message = ack.message or "Payslip dispatch started."
        return self._settle(
            generation,
            lambda b: stages.finish_emails(b, ok=True, message=message),
            Notice("success", message),
            message,
        )

    def skip_emails(self) -> None:
        self._begin(stages.skip_emails, "Payslip dispatch skipped.")

    def generate_files(self) -> FilePayload | None:
        """Request the statutory file archive; hands it to the download sink on success."""
        handle, generation = self._begin(stages.start_files)
        try:
            payload = self._client.generate_bulk_files(handle.run_id, handle.period_label)
        except TRANSPORT_ERRORS as exc:
            logger.warning("File generation for payroll run %s failed: %s", handle.run_id, exc)
            message = _describe(exc, FILES_FAILED_MESSAGE)
            self._settle(
                generation,
                lambda b: stages.finish_files(b, ok=False, message=message),
                Notice("error", message),
                f"File generation failed: {message}",
            )
            return None
        message = f"Generated {payload.filename} ({payload.size} bytes)."
        if not self._settle(
            generation,
            lambda b: stages.finish_files(b, ok=True, message=message),
            Notice("success", message),
            message,
        ):
            return None
        if self._download_sink is not None:
            try:
                self._download_sink(payload)
            except OSError as exc:
                logger.exception("Could not save %s", payload.filename)
                self._publish(None, Notice("error", f"Could not save {payload.filename}: {exc}"))
        return payload

    def skip_files(self) -> None:
        self._begin(stages.skip_files, "File generation skipped.")
