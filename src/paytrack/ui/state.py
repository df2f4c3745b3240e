"""Session-state helpers for the Streamlit UI.

No sandbox, no FastAPI — only the API client, the coordinator and
``st.session_state``. The coordinator's poller thread never touches
``st.session_state``: notices and downloads go into plain containers held
by ``UISession`` and are drained on the next script run.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field

import streamlit as st

from paytrack.api.client import FilePayload, PayrollClient, static_token
from paytrack.config import settings
from paytrack.logging import logger
from paytrack.progress.coordinator import PayrollJobProgressCoordinator
from paytrack.progress.models import JobHandle, Notice

_SESSION_KEY = "paytrack_session"


@dataclass
class UISession:
    client: PayrollClient
    coordinator: PayrollJobProgressCoordinator
    notices: deque[Notice] = field(default_factory=deque)
    downloads: list[FilePayload] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def push_notice(self, notice: Notice) -> None:
        with self.lock:
            self.notices.append(notice)

    def push_download(self, payload: FilePayload) -> None:
        with self.lock:
            self.downloads.append(payload)

    def drain_notices(self) -> list[Notice]:
        with self.lock:
            drained = list(self.notices)
            self.notices.clear()
            return drained


def _build_session(base_url: str, token: str | None) -> UISession:
    client = PayrollClient(base_url=base_url, token_provider=static_token(token))
    session: UISession

    def _notice(notice: Notice) -> None:
        session.push_notice(notice)

    def _download(payload: FilePayload) -> None:
        session.push_download(payload)

    coordinator = PayrollJobProgressCoordinator(client, on_notice=_notice, download_sink=_download)
    session = UISession(client=client, coordinator=coordinator)
    logger.info("Created UI session against %s", base_url)
    return session


def init_session() -> None:
    """Initialize session state variables."""
    st.session_state.setdefault("paytrack_api_url", settings.API_BASE_URL)
    st.session_state.setdefault("paytrack_token", settings.token() or "")
    st.session_state.setdefault("paytrack_handle", None)


def get_session() -> UISession:
    """Return the ``UISession`` for the current Streamlit session, creating it once."""
    init_session()
    if _SESSION_KEY not in st.session_state:
        st.session_state[_SESSION_KEY] = _build_session(
            st.session_state["paytrack_api_url"], st.session_state["paytrack_token"] or None,
        )
    return st.session_state[_SESSION_KEY]


def reset_session() -> None:
    """Drop the client and coordinator, e.g. after the URL or token changed."""
    session = st.session_state.pop(_SESSION_KEY, None)
    if session is not None:
        session.coordinator.finish()
        session.client.close()
    st.session_state["paytrack_handle"] = None


def get_handle() -> JobHandle | None:
    """Get the payroll run currently being tracked."""
    return st.session_state.get("paytrack_handle")


def set_handle(handle: JobHandle | None) -> None:
    st.session_state["paytrack_handle"] = handle
