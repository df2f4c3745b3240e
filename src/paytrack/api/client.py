"""Typed HTTP client for the payroll backend.

Only imports from ``paytrack.api.schemas`` — never the sandbox, never the UI.
The bearer token comes from an injected provider, so tests and the CLI can
hand in a fixed token and the UI can read it from its session.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from paytrack.api.schemas.payroll import (
    Acknowledgement,
    GenerateFileRequest,
    InitiateRunRequest,
    InitiateRunResponse,
    PayrollStatusResponse,
    ReportType,
)
from paytrack.config import settings
from paytrack.domain.exceptions import AuthenticationError

TokenProvider = Callable[[], str | None]

_FILENAME_RE = re.compile(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", re.IGNORECASE)


class APIError(Exception):
    """Raised when the backend returns a 4xx/5xx response or an unreadable body."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"[{status_code}] {detail}")


@dataclass(frozen=True)
class FilePayload:
    """A binary response body plus the filename the server suggested."""

    filename: str
    content: bytes
    media_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


def filename_from_disposition(header: str | None) -> str | None:
    """Pull ``filename`` out of a Content-Disposition header, if present."""
    if not header:
        return None
    match = _FILENAME_RE.search(header)
    if not match:
        return None
    name = match.group(1).strip()
    return name or None


def default_filename(prefix: str, period_label: str, suffix: str = "zip") -> str:
    slug = lambda s: re.sub(r"\s+", "_", s.strip().lower())  # noqa: E731
    return f"{slug(prefix)}_{slug(period_label)}.{suffix}"


def static_token(token: str | None) -> TokenProvider:
    """Wrap a fixed token (or None) as a token provider."""
    return lambda: token


class PayrollClient:
    """One method per backend endpoint.  All return pure Pydantic DTOs or ``FilePayload``."""

    def __init__(
        self,
        base_url: str | None = None,
        token_provider: TokenProvider | None = None,
        *,
        timeout: float | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self._token_provider = token_provider or settings.token
        self._client = http or httpx.Client(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> PayrollClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise AuthenticationError("Authentication required. Please log in again.")
        return {"Authorization": f"Bearer {token}"}

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        detail = resp.text
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("error", "message", "detail"):
                if body.get(key):
                    detail = str(body[key])
                    break
        raise APIError(resp.status_code, detail or resp.reason_phrase)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        resp = self._client.request(method, url, headers=self._auth_headers(), **kwargs)
        self._raise_for_status(resp)
        return resp

    def _json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            raise APIError(resp.status_code, "Invalid JSON in response body") from None

    def _file_payload(self, resp: httpx.Response, fallback: str) -> FilePayload:
        filename = filename_from_disposition(resp.headers.get("content-disposition")) or fallback
        media_type = resp.headers.get("content-type", "application/octet-stream").split(";")[0]
        return FilePayload(filename=filename, content=resp.content, media_type=media_type)

    # ------------------------------------------------------------------
    # Payroll runs
    # ------------------------------------------------------------------

    def initiate_run(self, payload: InitiateRunRequest) -> InitiateRunResponse:
        resp = self._request(
            "POST", "/payroll/initiate-run", json=payload.model_dump(by_alias=True),
        )
        return InitiateRunResponse.model_validate(self._json(resp))

    def get_run_status(self, run_id: str) -> PayrollStatusResponse:
        resp = self._request("GET", f"/payroll/run-status/{run_id}")
        return PayrollStatusResponse.model_validate(self._json(resp))

    def send_payslips(self, run_id: str) -> Acknowledgement:
        resp = self._request("POST", f"/payroll/send-payslips/{run_id}")
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return Acknowledgement.model_validate(body if isinstance(body, dict) else {})

    # ------------------------------------------------------------------
    # Statutory files
    # ------------------------------------------------------------------

    def generate_bulk_files(self, run_id: str, period_label: str = "") -> FilePayload:
        resp = self._request("POST", f"/payroll/generate-bulk-files/{run_id}")
        return self._file_payload(
            resp, default_filename("statutory_files", period_label or run_id),
        )

    def generate_file(
        self, run_id: str, file_type: ReportType, period_label: str = "",
    ) -> FilePayload:
        payload = GenerateFileRequest(file_type=file_type)
        resp = self._request(
            "POST", f"/payroll/generate-file/{run_id}",
            json=payload.model_dump(by_alias=True, mode="json"),
        )
        return self._file_payload(
            resp, default_filename(file_type.value, period_label or run_id, suffix="bin"),
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self) -> dict:
        resp = self._client.get("/health")
        self._raise_for_status(resp)
        return self._json(resp)
