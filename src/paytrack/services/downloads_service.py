"""Persist generated payroll files to the local download directory."""
from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from paytrack.api.client import FilePayload
from paytrack.config import settings

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(name: str) -> str:
    """Replace anything outside ``[A-Za-z0-9._-]`` so the name stays in one directory."""
    cleaned = _UNSAFE.sub("_", name.strip())
    return cleaned or "download"


def compute_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class DownloadService:
    def __init__(self, directory: Path | None = None) -> None:
        self._directory = Path(directory or settings.DOWNLOAD_DIR)

    @property
    def directory(self) -> Path:
        return self._directory

    def _free_path(self, filename: str) -> Path:
        candidate = self._directory / filename
        stem, suffix = candidate.stem, candidate.suffix
        n = 1
        while candidate.exists():
            candidate = self._directory / f"{stem} ({n}){suffix}"
            n += 1
        return candidate

    def save(self, payload: FilePayload) -> Path:
        """Write *payload* under the download directory; never overwrites an existing file."""
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._free_path(sanitize_filename(payload.filename))
        path.write_bytes(payload.content)
        logger.info(
            "Saved %s (%d bytes, sha256=%s)", path, payload.size, compute_sha256(payload.content)[:12],
        )
        return path
