"""Pre-flight validation for the Streamlit UI.

No sandbox, no FastAPI — uses the API client for backend checks.
"""
from typing import List
from pathlib import Path

import httpx

from paytrack.api.client import APIError, PayrollClient


def validate_download_dir(download_dir: Path | None = None) -> List[str]:
    """Validate that generated files can be written locally."""
    errors = []
    if download_dir is None:
        from paytrack.config import settings
        download_dir = Path(settings.DOWNLOAD_DIR)
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
        test_file = download_dir / ".write_test"
        test_file.touch()
        test_file.unlink()
    except OSError as e:
        errors.append(f"Cannot write to download directory {download_dir}: {e}")
    return errors


def validate_backend_connection(client: PayrollClient | None = None) -> List[str]:
    """Validate that the payroll backend is reachable."""
    errors = []
    try:
        (client or PayrollClient()).health()
    except (APIError, httpx.HTTPError) as e:
        errors.append(f"Backend connection failed: {e}")
    return errors


def run_all_checks(client: PayrollClient | None = None) -> List[str]:
    """Run all validation checks."""
    errors = []
    errors.extend(validate_download_dir())
    errors.extend(validate_backend_connection(client))
    return errors
