from paytrack.api.client import FilePayload
from paytrack.services.downloads_service import DownloadService, compute_sha256, sanitize_filename


def test_sanitization():
    assert sanitize_filename("foo bar.zip") == "foo_bar.zip"
    assert sanitize_filename("../foo.zip") == ".._foo.zip"
    assert sanitize_filename("foo/bar") == "foo_bar"
    assert sanitize_filename("  ") == "download"


def test_hashing():
    data = b"hello world"
    expected = "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
    assert compute_sha256(data) == expected


def test_save_creates_directory(tmp_path):
    service = DownloadService(tmp_path / "out")
    path = service.save(FilePayload("statutory_files_January_2026.zip", b"PK\x03\x04"))
    assert path == tmp_path / "out" / "statutory_files_January_2026.zip"
    assert path.read_bytes() == b"PK\x03\x04"


def test_save_never_overwrites(tmp_path):
    service = DownloadService(tmp_path)
    first = service.save(FilePayload("report.csv", b"one"))
    second = service.save(FilePayload("report.csv", b"two"))
    third = service.save(FilePayload("report.csv", b"three"))

    assert first.name == "report.csv"
    assert second.name == "report (1).csv"
    assert third.name == "report (2).csv"
    assert first.read_bytes() == b"one"


def test_save_sanitizes_server_filename(tmp_path):
    service = DownloadService(tmp_path)
    path = service.save(FilePayload("../../etc/passwd", b"x"))
    assert path.parent == tmp_path
    assert path.name == ".._.._etc_passwd"
