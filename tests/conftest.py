"""Shared test fixtures for the invoice2storage test suite."""

from __future__ import annotations

from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest

from invoice2storage.config import ProcessingConfig, RetryConfig
from invoice2storage.storage import Storage, StorageError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("INVOICE2STORAGE_LOCAL_PATH", "INVOICE2STORAGE_HTTP_PATH", "INVOICE2STORAGE_S3_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.02,
        multiplier=2.0,
        jitter_seconds=0.0,
        max_elapsed_seconds=5.0,
    )


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def maildir_root(tmp_path: Path) -> Path:
    return tmp_path / "Maildir"


@pytest.fixture
def config(storage_root: Path, retry_config: RetryConfig) -> ProcessingConfig:
    return ProcessingConfig(local_path=storage_root, retry=retry_config)


@pytest.fixture
def maildir_config(
    storage_root: Path, maildir_root: Path, retry_config: RetryConfig
) -> ProcessingConfig:
    return ProcessingConfig(
        local_path=storage_root,
        maildir_path=maildir_root,
        success_flags=["\\Seen"],
        error_flags=["\\Flagged"],
        retry=retry_config,
    )


class RecordingStorage(Storage):
    """In-memory storage that can be told to fail."""

    def __init__(self, fail_times: int = 0) -> None:
        self.objects: dict[str, bytes] = {}
        self.calls = 0
        self.started = False
        self._fail_times = fail_times

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def put(self, path: str, data: bytes) -> None:
        self.calls += 1
        if self.calls <= self._fail_times:
            raise StorageError("backend unavailable")
        self.objects[path] = data


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_email(
    *,
    from_addr: str | None = "test@example.com",
    to_addr: str | None = "office@example.com",
    subject: str = "Invoice",
    attachments: list[tuple[str | None, str, bytes]] | None = None,
    inline: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart/mixed email.

    ``attachments`` entries are ``(filename, content_type, payload)``; a
    ``None`` filename produces an attachment without a name.
    """
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    if from_addr is not None:
        msg["From"] = from_addr
    if to_addr is not None:
        msg["To"] = to_addr
    msg["Message-ID"] = "<invoice-001@example.com>"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"

    msg.attach(MIMEText("Please find the invoice attached.", "plain"))

    for filename, content_type, payload in attachments or []:
        msg.attach(_attachment_part(filename, content_type, payload, "attachment"))
    for filename, content_type, payload in inline or []:
        msg.attach(_attachment_part(filename, content_type, payload, "inline"))

    return msg.as_bytes()


def _attachment_part(
    filename: str | None,
    content_type: str,
    payload: bytes,
    disposition: str,
) -> MIMEBase:
    maintype, subtype = content_type.split("/", 1)
    part = MIMEBase(maintype, subtype)
    part.set_payload(payload)
    encoders.encode_base64(part)
    if filename is None:
        part.add_header("Content-Disposition", disposition)
    else:
        part.add_header("Content-Disposition", disposition, filename=filename)
    return part


def _build_broken_base64_email() -> bytes:
    """Email whose PDF attachment has a base64 body of impossible length."""
    msg = MIMEMultipart("mixed")
    msg["From"] = "test@example.com"
    msg["To"] = "office+user1@example.com"
    part = MIMEBase("application", "pdf")
    part.set_payload("abcde")
    part["Content-Transfer-Encoding"] = "base64"
    part.add_header("Content-Disposition", "attachment", filename="broken.pdf")
    msg.attach(part)
    return msg.as_bytes()


@pytest.fixture
def sample1_eml() -> bytes:
    return _build_email(
        from_addr="test@test.com",
        to_addr="office@example.com",
        attachments=[("sample1.pdf", "application/pdf", b"%PDF-1.4 sample one")],
    )


@pytest.fixture
def sample2_eml() -> bytes:
    return _build_email(
        from_addr="test@test.com",
        to_addr="office+user1@example.com",
        attachments=[("sample2.pdf", "application/pdf", b"%PDF-1.4 sample two")],
    )
