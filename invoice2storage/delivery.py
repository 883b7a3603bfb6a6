"""File the original message into a maildir or an IMAP folder.

All blocking ``mailbox``/``imaplib`` operations are wrapped with
``asyncio.to_thread()``.
"""

from __future__ import annotations

import abc
import asyncio
import imaplib
import mailbox
import os
import ssl
import time
from pathlib import Path
from urllib.parse import unquote, urlparse

import structlog
from imapclient import imap_utf7

from .config import ConfigurationError, ProcessingConfig
from .flags import imap_flag_list, maildir_flags, to_imap_flags
from .retry import ErrorCounter, retry_operation

logger = structlog.get_logger()

IMAPS_PORT = 993


class DeliveryError(Exception):
    """Storing the message failed; may succeed on retry."""


class DeliveryConfigError(ConfigurationError):
    """The delivery target can't work with the given settings."""


class MailboxDelivery(abc.ABC):
    """Stores one message into a named folder with flags."""

    @abc.abstractmethod
    async def store(self, folder: str, message: bytes, flags: list[str]) -> None:
        ...


class MaildirDelivery(MailboxDelivery):
    """Maildir++ layout: folder ``x`` lives in ``<root>/.x``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    async def store(self, folder: str, message: bytes, flags: list[str]) -> None:
        try:
            key = await asyncio.to_thread(self._store_sync, folder, message, flags)
        except (OSError, mailbox.Error) as exc:
            raise DeliveryError(f"Can't store message in maildir {self._root}: {exc}") from exc
        logger.info("maildir_message_stored", folder=folder, key=key)

    def folder_path(self, folder: str) -> Path:
        return self._root / f".{folder}" if folder else self._root

    def _store_sync(self, folder: str, message: bytes, flags: list[str]) -> str:
        root = mailbox.Maildir(self._root, create=True)
        box = root.add_folder(folder) if folder else root
        path = self.folder_path(folder)
        # create=True leaves an existing directory without tmp/new/cur
        for sub in ("tmp", "new", "cur"):
            (path / sub).mkdir(parents=True, exist_ok=True)
        key = box.add(message)

        # new -> cur, then flags in the info suffix
        info = "2," + "".join(sorted(maildir_flags(flags)))
        os.rename(path / "new" / key, path / "cur" / f"{key}{box.colon}{info}")
        return key


class ImapDelivery(MailboxDelivery):
    """Append to a folder below ``INBOX`` over implicit TLS."""

    def __init__(self, url: str, *, insecure: bool = False) -> None:
        self._url = url
        self._insecure = insecure

    def _parse_url(self) -> tuple[str, int, str, str]:
        parsed = urlparse(self._url)
        if parsed.scheme != "imaps":
            raise DeliveryConfigError(
                f"Unsupported IMAP scheme {parsed.scheme!r}; only imaps:// is supported"
            )
        if not parsed.hostname:
            raise DeliveryConfigError("IMAP URL has no host")
        if not parsed.username or parsed.password is None:
            raise DeliveryConfigError("IMAP URL needs user and password")
        return (
            parsed.hostname,
            parsed.port or IMAPS_PORT,
            unquote(parsed.username),
            unquote(parsed.password),
        )

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self._insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    @staticmethod
    def mailbox_name(folder: str) -> str:
        return f"INBOX.{folder}" if folder else "INBOX"

    @staticmethod
    def quote_mailbox(name: str) -> str:
        """Encode *name* as modified UTF-7 and wrap it as an IMAP quoted string."""
        encoded = imap_utf7.encode(name).decode("ascii")
        return '"' + encoded.replace("\\", "\\\\").replace('"', '\\"') + '"'

    async def store(self, folder: str, message: bytes, flags: list[str]) -> None:
        host, port, username, password = self._parse_url()
        name = self.mailbox_name(folder)
        try:
            await asyncio.to_thread(
                self._append_sync,
                host,
                port,
                username,
                password,
                self.quote_mailbox(name),
                message,
                flags,
            )
        except (imaplib.IMAP4.error, OSError) as exc:
            raise DeliveryError(f"IMAP append to {name} failed: {exc}") from exc
        logger.info("imap_message_appended", host=host, mailbox=name)

    def _append_sync(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        name: str,
        message: bytes,
        flags: list[str],
    ) -> None:
        conn = imaplib.IMAP4_SSL(host, port, ssl_context=self._ssl_context())
        try:
            conn.login(username, password)
            status, _ = conn.select(name)
            if status != "OK":
                logger.info("imap_mailbox_creating", mailbox=name)
                conn.create(name)
                status, data = conn.select(name)
                if status != "OK":
                    raise DeliveryError(f"Can't select mailbox {name}: {data!r}")
            status, data = conn.append(
                name,
                imap_flag_list(to_imap_flags(flags)),
                imaplib.Time2Internaldate(time.time()),
                message,
            )
            if status != "OK":
                raise DeliveryError(f"APPEND to {name} rejected: {data!r}")
        finally:
            try:
                conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass


def create_delivery(config: ProcessingConfig) -> MailboxDelivery | None:
    """Build the delivery target the configuration selects, if any."""
    if config.maildir_path is not None:
        return MaildirDelivery(config.maildir_path)
    if config.imap_url:
        return ImapDelivery(config.imap_url, insecure=config.insecure)
    return None


async def deliver_message(
    delivery: MailboxDelivery | None,
    folder: str,
    message: bytes,
    flags: list[str],
    config: ProcessingConfig,
    errors: ErrorCounter,
) -> bool:
    """Store *message* with retries; ``True`` when nothing is configured."""
    if delivery is None:
        logger.debug("message_delivery_skipped", reason="no_target")
        return True

    async def _store() -> None:
        await delivery.store(folder, message, flags)

    delivered = await retry_operation(
        _store,
        config.retry,
        errors,
        description=f"deliver to {folder or 'root'}",
        fatal=(DeliveryConfigError,),
    )
    if delivered:
        logger.info("message_delivered", folder=folder, flags=flags)
    else:
        logger.error("message_delivery_failed", folder=folder)
    return delivered
