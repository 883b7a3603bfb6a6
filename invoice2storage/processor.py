"""MailProcessor — one message in, one :class:`ProcessResult` out.

Phases run strictly one after another:

1. parse the raw message
2. identify the user (or take the configured override)
3. extract and store attachments
4. render the destination mailbox name from the outcome
5. file the original message with success or error flags
"""

from __future__ import annotations

import structlog

from .config import ProcessingConfig
from .delivery import MailboxDelivery, create_delivery, deliver_message
from .extractor import UNKNOWN_FROM, AttachmentExtractor
from .models import ExtractionOutcome, ProcessResult
from .parser import MailParseError, MimeParser, ParsedEmail
from .retry import ErrorCounter
from .storage import Storage, StorageError, create_storage
from .templates import TemplateRenderer, TemplateRenderError
from .user import extract_user

logger = structlog.get_logger()


class MailProcessor:
    """Runs the extraction-and-delivery pipeline for a single message."""

    def __init__(
        self,
        config: ProcessingConfig,
        *,
        storage: Storage | None = None,
        delivery: MailboxDelivery | None = None,
    ) -> None:
        self._config = config
        self._storage = storage if storage is not None else create_storage(config)
        self._delivery = delivery if delivery is not None else create_delivery(config)
        self._renderer = TemplateRenderer()
        self._parser = MimeParser()

    async def process(self, raw_bytes: bytes) -> ProcessResult:
        result = ProcessResult()
        errors = ErrorCounter()
        outcome = ExtractionOutcome()
        sender = UNKNOWN_FROM

        try:
            message: ParsedEmail | None = self._parser.parse(raw_bytes)
        except MailParseError as exc:
            logger.error("mime_parse_failed", error=str(exc))
            errors.increment()
            message = None

        if message is not None:
            sender = message.header("from") or UNKNOWN_FROM
            result.user = self._config.user or extract_user(message)
            outcome = await self._extract(message, result.user, errors)

        result.files = list(outcome.files)
        result.mailbox = self._render_mailbox(result.user, outcome, errors, sender)
        result.errors = errors.count

        flags = list(self._config.success_flags if not errors else self._config.error_flags)
        result.delivered = await deliver_message(
            self._delivery,
            result.mailbox,
            raw_bytes,
            flags,
            self._config,
            ErrorCounter(),
        )

        logger.info(
            "run_finished",
            user=result.user or self._config.unknown_user,
            mailbox=result.mailbox,
            files=len(result.files),
            errors=result.errors,
            delivered=result.delivered,
        )
        return result

    async def _extract(
        self, message: ParsedEmail, user: str | None, errors: ErrorCounter
    ) -> ExtractionOutcome:
        try:
            await self._storage.start()
        except StorageError as exc:
            logger.error("storage_start_failed", error=str(exc))
            errors.increment()
            return ExtractionOutcome()
        try:
            extractor = AttachmentExtractor(self._config, self._storage, self._renderer)
            return await extractor.extract(message, user, errors)
        finally:
            await self._storage.stop()

    def _render_mailbox(
        self,
        user: str | None,
        outcome: ExtractionOutcome,
        errors: ErrorCounter,
        sender: str,
    ) -> str:
        context = {
            "user": user if user is not None else self._config.unknown_user,
            "has_errors": bool(errors),
            "errors": errors.count,
            "num_files": len(outcome.files),
            "files": list(outcome.files),
            "from": sender,
        }
        try:
            return self._renderer.render(self._config.mailbox_template, context)
        except TemplateRenderError as exc:
            logger.error("mailbox_name_render_failed", error=str(exc))
            errors.increment()
            return ""
