"""Pull matching attachments out of a parsed message and store them."""

from __future__ import annotations

import structlog

from .config import ProcessingConfig
from .models import ExtractionOutcome
from .parser import AttachmentDecodeError, MimePart, ParsedEmail
from .retry import ErrorCounter, retry_operation
from .storage import InvalidPathError, Storage
from .templates import TemplateRenderer, TemplateRenderError

logger = structlog.get_logger()

UNKNOWN_FROM = "UNKNOWN"


class AttachmentExtractor:
    """Walks the direct subparts of a message and uploads attachments.

    Parts are skipped unless their MIME type is one of
    ``config.accepted_mimetypes`` (exact match) and their disposition is
    ``attachment``.  Unnamed attachments are called ``attachment-N``.
    """

    def __init__(
        self,
        config: ProcessingConfig,
        storage: Storage,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self._config = config
        self._storage = storage
        self._renderer = renderer or TemplateRenderer()

    async def extract(
        self,
        message: ParsedEmail,
        user: str | None,
        errors: ErrorCounter | None = None,
    ) -> ExtractionOutcome:
        """Store every matching attachment; failures only raise the error count."""
        errors = errors if errors is not None else ErrorCounter()
        start_errors = errors.count
        files: list[str] = []
        unnamed = 0
        sender = message.header("from") or UNKNOWN_FROM
        effective_user = user if user is not None else self._config.unknown_user

        for part in message.parts:
            if part.mimetype not in self._config.accepted_mimetypes:
                continue
            if not part.is_attachment:
                continue

            file_name = part.disposition_params.get("filename")
            if file_name is None:
                unnamed += 1
                file_name = f"attachment-{unnamed}"

            context = {"user": effective_user, "file_name": file_name, "from": sender}
            try:
                path = self._renderer.render(self._config.output_template, context)
            except TemplateRenderError as exc:
                logger.error("output_path_render_failed", file_name=file_name, error=str(exc))
                errors.increment()
                continue

            if await self._store(part, path, errors):
                files.append(path)

        logger.info(
            "attachments_extracted",
            user=effective_user,
            files=len(files),
            errors=errors.count - start_errors,
        )
        return ExtractionOutcome(files=tuple(files), errors=errors.count - start_errors)

    async def _store(self, part: MimePart, path: str, errors: ErrorCounter) -> bool:
        try:
            body = part.body()
        except AttachmentDecodeError as exc:
            logger.warning("attachment_body_undecodable", path=path, error=str(exc))
            errors.increment()
            return False

        logger.info("attachment_saving", path=path, size=len(body))

        async def _put() -> None:
            await self._storage.put(path, body)

        stored = await retry_operation(
            _put,
            self._config.retry,
            errors,
            description=f"store {path}",
            fatal=(InvalidPathError,),
        )
        if stored:
            logger.info("attachment_stored", path=path)
        else:
            logger.error("attachment_upload_failed", path=path)
        return stored
