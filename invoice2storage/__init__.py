"""invoice2storage — extract email attachments into object storage and
file the message into a maildir or IMAP folder.

Public API re-exported here for convenience::

    from invoice2storage import MailProcessor, ProcessingConfig
"""

from .config import ConfigurationError, ProcessingConfig, RetryConfig, load_config
from .delivery import ImapDelivery, MaildirDelivery, MailboxDelivery, create_delivery
from .extractor import AttachmentExtractor
from .flags import CustomFlag, ImapFlag, maildir_flags, to_imap_flags, to_maildir_flags
from .logging import setup_logging
from .models import ExtractionOutcome, ProcessResult
from .parser import MimeParser, ParsedEmail
from .processor import MailProcessor
from .retry import ErrorCounter, retry_operation
from .storage import HttpStorage, LocalStorage, S3Storage, Storage, create_storage
from .templates import TemplateRenderer, escape_filename
from .user import extract_user

__all__ = [
    "AttachmentExtractor",
    "ConfigurationError",
    "CustomFlag",
    "ErrorCounter",
    "ExtractionOutcome",
    "HttpStorage",
    "ImapDelivery",
    "ImapFlag",
    "LocalStorage",
    "MailProcessor",
    "MailboxDelivery",
    "MaildirDelivery",
    "MimeParser",
    "ParsedEmail",
    "ProcessResult",
    "ProcessingConfig",
    "RetryConfig",
    "S3Storage",
    "Storage",
    "TemplateRenderer",
    "create_delivery",
    "create_storage",
    "escape_filename",
    "extract_user",
    "load_config",
    "maildir_flags",
    "retry_operation",
    "setup_logging",
    "to_imap_flags",
    "to_maildir_flags",
]
