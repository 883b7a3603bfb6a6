"""Work out which user a message belongs to from its address headers.

Rules, first match wins:

1. ``To: anything+USER@domain`` → ``USER``
2. ``To`` and ``From`` share a domain → local part of ``From`` with any
   ``+tag`` stripped
3. otherwise no user
"""

from __future__ import annotations

import email.utils

import structlog

from .parser import ParsedEmail

logger = structlog.get_logger()


def _split_terminator(value: str, sep: str) -> list[str]:
    """``str.split`` that drops a single trailing empty piece."""
    pieces = value.split(sep)
    if pieces and pieces[-1] == "":
        pieces.pop()
    return pieces


def _first_address(header_value: str | None) -> str | None:
    if not header_value:
        return None
    addresses = [addr for _, addr in email.utils.getaddresses([header_value]) if addr]
    return addresses[0] if addresses else None


def _domain(address: str) -> str:
    return address.rsplit("@", 1)[-1]


def extract_user(message: ParsedEmail) -> str | None:
    """Return the user token for *message*, or ``None``."""
    to_header = message.header("to")
    if to_header is None:
        return None

    to_addr = _first_address(to_header)
    if to_addr is not None:
        plus_parts = _split_terminator(to_addr, "+")
        if len(plus_parts) == 2:
            tag_parts = _split_terminator(plus_parts[1], "@")
            if len(tag_parts) == 2:
                return tag_parts[0]

    from_header = message.header("from")
    if from_header is None:
        return None

    from_addr = _first_address(from_header)
    if to_addr is None or from_addr is None:
        logger.error("address_headers_empty", to=to_header, sender=from_header)
        return None

    if _domain(to_addr) == _domain(from_addr):
        local_part = from_addr.split("@", 1)[0]
        return local_part.split("+", 1)[0]

    return None
