"""Translate message flags between configuration strings, IMAP and maildir.

Configuration uses plain strings (``"\\Seen"``, ``"myflag"``).  These are
first turned into IMAP flags; maildir flags are always derived from the
IMAP form so the letter table exists only once.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


class ImapFlag(enum.Enum):
    """IMAP system flags."""

    ANSWERED = "\\Answered"
    SEEN = "\\Seen"
    FLAGGED = "\\Flagged"
    DELETED = "\\Deleted"
    DRAFT = "\\Draft"
    RECENT = "\\Recent"
    MAY_CREATE = "\\*"


@dataclass(frozen=True)
class CustomFlag:
    """IMAP keyword that isn't a system flag."""

    name: str

    def __str__(self) -> str:
        return self.name


Flag = ImapFlag | CustomFlag

_SYSTEM_FLAGS = {flag.value.lower(): flag for flag in ImapFlag}

_MAILDIR_LETTERS = {
    ImapFlag.ANSWERED: "A",
    ImapFlag.SEEN: "S",
    ImapFlag.FLAGGED: "F",
    ImapFlag.DELETED: "T",
    ImapFlag.DRAFT: "D",
}


def to_imap_flags(flags: Iterable[str]) -> list[Flag]:
    """Map configuration strings to IMAP flags, keeping order."""
    result: list[Flag] = []
    for name in flags:
        result.append(_SYSTEM_FLAGS.get(name.lower(), CustomFlag(name)))
    return result


def to_maildir_flags(flags: Iterable[Flag]) -> str:
    """Map IMAP flags to a maildir info string such as ``"FS"``.

    ``\\Recent`` and ``\\*`` have no maildir letter.  Custom flags survive
    only as single lowercase letters; maildir keyword files aren't
    supported.
    """
    letters: list[str] = []
    for flag in flags:
        if isinstance(flag, CustomFlag):
            if len(flag.name) == 1 and flag.name.islower():
                letter = flag.name
            else:
                logger.warning("maildir_flag_unsupported", flag=flag.name)
                continue
        else:
            letter = _MAILDIR_LETTERS.get(flag)
            if letter is None:
                continue
        if letter not in letters:
            letters.append(letter)
    return "".join(letters)


def maildir_flags(flags: Iterable[str]) -> str:
    """Configuration strings → maildir info string."""
    return to_maildir_flags(to_imap_flags(flags))


def imap_flag_list(flags: Iterable[Flag]) -> str:
    """Format flags as a parenthesised IMAP flag list, e.g. ``(\\Seen work)``."""
    names = [flag.value if isinstance(flag, ImapFlag) else flag.name for flag in flags]
    return "(" + " ".join(names) + ")"
