"""Result records for a single run."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ExtractionOutcome:
    """What the attachment phase produced.

    ``files`` holds the rendered paths that were stored, in the order the
    parts appear in the message.
    """

    files: tuple[str, ...] = ()
    errors: int = 0


@dataclass
class ProcessResult:
    """Aggregate of one run, filled in phase by phase."""

    errors: int = 0
    files: list[str] = field(default_factory=list)
    user: str | None = None
    mailbox: str | None = None
    delivered: bool | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.errors == 0 else 1
