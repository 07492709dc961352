"""Editor-facing data types shared across the completion pipeline."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


class CompletionMode(enum.Enum):
    INLINE = "inline"
    PROMPT_GENERATED = "prompt_generated"


class TriggerKind(enum.Enum):
    AUTOMATIC = "automatic"  # typing pause
    INVOKE = "invoke"  # explicit user request


@dataclass(frozen=True)
class Position:
    line: int
    character: int


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    @classmethod
    def at(cls, position: Position) -> Range:
        """An empty range, i.e. a plain insertion point."""
        return cls(position, position)

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


@dataclass
class Document:
    """Snapshot of an editor buffer."""

    text: str
    language: str = "plaintext"
    file_name: str = ""
    version: int = 0

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line_at(self, line: int) -> str:
        lines = self.lines
        if 0 <= line < len(lines):
            return lines[line]
        return ""


class CancellationSignal:
    """Cancellation flag the editor flips when a request is no longer wanted.

    Callbacks registered with ``add_callback`` run synchronously, once,
    when ``cancel()`` is first called.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in cancellation callback")


@dataclass(frozen=True)
class EditRequest:
    snapshot_id: int
    cursor_line: int
    cursor_column: int
    context_window: str
    language: str
    mode: CompletionMode = CompletionMode.INLINE
    intent: str = ""
    file_name: str = ""
    line_end_column: int = 0
    cache_key: str = ""
    cancellation: CancellationSignal | None = field(
        default=None, compare=False, repr=False
    )

    @property
    def anchor(self) -> Range:
        """Where the suggestion will be inserted."""
        if self.mode is CompletionMode.PROMPT_GENERATED:
            return Range.at(Position(self.cursor_line, self.line_end_column))
        return Range.at(Position(self.cursor_line, self.cursor_column))


@dataclass(frozen=True)
class Suggestion:
    insert_text: str
    anchor: Range
    source_mode: CompletionMode
