"""Context Extractor - builds the text window sent to the model.

Inline completions get the enclosing declaration (or a fixed window) up to
the cursor, with the cursor marked by a sentinel. A line whose prefix is a
comment like ``// build a parser for ...`` switches the request into
prompt-generation mode instead.
"""

from __future__ import annotations

import re

CURSOR_MARKER = "<CURSOR>"

DEFAULT_COMMENT_MARKERS = ("//",)

COMMENT_MARKERS = {
    "python": ("#",),
    "shellscript": ("#",),
    "bash": ("#",),
    "ruby": ("#",),
    "perl": ("#",),
    "r": ("#",),
    "yaml": ("#",),
    "toml": ("#",),
    "dockerfile": ("#",),
    "makefile": ("#",),
    "sql": ("--",),
    "lua": ("--",),
    "haskell": ("--",),
}

_DECLARATION_KEYWORDS = ("function ", "const ", "let ", "var ")
_CALL_LIKE = re.compile(r"^\s*\w+\s*\(")


def _clamp_cursor(lines: list[str], line: int, column: int) -> tuple[int, int]:
    line = min(max(line, 0), len(lines) - 1)
    column = min(max(column, 0), len(lines[line]))
    return line, column


def _is_declaration_start(text: str) -> bool:
    return any(kw in text for kw in _DECLARATION_KEYWORDS) or bool(
        _CALL_LIKE.match(text)
    )


def find_context_start(
    lines: list[str], line: int, scan_lines: int = 20, fallback_lines: int = 15
) -> int:
    """Find the first line of the declaration enclosing ``line``.

    Walks backward at most ``scan_lines`` lines, counting braces right to
    left. Returns ``line - fallback_lines`` (floored at 0) when no
    declaration boundary is found.
    """
    brace_level = 0
    lowest = max(0, line - scan_lines)
    for i in range(line, lowest - 1, -1):
        text = lines[i]
        for ch in reversed(text):
            if ch == "}":
                brace_level += 1
            elif ch == "{":
                brace_level -= 1
        if brace_level <= 0 and _is_declaration_start(text):
            return i
    return max(0, line - fallback_lines)


def extract_inline_context(
    lines: list[str],
    line: int,
    column: int,
    scan_lines: int = 20,
    fallback_lines: int = 15,
) -> str:
    """Lines from the enclosing declaration through the cursor, marked."""
    if not lines:
        lines = [""]
    line, column = _clamp_cursor(lines, line, column)
    start = find_context_start(lines, line, scan_lines, fallback_lines)
    window = lines[start:line]
    window.append(lines[line][:column] + CURSOR_MARKER)
    return "\n".join(window)


def extract_extended_context(
    lines: list[str], line: int, column: int, before: int = 20, after: int = 5
) -> str:
    """A wider window around the cursor, used to fingerprint cache entries."""
    if not lines:
        lines = [""]
    line, column = _clamp_cursor(lines, line, column)
    start = max(0, line - before)
    end = min(len(lines) - 1, line + after)
    window = []
    for i in range(start, end + 1):
        if i == line:
            window.append(lines[i][:column] + CURSOR_MARKER + lines[i][column:])
        else:
            window.append(lines[i])
    return "\n".join(window)


def comment_markers_for(language: str) -> tuple[str, ...]:
    return COMMENT_MARKERS.get(language.lower(), DEFAULT_COMMENT_MARKERS)


def detect_prompt_trigger(prefix: str, language: str = "") -> str | None:
    """Return the user intent if ``prefix`` is a generation-trigger comment.

    A trigger is a line-comment marker followed by at least one space and
    at least one non-whitespace character, e.g. ``// sort users by age``.
    """
    stripped = prefix.lstrip()
    for marker in comment_markers_for(language):
        if not stripped.startswith(marker):
            continue
        rest = stripped[len(marker):]
        if rest[:1] in (" ", "\t") and rest.strip():
            return rest.strip()
    return None
