"""Response Sanitizer - turns a free-form model reply into insertable code.

Models asked for "code only" still wrap answers in markdown fences, open
with "Here's the code:", or leak ``<think>`` reasoning. The pipeline below
strips those in a fixed order and, for inline completions, keeps only the
first line that looks like code.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from .models import CompletionMode

logger = logging.getLogger(__name__)

# Reasoning traces
_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_THINK_OPEN = re.compile(r"<think>.*\Z", re.IGNORECASE | re.DOTALL)
_THINK_CLOSE = re.compile(r"\A.*?</think>", re.IGNORECASE | re.DOTALL)

# Markdown fences
_FENCE_OPEN = re.compile(r"\A\s*```[\w+#.-]*[ \t]*(?:\n|\Z)")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*\Z")

COLON_LEAD_INS = (
    r"here['’]?s",
    r"this code",
    r"the above",
    r"this will",
    r"this function",
)

SENTENCE_LEAD_INS = (
    r"okay",
    r"let['’]?s see",
    r"the user",
    r"the code",
    r"the function",
    r"i need to",
    r"we need",
    r"complete",
    r"wants me to",
)

EXPLANATION_KEYWORDS = (
    "the user",
    "let's see",
    "okay",
    "the code",
    "the function",
    "wants me to",
    "complete",
    "i need",
    "we need",
    "looking at",
)

CODE_PATTERNS = (
    r"^[a-zA-Z_$][a-zA-Z0-9_$]*\s*[=+\-*/]",  # assignment / operator
    r"^return\s+",
    r"^[a-zA-Z_$][a-zA-Z0-9_$]*\s*\(",  # call
    r"^[a-zA-Z_$][a-zA-Z0-9_$]*\s*\.",  # member access
    r"^(?:if|for|while|switch|try|catch)\s*\(",
    r"^(?:const|let|var|function|class|def|import|export|async|await)\s+",
    r"^[{}\[\];]",
    r"^\d",
    r"^[\"']",
    r"^[+\-*/]",
)

BARE_IDENTIFIERS = ("a", "b")


# Lead-ins must open the reply; a phrase inside a string or comment is code.
_INTERJECTION = r"(?:(?:sure|certainly|of course)[!,.]?\s+)?"


def _colon_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(
        rf"\A\s*{_INTERJECTION}{phrase}\b[^\n]*?:[ \t]*", re.IGNORECASE
    )


def _sentence_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(
        rf"\A\s*{_INTERJECTION}{phrase}[^\n]*?\.(?=\s|\Z)[ \t]*", re.IGNORECASE
    )


class CodeClassifier(Protocol):
    def is_likely_code(self, line: str) -> bool: ...


class HeuristicCodeClassifier:
    """Regex table deciding whether a stripped line reads like source code."""

    def __init__(
        self,
        patterns: Iterable[str] = CODE_PATTERNS,
        explanation_keywords: Iterable[str] = EXPLANATION_KEYWORDS,
        bare_identifiers: Iterable[str] = BARE_IDENTIFIERS,
    ):
        self.patterns = [re.compile(p) for p in patterns]
        self.explanation_keywords = tuple(k.lower() for k in explanation_keywords)
        idents = "|".join(re.escape(i) for i in bare_identifiers)
        if idents:
            self.patterns.append(re.compile(rf"^(?:{idents})\b"))

    def is_likely_code(self, line: str) -> bool:
        if not line:
            return False
        lowered = line.lower()
        if any(keyword in lowered for keyword in self.explanation_keywords):
            return False
        return any(pattern.search(line) for pattern in self.patterns)


class ResponseSanitizer:
    def __init__(self, classifier: CodeClassifier | None = None):
        self.classifier = classifier or HeuristicCodeClassifier()
        self._colon_patterns = [_colon_pattern(p) for p in COLON_LEAD_INS]
        self._sentence_patterns = [_sentence_pattern(p) for p in SENTENCE_LEAD_INS]

    def clean(self, raw_text: str, mode: CompletionMode = CompletionMode.INLINE) -> str:
        """Extract the code fragment from ``raw_text``. Never raises."""
        text = strip_reasoning(raw_text or "")
        if not text.strip():
            return ""

        text = strip_fences(text)
        if not text.strip():
            return ""

        text = self.strip_prose_prefix(text, mode)
        # "Here's the code:\n```js" leaves a fence behind once the lead-in goes
        text = _FENCE_OPEN.sub("", text, count=1)
        if not text.strip():
            return ""

        if mode is CompletionMode.INLINE:
            text = self.select_code_line(text)
        return text.strip()

    def strip_prose_prefix(self, text: str, mode: CompletionMode) -> str:
        patterns = list(self._colon_patterns)
        if mode is CompletionMode.INLINE:
            patterns.extend(self._sentence_patterns)
        text = text.lstrip()
        for pattern in patterns:
            stripped = pattern.sub("", text, count=1)
            if stripped != text:
                logger.debug(f"Removed lead-in matching {pattern.pattern!r}")
                text = stripped
        return text

    def select_code_line(self, text: str) -> str:
        """Keep the first code-like line; inline completions are one line."""
        code_lines: list[str] = []
        for line in text.split("\n"):
            stripped = line.strip()
            if not code_lines and not stripped:
                continue
            if self.classifier.is_likely_code(stripped):
                code_lines.append(line)
                break
            if code_lines:
                break
        return "\n".join(code_lines)


def strip_reasoning(text: str) -> str:
    """Drop ``<think>`` blocks; an unterminated one swallows the rest."""
    text = _THINK_BLOCK.sub("", text)
    text = _THINK_OPEN.sub("", text)
    return _THINK_CLOSE.sub("", text)


def strip_fences(text: str) -> str:
    """Remove one opening and one closing markdown code fence."""
    text = _FENCE_OPEN.sub("", text, count=1)
    return _FENCE_CLOSE.sub("", text, count=1)


_default_sanitizer = ResponseSanitizer()


def clean(raw_text: str, mode: CompletionMode = CompletionMode.INLINE) -> str:
    return _default_sanitizer.clean(raw_text, mode)
