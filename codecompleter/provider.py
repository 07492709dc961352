"""Editor-facing completion provider.

Wires together the context extractor, suggestion client, sanitizer, cache
and request coordinator behind the small surface an editor host needs:
``provide`` for inline completion callbacks plus configuration and
enable/disable commands.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable

from .cache import SuggestionCache, fingerprint
from .config import PERPLEXITY_MODELS, Config, load_config
from .context_extractor import (
    detect_prompt_trigger,
    extract_extended_context,
    extract_inline_context,
)
from .coordinator import RequestCoordinator
from .errors import ConfigMissingError
from .models import (
    CancellationSignal,
    CompletionMode,
    Document,
    EditRequest,
    Position,
    Suggestion,
    TriggerKind,
)
from .sanitizer import ResponseSanitizer
from .suggestion_client import SuggestionClient

logger = logging.getLogger(__name__)


class CompletionProvider:
    """One provider per editor session."""

    def __init__(
        self,
        config: Config | None = None,
        client: SuggestionClient | None = None,
        sanitizer: ResponseSanitizer | None = None,
        notify: Callable[[str], None] | None = None,
    ):
        self.config = config or load_config()
        self.client = client or SuggestionClient(self.config)
        self.cache = (
            SuggestionCache(
                ttl_seconds=self.config.cache_ttl_seconds,
                max_entries=self.config.cache_max_entries,
            )
            if self.config.cache_enabled
            else None
        )
        self.coordinator = RequestCoordinator(
            self.client,
            sanitizer=sanitizer,
            cache=self.cache,
            debounce_ms=self.config.debounce_ms,
        )
        self._notify = notify
        self._warned_missing_config = False

        logger.info(
            f"Completion provider ready. Provider: {self.config.llm_provider} | "
            f"Model: {self.config.llm_model} | Enabled: {self.config.enabled} | "
            f"API key present: {bool(self.config.api_key)}"
        )
        if self.config.enabled and not self.config.api_key:
            self._warn_missing_config()

    async def provide(
        self,
        document: Document,
        position: Position,
        trigger_kind: TriggerKind = TriggerKind.AUTOMATIC,
        cancellation: CancellationSignal | None = None,
    ) -> Suggestion | None:
        """Produce a suggestion for ``position`` in ``document``, or None."""
        try:
            self.config.require_ready()
        except ConfigMissingError as e:
            logger.debug(f"Skipping completion: {e}")
            if self.config.enabled:
                self._warn_missing_config(str(e))
            return None

        request = self.build_request(document, position, cancellation)
        logger.debug(
            f"Completion requested: mode={request.mode.value} "
            f"line={request.cursor_line} col={request.cursor_column} "
            f"trigger={trigger_kind.value}"
        )
        delay = 0.0 if trigger_kind is TriggerKind.INVOKE else None
        return await self.coordinator.request_suggestion(request, delay=delay)

    def build_request(
        self,
        document: Document,
        position: Position,
        cancellation: CancellationSignal | None = None,
    ) -> EditRequest:
        lines = document.lines
        line_text = document.line_at(position.line)
        prefix = line_text[: position.character]

        intent = detect_prompt_trigger(prefix, document.language)
        mode = (
            CompletionMode.PROMPT_GENERATED if intent else CompletionMode.INLINE
        )
        context = extract_inline_context(
            lines,
            position.line,
            position.character,
            scan_lines=self.config.scan_lines,
            fallback_lines=self.config.fallback_lines,
        )

        cache_key = ""
        if self.cache is not None:
            extended = extract_extended_context(
                lines,
                position.line,
                position.character,
                before=self.config.extended_before,
                after=self.config.extended_after,
            )
            cache_key = fingerprint(mode.value, document.language, extended)

        return EditRequest(
            snapshot_id=document.version,
            cursor_line=position.line,
            cursor_column=position.character,
            context_window=context,
            language=document.language,
            mode=mode,
            intent=intent or "",
            file_name=document.file_name,
            line_end_column=len(line_text),
            cache_key=cache_key,
            cancellation=cancellation,
        )

    def update_configuration(
        self,
        api_key: str | None = None,
        model: str | None = None,
        enabled: bool | None = None,
    ) -> None:
        if model is not None:
            if self.config.llm_provider == "perplexity" and model not in PERPLEXITY_MODELS:
                raise ValueError(
                    f"Unknown model '{model}', expected one of {', '.join(PERPLEXITY_MODELS)}"
                )
            self.config.llm_model = model
        if api_key is not None:
            self.config.api_key = api_key
            self._warned_missing_config = False
        if enabled is not None:
            self.config.enabled = enabled
            if not enabled:
                self.coordinator.close()

        self.client.reset()
        if self.cache is not None:
            self.cache.clear()
        logger.info(
            f"Configuration updated. Model: {self.config.llm_model} | "
            f"Enabled: {self.config.enabled} | "
            f"API key present: {bool(self.config.api_key)}"
        )

    def enable(self) -> None:
        self.update_configuration(enabled=True)
        logger.info("Completions enabled")

    def disable(self) -> None:
        self.update_configuration(enabled=False)
        logger.info("Completions disabled")

    def close(self) -> None:
        self.coordinator.close()

    def _warn_missing_config(self, message: str | None = None) -> None:
        if self._warned_missing_config:
            return
        self._warned_missing_config = True
        message = message or (
            f"No API key configured for provider '{self.config.llm_provider}'. "
            "Set it in the environment or a .env file."
        )
        logger.warning(message)
        if self._notify is not None:
            self._notify(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codecompleter",
        description="Request a single code suggestion for a position in a file.",
    )
    parser.add_argument("path", help="Source file to complete.")
    parser.add_argument("--line", type=int, required=True, help="Zero-based cursor line.")
    parser.add_argument(
        "--column",
        type=int,
        default=None,
        help="Zero-based cursor column (defaults to end of line).",
    )
    parser.add_argument("--language", default=None, help="Language id, e.g. python.")
    parser.add_argument("--model", default=None, help="Model name override.")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging."
    )
    return parser


def _guess_language(path: Path) -> str:
    return {
        ".py": "python",
        ".js": "javascript",
        ".ts": "typescript",
        ".go": "go",
        ".rs": "rust",
        ".java": "java",
        ".c": "c",
        ".cpp": "cpp",
        ".sh": "shellscript",
        ".sql": "sql",
        ".lua": "lua",
        ".rb": "ruby",
    }.get(path.suffix.lower(), "plaintext")


async def _complete_once(provider: CompletionProvider, document: Document, position: Position):
    try:
        return await provider.provide(document, position, TriggerKind.INVOKE)
    finally:
        provider.close()


def main(argv: list[str] | None = None) -> int:
    """Entry point for the code completer."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # Quiet down noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    path = Path(args.path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"ERROR: cannot read {path}: {e}", file=sys.stderr)
        return 2

    config = load_config()
    if args.model:
        config.llm_model = args.model
    provider = CompletionProvider(config)

    document = Document(
        text=text,
        language=args.language or _guess_language(path),
        file_name=str(path),
    )
    column = args.column
    if column is None:
        column = len(document.line_at(args.line))
    suggestion = asyncio.run(
        _complete_once(provider, document, Position(args.line, column))
    )
    if suggestion is None:
        print("No suggestion.", file=sys.stderr)
        return 1
    print(suggestion.insert_text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
