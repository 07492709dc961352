"""Request Coordinator - debounced, single-flight suggestion scheduling.

Every editor event becomes a call to ``request_suggestion``. Only the most
recent call can ever receive a suggestion: issuing a new request resolves
the previous caller with ``None`` straight away, and a dispatched request
whose reply arrives after it was superseded is dropped.

One coordinator belongs to one editor session and runs on that session's
event loop. All state changes happen in loop callbacks, so the generation
check is the only guard needed.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from .cache import SuggestionCache
from .errors import CompletionError
from .models import CompletionMode, EditRequest, Suggestion
from .sanitizer import ResponseSanitizer
from .suggestion_client import SuggestionClient

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 500


class CoordinatorState(enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    DISPATCHED = "dispatched"


class RequestCoordinator:
    def __init__(
        self,
        client: SuggestionClient,
        sanitizer: ResponseSanitizer | None = None,
        cache: SuggestionCache | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ):
        self.client = client
        self.sanitizer = sanitizer or ResponseSanitizer()
        self.cache = cache
        self.debounce_ms = debounce_ms
        self.state = CoordinatorState.IDLE

        self._generation = 0
        self._pending: asyncio.Future | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    async def request_suggestion(
        self, request: EditRequest, delay: float | None = None
    ) -> Suggestion | None:
        """Schedule ``request`` and wait for its suggestion.

        Args:
            request: The edit to complete.
            delay: Seconds to wait before dispatch. Defaults to the
                debounce interval.

        Returns:
            The suggestion, or None if there is none, or the request was
            superseded or cancelled first.
        """
        loop = asyncio.get_running_loop()
        self._resolve_pending("superseded by a newer request")

        self._generation += 1
        generation = self._generation
        future = loop.create_future()
        self._pending = future

        cancellation = request.cancellation
        if cancellation is not None and cancellation.is_cancelled:
            self._resolve_pending("cancelled before scheduling")
            return None

        if delay is None:
            delay = self.debounce_ms / 1000
        self._timer = loop.call_later(delay, self._on_timer, generation, request)
        self.state = CoordinatorState.DEBOUNCING
        if cancellation is not None:
            cancellation.add_callback(lambda: self._on_cancelled(generation))

        try:
            return await future
        except asyncio.CancelledError:
            if self._pending is future:
                self._resolve_pending("caller cancelled")
            raise

    def close(self) -> None:
        """Resolve any pending caller with None and abandon in-flight work."""
        self._resolve_pending("coordinator closed")
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()

    def _resolve_pending(self, reason: str) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        future, self._pending = self._pending, None
        self.state = CoordinatorState.IDLE
        if future is not None and not future.done():
            logger.debug(f"No suggestion: {reason}")
            future.set_result(None)

    def _on_cancelled(self, generation: int) -> None:
        if generation != self._generation or self._pending is None:
            return
        self._resolve_pending("cancelled by editor")

    def _on_timer(self, generation: int, request: EditRequest) -> None:
        if generation != self._generation or self._pending is None:
            logger.debug("Debounce timer fired for a superseded request, skipping")
            return
        self._timer = None
        self.state = CoordinatorState.DISPATCHED
        task = asyncio.get_running_loop().create_task(
            self._dispatch(generation, request)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, generation: int, request: EditRequest) -> None:
        try:
            suggestion = await self.resolve(request)
        except CompletionError as e:
            logger.warning(f"No suggestion ({type(e).__name__}): {e}")
            suggestion = None
        except Exception:
            logger.exception("Error generating suggestion")
            suggestion = None
        self._settle(generation, suggestion)

    def _settle(self, generation: int, suggestion: Suggestion | None) -> None:
        future = self._pending
        if generation != self._generation or future is None or future.done():
            logger.debug("Request was superseded - discarding result")
            return
        self._pending = None
        self.state = CoordinatorState.IDLE
        future.set_result(suggestion)

    async def resolve(self, request: EditRequest) -> Suggestion | None:
        """Fetch, clean and wrap a suggestion for ``request``.

        Consults the cache first when one is configured. Client errors
        propagate to the caller.
        """
        text = None
        use_cache = self.cache is not None and bool(request.cache_key)
        if use_cache:
            text = self.cache.get(request.cache_key)
            if text is not None:
                logger.debug("Cache hit")

        if text is None:
            reply = await self.client.fetch_completion(
                request.context_window,
                request.language,
                request.mode,
                intent=request.intent,
                file_name=request.file_name,
            )
            text = self.sanitizer.clean(reply.raw_text, request.mode)
            logger.info(
                f"{reply.model_name} replied in {reply.latency:.2f}s, "
                f"{len(text)} chars after cleaning"
            )
            if text and use_cache:
                self.cache.put(request.cache_key, text)

        if not text:
            return None
        if request.mode is CompletionMode.PROMPT_GENERATED:
            text = "\n" + text
        return Suggestion(insert_text=text, anchor=request.anchor, source_mode=request.mode)
