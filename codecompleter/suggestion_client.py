"""Suggestion Client - one chat-completion request per dispatched edit.

Builds a role-structured prompt from the context window, calls the
configured provider with the profile's token budget and deadline, and
returns the raw reply text. Perplexity is reached through the OpenAI SDK,
since its chat-completions endpoint speaks the same wire format.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import anthropic
import openai

from .config import Config
from .context_extractor import CURSOR_MARKER
from .errors import CompletionTimeout, InvalidResponseError, NetworkError
from .models import CompletionMode

logger = logging.getLogger(__name__)

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"

INLINE_SYSTEM_PROMPT = """\
You are a code completion assistant. Complete the code at the cursor \
position with the next logical line(s). Return ONLY valid executable code - \
no explanations, no thinking, no comments about the completion, no <think> \
tags. Just the code that should be typed next.\
"""

INLINE_USER_TEMPLATE = """\
Complete this {language} code at the cursor position (marked {marker}):

```{language}
{context}
```

Continue with the next logical line(s) of code. Return only the code that \
should be added.\
"""

PROMPT_SYSTEM_TEMPLATE = """\
You are a skilled {language} programmer. Generate complete, functional code \
based on the user's request. Return ONLY executable code - no explanations, \
no comments about what you're doing, no markdown formatting. Just clean, \
working code that fulfills the request.\
"""

PROMPT_USER_TEMPLATE = """\
Generate {language} code for this request: "{intent}"

{context_block}File: {file_name}

Generate complete, functional code that implements the request. Return only \
the code.\
"""


@dataclass(frozen=True)
class ClientProfile:
    max_tokens: int
    temperature: float
    timeout: float


@dataclass
class ModelReply:
    raw_text: str
    model_name: str
    latency: float


def build_messages(
    context: str,
    language: str,
    mode: CompletionMode,
    intent: str = "",
    file_name: str = "",
) -> list[dict[str, str]]:
    """Build the system + user messages for ``mode``."""
    if mode is CompletionMode.PROMPT_GENERATED:
        context_block = ""
        if context.strip():
            context_block = f"Current context:\n```{language}\n{context}\n```\n\n"
        return [
            {"role": "system", "content": PROMPT_SYSTEM_TEMPLATE.format(language=language)},
            {
                "role": "user",
                "content": PROMPT_USER_TEMPLATE.format(
                    language=language,
                    intent=intent,
                    context_block=context_block,
                    file_name=file_name or "(untitled)",
                ),
            },
        ]
    return [
        {"role": "system", "content": INLINE_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": INLINE_USER_TEMPLATE.format(
                language=language, marker=CURSOR_MARKER, context=context
            ),
        },
    ]


class SuggestionClient:
    def __init__(self, config: Config):
        self.config = config
        self._openai_client = None
        self._anthropic_client = None

    def _get_openai_client(self):
        if self._openai_client is None:
            if self.config.llm_provider == "perplexity":
                self._openai_client = openai.AsyncOpenAI(
                    api_key=self.config.perplexity_api_key,
                    base_url=PERPLEXITY_BASE_URL,
                    max_retries=0,
                )
            else:
                self._openai_client = openai.AsyncOpenAI(
                    api_key=self.config.openai_api_key,
                    max_retries=0,
                )
        return self._openai_client

    def _get_anthropic_client(self):
        if self._anthropic_client is None:
            self._anthropic_client = anthropic.AsyncAnthropic(
                api_key=self.config.anthropic_api_key,
                max_retries=0,
            )
        return self._anthropic_client

    def reset(self) -> None:
        """Drop SDK clients so the next request picks up new credentials."""
        self._openai_client = None
        self._anthropic_client = None

    def profile_for(self, mode: CompletionMode) -> ClientProfile:
        if mode is CompletionMode.PROMPT_GENERATED:
            return ClientProfile(
                max_tokens=self.config.prompt_max_tokens,
                temperature=self.config.prompt_temperature,
                timeout=self.config.prompt_timeout,
            )
        return ClientProfile(
            max_tokens=self.config.inline_max_tokens,
            temperature=self.config.inline_temperature,
            timeout=self.config.inline_timeout,
        )

    async def fetch_completion(
        self,
        context: str,
        language: str,
        mode: CompletionMode = CompletionMode.INLINE,
        intent: str = "",
        file_name: str = "",
    ) -> ModelReply:
        """Request a completion for ``context``.

        Raises:
            CompletionTimeout: no reply within the profile deadline.
            NetworkError: transport or HTTP failure.
            InvalidResponseError: the reply carried no content.
        """
        profile = self.profile_for(mode)
        messages = build_messages(context, language, mode, intent, file_name)
        logger.debug(
            f"Requesting {mode.value} completion: provider={self.config.llm_provider} "
            f"model={self.config.llm_model} context_len={len(context)}"
        )

        t0 = time.monotonic()
        if self.config.llm_provider == "anthropic":
            call = self._call_anthropic(messages, profile)
        else:
            call = self._call_openai(messages, profile)
        # The SDK timeout is per phase; this bounds the whole request.
        try:
            text = await asyncio.wait_for(call, profile.timeout)
        except asyncio.TimeoutError as e:
            raise CompletionTimeout(f"No reply within {profile.timeout}s") from e
        latency = time.monotonic() - t0

        if not text or not text.strip():
            raise InvalidResponseError("Reply contained no content")
        logger.debug(f"Raw reply after {latency:.2f}s: {text[:120]!r}")
        return ModelReply(raw_text=text, model_name=self.config.llm_model, latency=latency)

    async def _call_openai(
        self, messages: list[dict[str, str]], profile: ClientProfile
    ) -> str:
        client = self._get_openai_client()
        try:
            response = await client.chat.completions.create(
                model=self.config.llm_model,
                messages=messages,
                max_tokens=profile.max_tokens,
                temperature=profile.temperature,
                stream=False,
                timeout=profile.timeout,
            )
        except openai.APITimeoutError as e:
            raise CompletionTimeout(f"No reply within {profile.timeout}s") from e
        except openai.APIStatusError as e:
            raise NetworkError(f"HTTP {e.status_code}: {e.message}") from e
        except openai.APIConnectionError as e:
            raise NetworkError(str(e)) from e

        if not response.choices:
            raise InvalidResponseError("Reply contained no choices")
        return response.choices[0].message.content or ""

    async def _call_anthropic(
        self, messages: list[dict[str, str]], profile: ClientProfile
    ) -> str:
        client = self._get_anthropic_client()
        system = messages[0]["content"]
        try:
            response = await client.messages.create(
                model=self.config.llm_model,
                max_tokens=profile.max_tokens,
                temperature=profile.temperature,
                system=system,
                messages=messages[1:],
                timeout=profile.timeout,
            )
        except anthropic.APITimeoutError as e:
            raise CompletionTimeout(f"No reply within {profile.timeout}s") from e
        except anthropic.APIStatusError as e:
            raise NetworkError(f"HTTP {e.status_code}: {e.message}") from e
        except anthropic.APIConnectionError as e:
            raise NetworkError(str(e)) from e

        parts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not parts:
            raise InvalidResponseError("Reply contained no text blocks")
        return "".join(parts)
