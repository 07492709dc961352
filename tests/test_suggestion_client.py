"""Tests for the suggestion client."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from codecompleter.config import Config
from codecompleter.errors import CompletionTimeout, InvalidResponseError, NetworkError
from codecompleter.models import CompletionMode
from codecompleter.suggestion_client import (
    PERPLEXITY_BASE_URL,
    SuggestionClient,
    build_messages,
)

REQUEST = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")


def _chat_response(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def config():
    return Config(
        llm_provider="perplexity",
        perplexity_api_key="test-key",
        llm_model="sonar",
    )


@pytest.fixture
def client(config):
    c = SuggestionClient(config)
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(return_value=_chat_response("return x;"))
    c._openai_client = sdk
    return c


def fetch(client, **kwargs):
    kwargs.setdefault("context", "const y = <CURSOR>")
    kwargs.setdefault("language", "javascript")
    return asyncio.run(client.fetch_completion(**kwargs))


class TestBuildMessages:
    def test_inline_messages(self):
        messages = build_messages("x = <CURSOR>", "python", CompletionMode.INLINE)
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "no <think>" in messages[0]["content"]
        assert "```python\nx = <CURSOR>\n```" in messages[1]["content"]

    def test_prompt_messages_include_intent_and_file(self):
        messages = build_messages(
            "let a;",
            "javascript",
            CompletionMode.PROMPT_GENERATED,
            intent="validate emails",
            file_name="src/app.js",
        )
        assert "skilled javascript programmer" in messages[0]["content"]
        user = messages[1]["content"]
        assert '"validate emails"' in user
        assert "Current context:\n```javascript\nlet a;\n```" in user
        assert "File: src/app.js" in user

    def test_prompt_messages_without_context(self):
        messages = build_messages(
            "  ", "go", CompletionMode.PROMPT_GENERATED, intent="x"
        )
        assert "Current context" not in messages[1]["content"]
        assert "File: (untitled)" in messages[1]["content"]


class TestProfiles:
    def test_inline_profile(self, client):
        profile = client.profile_for(CompletionMode.INLINE)
        assert profile.max_tokens == 60
        assert profile.temperature == 0.1
        assert profile.timeout == 10.0

    def test_prompt_profile(self, client):
        profile = client.profile_for(CompletionMode.PROMPT_GENERATED)
        assert profile.max_tokens == 300
        assert profile.timeout == 15.0


class TestFetchCompletion:
    def test_returns_model_reply(self, client):
        reply = fetch(client)
        assert reply.raw_text == "return x;"
        assert reply.model_name == "sonar"
        assert reply.latency >= 0

    def test_request_body(self, client):
        fetch(client, mode=CompletionMode.PROMPT_GENERATED, intent="do it")
        kwargs = client._openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "sonar"
        assert kwargs["max_tokens"] == 300
        assert kwargs["temperature"] == 0.2
        assert kwargs["stream"] is False
        assert kwargs["timeout"] == 15.0
        assert kwargs["messages"][0]["role"] == "system"

    def test_timeout(self, client):
        client._openai_client.chat.completions.create.side_effect = (
            openai.APITimeoutError(request=REQUEST)
        )
        with pytest.raises(CompletionTimeout):
            fetch(client)

    def test_slow_reply_hits_overall_deadline(self, client):
        async def slow_reply(**kwargs):
            await asyncio.sleep(1)
            return _chat_response("return x;")

        client.config.inline_timeout = 0.05
        client._openai_client.chat.completions.create.side_effect = slow_reply
        with pytest.raises(CompletionTimeout, match="0.05s"):
            fetch(client)

    def test_connection_error(self, client):
        client._openai_client.chat.completions.create.side_effect = (
            openai.APIConnectionError(request=REQUEST)
        )
        with pytest.raises(NetworkError):
            fetch(client)

    def test_http_error(self, client):
        response = httpx.Response(401, request=REQUEST)
        client._openai_client.chat.completions.create.side_effect = (
            openai.AuthenticationError("bad key", response=response, body=None)
        )
        with pytest.raises(NetworkError, match="401"):
            fetch(client)

    def test_no_choices(self, client):
        client._openai_client.chat.completions.create.return_value = SimpleNamespace(
            choices=[]
        )
        with pytest.raises(InvalidResponseError):
            fetch(client)

    @pytest.mark.parametrize("content", [None, "", "   "])
    def test_empty_content(self, client, content):
        client._openai_client.chat.completions.create.return_value = _chat_response(
            content
        )
        with pytest.raises(InvalidResponseError):
            fetch(client)


class TestProviders:
    @patch("codecompleter.suggestion_client.openai.AsyncOpenAI")
    def test_perplexity_client_uses_base_url(self, mock_cls, config):
        SuggestionClient(config)._get_openai_client()
        mock_cls.assert_called_once_with(
            api_key="test-key", base_url=PERPLEXITY_BASE_URL, max_retries=0
        )

    @patch("codecompleter.suggestion_client.openai.AsyncOpenAI")
    def test_reset_drops_cached_client(self, mock_cls, config):
        client = SuggestionClient(config)
        client._get_openai_client()
        client.reset()
        client._get_openai_client()
        assert mock_cls.call_count == 2

    def test_anthropic_provider(self):
        config = Config(llm_provider="anthropic", anthropic_api_key="test-key")
        client = SuggestionClient(config)
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                content=[SimpleNamespace(type="text", text="return 1;")]
            )
        )
        client._anthropic_client = sdk

        reply = fetch(client)
        assert reply.raw_text == "return 1;"
        kwargs = sdk.messages.create.call_args.kwargs
        assert "code completion assistant" in kwargs["system"]
        assert [m["role"] for m in kwargs["messages"]] == ["user"]

    def test_anthropic_timeout(self):
        config = Config(llm_provider="anthropic", anthropic_api_key="test-key")
        client = SuggestionClient(config)
        client._anthropic_client = MagicMock()
        client._anthropic_client.messages.create = AsyncMock(
            side_effect=anthropic.APITimeoutError(request=REQUEST)
        )
        with pytest.raises(CompletionTimeout):
            fetch(client)
