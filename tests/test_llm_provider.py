"""
Tests for the OpenAI-compatible chat adapter.

The SDK client is patched out; errors are built from real openai exception
classes so the status mapping is exercised end to end.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from kontextai.config import LLMConfig
from kontextai.errors import (
    AuthError,
    ConfigurationError,
    EmptyResponse,
    NetworkError,
    RateLimitError,
    TruncatedResponse,
    UpstreamLLMError,
    UpstreamUnavailable,
)
from kontextai.models import OptimizeRequest
from kontextai.optimizer import PromptOptimizer
from kontextai.providers.llm_provider import (
    OpenAIChatProvider,
    image_message,
    text_message,
)

URL = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"


def completion(content, finish_reason="stop"):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content), finish_reason=finish_reason
            )
        ],
        usage=None,
    )


def status_error(cls, status):
    response = httpx.Response(status, request=httpx.Request("POST", URL))
    return cls("upstream said no", response=response, body=None)


@pytest.fixture
def sdk():
    with patch("kontextai.providers.llm_provider.AsyncOpenAI") as client_cls:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion("ok"))
        client.close = AsyncMock()
        client_cls.return_value = client
        yield client_cls, client


@pytest.fixture
def provider():
    return OpenAIChatProvider(LLMConfig(api_key="secret", timeout=12.0))


def test_text_message():
    assert text_message("system", "hi") == {"role": "system", "content": "hi"}


def test_image_message_uses_one_data_uri_per_image():
    message = image_message("describe", ["AAA", "BBB"], ["png", "webp"])
    assert message["role"] == "user"
    assert message["content"][0] == {"type": "text", "text": "describe"}
    assert [part["image_url"]["url"] for part in message["content"][1:]] == [
        "data:image/png;base64,AAA",
        "data:image/webp;base64,BBB",
    ]


def test_image_message_defaults_to_jpeg():
    message = image_message("describe", ["AAA"])
    assert message["content"][1]["image_url"]["url"] == "data:image/jpeg;base64,AAA"


class TestChat:
    @pytest.mark.asyncio
    async def test_success_returns_trimmed_text(self, sdk, provider):
        client_cls, client = sdk
        client.chat.completions.create.return_value = completion("  A prompt.  \n")

        text = await provider.chat(
            [text_message("user", "hi")], temperature=0.7, reasoning_effort="medium"
        )

        assert text == "A prompt."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["temperature"] == 0.7
        assert kwargs["reasoning_effort"] == "medium"
        assert "max_tokens" not in kwargs
        client_params = client_cls.call_args.kwargs
        assert client_params["api_key"] == "secret"
        assert client_params["timeout"] == 12.0
        assert client_params["max_retries"] == 0
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_key_never_calls_the_sdk(self, sdk):
        client_cls, _ = sdk
        provider = OpenAIChatProvider(LLMConfig(api_key="  "))
        with pytest.raises(ConfigurationError):
            await provider.chat([text_message("user", "hi")])
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, expected, message",
        [
            (
                status_error(openai.AuthenticationError, 401),
                AuthError,
                "Invalid API key, please check the configuration",
            ),
            (
                status_error(openai.PermissionDeniedError, 403),
                AuthError,
                "API access denied, please check permissions",
            ),
            (
                status_error(openai.RateLimitError, 429),
                RateLimitError,
                "Too many requests, please try again later",
            ),
            (
                status_error(openai.InternalServerError, 503),
                UpstreamUnavailable,
                "AI service temporarily unavailable, please try again later",
            ),
        ],
    )
    async def test_status_errors_are_mapped(
        self, sdk, provider, error, expected, message
    ):
        _, client = sdk
        client.chat.completions.create.side_effect = error
        with pytest.raises(expected) as exc_info:
            await provider.chat([text_message("user", "hi")])
        assert exc_info.value.message == message
        assert exc_info.value.__cause__ is error
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_status_errors_stay_generic(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.side_effect = status_error(
            openai.BadRequestError, 400
        )
        with pytest.raises(UpstreamLLMError) as exc_info:
            await provider.chat([text_message("user", "hi")])
        assert type(exc_info.value) is UpstreamLLMError

    @pytest.mark.asyncio
    async def test_timeout(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", URL)
        )
        with pytest.raises(UpstreamUnavailable):
            await provider.chat([text_message("user", "hi")])

    @pytest.mark.asyncio
    async def test_connection_error(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", URL)
        )
        with pytest.raises(NetworkError):
            await provider.chat([text_message("user", "hi")])

    @pytest.mark.asyncio
    async def test_other_sdk_errors_are_generic(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.side_effect = openai.APIError(
            "bad json from upstream", request=httpx.Request("POST", URL), body=None
        )
        with pytest.raises(UpstreamLLMError) as exc_info:
            await provider.chat([text_message("user", "hi")])
        assert "bad json from upstream" in exc_info.value.message
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_choices_is_empty(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[], usage=None
        )
        with pytest.raises(EmptyResponse):
            await provider.chat([text_message("user", "hi")])

    @pytest.mark.asyncio
    async def test_blank_content_is_empty(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.return_value = completion("   ")
        with pytest.raises(EmptyResponse) as exc_info:
            await provider.chat([text_message("user", "hi")])
        assert not isinstance(exc_info.value, TruncatedResponse)

    @pytest.mark.asyncio
    async def test_length_cut_off_is_truncated(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.return_value = completion(
            None, finish_reason="length"
        )
        with pytest.raises(TruncatedResponse):
            await provider.chat([text_message("user", "hi")])


class TestHelpers:
    @pytest.mark.asyncio
    async def test_text_chat_adds_system_message(self, sdk, provider):
        _, client = sdk
        await provider.text_chat("hello", system="be brief")
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_image_chat_sends_one_image(self, sdk, provider):
        _, client = sdk
        await provider.image_chat("what is this", "AAA", "png")
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert len(messages) == 1
        assert messages[0]["content"][1]["image_url"]["url"].startswith(
            "data:image/png;base64,"
        )

    @pytest.mark.asyncio
    async def test_multi_image_chat_sends_every_image(self, sdk, provider):
        _, client = sdk
        await provider.multi_image_chat("combine these", ["AAA", "BBB"], "png")
        content = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "combine these"}
        assert [part["image_url"]["url"] for part in content[1:]] == [
            "data:image/png;base64,AAA",
            "data:image/png;base64,BBB",
        ]

    @pytest.mark.asyncio
    async def test_health_check_reports_reply(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.return_value = completion("test ok")
        report = await provider.health_check()
        assert report == {"configured": True, "reply": "test ok", "ok": True}
        assert client.chat.completions.create.call_args.kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self, sdk, provider):
        _, client = sdk
        client.chat.completions.create.side_effect = status_error(
            openai.RateLimitError, 429
        )
        report = await provider.health_check()
        assert report["ok"] is False
        assert report["error"] == "Too many requests, please try again later"


@pytest.mark.asyncio
async def test_optimizer_falls_back_when_the_sdk_fails(sdk, provider, fetcher):
    _, client = sdk
    client.chat.completions.create.side_effect = [
        openai.APIError(
            "bad json from upstream", request=httpx.Request("POST", URL), body=None
        ),
        completion("Fallback prompt."),
    ]
    result = await PromptOptimizer(provider, fetcher).optimize(
        OptimizeRequest(
            prompt="add a hat", model="max", image_url="https://example.com/square.png"
        )
    )
    assert result.success
    assert result.used_image_analysis is False
    assert result.optimized_prompt == "Fallback prompt."
