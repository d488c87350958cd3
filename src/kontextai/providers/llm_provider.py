import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import openai
from openai import AsyncOpenAI

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
from kontextai.providers.base_provider import BaseChatProvider

logger = logging.getLogger(__name__)


def text_message(role: str, text: str) -> Dict[str, Any]:
    return {"role": role, "content": text}


def image_message(
    text: str,
    images_b64: Sequence[str],
    image_format: Union[str, Sequence[str]] = "jpeg",
) -> Dict[str, Any]:
    """
    A user message carrying ``text`` followed by each image as a data URI.
    ``image_format`` is one format for all images or one per image.
    """
    if isinstance(image_format, str):
        formats = [image_format] * len(images_b64)
    else:
        formats = list(image_format)
    content: List[Dict[str, Any]] = [{"type": "text", "text": text}]
    for image_b64, fmt in zip(images_b64, formats):
        content.append(
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/{fmt or 'jpeg'};base64,{image_b64}"},
            }
        )
    return {"role": "user", "content": content}


def _map_status_error(e: openai.APIStatusError) -> UpstreamLLMError:
    status = e.status_code
    if status == 401:
        return AuthError("Invalid API key, please check the configuration")
    if status == 403:
        return AuthError("API access denied, please check permissions")
    if status == 429:
        return RateLimitError("Too many requests, please try again later")
    if status >= 500:
        return UpstreamUnavailable(
            "AI service temporarily unavailable, please try again later"
        )
    return UpstreamLLMError(f"AI request failed: {e.message}")


class OpenAIChatProvider(BaseChatProvider):
    """Chat completions against an OpenAI-compatible endpoint (Gemini by default)."""

    def __init__(self, config: LLMConfig):
        self.config = config

    @property
    def configured(self) -> bool:
        return self.config.configured

    def _client(self) -> AsyncOpenAI:
        client_params = {
            "api_key": self.config.api_key,
            "timeout": self.config.timeout,
            "max_retries": self.config.max_retries,
        }
        if self.config.base_url:
            client_params["base_url"] = str(self.config.base_url)
        return AsyncOpenAI(**client_params)

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> str:
        if not self.configured:
            logger.warning(
                f"LLM API key missing (length {len(self.config.api_key or '')}), "
                f"base URL {self.config.base_url}"
            )
            raise ConfigurationError(
                "AI service is not configured, please contact the administrator"
            )
        model_name = model or self.config.model
        kwargs: Dict[str, Any] = {"model": model_name, "messages": messages}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if reasoning_effort:
            kwargs["reasoning_effort"] = reasoning_effort

        logger.info(
            f"Sending chat request: model={model_name} messages={len(messages)} "
            f"temperature={temperature} max_tokens={max_tokens}"
        )
        client = self._client()
        try:
            response = await client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            logger.error(f"Chat request failed with HTTP {e.status_code}: {e.message}")
            raise _map_status_error(e) from e
        except openai.APITimeoutError as e:
            logger.error(f"Chat request timed out after {self.config.timeout}s")
            raise UpstreamUnavailable(
                "AI service timed out, please try again later"
            ) from e
        except openai.APIConnectionError as e:
            logger.error(f"Chat request could not reach the AI service: {e}")
            raise NetworkError(
                "Network connection error, please check your connection"
            ) from e
        except openai.APIError as e:
            logger.error(f"Chat request failed: {e.message}")
            raise UpstreamLLMError(f"AI request failed: {e.message}") from e
        finally:
            await client.close()

        choices = getattr(response, "choices", None) or []
        usage = getattr(response, "usage", None)
        logger.info(f"Chat response: model={model_name} choices={len(choices)} usage={usage}")
        if not choices:
            raise EmptyResponse("The AI returned empty content")
        choice = choices[0]
        message = getattr(choice, "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if content is None or not content.strip():
            if getattr(choice, "finish_reason", None) == "length":
                logger.error("Chat response was cut off by the token limit")
                raise TruncatedResponse(
                    "The AI response was truncated, please shorten the prompt"
                )
            raise EmptyResponse("The AI returned empty content")
        return content.strip()

    async def text_chat(
        self, prompt: str, system: Optional[str] = None, **options
    ) -> str:
        messages = []
        if system:
            messages.append(text_message("system", system))
        messages.append(text_message("user", prompt))
        return await self.chat(messages, **options)

    async def image_chat(
        self, prompt: str, image_b64: str, image_format: str = "jpeg", **options
    ) -> str:
        return await self.chat([image_message(prompt, [image_b64], image_format)], **options)

    async def multi_image_chat(
        self,
        prompt: str,
        images_b64: Sequence[str],
        image_format: str = "jpeg",
        **options,
    ) -> str:
        return await self.chat(
            [image_message(prompt, list(images_b64), image_format)], **options
        )
