"""Async chat-completion providers used for AutoLISP script generation.

Both SDKs (openai, google-genai) are sync; calls are pushed to a worker thread
with asyncio.to_thread and bounded by asyncio.wait_for so the timeout covers
every retry.
"""
import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple, Type

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """User-presentable failure of a chat completion."""
    pass


class LLMTimeoutError(LLMError, TimeoutError):
    """Raised when an LLM call exceeds the configured timeout."""
    pass


@dataclass
class ChatCompletion:
    text: str
    tokens_in: int
    tokens_out: int
    model: str


def friendly_api_error(status: Optional[int], message: str = "") -> str:
    """Turn a provider HTTP error into something a designer can act on."""
    text = (message or "").strip()
    if status in (502, 503):
        return "AI service temporarily unavailable. Please try again in a few minutes."
    if status == 429:
        return "AI service rate limit exceeded. Please wait a moment and try again."
    if status in (401, 403):
        return "AI service authentication error. Please contact support."
    if text.startswith("<!DOCTYPE") or text.startswith("<html"):
        return f"AI service error ({status}). Please try again later."
    return text or f"AI service error ({status}). Please try again."


class BaseLLMProvider(ABC):
    """Abstract base class for async chat providers."""

    # Override in subclasses with provider-specific retryable exception types
    RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError)

    def __init__(self, api_key: str, model_name: str, max_tokens: int = 4096, timeout: float = 120.0):
        if not api_key:
            raise ValueError(f"No API key configured for model {model_name}")
        self.api_key = api_key
        self.model_name = model_name
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def _with_retry(self, sync_fn, *args, max_retries: int = 3):
        """Wrap a sync SDK call with exponential backoff for transient errors."""
        for attempt in range(max_retries + 1):
            try:
                return await asyncio.to_thread(sync_fn, *args)
            except self.RETRYABLE_EXCEPTIONS as e:
                if attempt == max_retries:
                    raise
                delay = (2 ** (attempt + 1)) + random.uniform(0, 1)
                logger.warning(
                    "LLM call failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1, max_retries + 1, delay, e,
                )
                await asyncio.sleep(delay)

    async def chat(self, messages: list[dict]) -> ChatCompletion:
        """Run one chat completion over ``[{"role", "content"}, ...]`` messages."""
        try:
            text, tokens_in, tokens_out = await asyncio.wait_for(
                self._with_retry(self._sync_chat, messages), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutError(
                f"AI service did not respond within {self.timeout:.0f}s. Please try again."
            )
        return ChatCompletion(
            text=text or "",
            tokens_in=tokens_in or 0,
            tokens_out=tokens_out or 0,
            model=self.model_name,
        )

    @abstractmethod
    def _sync_chat(self, messages: list[dict]) -> tuple[str, Optional[int], Optional[int]]:
        pass


class OpenRouterProvider(BaseLLMProvider):
    """OpenRouter through the OpenAI SDK (OpenAI-compatible chat API)."""

    def __init__(
        self, api_key: str, model_name: str,
        base_url: str = "https://openrouter.ai/api/v1",
        app_url: str = "", max_tokens: int = 4096, timeout: float = 120.0,
    ):
        super().__init__(api_key, model_name, max_tokens, timeout)
        from openai import OpenAI, APIConnectionError, RateLimitError
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            default_headers={"HTTP-Referer": app_url, "X-Title": "FOSSAPP"},
        )
        self.RETRYABLE_EXCEPTIONS = (
            RateLimitError, APIConnectionError, ConnectionError, TimeoutError,
        )

    def _sync_chat(self, messages):
        response = self.client.chat.completions.create(
            model=self.model_name, messages=messages, max_tokens=self.max_tokens,
        )
        tokens_in = tokens_out = None
        if response.usage:
            tokens_in = response.usage.prompt_tokens
            tokens_out = response.usage.completion_tokens
        content = response.choices[0].message.content if response.choices else ""
        return content, tokens_in, tokens_out

    async def chat(self, messages: list[dict]) -> ChatCompletion:
        from openai import APIConnectionError, APIStatusError
        try:
            return await super().chat(messages)
        except APIStatusError as e:
            logger.error(f"OpenRouter API error ({e.status_code}): {e.message}")
            raise LLMError(friendly_api_error(e.status_code, e.message)) from e
        except APIConnectionError as e:
            raise LLMError("AI service unreachable. Please try again in a few minutes.") from e


class GeminiProvider(BaseLLMProvider):
    """Gemini through the google-genai SDK."""

    def __init__(self, api_key: str, model_name: str, max_tokens: int = 4096, timeout: float = 120.0):
        super().__init__(api_key, model_name, max_tokens, timeout)
        from google import genai
        self.client = genai.Client(api_key=api_key)

    def _sync_chat(self, messages):
        from google.genai import types

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            types.Content(
                role="user" if m["role"] == "user" else "model",
                parts=[types.Part.from_text(text=m["content"])],
            )
            for m in messages if m["role"] != "system"
        ]
        config_dict = {"max_output_tokens": self.max_tokens}
        if system:
            config_dict["system_instruction"] = system
        response = self.client.models.generate_content(
            model=self.model_name, contents=contents,
            config=types.GenerateContentConfig(**config_dict),
        )
        tokens_in = tokens_out = None
        if response.usage_metadata:
            tokens_in = response.usage_metadata.prompt_token_count
            tokens_out = response.usage_metadata.candidates_token_count
        return response.text, tokens_in, tokens_out

    async def chat(self, messages: list[dict]) -> ChatCompletion:
        from google.genai import errors
        try:
            return await super().chat(messages)
        except errors.APIError as e:
            logger.error(f"Gemini API error ({e.code}): {e.message}")
            raise LLMError(friendly_api_error(e.code, e.message or "")) from e


def create_llm_provider(
    provider: str, model_name: str, api_key: str = "", *,
    base_url: str = "", app_url: str = "",
    max_tokens: int = 4096, timeout: float = 120.0,
) -> BaseLLMProvider:
    """Factory - dumb constructor, credentials come from settings."""
    if not model_name:
        raise ValueError("No model configured for script generation")
    if provider == "openrouter":
        return OpenRouterProvider(
            api_key=api_key, model_name=model_name, base_url=base_url or "https://openrouter.ai/api/v1",
            app_url=app_url, max_tokens=max_tokens, timeout=timeout,
        )
    elif provider == "gemini":
        return GeminiProvider(api_key=api_key, model_name=model_name, max_tokens=max_tokens, timeout=timeout)
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
