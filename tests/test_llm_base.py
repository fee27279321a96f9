import asyncio
import time

import pytest

from fossgen.services import llm_base
from fossgen.services.llm_base import (
    BaseLLMProvider, LLMTimeoutError, OpenRouterProvider, create_llm_provider,
)


class FlakyProvider(BaseLLMProvider):
    def __init__(self, failures=0, delay=0.0, timeout=5.0):
        super().__init__("key", "test-model", timeout=timeout)
        self.failures = failures
        self.delay = delay
        self.calls = 0

    def _sync_chat(self, messages):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.calls <= self.failures:
            raise ConnectionError("reset by peer")
        return "```lisp\nQUIT\n```", 12, None


@pytest.fixture
def no_backoff(monkeypatch):
    async def instant(_delay):
        return None
    monkeypatch.setattr(llm_base.asyncio, "sleep", instant)


@pytest.mark.anyio
async def test_chat_returns_completion_with_zeroed_missing_usage():
    completion = await FlakyProvider().chat([{"role": "user", "content": "hi"}])
    assert completion.text == "```lisp\nQUIT\n```"
    assert (completion.tokens_in, completion.tokens_out) == (12, 0)
    assert completion.model == "test-model"


@pytest.mark.anyio
async def test_transient_errors_are_retried(no_backoff):
    provider = FlakyProvider(failures=2)
    await provider.chat([])
    assert provider.calls == 3


@pytest.mark.anyio
async def test_retries_give_up_eventually(no_backoff):
    provider = FlakyProvider(failures=10)
    with pytest.raises(ConnectionError):
        await provider.chat([])
    assert provider.calls == 4


@pytest.mark.anyio
async def test_slow_provider_times_out():
    with pytest.raises(LLMTimeoutError):
        await FlakyProvider(delay=0.5, timeout=0.05).chat([])
    # let the worker thread finish before the loop closes
    await asyncio.sleep(0.5)


def test_missing_api_key_is_rejected():
    with pytest.raises(ValueError, match="No API key"):
        create_llm_provider("openrouter", "anthropic/claude-sonnet-4", "")


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError, match="Unknown LLM provider"):
        create_llm_provider("mystery", "some-model", "key")


def test_openrouter_provider_uses_configured_base_url():
    provider = create_llm_provider(
        "openrouter", "anthropic/claude-sonnet-4", "sk-or-test",
        base_url="https://openrouter.example/api/v1", app_url="https://app.foss.gr",
    )
    assert isinstance(provider, OpenRouterProvider)
    assert str(provider.client.base_url).rstrip("/") == "https://openrouter.example/api/v1"
    assert provider.client.max_retries == 0
