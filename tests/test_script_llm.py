import pytest

from conftest import BASE_MODEL, ESCALATION_MODEL
from fossgen.services.llm_base import LLMError, friendly_api_error
from fossgen.services.script_llm import (
    ScriptExtractionError, ScriptGenerator, estimate_cost, extract_error_context, extract_script,
)


@pytest.mark.parametrize("response, expected", [
    ("Here you go:\n```lisp\n(command \"LINE\")\n```\nDone.", '(command "LINE")'),
    ("```autolisp\n(setvar \"cmdecho\" 0)\n```", '(setvar "cmdecho" 0)'),
    ("```scr\nQUIT\n```", "QUIT"),
    ("```\n(command \"CIRCLE\")\n```", '(command "CIRCLE")'),
    ('(setvar "cmdecho" 0)\n(command "LINE")', '(setvar "cmdecho" 0)\n(command "LINE")'),
    ("; comment first\nQUIT", "; comment first\nQUIT"),
])
def test_extract_script(response, expected):
    assert extract_script(response) == expected


def test_extract_script_prefers_lisp_fence():
    response = "```\nwrong\n```\n```lisp\nright\n```"
    assert extract_script(response) == "right"


def test_extract_script_rejects_prose():
    with pytest.raises(ScriptExtractionError):
        extract_script("I would draw a circle at the origin.")


def test_extract_error_context_keeps_error_lines():
    report = "Command: LINE\n; error: bad argument type\nCommand: CIRCLE\nUnknown command \"CIRKLE\"\nok"
    assert extract_error_context(report) == '; error: bad argument type\nUnknown command "CIRKLE"'


def test_extract_error_context_keeps_only_last_ten():
    report = "\n".join(f"error: {i}" for i in range(15))
    assert extract_error_context(report).splitlines()[0] == "error: 5"


def test_extract_error_context_falls_back_to_tail():
    report = "x" * 600
    assert extract_error_context(report) == "x" * 500


def test_estimate_cost():
    assert estimate_cost(BASE_MODEL, 1000, 500) == pytest.approx(0.0105)
    assert estimate_cost(ESCALATION_MODEL, 1000, 500) == pytest.approx(0.0525)
    assert estimate_cost("some/unknown-model", 1000, 500) == pytest.approx(0.0105)


class FailingProvider:
    async def chat(self, messages):
        raise LLMError("AI service rate limit exceeded. Please wait a moment and try again.")


@pytest.mark.anyio
async def test_provider_errors_become_failed_results():
    scripts = ScriptGenerator(lambda m: FailingProvider(), "system", BASE_MODEL, ESCALATION_MODEL)

    result = await scripts.generate("a circle")

    assert not result.success
    assert result.cost_usd == 0
    assert "rate limit" in result.error


@pytest.mark.anyio
async def test_missing_api_key_becomes_failed_result():
    def factory(model):
        raise ValueError("OPENROUTER_API_KEY is not configured")

    result = await ScriptGenerator(factory, "system", BASE_MODEL, ESCALATION_MODEL).generate("a circle")

    assert not result.success
    assert "OPENROUTER_API_KEY" in result.error


@pytest.mark.anyio
async def test_providers_are_created_once_per_model(scripts, llm_log):
    await scripts.generate("one")
    await scripts.generate("two")
    assert scripts._providers.keys() == {BASE_MODEL}


@pytest.mark.parametrize("status, message, expected", [
    (503, "", "temporarily unavailable"),
    (429, "", "rate limit"),
    (401, "", "authentication"),
    (500, "<!DOCTYPE html><html>", "AI service error (500)"),
    (400, "max_tokens too large", "max_tokens too large"),
])
def test_friendly_api_error(status, message, expected):
    assert expected in friendly_api_error(status, message)


class DisconnectingProvider:
    async def chat(self, messages):
        raise RuntimeError("socket closed")


@pytest.mark.anyio
async def test_unexpected_provider_exceptions_become_failed_results():
    scripts = ScriptGenerator(lambda m: DisconnectingProvider(), "system", BASE_MODEL, ESCALATION_MODEL)

    result = await scripts.generate("a circle")

    assert not result.success
    assert result.model == BASE_MODEL
    assert result.error == "Unexpected error: socket closed"
    assert result.conversation[-1] == {"role": "user", "content": "a circle"}
