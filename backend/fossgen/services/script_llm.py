"""AutoLISP script generation on top of a chat provider.

``ScriptGenerator.generate`` writes a script from a fresh prompt;
``ScriptGenerator.repair`` continues the previous conversation with the failed
script and the extracted CAD error so the model can fix it. Neither raises for
provider or extraction failures: they come back as ``ScriptResult(success=False)``
with whatever cost was already incurred.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from fossgen.jobs.runner import safe_error_message
from fossgen.services.llm_base import BaseLLMProvider, LLMError
from fossgen.services.prompts import repair_prompt

logger = logging.getLogger(__name__)

# USD per 1M tokens
MODEL_PRICING = {
    "anthropic/claude-sonnet-4": {"input": 3.0, "output": 15.0},
    "anthropic/claude-opus-4": {"input": 15.0, "output": 75.0},
    "gemini-2.5-flash": {"input": 0.3, "output": 2.5},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.0},
}
DEFAULT_PRICING = MODEL_PRICING["anthropic/claude-sonnet-4"]

_SCRIPT_PATTERNS = [
    re.compile(r"```lisp\n(.*?)```", re.DOTALL),
    re.compile(r"```autolisp\n(.*?)```", re.DOTALL),
    re.compile(r"```scr\n(.*?)```", re.DOTALL),
    re.compile(r"```\n(.*?)```", re.DOTALL),
]
_ERROR_MARKERS = ("invalid", "error:", "unknown", "requires", "nil", "bad argument")


class ScriptExtractionError(ValueError):
    pass


@dataclass
class ScriptResult:
    success: bool
    model: str
    script: Optional[str] = None
    error: Optional[str] = None
    cost_usd: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    conversation: list[dict] = field(default_factory=list)


def estimate_cost(model: str, tokens_in: int, tokens_out: int) -> float:
    """USD cost of one completion. Unknown models are priced like Sonnet."""
    pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
    return tokens_in * pricing["input"] / 1_000_000 + tokens_out * pricing["output"] / 1_000_000


def extract_script(response: str) -> str:
    """Pull the script out of a completion, most specific fence first."""
    for pattern in _SCRIPT_PATTERNS:
        match = pattern.search(response)
        if match:
            return match.group(1).strip()
    trimmed = response.strip()
    if trimmed.startswith("(setvar") or trimmed.startswith(";"):
        return trimmed
    raise ScriptExtractionError("Could not extract script from LLM response")


def extract_error_context(output: str) -> str:
    """Keep the last 10 error-looking lines of a CAD report, else its tail."""
    error_lines = [
        line for line in output.split("\n")
        if any(marker in line.lower() for marker in _ERROR_MARKERS)
    ][-10:]
    return "\n".join(error_lines) if error_lines else output[-500:]


class ScriptGenerator:
    """Generates scripts with a base model and repairs them with an escalation model."""

    def __init__(
        self,
        provider_factory: Callable[[str], BaseLLMProvider],
        system_prompt: str,
        base_model: str,
        escalation_model: str,
    ):
        self._provider_factory = provider_factory
        self._providers: dict[str, BaseLLMProvider] = {}
        self.system_prompt = system_prompt
        self.base_model = base_model
        self.escalation_model = escalation_model

    def model_for(self, escalated: bool) -> str:
        return self.escalation_model if escalated else self.base_model

    async def generate(self, prompt: str, escalated: bool = False) -> ScriptResult:
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": prompt},
        ]
        return await self._complete(self.model_for(escalated), messages)

    async def repair(self, conversation: list[dict], previous_script: str, error_context: str) -> ScriptResult:
        """Ask the escalation model to fix ``previous_script`` given the CAD error."""
        messages = list(conversation) + [
            {"role": "assistant", "content": f"```lisp\n{previous_script}\n```"},
            {"role": "user", "content": repair_prompt(error_context)},
        ]
        return await self._complete(self.escalation_model, messages)

    async def _complete(self, model: str, messages: list[dict]) -> ScriptResult:
        try:
            provider = self._provider(model)
            completion = await provider.chat(messages)
        except (LLMError, ValueError) as e:
            logger.warning(f"Script generation with {model} failed: {e}")
            return ScriptResult(success=False, model=model, error=str(e), conversation=messages)
        except Exception as e:
            logger.exception(f"Unexpected error from {model}")
            return ScriptResult(
                success=False, model=model,
                error=f"Unexpected error: {safe_error_message(e, 'AI service call failed')}",
                conversation=messages,
            )

        result = ScriptResult(
            success=False,
            model=model,
            cost_usd=estimate_cost(model, completion.tokens_in, completion.tokens_out),
            tokens_in=completion.tokens_in,
            tokens_out=completion.tokens_out,
            conversation=messages,
        )
        try:
            result.script = extract_script(completion.text)
        except ScriptExtractionError as e:
            result.error = str(e)
            return result
        result.success = True
        logger.info(
            f"{model} produced a {len(result.script)} char script "
            f"({completion.tokens_in} in / {completion.tokens_out} out)"
        )
        return result

    def _provider(self, model: str) -> BaseLLMProvider:
        if model not in self._providers:
            self._providers[model] = self._provider_factory(model)
        return self._providers[model]
