"""Bounded generate -> execute -> repair loop with model escalation.

Attempt 1 writes a fresh script with the base model. Every later attempt uses
the escalation model; once a script has actually failed in AutoCAD, the model
gets that script, the extracted error lines and the conversation so far.
Cost and tokens are summed over every LLM call, whichever attempt wins.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from fossgen.services.cad_automation import CadResult
from fossgen.services.script_llm import ScriptGenerator, extract_error_context

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
ERROR_PREVIEW_CHARS = 200


@dataclass
class EscalationOutcome:
    success: bool
    attempts: int = 0
    model: Optional[str] = None
    script: Optional[str] = None
    cad: Optional[CadResult] = None
    cost_usd: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    errors: list[str] = field(default_factory=list)


def _preview(text: str, limit: int = ERROR_PREVIEW_CHARS) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _short_model(model: str) -> str:
    return model.rsplit("/", 1)[-1]


def _cad_error_context(cad: CadResult) -> str:
    if cad.report:
        return extract_error_context(cad.report)
    return "\n".join(cad.errors) or "Unknown CAD automation failure"


async def run_with_escalation(
    prompt: str,
    scripts: ScriptGenerator,
    execute: Callable[[str], Awaitable[CadResult]],
    report: Callable[..., None],
    *,
    llm_phase: str = "llm",
    cad_phase: str = "aps",
    max_attempts: int = MAX_ATTEMPTS,
) -> EscalationOutcome:
    outcome = EscalationOutcome(success=False)
    conversation: list[dict] = []
    previous_script: Optional[str] = None
    last_cad_error: Optional[str] = None

    for attempt in range(1, max_attempts + 1):
        outcome.attempts = attempt
        escalated = attempt > 1
        model = scripts.model_for(escalated)
        counter = f"Attempt {attempt}/{max_attempts}"

        if previous_script is None or last_cad_error is None:
            report(llm_phase, f"Generating script with {_short_model(model)}...", counter)
            generated = await scripts.generate(prompt, escalated=escalated)
        else:
            report(llm_phase, f"Fixing script with {_short_model(model)}...", counter)
            generated = await scripts.repair(conversation, previous_script, last_cad_error)

        outcome.model = generated.model
        outcome.cost_usd += generated.cost_usd
        outcome.tokens_in += generated.tokens_in
        outcome.tokens_out += generated.tokens_out

        if not generated.success:
            error = generated.error or "Script generation failed"
            outcome.errors.append(f"Attempt {attempt} (script): {error}")
            report(llm_phase, "Script generation failed", _preview(f"{counter}: {error}"))
            continue

        conversation = generated.conversation
        previous_script = generated.script
        report(llm_phase, "Script generated", f"{len(generated.script)} chars, {counter}")

        report(cad_phase, "Running script in AutoCAD...", counter)
        cad = await execute(generated.script)
        if cad.success:
            outcome.success = True
            outcome.script = generated.script
            outcome.cad = cad
            logger.info(f"Escalation loop succeeded on attempt {attempt} with {generated.model}")
            return outcome

        last_cad_error = _cad_error_context(cad)
        outcome.errors.append(f"Attempt {attempt} (CAD): {_preview(last_cad_error)}")
        report(cad_phase, f"AutoCAD rejected the script (attempt {attempt})", _preview(last_cad_error))
        logger.warning(f"Attempt {attempt}/{max_attempts} failed in CAD automation")

    return outcome
