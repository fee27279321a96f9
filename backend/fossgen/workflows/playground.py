"""Free-form drawing generation from a natural-language description."""
from dataclasses import dataclass

from fossgen.jobs.phases import PlaygroundPhase
from fossgen.jobs.runner import register_workflow
from fossgen.services.prompts import playground_prompt
from fossgen.workflows.context import WorkflowContext
from fossgen.workflows.escalation import run_with_escalation


@dataclass
class PlaygroundParams:
    description: str
    output_filename: str = "Playground.dwg"


@register_workflow("playground")
async def run_playground_generation(job_id: str, params: PlaygroundParams, ctx: WorkflowContext) -> None:
    store = ctx.store
    report = store.reporter(job_id)

    async def execute(script: str):
        return await ctx.cad.execute(
            script, output_name=params.output_filename, on_progress=report,
        )

    outcome = await run_with_escalation(
        playground_prompt(params.description, params.output_filename),
        ctx.playground_scripts,
        execute,
        report,
        llm_phase=PlaygroundPhase.LLM.value,
        cad_phase=PlaygroundPhase.APS.value,
    )
    cost_eur = await ctx.currency.convert(outcome.cost_usd)
    usage = {
        "cost_usd": round(outcome.cost_usd, 6),
        "cost_eur": cost_eur,
        "llm_model": outcome.model,
        "tokens_in": outcome.tokens_in,
        "tokens_out": outcome.tokens_out,
        "attempts": outcome.attempts,
    }

    if not outcome.success or outcome.cad.dwg_buffer is None:
        errors = outcome.errors or ["No DWG buffer returned from CAD automation"]
        store.complete_job(
            job_id, False, {**usage, "errors": errors},
            detail=f"Failed after {outcome.attempts} attempt(s), cost: €{cost_eur:.4f}",
        )
        return

    cad = outcome.cad
    size_kb = len(cad.dwg_buffer) / 1024
    store.complete_job(
        job_id, True,
        {**usage, "dwg_url": cad.dwg_url, "viewer_urn": cad.viewer_urn},
        detail=f"{size_kb:.0f} KB, {outcome.attempts} attempt(s), cost: €{cost_eur:.4f}",
        dwg_buffer=cad.dwg_buffer,
    )
