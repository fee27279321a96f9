"""Product symbol generation: vision spec -> AutoLISP -> DWG + PNG preview."""
import logging
from dataclasses import dataclass

from fossgen.jobs.phases import SymbolPhase
from fossgen.jobs.runner import register_workflow
from fossgen.services.prompts import symbol_prompt
from fossgen.workflows.context import WorkflowContext
from fossgen.workflows.escalation import run_with_escalation

logger = logging.getLogger(__name__)

SYMBOL_DWG = "Symbol.dwg"


@dataclass
class SymbolParams:
    spec: str
    foss_pid: str


@register_workflow("symbols")
async def run_symbol_generation(job_id: str, params: SymbolParams, ctx: WorkflowContext) -> None:
    store = ctx.store
    report = store.reporter(job_id)

    async def execute(script: str):
        return await ctx.cad.execute(
            script, output_name=SYMBOL_DWG, on_progress=report, want_png=True,
        )

    outcome = await run_with_escalation(
        symbol_prompt(params.spec, params.foss_pid),
        ctx.symbol_scripts,
        execute,
        report,
        llm_phase=SymbolPhase.LLM.value,
        cad_phase=SymbolPhase.APS.value,
    )
    cost_eur = await ctx.currency.convert(outcome.cost_usd)
    usage = {
        "foss_pid": params.foss_pid,
        "cost_usd": round(outcome.cost_usd, 6),
        "cost_eur": cost_eur,
        "llm_model": outcome.model,
        "tokens_in": outcome.tokens_in,
        "tokens_out": outcome.tokens_out,
        "attempts": outcome.attempts,
    }

    if not outcome.success or outcome.cad.dwg_buffer is None:
        errors = outcome.errors or ["No DWG buffer returned from CAD automation"]
        store.complete_job(job_id, False, {**usage, "errors": errors})
        return

    cad = outcome.cad
    if cad.png_buffer is None:
        logger.warning(f"Job {job_id}: symbol {params.foss_pid} produced no PNG preview")
    store.complete_job(
        job_id, True,
        {**usage, "viewer_urn": cad.viewer_urn},
        detail=f"{len(cad.dwg_buffer) / 1024:.0f} KB DWG, {outcome.attempts} attempt(s), cost: €{cost_eur:.4f}",
        dwg_buffer=cad.dwg_buffer,
        png_buffer=cad.png_buffer,
    )
