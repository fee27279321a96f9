"""Case-study XREF generation: attach every placed product symbol onto the floor plan.

Phases: init (placements, symbol lookup) -> script -> aps -> download -> drive.
Products without a symbol DWG are attached as a placeholder symbol so the
layout stays complete. The drive upload is best effort.
"""
import logging

from fossgen.jobs.phases import CaseStudyPhase
from fossgen.jobs.runner import register_workflow, safe_error_message
from fossgen.services.cad_automation import CadAsset
from fossgen.services.case_study_repository import RevisionInfo
from fossgen.services.xref_script import XrefPlacement, build_xref_script
from fossgen.workflows.context import WorkflowContext

logger = logging.getLogger(__name__)

PLACEHOLDER_PID = "PLACEHOLDER"


def symbol_local_path(hub_path: str, foss_pid: str) -> str:
    """Where the symbol DWG lives on the shared drive (forward slashes for AutoCAD)."""
    return f"{hub_path}/RESOURCES/SYMBOLS/{foss_pid}/{foss_pid}-SYMBOL.dwg".replace("\\", "/")


def output_filename(revision: RevisionInfo) -> str:
    return f"{revision.project_code}_{revision.area_code}_RV{revision.revision_number}.dwg"


@register_workflow("case-study")
async def run_case_study_generation(job_id: str, revision: RevisionInfo, ctx: WorkflowContext) -> None:
    store = ctx.store
    report = store.reporter(job_id)
    filename = output_filename(revision)

    report(CaseStudyPhase.INIT, "Fetching placements...", f"Area: {revision.area_code}")
    placements = await ctx.case_studies.list_placements(revision.revision_id)
    if not placements:
        store.complete_job(job_id, False, {"errors": ["No placements found for this area"]})
        return
    report(CaseStudyPhase.INIT, "Placements loaded", f"{len(placements)} placements")

    report(CaseStudyPhase.INIT, "Checking symbol DWGs...")
    foss_pids = sorted({p.foss_pid for p in placements})
    dwg_paths = await ctx.case_studies.symbol_dwg_paths(foss_pids)
    missing = [pid for pid in foss_pids if pid not in dwg_paths]
    if missing:
        logger.info(f"Job {job_id}: {len(missing)} product(s) without symbol DWG: {', '.join(missing)}")
        report(CaseStudyPhase.INIT, "Missing symbols detected", f"{len(missing)} will use placeholder")

    xrefs = [
        XrefPlacement(
            foss_pid=p.foss_pid,
            local_path=symbol_local_path(
                ctx.drive_hub_path, p.foss_pid if p.foss_pid in dwg_paths else PLACEHOLDER_PID,
            ),
            world_x=p.world_x, world_y=p.world_y, rotation=p.rotation,
            mirror_x=p.mirror_x, mirror_y=p.mirror_y, symbol=p.symbol,
        )
        for p in placements
    ]

    report(CaseStudyPhase.SCRIPT, "Generating AutoLISP script...")
    script = build_xref_script(
        xrefs, filename, area_code=revision.area_code, revision_number=revision.revision_number,
    )
    report(CaseStudyPhase.SCRIPT, "Script generated", f"{len(script.encode('utf-8'))} bytes")

    assets = [CadAsset(name="floorplan.dwg", urn=revision.floor_plan_urn)]
    assets += [
        CadAsset(name=f"{pid}-SYMBOL.dwg", url=f"{ctx.symbol_storage_url.rstrip('/')}/{path}")
        for pid, path in sorted(dwg_paths.items())
    ]
    report(CaseStudyPhase.APS, "Submitting to CAD automation...", f"script + {len(dwg_paths)} symbols")
    cad = await ctx.cad.execute(
        script, output_name=filename, assets=assets,
        on_progress=report, bucket=revision.oss_bucket,
    )
    if not cad.success:
        store.complete_job(job_id, False, {"errors": cad.errors}, detail="CAD processing failed")
        return

    report(CaseStudyPhase.DOWNLOAD, "Downloading generated DWG...")
    if cad.dwg_buffer is None:
        store.complete_job(job_id, False, {"errors": ["No DWG buffer returned from CAD automation"]})
        return
    report(CaseStudyPhase.DOWNLOAD, "DWG downloaded", f"{len(cad.dwg_buffer) / 1024:.0f} KB")

    drive_link = None
    report(CaseStudyPhase.DRIVE, "Uploading to shared drive...")
    try:
        upload = await ctx.storage.upload(
            f"{revision.project_code}_{revision.area_code}", {filename: cad.dwg_buffer},
        )
    except Exception as e:
        logger.exception(f"Job {job_id}: drive upload crashed")
        report(CaseStudyPhase.DRIVE, "Drive upload error (file still generated)", safe_error_message(e))
    else:
        if upload.success:
            drive_link = upload.links.get(filename)
            report(CaseStudyPhase.DRIVE, "Uploaded to shared drive", filename)
        else:
            report(CaseStudyPhase.DRIVE, "Drive upload failed (file still generated)", "; ".join(upload.errors))

    store.complete_job(
        job_id, True,
        {
            "output_filename": filename,
            "dwg_url": cad.dwg_url,
            "viewer_urn": cad.viewer_urn,
            "drive_link": drive_link,
            "placements": len(placements),
            "missing_symbols": missing,
        },
        detail=f"{filename} ({len(placements)} placements)",
        dwg_buffer=cad.dwg_buffer,
    )
