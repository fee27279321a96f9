"""Tile sheet generation: images -> script -> AutoCAD -> drive upload.

Every phase failure is terminal. A drive upload failure still reports the
DWG URL so the designer can fetch the drawing by hand.
"""
import logging

from fossgen.jobs.phases import TilePhase
from fossgen.jobs.runner import register_workflow, safe_error_message
from fossgen.schemas.generation import TileRequest
from fossgen.services.image_processor import ImageProcessingError
from fossgen.services.tile_script import build_tile_script
from fossgen.workflows.context import WorkflowContext

logger = logging.getLogger(__name__)

TOTAL_STEPS = 4


def _step(n: int) -> str:
    return f"Step {n}/{TOTAL_STEPS}"


@register_workflow("tiles")
async def run_tile_generation(job_id: str, tile: TileRequest, ctx: WorkflowContext) -> None:
    store = ctx.store
    output_filename = f"{tile.tile}.dwg"

    # Step 1: images
    store.add_progress(
        job_id, TilePhase.IMAGES, "Starting tile generation",
        f"{tile.tile} ({len(tile.members)} members)",
    )
    store.add_progress(
        job_id, TilePhase.IMAGES, "Processing images...",
        f"{len(tile.members) * 2} files (images + drawings)", _step(1),
    )
    try:
        assets = await ctx.images.process_members(tile.members, store.reporter(job_id, _step(1)))
    except ImageProcessingError as e:
        store.complete_job(job_id, False, {"errors": e.errors}, detail="Image processing failed")
        return
    store.add_progress(job_id, TilePhase.IMAGES, "Images processed", f"{len(assets)} files converted", _step(1))

    # Step 2: script
    store.add_progress(job_id, TilePhase.SCRIPT, "Generating AutoLISP script...", step=_step(2))
    script = build_tile_script(tile, output_filename)
    store.add_progress(
        job_id, TilePhase.SCRIPT, "Script generated", f"{len(script.splitlines())} lines", _step(2),
    )

    # Step 3: AutoCAD
    store.add_progress(job_id, TilePhase.APS, "Starting CAD automation...", step=_step(3))
    cad = await ctx.cad.execute(
        script, output_name=output_filename, assets=assets,
        on_progress=store.reporter(job_id, _step(3)),
    )
    if not cad.success:
        store.complete_job(job_id, False, {"errors": cad.errors}, detail="CAD processing failed")
        return
    if cad.dwg_buffer is None:
        store.complete_job(job_id, False, {"errors": ["No DWG buffer returned from CAD automation"]})
        return

    # Step 4: drive upload
    size_kb = len(cad.dwg_buffer) / 1024
    store.add_progress(
        job_id, TilePhase.DRIVE, "Uploading to shared drive...",
        f"{size_kb:.0f} KB DWG + {len(assets)} images", _step(4),
    )
    files = {output_filename: cad.dwg_buffer, f"{tile.tile}.scr": script.encode("utf-8")}
    files.update({asset.name: asset.data for asset in assets if asset.data is not None})
    try:
        upload = await ctx.storage.upload(tile.tile, files)
    except Exception as e:
        logger.exception(f"Job {job_id}: drive upload crashed")
        upload_errors = [f"Drive upload failed: {safe_error_message(e)}"]
    else:
        upload_errors = upload.errors
    if upload_errors:
        store.complete_job(
            job_id, False, {"dwg_url": cad.dwg_url, "errors": upload_errors},
            detail="Drive upload failed (DWG still available via its URL)",
        )
        return

    store.add_progress(job_id, TilePhase.DRIVE, "Drive upload complete", upload.links.get(output_filename), _step(4))
    store.complete_job(
        job_id, True,
        {
            "dwg_url": cad.dwg_url,
            "drive_link": upload.links.get(output_filename),
            "viewer_urn": cad.viewer_urn,
        },
        detail=f"{size_kb:.0f} KB",
        dwg_buffer=cad.dwg_buffer,
    )
