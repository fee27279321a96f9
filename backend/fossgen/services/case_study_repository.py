"""Read access to project/area/placement data for case-study generation.

Background workflows outlive the request, so the repository opens its own
sessions from the session factory instead of borrowing the request's.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from fossgen.models import PlannerPlacement, ProductSymbol, ProjectArea, ProjectAreaRevision

logger = logging.getLogger(__name__)


@dataclass
class RevisionInfo:
    revision_id: str
    revision_number: int
    area_code: str
    project_id: str
    project_code: str
    oss_bucket: Optional[str]
    floor_plan_urn: Optional[str]
    drive_folder_id: Optional[str]


@dataclass
class PlacementRow:
    foss_pid: str
    world_x: float
    world_y: float
    rotation: float = 0.0
    mirror_x: bool = False
    mirror_y: bool = False
    symbol: Optional[str] = None


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class CaseStudyRepository:

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def get_revision(self, revision_id: str) -> Optional[RevisionInfo]:
        rid = _parse_uuid(revision_id)
        if rid is None:
            return None
        async with self._session_factory() as db:
            result = await db.execute(
                select(ProjectAreaRevision)
                .where(ProjectAreaRevision.id == rid)
                .options(selectinload(ProjectAreaRevision.area).selectinload(ProjectArea.project))
            )
            revision = result.scalar_one_or_none()
            if revision is None:
                return None
            area, project = revision.area, revision.area.project
            return RevisionInfo(
                revision_id=str(revision.id),
                revision_number=revision.revision_number,
                area_code=area.area_code,
                project_id=str(project.id),
                project_code=project.project_code,
                oss_bucket=project.oss_bucket,
                floor_plan_urn=revision.floor_plan_urn,
                drive_folder_id=project.google_drive_folder_id,
            )

    async def list_placements(self, revision_id: str) -> list[PlacementRow]:
        """Placements that reference a product; rows without a FOSS_PID are skipped."""
        rid = _parse_uuid(revision_id)
        if rid is None:
            return []
        async with self._session_factory() as db:
            result = await db.execute(
                select(PlannerPlacement)
                .where(PlannerPlacement.area_revision_id == rid)
                .order_by(PlannerPlacement.created_at)
            )
            rows = result.scalars().all()
        skipped = sum(1 for p in rows if not p.foss_pid)
        if skipped:
            logger.warning(f"Revision {revision_id}: {skipped} placement(s) without FOSS_PID skipped")
        return [
            PlacementRow(
                foss_pid=p.foss_pid, world_x=p.world_x, world_y=p.world_y,
                rotation=p.rotation or 0.0, mirror_x=bool(p.mirror_x), mirror_y=bool(p.mirror_y),
                symbol=p.symbol,
            )
            for p in rows if p.foss_pid
        ]

    async def symbol_dwg_paths(self, foss_pids: list[str]) -> dict[str, str]:
        """Storage paths of the symbol DWGs that exist, keyed by FOSS_PID."""
        if not foss_pids:
            return {}
        async with self._session_factory() as db:
            result = await db.execute(
                select(ProductSymbol).where(ProductSymbol.foss_pid.in_(foss_pids))
            )
            return {s.foss_pid: s.dwg_path for s in result.scalars().all() if s.dwg_path}
