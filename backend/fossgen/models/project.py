"""Project, area, revision and placement models (owned by the web app, read here)."""
import uuid
from sqlalchemy import Boolean, Float, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from fossgen.models.base import Base, CreatedAtMixin


class Project(Base, CreatedAtMixin):
    __tablename__ = "projects"
    __table_args__ = {"schema": "projects"}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    oss_bucket: Mapped[str | None] = mapped_column(String(128), nullable=True)
    google_drive_folder_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    areas: Mapped[list["ProjectArea"]] = relationship(back_populates="project")


class ProjectArea(Base, CreatedAtMixin):
    __tablename__ = "project_areas"
    __table_args__ = {"schema": "projects"}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.projects.id"), nullable=False
    )
    area_code: Mapped[str] = mapped_column(String(50), nullable=False)
    area_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    project: Mapped[Project] = relationship(back_populates="areas")
    revisions: Mapped[list["ProjectAreaRevision"]] = relationship(back_populates="area")


class ProjectAreaRevision(Base, CreatedAtMixin):
    __tablename__ = "project_area_revisions"
    __table_args__ = {"schema": "projects"}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    area_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.project_areas.id"), nullable=False
    )
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    floor_plan_urn: Mapped[str | None] = mapped_column(String(500), nullable=True)
    floor_plan_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)

    area: Mapped[ProjectArea] = relationship(back_populates="revisions")


class PlannerPlacement(Base, CreatedAtMixin):
    __tablename__ = "planner_placements"
    __table_args__ = {"schema": "projects"}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    area_revision_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.project_area_revisions.id"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    foss_pid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    symbol: Mapped[str | None] = mapped_column(String(32), nullable=True)
    world_x: Mapped[float] = mapped_column(Float, nullable=False)
    world_y: Mapped[float] = mapped_column(Float, nullable=False)
    rotation: Mapped[float] = mapped_column(Float, default=0.0)
    mirror_x: Mapped[bool] = mapped_column(Boolean, default=False)
    mirror_y: Mapped[bool] = mapped_column(Boolean, default=False)


class ProductSymbol(Base):
    __tablename__ = "product_symbols"
    __table_args__ = {"schema": "items"}

    foss_pid: Mapped[str] = mapped_column(String(64), primary_key=True)
    dwg_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
