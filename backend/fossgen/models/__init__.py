"""Import all models so SQLAlchemy metadata knows about them."""
from fossgen.models.base import Base
from fossgen.models.project import (
    Project, ProjectArea, ProjectAreaRevision, PlannerPlacement, ProductSymbol,
)

__all__ = [
    "Base",
    "Project", "ProjectArea", "ProjectAreaRevision", "PlannerPlacement", "ProductSymbol",
]
