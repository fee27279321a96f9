"""Request and response schemas for the generation endpoints."""
from typing import Any, Optional

from pydantic import Field

from fossgen.schemas.base import CamelModel


class TileMember(CamelModel):
    product_id: str
    image_url: Optional[str] = None
    drawing_url: Optional[str] = None
    image_filename: str = ""
    drawing_filename: str = ""
    tile_text: str = ""
    width: float = Field(1500, gt=0)   # pixels
    height: float = Field(1500, gt=0)  # pixels
    dpi: float = Field(300, gt=0)
    tile_width: float = Field(50, gt=0)   # mm
    tile_height: float = Field(50, gt=0)  # mm


class TileRequest(CamelModel):
    tile: str = ""
    tile_id: str = ""
    members: list[TileMember] = []


class PlaygroundRequest(CamelModel):
    description: str = ""
    output_filename: str = "Playground.dwg"


class CaseStudyRequest(CamelModel):
    area_revision_id: Optional[str] = None


class SymbolProduct(CamelModel):
    foss_pid: Optional[str] = None
    description: Optional[str] = None


class SymbolRequest(CamelModel):
    spec: str = ""
    product: Optional[SymbolProduct] = None
    dimensions: Optional[dict[str, Any]] = None


class GenerateResponse(CamelModel):
    success: bool = True
    job_id: str
    message: Optional[str] = None
    area_code: Optional[str] = None
    revision_number: Optional[int] = None
