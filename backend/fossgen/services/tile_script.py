"""AutoLISP script builder for tile comparison sheets.

Members are stacked bottom-up in one column: each member contributes an image
rectangle and/or a drawing rectangle, each ``tile_height`` tall. The column is
as wide as the first member's tile, framed by a thick outline, with each
member's text to the right of the column.
"""
from dataclasses import dataclass, field

from fossgen.schemas.generation import TileMember, TileRequest
from fossgen.services.image_processor import pixels_to_mm, png_filename

LAYER_THIN = "LEGEND TILES LINE THIN"
LAYER_THICK = "LEGEND TILES LINE THICK"
LAYER_IMAGES = "LEGEND TILES IMAGES"

TEXT_GAP = 10      # mm between column and text
TEXT_HEIGHT = 3
TEXT_WIDTH = 40    # MTEXT box width
TEXT_TOP_OFFSET = 5
STANDARD_IMAGE_PX = 1500


@dataclass
class TileRect:
    kind: str  # "image" or "drawing"
    filename: str
    y: float
    width: float
    height: float


@dataclass
class MemberLayout:
    start_y: float
    end_y: float = 0.0
    rects: list[TileRect] = field(default_factory=list)


@dataclass
class TileLayout:
    width: float
    height: float
    members: list[MemberLayout]


def layout_tile(members: list[TileMember]) -> TileLayout:
    width = members[0].tile_width if members else 50
    y = 0.0
    layouts = []
    for member in members:
        layout = MemberLayout(start_y=y)
        for kind, filename in (("image", member.image_filename), ("drawing", member.drawing_filename)):
            if filename and filename.strip():
                layout.rects.append(TileRect(kind, filename, y, member.tile_width, member.tile_height))
                y += member.tile_height
        layout.end_y = y
        layouts.append(layout)
    return TileLayout(width=width, height=y, members=layouts)


def member_scaling(member: TileMember) -> tuple[float, float, float]:
    """Return (autocad_scale, offset_x, offset_y) to fit an image in its rectangle."""
    physical_w = pixels_to_mm(member.width, member.dpi)
    physical_h = pixels_to_mm(member.height, member.dpi)
    scale = min(member.tile_width / physical_w, member.tile_height / physical_h)
    offset_x = (member.tile_width - physical_w * scale) / 2
    offset_y = (member.tile_height - physical_h * scale) / 2
    # -IMAGE ATTACH scales relative to the standard 1500px catalogue image
    autocad_scale = member.tile_width / pixels_to_mm(STANDARD_IMAGE_PX, member.dpi)
    return autocad_scale, offset_x, offset_y


def _fmt(value: float) -> str:
    return f"{value:g}"


def _lisp_string(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class TileScriptBuilder:

    def __init__(self):
        self.commands: list[str] = []

    def build(self, tile: TileRequest, output_filename: str = "") -> str:
        self.commands = [
            '(setvar "cmdecho" 0)',
            '(setvar "filedia" 0)',
            '(command "-DWGUNITS" 3 2 2 "Y" "Y" "N")',
        ]
        layout = layout_tile(tile.members)

        self._layer(LAYER_THIN, "10", 0.3, "Inner Tiles Style")
        self._layer(LAYER_THICK, "10", 0.5, "Inner Tiles Style")
        self._layer(LAYER_IMAGES, "7", None, "Tiles Images Style")

        for member, member_layout in zip(tile.members, layout.members):
            scale, offset_x, offset_y = member_scaling(member)
            for rect in member_layout.rects:
                self._current_layer(LAYER_IMAGES)
                self.commands.append(
                    f'(command "-IMAGE" "ATTACH" "{_lisp_string(png_filename(rect.filename))}" '
                    f'"{_fmt(offset_x)},{_fmt(rect.y + offset_y)}" {scale:.4f} 0)'
                )
                self._current_layer(LAYER_THIN)
                self._rectangle(0, rect.y, rect.width, rect.y + rect.height)

        self._current_layer(LAYER_THICK)
        self._rectangle(0, 0, layout.width, layout.height)

        text_x = layout.width + TEXT_GAP
        for member, member_layout in zip(tile.members, layout.members):
            text_y = member_layout.end_y - TEXT_TOP_OFFSET
            self.commands.append(
                f'(command "-MTEXT" "{_fmt(text_x)},{_fmt(text_y)}" "H" "{TEXT_HEIGHT}" '
                f'"W" "{TEXT_WIDTH}" "{_lisp_string(member.tile_text)}" "")'
            )

        self.commands += [
            '(command "ZOOM" "E")',
            '(command "REGEN")',
            '(setvar "CLAYER" "0")',
            f'(command "SAVEAS" "2018" "{_lisp_string(output_filename or f"{tile.tile}.dwg")}")',
            '(setvar "filedia" 1)',
            '(setvar "cmdecho" 1)',
            "QUIT",
        ]
        return "\n".join(self.commands)

    def _layer(self, name: str, color: str, lineweight, description: str) -> None:
        cmd = f'(command "layer" "make" "{name}" "color" "{color}" ""'
        if lineweight is not None:
            cmd += f' "lw" {lineweight} ""'
        self.commands.append(f'{cmd} "d" "{description}" "{name}" "")')

    def _current_layer(self, name: str) -> None:
        self.commands.append(f'(setvar "CLAYER" "{name}")')

    def _rectangle(self, x1: float, y1: float, x2: float, y2: float) -> None:
        self.commands.append(f'(command "RECTANG" "{_fmt(x1)},{_fmt(y1)}" "{_fmt(x2)},{_fmt(y2)}")')


def build_tile_script(tile: TileRequest, output_filename: str = "") -> str:
    return TileScriptBuilder().build(tile, output_filename)
