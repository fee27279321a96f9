"""AutoLISP script that attaches symbol DWGs as XREFs onto a floor plan."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

SYMBOL_LAYER = "CASE_STUDY_SYMBOLS"
RULE = "=" * 76


@dataclass
class XrefPlacement:
    foss_pid: str
    local_path: str
    world_x: float
    world_y: float
    rotation: float = 0.0
    mirror_x: bool = False
    mirror_y: bool = False
    symbol: Optional[str] = None


def attach_command(placement: XrefPlacement) -> list[str]:
    """Comment plus ``-XREF Attach``; mirroring is a -1 scale on that axis."""
    path = placement.local_path.replace("\\", "/")
    x_scale = -1 if placement.mirror_x else 1
    y_scale = -1 if placement.mirror_y else 1
    x = f"{placement.world_x:.1f}"
    y = f"{placement.world_y:.1f}"
    rotation = f"{placement.rotation:.1f}"

    mirrors = [name for name, on in (("mirrorX", placement.mirror_x), ("mirrorY", placement.mirror_y)) if on]
    mirror_note = f" [{', '.join(mirrors)}]" if mirrors else ""
    return [
        f"; Symbol: {placement.symbol or '?'} ({placement.foss_pid}) "
        f"at ({x}, {y}) rotation {rotation}°{mirror_note}",
        f'(command "-XREF" "Attach" "{path}" "{x},{y},0" "{x_scale}" "{y_scale}" "{rotation}")',
    ]


def build_xref_script(
    placements: list[XrefPlacement],
    output_filename: str,
    *,
    dwg_version: str = "2018",
    area_code: Optional[str] = None,
    revision_number: Optional[int] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    lines = [
        f"; {RULE}",
        "; FOSSAPP Case Study XREF Generation Script",
        f"; Generated: {generated_at.isoformat()}",
    ]
    if area_code:
        lines.append(f"; Area: {area_code}{f' v{revision_number}' if revision_number else ''}")
    lines += [
        f"; Placements: {len(placements)}",
        f"; {RULE}",
        "",
        "; Set automation variables",
        '(setvar "cmdecho" 0)',
        '(setvar "filedia" 0)',
        "",
        "; Create XREF layer",
        f'(command "layer" "make" "{SYMBOL_LAYER}" "color" "7" "" '
        f'"d" "Generated symbol placements" "{SYMBOL_LAYER}" "")',
        f'(setvar "CLAYER" "{SYMBOL_LAYER}")',
        "",
    ]
    if placements:
        lines.append("; Attach XREFs")
        for placement in placements:
            lines += attach_command(placement)
        lines.append("")
    lines += [
        "; Zoom to extents",
        '(command "ZOOM" "E")',
        '(command "REGEN")',
        "",
        "; Reset layer",
        '(setvar "CLAYER" "0")',
        "",
        "; Save drawing",
        f'(command "SAVEAS" "{dwg_version}" "{output_filename}")',
        "",
        "; Restore variables and quit",
        '(setvar "filedia" 1)',
        '(setvar "cmdecho" 1)',
        "QUIT",
    ]
    return "\n".join(lines)
