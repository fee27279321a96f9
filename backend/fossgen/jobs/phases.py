"""Progress phase vocabulary.

Each workflow owns a small closed set of phases. On the wire a phase is a
plain string so clients keep working when a workflow grows a new one.
"""
from enum import Enum


class TerminalPhase(str, Enum):
    """Reserved phases. Only JobStore.complete_job emits these."""
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_PHASES = frozenset(p.value for p in TerminalPhase)


class TilePhase(str, Enum):
    IMAGES = "images"
    SCRIPT = "script"
    APS = "aps"
    DRIVE = "drive"


class PlaygroundPhase(str, Enum):
    LLM = "llm"
    APS = "aps"


class CaseStudyPhase(str, Enum):
    INIT = "init"
    SCRIPT = "script"
    APS = "aps"
    DOWNLOAD = "download"
    DRIVE = "drive"


class SymbolPhase(str, Enum):
    LLM = "llm"
    APS = "aps"


def phase_value(phase) -> str:
    """Wire representation of a phase given as an enum member or a string."""
    if isinstance(phase, Enum):
        return str(phase.value)
    return str(phase)
