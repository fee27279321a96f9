"""Progress events as they travel over the SSE stream."""
from typing import Any, Optional

from fossgen.schemas.base import CamelModel


class ProgressMessage(CamelModel):
    """One progress event. ``result`` is only set on the terminal event."""
    phase: str
    message: str
    detail: Optional[str] = None
    step: Optional[str] = None
    timestamp: str
    elapsed: Optional[str] = None
    result: Optional[dict[str, Any]] = None

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


class StreamDone(CamelModel):
    """Payload of the closing ``event: done`` frame."""
    status: str

    def to_sse(self) -> str:
        return f"event: done\ndata: {self.model_dump_json(by_alias=True)}\n\n"
