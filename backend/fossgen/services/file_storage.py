"""Upload of generated artifacts to the shared project drive.

The drive is mounted locally (Google Drive for desktop on the CAD workstations),
so an upload is a write under ``FILE_STORAGE_PATH/<folder>/``. Upload failures
are reported, never raised: the generated DWG is still downloadable.
"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._ -]+")


@dataclass
class UploadResult:
    success: bool
    links: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


def _safe_name(name: str) -> str:
    cleaned = _UNSAFE.sub("_", name).strip(" .")
    return cleaned or "unnamed"


class FileStorageService:
    """Writes named files into per-tile / per-project folders."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)

    async def upload(self, folder: str, files: dict[str, bytes]) -> UploadResult:
        result = UploadResult(success=True)
        target = self.base_path / _safe_name(folder)
        try:
            await aiofiles.os.makedirs(target, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create upload folder {target}: {e}")
            return UploadResult(success=False, errors=[f"Cannot create folder {folder}: {e.strerror or e}"])

        for name, data in files.items():
            path = target / _safe_name(name)
            try:
                async with aiofiles.open(path, "wb") as f:
                    await f.write(data)
            except OSError as e:
                logger.error(f"Upload of {name} failed: {e}")
                result.success = False
                result.errors.append(f"{name}: {e.strerror or e}")
                continue
            result.links[name] = path.resolve().as_uri()
        return result

    async def read(self, folder: str, name: str) -> bytes:
        async with aiofiles.open(self.base_path / _safe_name(folder) / _safe_name(name), "rb") as f:
            return await f.read()
