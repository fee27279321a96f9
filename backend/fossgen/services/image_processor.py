"""Download and normalise tile member images before they go to AutoCAD.

AutoCAD's IMAGEATTACH is reliable with PNG, so every raster input is
re-encoded to PNG (Pillow, in a worker thread). SVG has no raster to
attach and is rejected.
"""
import asyncio
import io
import logging
from pathlib import PurePosixPath

import aiohttp
from PIL import Image, UnidentifiedImageError

from fossgen.services.cad_automation import CadAsset

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4


class ImageProcessingError(Exception):
    """Raised with every per-file error collected for a batch."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def pixels_to_mm(pixels: float, dpi: float) -> float:
    return pixels / dpi * MM_PER_INCH


def to_png(data: bytes) -> tuple[bytes, int, int]:
    """Re-encode any Pillow-readable raster to PNG. Returns (bytes, width, height)."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        out = io.BytesIO()
        img.save(out, format="PNG")
        return out.getvalue(), img.width, img.height


def png_filename(filename: str) -> str:
    return str(PurePosixPath(filename).with_suffix(".png"))


class ImageProcessor:

    def __init__(self, timeout: float = 30):
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def process_members(self, members, on_progress=None) -> list[CadAsset]:
        """Fetch each member's image and drawing; return them as CAD assets.

        Raises ImageProcessingError listing every file that failed.
        """
        report = on_progress or (lambda *args, **kwargs: None)
        assets: list[CadAsset] = []
        errors: list[str] = []
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            for index, member in enumerate(members, start=1):
                report("images", f"Processing product {index}/{len(members)}", member.product_id)
                for url, filename in (
                    (member.image_url, member.image_filename),
                    (member.drawing_url, member.drawing_filename),
                ):
                    if not url:
                        continue
                    # the tile layout only places files that have a name
                    if not filename.strip():
                        logger.info(f"Skipping {url} for {member.product_id}: no filename given")
                        continue
                    try:
                        assets.append(await self._prepare(session, url, filename))
                    except ImageProcessingError as e:
                        errors.extend(e.errors)
        if errors:
            raise ImageProcessingError(errors)
        return assets

    async def _prepare(self, session: aiohttp.ClientSession, url: str, filename: str) -> CadAsset:
        suffix = PurePosixPath(filename).suffix.lower()
        if suffix == ".svg":
            raise ImageProcessingError([f"{filename}: SVG images are not supported, upload a PNG or JPG"])
        data = await self._download(session, url, filename)
        try:
            png, width, height = await asyncio.to_thread(to_png, data)
        except (UnidentifiedImageError, OSError) as e:
            raise ImageProcessingError([f"{filename}: not a readable image ({e})"])
        logger.debug(f"Converted {filename} to PNG ({width}x{height}px)")
        return CadAsset(name=png_filename(filename), data=png)

    async def _download(self, session: aiohttp.ClientSession, url: str, filename: str) -> bytes:
        try:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    raise ImageProcessingError([f"{filename}: download failed (HTTP {resp.status})"])
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageProcessingError([f"{filename}: download failed ({e})"])

