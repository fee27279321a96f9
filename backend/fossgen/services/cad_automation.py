"""Async client for the CAD automation gateway.

The gateway fronts APS Design Automation: it accepts an AutoLISP script plus
input assets, runs AutoCAD headless and exposes the resulting DWG (and
optional PNG preview) for download. The protocol here is submit, poll,
download; the report log is fetched only when a work item fails so the
caller can feed the errors back to the script generator.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

logger = logging.getLogger(__name__)

_PENDING_STATUSES = {"pending", "inprogress"}


class CadAutomationError(Exception):
    """Gateway answered with something other than a usable response."""

    def __init__(self, status: int, message: str, url: str):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status} from {self.url}: {self.message}"
        return f"CAD automation error for {self.url}: {self.message}"


@dataclass
class CadAsset:
    """An input file for the work item: inline bytes, a URL, or a viewer URN."""
    name: str
    data: Optional[bytes] = None
    url: Optional[str] = None
    urn: Optional[str] = None

    def manifest_entry(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"name": self.name}
        if self.url:
            entry["url"] = self.url
        if self.urn:
            entry["urn"] = self.urn
        if self.data is not None:
            entry["inline"] = True
        return entry


@dataclass
class CadResult:
    success: bool
    dwg_buffer: Optional[bytes] = None
    png_buffer: Optional[bytes] = None
    dwg_url: Optional[str] = None
    viewer_urn: Optional[str] = None
    work_item_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    report: Optional[str] = None


class CadAutomationClient:

    def __init__(
        self, base_url: str, token: str,
        poll_interval: float = 2.0,
        max_poll_attempts: int = 240,
        timeout: float = 60,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def execute(
        self,
        script: str,
        *,
        output_name: str,
        assets: tuple[CadAsset, ...] | list[CadAsset] = (),
        on_progress=None,
        want_png: bool = False,
        bucket: Optional[str] = None,
    ) -> CadResult:
        """Run ``script`` in AutoCAD and collect its outputs.

        Never raises for work-item or transport failures; they are returned
        as ``CadResult(success=False, errors=[...])``.
        """
        report = on_progress or (lambda *args, **kwargs: None)
        if not self.base_url:
            return CadResult(success=False, errors=["CAD automation service is not configured"])

        start = time.monotonic()
        async with aiohttp.ClientSession(timeout=self._timeout, headers=self._headers) as session:
            try:
                report("aps", "Submitting work item", f"{len(script)} char script, {len(assets)} asset(s)")
                work_item_id = await self._submit(session, script, output_name, list(assets), want_png, bucket)
                logger.info(f"Submitted CAD work item {work_item_id} for {output_name}")
                status = await self._poll(session, work_item_id, report, start)
            except (aiohttp.ClientError, asyncio.TimeoutError, CadAutomationError) as e:
                logger.error(f"CAD automation request failed: {e}")
                return CadResult(success=False, errors=[f"CAD automation request failed: {e}"])

            result = CadResult(
                success=False,
                work_item_id=work_item_id,
                dwg_url=status.get("dwgUrl"),
                viewer_urn=status.get("viewerUrn"),
            )
            state = status.get("status", "unknown")
            if state != "success":
                result.errors.append(f"Work item {work_item_id} ended with status '{state}'")
                result.report = await self._fetch_report(session, status.get("reportUrl"))
                return result

            try:
                report("aps", "Downloading results")
                outputs = status.get("outputs") or {}
                if outputs.get("dwg"):
                    result.dwg_buffer = await self._download(session, outputs["dwg"])
                if want_png and outputs.get("png"):
                    result.png_buffer = await self._download(session, outputs["png"])
            except (aiohttp.ClientError, asyncio.TimeoutError, CadAutomationError) as e:
                result.errors.append(f"Failed to download CAD outputs: {e}")
                return result

        result.success = True
        logger.info(f"CAD work item {work_item_id} succeeded in {time.monotonic() - start:.1f}s")
        return result

    async def _submit(self, session, script, output_name, assets, want_png, bucket) -> str:
        url = f"{self.base_url}/workitems"
        manifest = {
            "outputName": output_name,
            "wantPng": want_png,
            "bucket": bucket,
            "assets": [a.manifest_entry() for a in assets],
        }
        form = aiohttp.FormData()
        form.add_field("manifest", json.dumps(manifest), content_type="application/json")
        form.add_field("script", script, filename="script.scr", content_type="text/plain")
        for asset in assets:
            if asset.data is not None:
                form.add_field("assets", asset.data, filename=asset.name,
                               content_type="application/octet-stream")
        async with session.post(url, data=form) as resp:
            if resp.status >= 400:
                raise CadAutomationError(resp.status, (await resp.text())[:500], url)
            body = await resp.json(content_type=None)
        work_item_id = body.get("id")
        if not work_item_id:
            raise CadAutomationError(0, "response carried no work item id", url)
        return work_item_id

    async def _poll(self, session, work_item_id: str, report, start: float) -> dict:
        url = f"{self.base_url}/workitems/{work_item_id}"
        last_state = None
        for attempt in range(1, self.max_poll_attempts + 1):
            async with session.get(url) as resp:
                if resp.status >= 400:
                    raise CadAutomationError(resp.status, (await resp.text())[:500], url)
                status = await resp.json(content_type=None)
            state = status.get("status", "unknown")
            if state not in _PENDING_STATUSES:
                return status
            if state != last_state or attempt % 15 == 0:
                report("aps", f"AutoCAD {state}...", f"{time.monotonic() - start:.0f}s elapsed")
                last_state = state
            await asyncio.sleep(self.poll_interval)
        timeout_s = self.max_poll_attempts * self.poll_interval
        return {"status": "timeout", "reportUrl": None, "error": f"No result after {timeout_s:.0f}s"}

    async def _download(self, session, url: str) -> bytes:
        async with session.get(url) as resp:
            if resp.status >= 400:
                raise CadAutomationError(resp.status, "download failed", url)
            return await resp.read()

    async def _fetch_report(self, session, report_url: Optional[str]) -> Optional[str]:
        if not report_url:
            return None
        try:
            async with session.get(report_url) as resp:
                if resp.status >= 400:
                    logger.warning(f"Could not fetch work item report ({resp.status})")
                    return None
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not fetch work item report: {e}")
            return None
