"""
Unscreen Background Removal Provider
====================================

Replaces the avatar's background with a solid key color so the local
compositor can chroma-key it out.

Submit:  POST /videos (form-encoded) -> {data: {id, links: {self}}}
Poll:    GET  links.self -> {data: {attributes: {status, result_url?}}}
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .base import BaseStageAdapter, JobHandle
from .factory import register_adapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackgroundRemovalJob:
    """Input of the background removal stage."""

    video_url: str


@register_adapter("background_removal")
class UnscreenBackgroundAdapter(BaseStageAdapter):
    """
    Unscreen video background removal.

    The service takes form fields rather than JSON; statuses are lower-case
    (queued, processing, done, error).
    """

    success_tag = "done"
    failure_tag_prefix = ("error", "fail")

    @property
    def stage_name(self) -> str:
        return "BackgroundRemoval"

    def _get_headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.api_key}

    async def submit(self, stage_input: BackgroundRemovalJob) -> JobHandle:
        form = {
            "video_url": stage_input.video_url,
            "format": self.config.output_format,
            "background_color": self.config.background_color,
        }

        logger.info("Submitting background removal request")
        data = await self._submit_request("POST", f"{self.base_url}/videos", data=form)

        body = data.get("data") or {}
        video_id = body.get("id")
        poll_url = (body.get("links") or {}).get("self")
        if not poll_url and video_id:
            poll_url = f"{self.base_url}/videos/{video_id}"

        job_id = self._require_job_id(video_id or poll_url, data)
        return JobHandle(stage=self.stage_name, job_id=job_id, poll_url=poll_url)

    async def _check_job_status(self, handle: JobHandle) -> Dict[str, Any]:
        url = handle.poll_url or f"{self.base_url}/videos/{handle.job_id}"
        data = await self._status_request("GET", url)
        logger.debug(f"Unscreen poll response: {data}")
        return data

    @staticmethod
    def _attributes(data: Dict[str, Any]) -> Dict[str, Any]:
        return (data.get("data") or {}).get("attributes") or {}

    def _extract_status(self, data: Dict[str, Any]) -> Optional[str]:
        if data.get("errors"):
            return "error"
        return self._attributes(data).get("status")

    def _extract_result(self, data: Dict[str, Any]) -> Optional[str]:
        return self._attributes(data).get("result_url")

    def _extract_error(self, data: Dict[str, Any]) -> Optional[str]:
        errors = data.get("errors") or []
        if errors and isinstance(errors[0], dict):
            return errors[0].get("detail") or errors[0].get("title")
        return self._attributes(data).get("error") or "Background removal failed"
