"""
Creatomate Caption Provider
===========================

Optional final stage: burns captions (and other feature flags) into the
composited video.

The service contract is not pinned down: it may answer synchronously with
the finished video URL, or return a render id to poll. Both are handled.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from ..core.exceptions import SubmissionRejected
from .base import BaseStageAdapter, JobHandle, ensure_direct_video_url
from .factory import register_adapter

logger = logging.getLogger(__name__)


PENDING_STATES = {"planned", "waiting", "transcribing", "rendering", "queued", "processing"}


@dataclass(frozen=True)
class CaptionJob:
    """Input of the caption overlay stage."""

    video_url: str


@register_adapter("caption")
class CreatomateCaptionAdapter(BaseStageAdapter):
    """Caption overlay through the Creatomate render API."""

    success_tag = "succeeded"
    failure_tag_prefix = "fail"

    @property
    def stage_name(self) -> str:
        return "CaptionOverlay"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, stage_input: CaptionJob) -> JobHandle:
        # A bundled archive where a video is expected is surfaced, not repaired
        ensure_direct_video_url(stage_input.video_url, stage=self.stage_name)

        payload = {"video_url": stage_input.video_url}
        payload.update(self.config.feature_flags)

        logger.info("Submitting caption overlay request")
        data = await self._submit_request("POST", f"{self.base_url}/renders", json=payload)

        # Batch endpoints answer with a list of renders
        if isinstance(data, list):
            if not data:
                raise SubmissionRejected(
                    f"{self.stage_name} returned an empty render list",
                    provider=self.stage_name,
                    reason="empty_response",
                )
            data = data[0]

        status = (data.get("status") or "").lower()
        video_url = data.get("url") or data.get("video_url")

        if video_url and status not in PENDING_STATES:
            if status.startswith("fail"):
                raise SubmissionRejected(
                    f"{self.stage_name} failed immediately: {self._extract_error(data)}",
                    provider=self.stage_name,
                    reason="failed_on_submit",
                )
            return JobHandle(
                stage=self.stage_name,
                job_id=str(data.get("id") or "sync"),
                immediate_result=video_url,
            )

        render_id = self._require_job_id(data.get("id"), data)
        return JobHandle(
            stage=self.stage_name,
            job_id=render_id,
            poll_url=f"{self.base_url}/renders/{render_id}",
        )

    async def _check_job_status(self, handle: JobHandle) -> Dict[str, Any]:
        return await self._status_request("GET", handle.poll_url or f"{self.base_url}/renders/{handle.job_id}")

    def _extract_status(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("status")

    def _extract_result(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("url") or data.get("video_url")

    def _extract_error(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("error_message") or data.get("error") or "Caption rendering failed"
