"""
Captions.ai Avatar Provider
===========================

Generates the talking-avatar video from a script.

Submit:  POST /creator/submit  {script, creatorName, resolution} -> {operationId}
Poll:    POST /creator/poll    {operationId} -> {state, url?, error?}
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .base import BaseStageAdapter, JobHandle
from .factory import register_adapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvatarJob:
    """Input of the avatar generation stage."""

    script: str
    creator_id: str


@register_adapter("avatar")
class CaptionsAvatarAdapter(BaseStageAdapter):
    """
    Captions.ai creator API.

    States are upper-case: PROCESSING, COMPLETE, FAILED.
    """

    success_tag = "COMPLETE"
    failure_tag_prefix = "FAIL"

    @property
    def stage_name(self) -> str:
        return "AvatarGeneration"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def submit(self, stage_input: AvatarJob) -> JobHandle:
        payload = {
            "script": stage_input.script,
            "creatorName": stage_input.creator_id,
            "resolution": self.config.resolution,
        }

        logger.info(f"Submitting avatar video for creator {stage_input.creator_id}")
        data = await self._submit_request("POST", f"{self.base_url}/creator/submit", json=payload)

        operation_id = self._require_job_id(data.get("operationId") or data.get("jobId"), data)
        return JobHandle(stage=self.stage_name, job_id=operation_id)

    async def _check_job_status(self, handle: JobHandle) -> Dict[str, Any]:
        data = await self._status_request(
            "POST",
            f"{self.base_url}/creator/poll",
            json={"operationId": handle.job_id},
        )
        logger.debug(f"Captions poll response: {data}")
        return data

    def _extract_status(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("state")

    def _extract_result(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("url")

    def _extract_error(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("error") or "Video generation failed"
