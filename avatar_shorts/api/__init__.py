"""
API Integration Layer
=====================

Stage adapters for the external media services, all driven by one polling
engine.

Stages:
- Captions.ai (avatar video generation)
- Unscreen (background removal)
- Creatomate (optional caption overlay)

Usage:
    from avatar_shorts.api import get_adapter
    from avatar_shorts.api.captions import AvatarJob

    adapter = get_adapter("avatar", config)
    video_url = await adapter.run(AvatarJob(script="Hello", creator_id="c1"))
"""

from .base import BaseStageAdapter, JobHandle, PollOutcome, OutcomeStatus, ensure_direct_video_url
from .polling import poll_until_done
from .factory import get_adapter, list_adapters
from .captions import AvatarJob, CaptionsAvatarAdapter
from .unscreen import BackgroundRemovalJob, UnscreenBackgroundAdapter
from .creatomate import CaptionJob, CreatomateCaptionAdapter

__all__ = [
    "BaseStageAdapter",
    "JobHandle",
    "PollOutcome",
    "OutcomeStatus",
    "ensure_direct_video_url",
    "poll_until_done",
    "get_adapter",
    "list_adapters",
    "AvatarJob",
    "CaptionsAvatarAdapter",
    "BackgroundRemovalJob",
    "UnscreenBackgroundAdapter",
    "CaptionJob",
    "CreatomateCaptionAdapter",
]
