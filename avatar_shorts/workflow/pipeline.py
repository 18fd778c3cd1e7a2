"""
Shorts Pipeline
===============

Main orchestration class: turns a script, a creator and a background image
into a vertical avatar video.

Stages run strictly in sequence, each feeding the next:

    Validating -> AvatarGeneration -> BackgroundRemoval -> ArtifactStaging
        -> Compositing -> (CaptionOverlay) -> Done

The first failure ends the run. Whatever went wrong is reported as one
PipelineError naming the stage it happened in.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import httpx

from ..api.base import BaseStageAdapter, ensure_direct_video_url
from ..api.captions import AvatarJob
from ..api.creatomate import CaptionJob
from ..api.factory import get_adapter
from ..api.unscreen import BackgroundRemovalJob
from ..core.cancellation import CancelToken
from ..core.config import Config, StageConfig
from ..core.exceptions import (
    ConfigurationError,
    PipelineError,
    SecurityError,
    ShortsError,
    ValidationError,
)
from ..core.security import redact_api_key, sanitize_script, validate_url
from ..utils.fetcher import ArtifactFetcher
from ..utils.image_utils import fit_within, image_suffix_for, probe_image
from ..utils.workspace import Workspace, WorkspaceManager
from .compositor import LocalCompositor

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of a pipeline run."""

    VALIDATING = "Validating"
    AVATAR_GENERATION = "AvatarGeneration"
    BACKGROUND_REMOVAL = "BackgroundRemoval"
    ARTIFACT_STAGING = "ArtifactStaging"
    COMPOSITING = "Compositing"
    CAPTION_OVERLAY = "CaptionOverlay"
    DONE = "Done"
    FAILED = "Failed"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class PipelineRequest:
    """Immutable input of one pipeline run."""

    script: str
    background_image_url: str
    creator_id: str

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "PipelineRequest":
        """Build a request from the inbound form fields."""
        return cls(
            script=str(form.get("script") or ""),
            background_image_url=str(form.get("backgroundImageUrl") or ""),
            creator_id=str(form.get("creatorId") or ""),
        )

    def validated(self) -> "PipelineRequest":
        """
        Return a cleaned copy of the request.

        Raises:
            ValidationError: on a missing field or a non-http(s) image URL
        """
        for name, form_field in (
            ("script", "script"),
            ("background_image_url", "backgroundImageUrl"),
            ("creator_id", "creatorId"),
        ):
            if not str(getattr(self, name) or "").strip():
                raise ValidationError(
                    f"Missing required field: {form_field}",
                    field=form_field,
                    constraint="non-empty",
                )

        script = sanitize_script(self.script)
        if not script:
            raise ValidationError("Missing required field: script", field="script", constraint="non-empty")

        url = self.background_image_url.strip()
        try:
            validate_url(url)
        except SecurityError as e:
            raise ValidationError(
                f"Invalid background image URL: {e.message}",
                field="backgroundImageUrl",
                value=url,
            )

        return replace(self, script=script, background_image_url=url, creator_id=self.creator_id.strip())


@dataclass
class StageRecord:
    """Timing of one completed stage."""

    stage: str
    duration_seconds: float
    skipped: bool = False


@dataclass
class PipelineResult:
    """Successful outcome of a run."""

    request_id: str
    final_artifact_path: str
    workspace_path: str
    final_artifact_url: Optional[str] = None
    stages: List[StageRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "request_id": self.request_id,
            "final_artifact_path": self.final_artifact_path,
            "final_artifact_url": self.final_artifact_url,
            "workspace_path": self.workspace_path,
            "stages": [
                {"stage": r.stage, "duration_seconds": r.duration_seconds, "skipped": r.skipped}
                for r in self.stages
            ],
        }


class _RunTracker:
    """Current stage and per-stage timings of one run."""

    def __init__(self):
        self.stage = PipelineStage.VALIDATING
        self.records: List[StageRecord] = []

    @contextmanager
    def enter(self, stage: PipelineStage, cancel_token: CancelToken, skipped: bool = False) -> Iterator[None]:
        self.stage = stage
        cancel_token.raise_if_cancelled()
        logger.info(f"=== {stage.value}{' (skipped)' if skipped else ''} ===")
        started = time.monotonic()
        yield
        self.records.append(StageRecord(stage.value, round(time.monotonic() - started, 3), skipped))


# =============================================================================
# Orchestrator
# =============================================================================


class ShortsPipeline:
    """
    Orchestrates the avatar -> background removal -> compositing chain.

    Handles:
    - Fail-fast credential checks at construction
    - Strict stage sequencing and data handoff
    - Per-run workspaces with guaranteed release
    - One PipelineError per failed run

    Usage:
        config = Config.load()
        async with ShortsPipeline(config) as pipeline:
            outcome = await pipeline.run_pipeline(PipelineRequest(...))
    """

    def __init__(
        self,
        config: Config,
        avatar: Optional[BaseStageAdapter] = None,
        background_removal: Optional[BaseStageAdapter] = None,
        caption: Optional[BaseStageAdapter] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        compositor: Optional[LocalCompositor] = None,
        workspaces: Optional[WorkspaceManager] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Loaded configuration (validated here, once)
            avatar: Avatar generation adapter override
            background_removal: Background removal adapter override
            caption: Caption overlay adapter override
            fetcher: Artifact fetcher override
            compositor: Local compositor override
            workspaces: Workspace manager override
            client: Optional HTTP client shared by the default adapters

        Raises:
            ConfigurationError: if an enabled stage is missing credentials
        """
        config.validate_credentials()
        self.config = config

        self.avatar = avatar or get_adapter("avatar", config, client)
        self.background_removal = background_removal or get_adapter("background_removal", config, client)
        self.caption = caption or get_adapter("caption", config, client)
        self.fetcher = fetcher or ArtifactFetcher(
            timeout=config.download.timeout,
            max_bytes=config.download.max_bytes,
            chunk_size=config.download.chunk_size,
            max_redirects=config.download.max_redirects,
        )
        self.compositor = compositor or LocalCompositor(config.compositor)
        self.workspaces = workspaces or WorkspaceManager(
            root=config.workspace.root,
            max_age_seconds=config.workspace.max_age_seconds,
        )

        logger.info("ShortsPipeline initialized")
        logger.info(f"  Workspace root: {self.workspaces.root}")
        logger.info(
            f"  Stages: avatar={config.avatar.enabled}, "
            f"background_removal={config.background_removal.enabled}, "
            f"caption={config.caption.enabled}"
        )

    # -------------------------------------------------------------------------
    # Public Entry Points
    # -------------------------------------------------------------------------

    async def run_pipeline(
        self,
        request: PipelineRequest,
        cancel_token: Optional[CancelToken] = None,
    ) -> Union[PipelineResult, PipelineError]:
        """Run the pipeline and return either the result or the error."""
        try:
            return await self.run(request, cancel_token)
        except PipelineError as e:
            return e

    async def run(
        self,
        request: PipelineRequest,
        cancel_token: Optional[CancelToken] = None,
    ) -> PipelineResult:
        """
        Run every stage for one request.

        Args:
            request: The inbound request
            cancel_token: Cancellation signal; defaults to one with the
                configured run deadline

        Returns:
            PipelineResult with the final artifact inside the run's workspace

        Raises:
            PipelineError: naming the failed stage and the original error kind
        """
        cancel_token = cancel_token or CancelToken(timeout=self.config.pipeline.deadline_seconds)
        tracker = _RunTracker()

        try:
            with tracker.enter(PipelineStage.VALIDATING, cancel_token):
                request = request.validated()

            if self.config.pipeline.reap_on_start:
                await asyncio.to_thread(self.workspaces.reap_stale)

            async with self.workspaces.acquire() as workspace:
                result = await self._execute(request, workspace, cancel_token, tracker)

            tracker.stage = PipelineStage.DONE
            logger.info("=== PROCESS COMPLETE ===")
            logger.info(f"Final video created at: {result.final_artifact_path}")
            return result

        except ShortsError as e:
            failed_stage = tracker.stage.value
            logger.error(f"=== PROCESS FAILED in {failed_stage} === {e.code}: {redact_api_key(e.message)}")
            tracker.stage = PipelineStage.FAILED
            raise PipelineError.from_error(failed_stage, e) from e

        except Exception as e:
            failed_stage = tracker.stage.value
            logger.exception(f"=== PROCESS FAILED in {failed_stage} === unexpected error")
            tracker.stage = PipelineStage.FAILED
            raise PipelineError(
                stage=failed_stage,
                kind="InternalError",
                detail=redact_api_key(str(e)) or e.__class__.__name__,
            ) from e

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        request: PipelineRequest,
        workspace: Workspace,
        cancel_token: CancelToken,
        tracker: _RunTracker,
    ) -> PipelineResult:
        """Run the stages after validation, threading each output into the next."""
        avatar_cfg = self.config.avatar
        removal_cfg = self.config.background_removal

        # STEP 1: Avatar video
        with tracker.enter(PipelineStage.AVATAR_GENERATION, cancel_token, skipped=not avatar_cfg.enabled):
            if avatar_cfg.enabled:
                avatar_url = await self.avatar.run(
                    AvatarJob(script=request.script, creator_id=request.creator_id),
                    cancel_token,
                )
            else:
                avatar_url = self._fallback(avatar_cfg)
            logger.info(f"Avatar video URL: {avatar_url}")

        # STEP 2: Background removal (green key color)
        with tracker.enter(PipelineStage.BACKGROUND_REMOVAL, cancel_token, skipped=not removal_cfg.enabled):
            if removal_cfg.enabled:
                keyed_url = await self.background_removal.run(
                    BackgroundRemovalJob(video_url=avatar_url),
                    cancel_token,
                )
            else:
                keyed_url = self._fallback(removal_cfg)
            logger.info(f"Background removal result URL: {keyed_url}")

        # STEP 3: Stage artifacts locally
        with tracker.enter(PipelineStage.ARTIFACT_STAGING, cancel_token):
            ensure_direct_video_url(keyed_url, stage=PipelineStage.BACKGROUND_REMOVAL.value)
            alpha_headers = {"X-Api-Key": removal_cfg.api_key} if removal_cfg.api_key else None
            alpha_path = await self.fetcher.fetch(keyed_url, workspace.path, "alpha.mp4", headers=alpha_headers)

            cancel_token.raise_if_cancelled()
            background_name = "background" + image_suffix_for(request.background_image_url)
            background_path = await self.fetcher.fetch(
                request.background_image_url,
                workspace.path,
                background_name,
            )

            width, height = probe_image(background_path)
            geometry = fit_within(width, height, self.config.compositor.width, self.config.compositor.height)
            logger.info(
                f"Background {width}x{height} -> {geometry['width']}x{geometry['height']} "
                f"in {geometry['frame_width']}x{geometry['frame_height']} frame"
            )

        # STEP 4: Composite keyed avatar over the background
        with tracker.enter(PipelineStage.COMPOSITING, cancel_token):
            final_path = workspace.file("final.mp4")
            await self.compositor.composite(alpha_path, background_path, final_path, cancel_token)
            workspace.keep_file(final_path)

        # STEP 5: Optional caption overlay
        final_url = None
        if self.config.caption.enabled:
            with tracker.enter(PipelineStage.CAPTION_OVERLAY, cancel_token):
                public_url = self._public_url(workspace, final_path.name)
                final_url = await self.caption.run(CaptionJob(video_url=public_url), cancel_token)
                logger.info(f"Captioned video URL: {final_url}")

        return PipelineResult(
            request_id=workspace.request_id,
            final_artifact_path=str(final_path),
            workspace_path=str(workspace.path),
            final_artifact_url=final_url,
            stages=list(tracker.records),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _fallback(stage_config: StageConfig) -> str:
        if not stage_config.fallback_result_url:
            raise ConfigurationError(
                f"{stage_config.SECTION} is disabled and has no fallback_result_url",
                config_key=f"{stage_config.SECTION}.fallback_result_url",
            )
        logger.info(f"{stage_config.SECTION} disabled, using fallback result")
        return stage_config.fallback_result_url

    def _public_url(self, workspace: Workspace, filename: str) -> str:
        base = (self.config.caption.artifact_base_url or "").rstrip("/")
        return f"{base}/{workspace.name}/{filename}"

    async def close(self) -> None:
        """Close HTTP clients."""
        for adapter in (self.avatar, self.background_removal, self.caption):
            await adapter.close()
        await self.fetcher.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
