"""
Avatar Shorts
=============

Generates short vertical avatar videos by chaining external media services
(avatar synthesis, background removal, optional captions) with a local
ffmpeg compositing step.

Quick Start:
    from avatar_shorts import Config, PipelineRequest, ShortsPipeline

    config = Config.load()
    async with ShortsPipeline(config) as pipeline:
        outcome = await pipeline.run_pipeline(
            PipelineRequest(
                script="Hello there!",
                background_image_url="https://example.com/beach.jpg",
                creator_id="kate",
            )
        )
"""

__version__ = "0.1.0"

from .core.cancellation import CancelToken
from .core.config import Config
from .core.exceptions import (
    ShortsError,
    ConfigurationError,
    ValidationError,
    SubmissionRejected,
    PollingTimedOut,
    ExternalJobFailed,
    MalformedSuccessResponse,
    EmptyArtifact,
    CompositingFailed,
    Cancelled,
    PipelineError,
)
from .workflow.pipeline import PipelineRequest, PipelineResult, PipelineStage, ShortsPipeline

__all__ = [
    "__version__",
    "CancelToken",
    "Config",
    "PipelineRequest",
    "PipelineResult",
    "PipelineStage",
    "ShortsPipeline",
    # Exceptions
    "ShortsError",
    "ConfigurationError",
    "ValidationError",
    "SubmissionRejected",
    "PollingTimedOut",
    "ExternalJobFailed",
    "MalformedSuccessResponse",
    "EmptyArtifact",
    "CompositingFailed",
    "Cancelled",
    "PipelineError",
]
