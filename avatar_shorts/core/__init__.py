"""
Core Module
===========

Configuration, exceptions, cancellation and security helpers.
"""

from .cancellation import CancelToken
from .config import (
    Config,
    AvatarConfig,
    BackgroundRemovalConfig,
    CaptionConfig,
    CompositorConfig,
    DownloadConfig,
    WorkspaceConfig,
    PipelineConfig,
)
from .exceptions import (
    ShortsError,
    ConfigurationError,
    ValidationError,
    SecurityError,
    ProviderError,
    SubmissionRejected,
    FormatIncompatible,
    PollingTimedOut,
    ExternalJobFailed,
    MalformedSuccessResponse,
    DownloadFailed,
    EmptyArtifact,
    CompositingFailed,
    Cancelled,
    PipelineError,
)
from .security import (
    ARTIFACT_EXTENSIONS,
    PathValidator,
    sanitize_filename,
    sanitize_script,
    redact_api_key,
    validate_url,
)

__all__ = [
    # Cancellation
    "CancelToken",
    # Configuration
    "Config",
    "AvatarConfig",
    "BackgroundRemovalConfig",
    "CaptionConfig",
    "CompositorConfig",
    "DownloadConfig",
    "WorkspaceConfig",
    "PipelineConfig",
    # Exceptions
    "ShortsError",
    "ConfigurationError",
    "ValidationError",
    "SecurityError",
    "ProviderError",
    "SubmissionRejected",
    "FormatIncompatible",
    "PollingTimedOut",
    "ExternalJobFailed",
    "MalformedSuccessResponse",
    "DownloadFailed",
    "EmptyArtifact",
    "CompositingFailed",
    "Cancelled",
    "PipelineError",
    # Security
    "ARTIFACT_EXTENSIONS",
    "PathValidator",
    "sanitize_filename",
    "sanitize_script",
    "redact_api_key",
    "validate_url",
]
