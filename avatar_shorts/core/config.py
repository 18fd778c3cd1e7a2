"""
Configuration System
====================

Centralized, validated configuration with typed dataclasses.

A ``Config`` is loaded once at startup and injected into the pipeline;
nothing downstream reads the environment on its own.
"""

import os
import re
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Optional, Dict, Any, List, Union, ClassVar
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _coerce(value: Any, target: Any, key: str) -> Any:
    """Coerce interpolated strings to the field's declared scalar type."""
    if not isinstance(value, str) or target not in (bool, int, float):
        return value
    if target is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ConfigurationError(f"Expected a boolean for {key}, got {value!r}", config_key=key, expected_type="bool")
    try:
        return target(value)
    except ValueError:
        raise ConfigurationError(
            f"Expected {target.__name__} for {key}, got {value!r}",
            config_key=key,
            expected_type=target.__name__,
        )


class _Section:
    """Shared coercion for config sections."""

    SECTION: ClassVar[str] = ""

    def _coerce_fields(self) -> None:
        for f in fields(self):
            setattr(self, f.name, _coerce(getattr(self, f.name), f.type, f"{self.SECTION}.{f.name}"))


# =============================================================================
# Stage Configuration
# =============================================================================


@dataclass
class StageConfig(_Section):
    """Settings shared by every external job stage."""

    ENV_KEY: ClassVar[str] = ""

    enabled: bool = True
    api_key: str = ""
    base_url: str = ""
    request_timeout: float = 60.0
    poll_interval: float = 3.0
    poll_timeout: float = 300.0
    max_attempts: int = 100

    # Used instead of calling the service when the stage is disabled
    fallback_result_url: Optional[str] = None

    def __post_init__(self):
        self._coerce_fields()
        if not self.api_key and self.ENV_KEY:
            self.api_key = os.getenv(self.ENV_KEY, "")
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.poll_interval < 0:
            raise ConfigurationError(
                f"poll_interval must be >= 0, got {self.poll_interval}",
                config_key=f"{self.SECTION}.poll_interval",
            )
        if self.poll_timeout <= 0:
            raise ConfigurationError(
                f"poll_timeout must be > 0, got {self.poll_timeout}",
                config_key=f"{self.SECTION}.poll_timeout",
            )
        if not 1 <= self.max_attempts <= 10000:
            raise ConfigurationError(
                f"max_attempts must be 1-10000, got {self.max_attempts}",
                config_key=f"{self.SECTION}.max_attempts",
            )
        if not self.base_url:
            raise ConfigurationError("base_url is required", config_key=f"{self.SECTION}.base_url")

    def missing_settings(self) -> List[str]:
        """Settings this stage needs before any external call can be made."""
        if self.enabled:
            return [] if self.api_key else [f"{self.SECTION}.api_key ({self.ENV_KEY})"]
        if not self.fallback_result_url:
            return [f"{self.SECTION}.fallback_result_url"]
        return []


@dataclass
class AvatarConfig(StageConfig):
    """Captions.ai avatar generation."""

    SECTION: ClassVar[str] = "avatar"
    ENV_KEY: ClassVar[str] = "CAPTIONS_API_KEY"

    base_url: str = "https://api.captions.ai/api"
    poll_interval: float = 2.0
    poll_timeout: float = 200.0
    resolution: str = "fhd"

    VALID_RESOLUTIONS: ClassVar[set] = {"sd", "hd", "fhd", "4k"}

    def validate(self) -> None:
        super().validate()
        if self.resolution not in self.VALID_RESOLUTIONS:
            raise ConfigurationError(
                f"Invalid resolution: {self.resolution}",
                config_key="avatar.resolution",
            )


@dataclass
class BackgroundRemovalConfig(StageConfig):
    """Unscreen background removal."""

    SECTION: ClassVar[str] = "background_removal"
    ENV_KEY: ClassVar[str] = "UNSCREEN_API_KEY"

    base_url: str = "https://api.unscreen.com/v1.0"
    output_format: str = "mp4"
    background_color: str = "00FF00"

    def validate(self) -> None:
        super().validate()
        if not re.fullmatch(r"[0-9A-Fa-f]{6}", self.background_color):
            raise ConfigurationError(
                f"background_color must be a 6-digit hex color, got {self.background_color}",
                config_key="background_removal.background_color",
            )


@dataclass
class CaptionConfig(StageConfig):
    """Optional caption overlay through a rendering service."""

    SECTION: ClassVar[str] = "caption"
    ENV_KEY: ClassVar[str] = "CREATOMATE_API_KEY"

    enabled: bool = False
    base_url: str = "https://api.creatomate.com/v1"

    # Public URL prefix under which the workspace root is served
    artifact_base_url: Optional[str] = None
    feature_flags: Dict[str, Any] = field(default_factory=dict)

    def missing_settings(self) -> List[str]:
        # A disabled caption stage is skipped, not substituted
        if not self.enabled:
            return []
        missing = super().missing_settings()
        if not self.artifact_base_url:
            missing.append("caption.artifact_base_url")
        return missing


# =============================================================================
# Local Processing Configuration
# =============================================================================


@dataclass
class DownloadConfig(_Section):
    """Artifact download settings."""

    SECTION: ClassVar[str] = "download"

    timeout: float = 120.0
    max_bytes: int = 500 * 1024 * 1024
    chunk_size: int = 64 * 1024
    max_redirects: int = 5

    def __post_init__(self):
        self._coerce_fields()


@dataclass
class CompositorConfig(_Section):
    """ffmpeg compositing settings."""

    SECTION: ClassVar[str] = "compositor"

    ffmpeg_path: str = "ffmpeg"
    width: int = 1080
    height: int = 1920
    key_color: str = "0x00FF00"
    similarity: float = 0.1
    blend: float = 0.2
    video_codec: str = "libx264"
    preset: str = "medium"
    crf: int = 23
    timeout: float = 120.0
    max_output_bytes: int = 10 * 1024 * 1024

    def __post_init__(self):
        self._coerce_fields()
        self.validate()

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(
                f"Invalid frame size {self.width}x{self.height}",
                config_key="compositor.width",
            )
        for name in ("similarity", "blend"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"{name} must be 0.0-1.0, got {value}",
                    config_key=f"compositor.{name}",
                )
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0", config_key="compositor.timeout")


@dataclass
class WorkspaceConfig(_Section):
    """Scratch directory settings."""

    SECTION: ClassVar[str] = "workspace"

    root: str = "./temp"
    max_age_seconds: float = 86400.0

    def __post_init__(self):
        self._coerce_fields()


@dataclass
class PipelineConfig(_Section):
    """Run-level settings."""

    SECTION: ClassVar[str] = "pipeline"

    deadline_seconds: float = 900.0
    reap_on_start: bool = True

    def __post_init__(self):
        self._coerce_fields()


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    avatar: AvatarConfig = field(default_factory=AvatarConfig)
    background_removal: BackgroundRemovalConfig = field(default_factory=BackgroundRemovalConfig)
    caption: CaptionConfig = field(default_factory=CaptionConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    compositor: CompositorConfig = field(default_factory=CompositorConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    SECTIONS: ClassVar[tuple] = (
        "avatar",
        "background_removal",
        "caption",
        "download",
        "compositor",
        "workspace",
        "pipeline",
    )

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to a YAML config file

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".avatar-shorts" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        try:
            return cls(
                avatar=AvatarConfig(**data.get("avatar", {})),
                background_removal=BackgroundRemovalConfig(**data.get("background_removal", {})),
                caption=CaptionConfig(**data.get("caption", {})),
                download=DownloadConfig(**data.get("download", {})),
                compositor=CompositorConfig(**data.get("compositor", {})),
                workspace=WorkspaceConfig(**data.get("workspace", {})),
                pipeline=PipelineConfig(**data.get("pipeline", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            # Handle ${VAR} and ${VAR:-default} patterns
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def validate_credentials(self) -> None:
        """
        Fail fast when an enabled stage lacks its API key.

        Raises:
            ConfigurationError: listing every missing setting
        """
        missing: List[str] = []
        for stage in (self.avatar, self.background_removal, self.caption):
            missing.extend(stage.missing_settings())
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                config_key=missing[0],
                details={"missing": missing},
            )

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary."""
        result = {}
        for section in self.SECTIONS:
            values = asdict(getattr(self, section))
            if redact and values.get("api_key"):
                values["api_key"] = "***REDACTED***"
            result[section] = values
        return result
