from pathlib import Path

import pytest

from avatar_shorts.core.config import Config
from avatar_shorts.core.exceptions import ConfigurationError

DEFAULTS = Path(__file__).resolve().parent.parent / "config" / "defaults.yaml"

ENV_VARS = (
    "CAPTIONS_API_KEY",
    "UNSCREEN_API_KEY",
    "CREATOMATE_API_KEY",
    "USE_CAPTIONS_API",
    "USE_UNSCREEN_API",
    "USE_CAPTIONS_OVERLAY",
    "AVATAR_FALLBACK_URL",
    "UNSCREEN_FALLBACK_URL",
    "ARTIFACT_BASE_URL",
    "FFMPEG_PATH",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigLoading:
    def test_defaults(self, clean_env):
        config = Config()

        assert config.avatar.base_url == "https://api.captions.ai/api"
        assert config.avatar.poll_interval == 2.0
        assert config.avatar.poll_timeout == 200.0
        assert config.background_removal.poll_interval == 3.0
        assert config.background_removal.poll_timeout == 300.0
        assert config.caption.enabled is False
        assert (config.compositor.width, config.compositor.height) == (1080, 1920)
        assert config.pipeline.deadline_seconds == 900.0

    def test_load_shipped_defaults_with_env(self, clean_env):
        clean_env.setenv("CAPTIONS_API_KEY", "cap-123")
        clean_env.setenv("UNSCREEN_API_KEY", "uns-456")
        clean_env.setenv("USE_CAPTIONS_OVERLAY", "yes")
        clean_env.setenv("CREATOMATE_API_KEY", "cre-789")
        clean_env.setenv("ARTIFACT_BASE_URL", "https://files.example.com")

        config = Config.load(DEFAULTS)

        assert config.avatar.api_key == "cap-123"
        assert config.avatar.enabled is True
        assert config.background_removal.background_color == "00FF00"
        assert config.caption.enabled is True
        assert config.caption.feature_flags == {"captions": True}
        assert config.compositor.ffmpeg_path == "ffmpeg"
        config.validate_credentials()

    def test_string_flags_are_coerced(self, clean_env, tmp_path):
        clean_env.setenv("USE_UNSCREEN_API", "false")
        clean_env.setenv("UNSCREEN_FALLBACK_URL", "https://cdn.example.com/keyed.mp4")
        path = tmp_path / "config.yaml"
        path.write_text(
            "background_removal:\n"
            "  enabled: ${USE_UNSCREEN_API:-true}\n"
            "  fallback_result_url: ${UNSCREEN_FALLBACK_URL}\n"
            "  max_attempts: '7'\n"
        )

        config = Config.load(path)

        assert config.background_removal.enabled is False
        assert config.background_removal.max_attempts == 7
        assert config.background_removal.missing_settings() == []

    def test_env_key_fallback(self, clean_env):
        clean_env.setenv("UNSCREEN_API_KEY", "from-env")

        assert Config().background_removal.api_key == "from-env"

    def test_interpolation_default(self, clean_env):
        data = Config._interpolate_env_vars({"a": "${MISSING_VAR_FOR_TEST:-fallback}", "b": ["${MISSING_VAR_FOR_TEST}"]})
        assert data == {"a": "fallback", "b": [""]}


class TestConfigValidation:
    @pytest.mark.parametrize("data", [
        {"avatar": {"resolution": "8k"}},
        {"avatar": {"max_attempts": 0}},
        {"background_removal": {"background_color": "green"}},
        {"compositor": {"similarity": 2}},
        {"pipeline": {"reap_on_start": "maybe"}},
        {"avatar": {"no_such_setting": 1}},
    ])
    def test_invalid_values(self, clean_env, data):
        with pytest.raises(ConfigurationError):
            Config.from_dict(data)

    def test_validate_credentials_lists_every_missing_key(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            Config().validate_credentials()

        missing = exc_info.value.details["missing"]
        assert missing == ["avatar.api_key (CAPTIONS_API_KEY)", "background_removal.api_key (UNSCREEN_API_KEY)"]

    def test_disabled_stage_needs_fallback(self, clean_env):
        config = Config.from_dict({
            "avatar": {"enabled": False},
            "background_removal": {"api_key": "k"},
        })

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_credentials()
        assert exc_info.value.details["missing"] == ["avatar.fallback_result_url"]

    def test_to_dict_redacts_keys(self, clean_env):
        config = Config.from_dict({"avatar": {"api_key": "secret"}})

        assert config.to_dict()["avatar"]["api_key"] == "***REDACTED***"
        assert config.to_dict(redact=False)["avatar"]["api_key"] == "secret"
