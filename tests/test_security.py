import pytest

from avatar_shorts.core.exceptions import SecurityError
from avatar_shorts.core.security import (
    ARTIFACT_EXTENSIONS,
    PathValidator,
    redact_api_key,
    sanitize_filename,
    sanitize_script,
    validate_url,
)


class TestValidateUrl:
    @pytest.mark.parametrize("url", [
        "https://images.example.com/bg.jpg",
        "http://cdn.example.com/a.png?size=large",
        "https://8.8.8.8/img.png",
    ])
    def test_public_urls_pass(self, url):
        assert validate_url(url) == url

    @pytest.mark.parametrize("url", [
        "",
        "ftp://example.com/bg.jpg",
        "file:///etc/passwd",
        "https:///no-host.png",
        "http://localhost:8000/bg.png",
        "http://127.0.0.1/bg.png",
        "http://10.0.0.5/bg.png",
        "http://192.168.1.20/bg.png",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/bg.png",
    ])
    def test_rejected_urls(self, url):
        with pytest.raises(SecurityError):
            validate_url(url)


class TestRedaction:
    @pytest.mark.parametrize("text, secret", [
        ("Authorization: Bearer sk_live_abc123", "sk_live_abc123"),
        ('{"x-api-key": "cap-secret-1"}', "cap-secret-1"),
        ("api_key=uns-999", "uns-999"),
        ("CREATOMATE_API_KEY=cre/xyz", "cre/xyz"),
    ])
    def test_keys_are_removed(self, text, secret):
        redacted = redact_api_key(text)
        assert secret not in redacted
        assert "REDACTED" in redacted

    def test_plain_text_untouched(self):
        assert redact_api_key("quota exceeded") == "quota exceeded"
        assert redact_api_key("") == ""


class TestPathValidator:
    def test_confines_to_base(self, tmp_path):
        validator = PathValidator(tmp_path)

        assert validator.validate("alpha.mp4") == tmp_path.resolve() / "alpha.mp4"
        assert not validator.is_safe("../elsewhere/alpha.mp4")
        assert not validator.is_safe(tmp_path.parent / "x.mp4")
        assert not validator.is_safe("bad\x00name.mp4")

    def test_extension_filter(self, tmp_path):
        validator = PathValidator(tmp_path, ARTIFACT_EXTENSIONS)

        assert validator.is_safe("final.mp4")
        assert validator.is_safe("background.PNG")
        assert not validator.is_safe("notes.txt")


class TestSanitizers:
    @pytest.mark.parametrize("name, expected", [
        ("final.mp4", "final.mp4"),
        ("../../etc/passwd", "etc_passwd"),
        ("my video (1).mp4", "my_video_1_.mp4"),
        ("...", "unnamed"),
        ("", "unnamed"),
    ])
    def test_sanitize_filename(self, name, expected):
        assert sanitize_filename(name) == expected

    def test_sanitize_script_caps_length(self):
        assert sanitize_script("a" * 6000) == "a" * 5000
        assert sanitize_script("line one\nline two\x07") == "line one\nline two"
