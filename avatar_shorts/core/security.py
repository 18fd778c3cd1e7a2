"""
Security Utilities
==================

Keeps artifacts inside their workspace, cleans user input, and strips
provider credentials from anything that gets logged or returned.
"""

import ipaddress
import logging
import re
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Union
from urllib.parse import urlparse

from .exceptions import SecurityError

logger = logging.getLogger(__name__)


VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".webm"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})
ARTIFACT_EXTENSIONS = VIDEO_EXTENSIONS | IMAGE_EXTENSIONS

# Header and env spellings the three providers use for their keys
_SECRET_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]+", re.IGNORECASE), "Bearer ***REDACTED***"),
    (re.compile(r"x-api-key['\"]?\s*[:=]\s*['\"]?[A-Za-z0-9_\-]+", re.IGNORECASE), "x-api-key: ***REDACTED***"),
    (re.compile(r"api[_-]?key['\"]?\s*[:=]\s*['\"]?[A-Za-z0-9_\-]+", re.IGNORECASE), "api_key: ***REDACTED***"),
    (re.compile(r"(CAPTIONS_API_KEY|UNSCREEN_API_KEY|CREATOMATE_API_KEY)=\S+"), r"\1=***REDACTED***"),
]

_BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain"}


class PathValidator:
    """
    Confines file paths to one directory.

    Usage:
        validator = PathValidator(workspace.path, ARTIFACT_EXTENSIONS)
        alpha = validator.validate("alpha.mp4")        # OK
        validator.validate("../other-run/final.mp4")    # SecurityError
    """

    def __init__(
        self,
        base_path: Union[str, Path],
        allowed_extensions: Optional[Iterable[str]] = None,
    ):
        self.base_path = Path(base_path).resolve()
        self.allowed_extensions: Optional[FrozenSet[str]] = (
            frozenset(ext.lower() for ext in allowed_extensions) if allowed_extensions else None
        )

    def validate(self, path: Union[str, Path]) -> Path:
        """
        Resolve ``path`` against the base directory.

        Raises:
            SecurityError: the path leaves the base directory or has a
                disallowed extension
        """
        if "\x00" in str(path):
            raise SecurityError("Path contains a null byte", attempted_path=str(path), security_type="invalid_path")

        candidate = Path(path)
        resolved = (candidate if candidate.is_absolute() else self.base_path / candidate).resolve()

        if resolved != self.base_path and self.base_path not in resolved.parents:
            logger.warning(f"Blocked path outside {self.base_path}")
            raise SecurityError(
                "Path is outside the workspace",
                attempted_path=str(path),
                security_type="path_traversal",
            )

        if self.allowed_extensions is not None and resolved.suffix.lower() not in self.allowed_extensions:
            raise SecurityError(
                f"Unexpected artifact type: {resolved.suffix or '(none)'}",
                attempted_path=str(path),
                security_type="invalid_extension",
            )

        return resolved

    def is_safe(self, path: Union[str, Path]) -> bool:
        try:
            self.validate(path)
        except SecurityError:
            return False
        return True


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """Reduce a name to ``[A-Za-z0-9_.-]`` with no leading dots or separators."""
    sanitized = re.sub(r"[^\w\-.]+", "_", filename or "").strip("._-")

    if len(sanitized) > max_length:
        suffix = Path(sanitized).suffix
        sanitized = sanitized[: max_length - len(suffix)] + suffix

    return sanitized or "unnamed"


def sanitize_script(script: str, max_length: int = 5000) -> str:
    """
    Strip control characters from an avatar script and cap its length.

    Newlines and tabs survive; everything else non-printable is dropped.
    """
    if not script:
        return ""

    cleaned = "".join(char for char in script if char.isprintable() or char in "\n\t")

    if len(cleaned) > max_length:
        logger.warning(f"Script truncated from {len(cleaned)} to {max_length} characters")
        cleaned = cleaned[:max_length]

    return cleaned.strip()


def redact_api_key(text: str) -> str:
    """Replace provider credentials in ``text`` with a placeholder."""
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def validate_url(url: str) -> str:
    """
    Check that a user-supplied URL is a public http(s) address.

    The pipeline downloads whatever this points at, so loopback, private and
    link-local targets are refused.

    Raises:
        SecurityError: on a bad scheme, missing host, or non-public address
    """
    try:
        parsed = urlparse(url or "")
    except ValueError as e:
        raise SecurityError(f"Invalid URL: {e}", security_type="invalid_url")

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise SecurityError(
            f"URL must be http(s) with a host, got scheme {parsed.scheme or '(none)'}",
            security_type="invalid_url_scheme",
        )

    hostname = parsed.hostname.lower()
    if hostname in _BLOCKED_HOSTNAMES:
        raise SecurityError("URLs to local addresses are not allowed", security_type="blocked_host")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return url

    if address.is_loopback or address.is_private or address.is_link_local or address.is_unspecified:
        raise SecurityError("URLs to private or local addresses are not allowed", security_type="blocked_host")

    return url
