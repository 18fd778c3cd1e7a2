"""
Image Utilities
===============

Background image checks before compositing.
"""

import logging
from pathlib import Path
from typing import Dict, Tuple, Union
from urllib.parse import urlparse

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)


IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"}


def image_suffix_for(url: str, default: str = ".jpg") -> str:
    """Pick a file extension for a downloaded image from its URL."""
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if suffix in IMAGE_SUFFIXES else default


def probe_image(image_path: Union[str, Path]) -> Tuple[int, int]:
    """
    Verify an image decodes and return its size.

    Args:
        image_path: Path to the image

    Returns:
        (width, height)

    Raises:
        ValidationError: if the file is not a readable image
    """
    try:
        with Image.open(image_path) as img:
            img.verify()
        # verify() leaves the image unusable, reopen for the size
        with Image.open(image_path) as img:
            return img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(
            f"Background image is not a readable image: {e}",
            field="backgroundImageUrl",
            constraint="must point to an image",
        )


def fit_within(
    width: int,
    height: int,
    frame_width: int = 1080,
    frame_height: int = 1920,
) -> Dict[str, int]:
    """
    Letterbox geometry of an image scaled into a fixed frame.

    Matches ffmpeg's ``scale=force_original_aspect_ratio=decrease`` followed
    by a centered ``pad``: the image shrinks or grows until one side touches
    the frame, and the rest is padding.

    Returns:
        dict with scaled ``width``/``height``, ``pad_x``/``pad_y`` offsets and
        the ``frame_width``/``frame_height`` of the output
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size {width}x{height}")

    # Integer math so the bounding side lands exactly on the frame edge
    if frame_width * height <= frame_height * width:
        scaled_width = frame_width
        scaled_height = max(1, height * frame_width // width)
    else:
        scaled_height = frame_height
        scaled_width = max(1, width * frame_height // height)

    return {
        "width": scaled_width,
        "height": scaled_height,
        "pad_x": (frame_width - scaled_width) // 2,
        "pad_y": (frame_height - scaled_height) // 2,
        "frame_width": frame_width,
        "frame_height": frame_height,
    }
