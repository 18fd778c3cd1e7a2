import io
from typing import Any, Dict

import httpx
from PIL import Image

from avatar_shorts.core.config import Config


def make_config(tmp_path=None, **sections: Dict[str, Any]) -> Config:
    """Config with credentials set and zero poll intervals."""
    data = {
        "avatar": {"api_key": "captions-key", "poll_interval": 0},
        "background_removal": {"api_key": "unscreen-key", "poll_interval": 0},
        "caption": {"api_key": "creatomate-key", "poll_interval": 0},
        "pipeline": {"reap_on_start": False},
    }
    if tmp_path is not None:
        data["workspace"] = {"root": str(tmp_path / "workspaces")}
    for name, values in sections.items():
        data.setdefault(name, {}).update(values)
    return Config.from_dict(data)


def png_bytes(width: int = 64, height: int = 32) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color="blue").save(buffer, format="PNG")
    return buffer.getvalue()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
