"""
Adapter Factory
===============

Registry of stage adapters, keyed by the config section they read.
"""

import logging
from typing import Optional, List, Dict, Type, TYPE_CHECKING

import httpx

from ..core.config import Config

if TYPE_CHECKING:
    from .base import BaseStageAdapter

logger = logging.getLogger(__name__)

# Registry of available adapters
_ADAPTERS: Dict[str, Type["BaseStageAdapter"]] = {}


def register_adapter(name: str):
    """Decorator to register an adapter class under its config section."""
    def decorator(cls):
        _ADAPTERS[name.lower()] = cls
        return cls
    return decorator


def _import_adapters() -> None:
    from . import captions, unscreen, creatomate  # noqa: F401


def get_adapter(
    name: str,
    config: Config,
    client: Optional[httpx.AsyncClient] = None,
) -> "BaseStageAdapter":
    """
    Build a stage adapter from the matching config section.

    Args:
        name: Config section name ('avatar', 'background_removal', 'caption')
        config: Loaded configuration
        client: Optional shared HTTP client

    Raises:
        ValueError: If the adapter name is not recognized
    """
    name_lower = name.lower()
    if name_lower not in _ADAPTERS:
        _import_adapters()

    adapter_class = _ADAPTERS.get(name_lower)
    if adapter_class is None:
        raise ValueError(f"Unknown stage adapter: {name}")

    return adapter_class(getattr(config, name_lower), client=client)


def list_adapters() -> List[str]:
    """List all registered adapter names."""
    _import_adapters()
    return list(_ADAPTERS.keys())
