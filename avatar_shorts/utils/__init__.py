"""
Utilities
=========

Workspace, download and image helpers.
"""

from .fetcher import ArtifactFetcher
from .image_utils import fit_within, image_suffix_for, probe_image
from .workspace import Workspace, WorkspaceManager, generate_workspace_name

__all__ = [
    "ArtifactFetcher",
    "fit_within",
    "image_suffix_for",
    "probe_image",
    "Workspace",
    "WorkspaceManager",
    "generate_workspace_name",
]
