"""
Workspace Manager
=================

Per-run scratch directories with guaranteed release.

Each pipeline run gets its own directory under the workspace root, named
by a UTC timestamp with microseconds plus a random suffix so concurrent runs
never collide. The directory is removed when the run fails; on success only
the files marked as kept survive, and with nothing marked it goes as well.
Directories abandoned by a crashed process are swept by ``reap_stale``.
"""

import logging
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Set, Union

from ..core.security import ARTIFACT_EXTENSIONS, PathValidator, sanitize_filename

logger = logging.getLogger(__name__)


def generate_workspace_name(now: Optional[datetime] = None) -> str:
    """Collision-resistant directory name: timestamp plus random suffix."""
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%d-%H%M%S-%f')}-{uuid.uuid4().hex[:8]}"


@dataclass
class Workspace:
    """A scratch directory owned by exactly one pipeline run."""

    request_id: str
    path: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    keep: Set[str] = field(default_factory=set)

    @property
    def name(self) -> str:
        return self.path.name

    def file(self, filename: str) -> Path:
        """Resolve an artifact file name (video or image) inside the workspace."""
        return PathValidator(self.path, ARTIFACT_EXTENSIONS).validate(sanitize_filename(filename))

    def keep_file(self, path: Union[str, Path]) -> None:
        """Mark a file to survive a successful release."""
        self.keep.add(Path(path).name)

    def contains(self, path: Union[str, Path]) -> bool:
        return PathValidator(self.path).is_safe(path)


class WorkspaceManager:
    """
    Creates and releases workspaces under one root directory.

    Usage:
        manager = WorkspaceManager("./temp")
        async with manager.acquire() as workspace:
            alpha = workspace.file("alpha.mp4")
    """

    def __init__(
        self,
        root: Union[str, Path] = "./temp",
        max_age_seconds: float = 86400.0,
    ):
        """
        Args:
            root: Directory under which workspaces are created
            max_age_seconds: Age after which ``reap_stale`` removes a workspace
        """
        self.root = Path(root).resolve()
        self.max_age_seconds = max_age_seconds
        self._active: Set[Path] = set()

    def create(self, request_id: Optional[str] = None) -> Workspace:
        """Create a fresh, uniquely named workspace directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        name = generate_workspace_name()
        path = self.root / name
        path.mkdir(exist_ok=False)
        self._active.add(path)
        logger.info(f"Created workspace {path}")
        return Workspace(request_id=request_id or name, path=path)

    def release(self, workspace: Workspace, success: bool) -> None:
        """
        Release a workspace.

        On failure the whole directory goes. On success, files marked with
        ``keep_file`` stay and everything else is deleted.
        """
        self._active.discard(workspace.path)

        if not workspace.path.exists():
            return

        if success and workspace.keep:
            for entry in workspace.path.iterdir():
                if entry.name in workspace.keep:
                    continue
                if entry.is_dir():
                    shutil.rmtree(entry, ignore_errors=True)
                else:
                    entry.unlink(missing_ok=True)
            logger.info(f"Released workspace {workspace.path} (kept {sorted(workspace.keep)})")
            return

        shutil.rmtree(workspace.path, ignore_errors=True)
        logger.info(f"Removed workspace {workspace.path}")

    @asynccontextmanager
    async def acquire(self, request_id: Optional[str] = None) -> AsyncIterator[Workspace]:
        """Create a workspace and release it on every exit path."""
        workspace = self.create(request_id)
        try:
            yield workspace
        except BaseException:
            self.release(workspace, success=False)
            raise
        else:
            self.release(workspace, success=True)

    def reap_stale(self, max_age_seconds: Optional[float] = None) -> List[Path]:
        """
        Remove workspaces older than ``max_age_seconds`` that no run holds.

        Returns:
            The directories that were removed
        """
        if not self.root.exists():
            return []

        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        cutoff = time.time() - max_age
        removed = []

        for entry in self.root.iterdir():
            if not entry.is_dir() or entry in self._active:
                continue
            try:
                modified = entry.stat().st_mtime
            except FileNotFoundError:
                continue
            if modified < cutoff:
                shutil.rmtree(entry, ignore_errors=True)
                removed.append(entry)

        if removed:
            logger.info(f"Reaped {len(removed)} stale workspace(s) from {self.root}")
        return removed
