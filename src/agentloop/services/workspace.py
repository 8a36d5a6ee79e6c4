"""Team-scoped shared workspace on the local filesystem.

Each team gets its own directory under the workspace root. Paths supplied
by agents are resolved relative to the team directory and rejected if
they escape it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from agentloop.errors import WorkspaceAccessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    path: str
    is_directory: bool
    size: int


class Workspace:
    """Filesystem operations rooted at ``<root_dir>/<team_id>``.

    Args:
        root_dir: Workspace root shared by all teams.
    """

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir).resolve()

    def team_root(self, team_id: str) -> Path:
        root = (self.root_dir / team_id).resolve()
        if root.parent != self.root_dir:
            raise WorkspaceAccessError(f"Invalid team id: {team_id!r}")
        return root

    def safe_path(self, team_id: str, relative_path: str) -> Path:
        """Resolve ``relative_path`` inside the team directory.

        Raises:
            WorkspaceAccessError: If the resolved path escapes the team directory.
        """
        root = self.team_root(team_id)
        full = (root / relative_path.lstrip("/")).resolve()
        if full != root and root not in full.parents:
            raise WorkspaceAccessError(f"Path escapes workspace: {relative_path}")
        return full

    def list_files(self, team_id: str, directory: str = "") -> list[FileEntry]:
        full = self.safe_path(team_id, directory)
        if not full.is_dir():
            return []
        root = self.team_root(team_id)
        entries = []
        for child in sorted(full.iterdir()):
            if child.name.startswith("."):
                continue
            entries.append(
                FileEntry(
                    path=str(child.relative_to(root)),
                    is_directory=child.is_dir(),
                    size=child.stat().st_size,
                )
            )
        return entries

    def read_file(self, team_id: str, path: str) -> str | None:
        full = self.safe_path(team_id, path)
        if not full.is_file():
            return None
        return full.read_text(encoding="utf-8")

    def write_file(self, team_id: str, path: str, content: str) -> Path:
        full = self.safe_path(team_id, path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content, encoding="utf-8")
        logger.debug("Wrote %d chars to %s", len(content), full)
        return full

    def write_bytes(self, team_id: str, path: str, data: bytes) -> Path:
        full = self.safe_path(team_id, path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)
        return full
