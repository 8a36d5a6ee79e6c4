"""Tests for the team-scoped workspace."""

from __future__ import annotations

import pytest

from agentloop.errors import WorkspaceAccessError
from agentloop.services.workspace import Workspace


def test_teams_are_isolated(tmp_path) -> None:
    workspace = Workspace(tmp_path)
    workspace.write_file("team-1", "docs/a.md", "alpha")

    assert workspace.read_file("team-1", "/docs/a.md") == "alpha"
    assert workspace.read_file("team-2", "docs/a.md") is None


@pytest.mark.parametrize("path", ["../team-2/a.md", "docs/../../escape.md"])
def test_escape_rejected(tmp_path, path: str) -> None:
    with pytest.raises(WorkspaceAccessError):
        Workspace(tmp_path).safe_path("team-1", path)


def test_invalid_team_id_rejected(tmp_path) -> None:
    with pytest.raises(WorkspaceAccessError):
        Workspace(tmp_path).team_root("../other")


def test_list_files_hides_dotfiles(tmp_path) -> None:
    workspace = Workspace(tmp_path)
    workspace.write_file("team-1", "b.txt", "bb")
    workspace.write_file("team-1", ".hidden", "x")
    workspace.write_bytes("team-1", "media/images/cat.png", b"png")

    entries = workspace.list_files("team-1")

    assert [(e.path, e.is_directory) for e in entries] == [("b.txt", False), ("media", True)]
    assert workspace.list_files("team-1", "missing") == []
