"""Download generated media into the team workspace."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import re
from datetime import date

import httpx

from agentloop.services.workspace import Workspace

logger = logging.getLogger(__name__)

MEDIA_DIRS = {"image": "images", "video": "video", "3d": "3d"}

_EXTRA_TYPES = {".glb": "model/gltf-binary", ".gltf": "model/gltf+json", ".webp": "image/webp"}
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def guess_mime_type(filename: str) -> str:
    suffix = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if suffix in _EXTRA_TYPES:
        return _EXTRA_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def slugify(text: str, max_length: int = 40) -> str:
    return _UNSAFE_CHARS.sub("_", text[:max_length])


class MediaStore:
    """Persist remote media files under ``media/<kind>/`` in a team workspace.

    Args:
        workspace: Team-scoped workspace to write into.
        http_client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(self, workspace: Workspace, http_client: httpx.AsyncClient | None = None) -> None:
        self.workspace = workspace
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=120.0, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def download_and_save(self, team_id: str, kind: str, source_url: str, filename: str) -> str:
        """Download ``source_url`` and return its team-relative workspace path.

        Raises:
            httpx.HTTPStatusError: If the download fails.
        """
        safe_name = f"{date.today().isoformat()}_{_UNSAFE_CHARS.sub('_', filename)}"
        relative = f"media/{MEDIA_DIRS.get(kind, kind)}/{safe_name}"

        response = await self._client.get(source_url)
        response.raise_for_status()
        await asyncio.to_thread(self.workspace.write_bytes, team_id, relative, response.content)
        logger.info("Saved %s media for team '%s' to %s", kind, team_id, relative)
        return relative
