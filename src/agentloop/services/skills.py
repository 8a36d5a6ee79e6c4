"""SKILL.md loader and per-agent skill installation.

A skill is a directory containing ``SKILL.md``: YAML frontmatter followed
by markdown instructions. Tool schemas are declared in fenced
```` ```tools ```` blocks holding a JSON array of
``{name, description, parameters}`` objects.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.models.skill import AgentSkill

logger = logging.getLogger(__name__)

_TOOLS_BLOCK = re.compile(r"```tools\s*\n(.*?)```", re.DOTALL)


@dataclass
class Skill:
    name: str
    description: str
    instructions: str
    path: str
    tags: list[str] = field(default_factory=list)
    version: str | None = None
    author: str | None = None


def parse_skill_file(content: str, path: str) -> Skill | None:
    """Parse SKILL.md content. Returns None when the frontmatter is missing or invalid."""
    if not content.startswith("---"):
        return None
    end = content.find("---", 3)
    if end == -1:
        return None
    try:
        metadata = yaml.safe_load(content[3:end]) or {}
    except yaml.YAMLError:
        logger.warning("Invalid SKILL.md frontmatter in %s", path)
        return None
    if not isinstance(metadata, dict):
        return None

    tags = metadata.get("tags") or []
    return Skill(
        name=str(metadata.get("name") or Path(path).parent.name),
        description=str(metadata.get("description") or ""),
        instructions=content[end + 3 :].strip(),
        path=path,
        tags=[str(t) for t in tags] if isinstance(tags, list) else [str(tags)],
        version=str(metadata["version"]) if metadata.get("version") is not None else None,
        author=metadata.get("author"),
    )


def parse_tool_schemas(instructions: str) -> list[dict[str, Any]]:
    """Extract OpenAI-style tool definitions from ```tools blocks. Malformed blocks are skipped."""
    tools: list[dict[str, Any]] = []
    for block in _TOOLS_BLOCK.findall(instructions):
        try:
            parsed = json.loads(block)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed tools block")
            continue
        for item in parsed if isinstance(parsed, list) else [parsed]:
            if not isinstance(item, dict) or "name" not in item:
                continue
            tools.append(
                {
                    "type": "function",
                    "function": {
                        "name": item["name"],
                        "description": item.get("description", ""),
                        "parameters": item.get("parameters")
                        or {"type": "object", "properties": {}, "required": []},
                    },
                }
            )
    return tools


class SkillLoader:
    """Read skills from ``<skills_dir>/<skill_name>/SKILL.md``."""

    def __init__(self, skills_dir: str | Path) -> None:
        self.skills_dir = Path(skills_dir)

    def load_skill(self, skill_name: str) -> Skill | None:
        path = self.skills_dir / skill_name / "SKILL.md"
        if not path.is_file():
            return None
        return parse_skill_file(path.read_text(encoding="utf-8"), str(path))

    def list_skills(self) -> list[Skill]:
        if not self.skills_dir.is_dir():
            return []
        skills = []
        for entry in sorted(self.skills_dir.iterdir()):
            if entry.is_dir():
                skill = self.load_skill(entry.name)
                if skill is not None:
                    skills.append(skill)
        return skills

    def get_skill_tools(self, skill_names: list[str]) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = []
        for name in skill_names:
            skill = self.load_skill(name)
            if skill is None:
                logger.warning("Installed skill '%s' not found in %s", name, self.skills_dir)
                continue
            tools.extend(parse_tool_schemas(skill.instructions))
        return tools


class AgentSkillService:
    """Install and uninstall skills on agents.

    Args:
        db: Async SQLAlchemy session for database operations.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_installed(self, agent_id: str) -> list[str]:
        result = await self.db.execute(
            select(AgentSkill.skill_name)
            .where(AgentSkill.agent_id == agent_id)
            .order_by(AgentSkill.skill_name)
        )
        return list(result.scalars().all())

    async def install(self, agent_id: str, skill_name: str, source: str = "local") -> None:
        """Install a skill (idempotent)."""
        if await self.db.get(AgentSkill, (agent_id, skill_name)) is None:
            self.db.add(AgentSkill(agent_id=agent_id, skill_name=skill_name, source=source))
            await self.db.commit()

    async def uninstall(self, agent_id: str, skill_name: str) -> None:
        await self.db.execute(
            delete(AgentSkill).where(
                AgentSkill.agent_id == agent_id,
                AgentSkill.skill_name == skill_name,
            )
        )
        await self.db.commit()
