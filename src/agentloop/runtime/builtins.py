"""Built-in tools available to every agent.

Each built-in is a coroutine method ``(args, ctx) -> str`` registered in a
name -> handler table. The table is checked against ``BUILTIN_TOOL_NAMES``
at construction so a reserved name can never be left without a handler.

All operations are scoped to the calling agent's team: a task, channel or
table belonging to another team is reported as not found or access denied.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentloop.config import Settings
from agentloop.errors import ToolArgumentError, ToolRegistrationError, WorkspaceAccessError
from agentloop.models.approval import RISK_LEVELS
from agentloop.models.task import TASK_PRIORITIES, TASK_STATUSES
from agentloop.runtime.context import ToolContext
from agentloop.runtime.registry import BUILTIN_TOOL_NAMES, tool_def
from agentloop.services.activity_service import ActivityService
from agentloop.services.approval_gate import ApprovalGate
from agentloop.services.chat_service import ChatService
from agentloop.services.credit_meter import CreditMeter
from agentloop.services.fal import FalClient, resolve_fal_key
from agentloop.services.knowledge_base import KnowledgeBase
from agentloop.services.media import MediaStore, guess_mime_type, slugify
from agentloop.services.model_catalog import DEFAULT_MEDIA_MODELS, get_logical_model, sorted_routes
from agentloop.services.sor_service import SorService
from agentloop.services.task_service import TaskService
from agentloop.services.workspace import Workspace

logger = logging.getLogger(__name__)

MAX_AGENT_FILE_CHARS = 100_000
MAX_MEMORY_CHARS = 5000
MAX_KB_RESULTS = 20
KB_PREVIEW_CHARS = 1000

BuiltinHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]

BUILTIN_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    tool_def(
        "think",
        "Reason step by step before acting. Use before every other tool call.",
        {"thought": {"type": "string", "description": "Your reasoning: ASSESS, PRIORITIZE, PLAN (or REFLECT after an action)"}},
        ["thought"],
    ),
    tool_def(
        "respond",
        "Send your final response to the user. Ends the current turn.",
        {"message": {"type": "string", "description": "The message to send"}},
        ["message"],
    ),
    tool_def(
        "read_workspace_file",
        "Read a file from the team's shared workspace.",
        {"path": {"type": "string", "description": 'File path relative to the workspace root, e.g. "notes/plan.md"'}},
        ["path"],
    ),
    tool_def(
        "write_workspace_file",
        "Write a file to the team's shared workspace (max 100,000 characters).",
        {
            "path": {"type": "string", "description": "File path relative to the workspace root"},
            "content": {"type": "string", "description": "The file content to write"},
        },
        ["path", "content"],
    ),
    tool_def(
        "list_workspace_files",
        "List files in a workspace directory.",
        {"directory": {"type": "string", "description": "Directory relative to the workspace root (empty for root)"}},
    ),
    tool_def(
        "create_task",
        "Create a task assigned to yourself.",
        {
            "title": {"type": "string", "description": "Task title"},
            "description": {"type": "string", "description": "Task description"},
            "priority": {"type": "string", "enum": list(TASK_PRIORITIES)},
        },
        ["title"],
    ),
    tool_def(
        "update_task",
        "Update a task's status, priority or description.",
        {
            "task_id": {"type": "string", "description": "The task ID to update"},
            "status": {"type": "string", "enum": list(TASK_STATUSES)},
            "priority": {"type": "string", "enum": list(TASK_PRIORITIES)},
            "description": {"type": "string", "description": "Updated description"},
        },
        ["task_id"],
    ),
    tool_def(
        "list_tasks",
        "List the team's tasks, optionally filtered.",
        {
            "status": {"type": "string", "enum": list(TASK_STATUSES)},
            "agent_id": {"type": "string", "description": "Filter by assigned agent ID"},
        },
    ),
    tool_def(
        "send_chat_message",
        "Send a message to a chat channel.",
        {
            "channel_id": {"type": "string", "description": 'Channel ID, or "dm" for your own DM channel'},
            "content": {"type": "string", "description": "The message content"},
        },
        ["channel_id", "content"],
    ),
    tool_def(
        "request_approval",
        "Ask a human to approve a consequential action. Returns immediately with status pending.",
        {
            "action_type": {"type": "string", "description": 'Category of the action, e.g. "delete_data"'},
            "action_detail": {"type": "string", "description": "What you want to do and why"},
            "risk_level": {"type": "string", "enum": list(RISK_LEVELS)},
        },
        ["action_type", "action_detail", "risk_level"],
    ),
    tool_def(
        "query_source_of_record",
        "Read all rows of a source-of-record table.",
        {"table_name": {"type": "string", "description": "The table name to query"}},
        ["table_name"],
    ),
    tool_def(
        "update_source_of_record",
        "Update fields of one row in a source-of-record table.",
        {
            "table_name": {"type": "string", "description": "The table name"},
            "row_id": {"type": "string", "description": "The row ID to update"},
            "data": {"type": "object", "description": "Key-value pairs to merge into the row"},
        },
        ["table_name", "row_id", "data"],
    ),
    tool_def(
        "search_knowledge_base",
        "Search the team's knowledge base documents.",
        {
            "query": {"type": "string", "description": "What information you need"},
            "top_k": {"type": "integer", "description": "Max results (default 5, max 20)"},
        },
        ["query"],
    ),
    tool_def(
        "remember",
        "Save a fact, learning or insight to long-term memory (max 5,000 characters).",
        {"content": {"type": "string", "description": "The fact to remember"}},
        ["content"],
    ),
    tool_def(
        "generate_image",
        "Generate an image. Returns the workspace path of the image.",
        {
            "prompt": {"type": "string", "description": "Description of the image"},
            "model_id": {"type": "string", "description": 'Model to use. Default: "nano-banana-pro"'},
        },
        ["prompt"],
    ),
    tool_def(
        "generate_video",
        "Generate a video. Returns the workspace path of the video.",
        {
            "prompt": {"type": "string", "description": "Description of the video"},
            "model_id": {"type": "string", "description": 'Model to use: "kling-3.0" or "seedance-2.0". Default: "kling-3.0"'},
        },
        ["prompt"],
    ),
    tool_def(
        "generate_3d",
        "Generate a 3D model (.glb) from an image URL.",
        {
            "image_url": {"type": "string", "description": "URL of the input image"},
            "model_id": {"type": "string", "description": 'Model to use. Default: "hunyuan-3d-v3.1-pro"'},
        },
        ["image_url"],
    ),
]


@dataclass(frozen=True)
class MediaKind:
    kind: str
    label: str
    noun: str
    default_cost: int
    input_arg: str


MEDIA_KINDS: dict[str, MediaKind] = {
    "generate_image": MediaKind("image", "Image", "image", 10, "prompt"),
    "generate_video": MediaKind("video", "Video", "video", 100, "prompt"),
    "generate_3d": MediaKind("3d", "3D", "3D", 10, "image_url"),
}


def _str_arg(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None or value == "":
        raise ToolArgumentError(f"Missing required argument '{key}'")
    return value if isinstance(value, str) else str(value)


def _clamp_top_k(value: Any) -> int:
    try:
        top_k = int(value) if value else 5
    except (TypeError, ValueError):
        top_k = 5
    return min(max(top_k, 1), MAX_KB_RESULTS)


class BuiltinTools:
    """Handlers for the reserved built-in tools.

    Args:
        session_factory: Async session factory; every call opens its own session.
        workspace: Team-scoped file workspace.
        credit_meter: Used to charge media generation.
        media_store: Downloads generated media into the workspace.
        fal_client: Media generation backend.
        settings: Application settings (metering and hosted mode).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        workspace: Workspace,
        credit_meter: CreditMeter,
        media_store: MediaStore,
        fal_client: FalClient,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.workspace = workspace
        self.credit_meter = credit_meter
        self.media_store = media_store
        self.fal_client = fal_client
        self.settings = settings

        self._handlers: dict[str, BuiltinHandler] = {
            "think": self.think,
            "respond": self.respond,
            "read_workspace_file": self.read_workspace_file,
            "write_workspace_file": self.write_workspace_file,
            "list_workspace_files": self.list_workspace_files,
            "create_task": self.create_task,
            "update_task": self.update_task,
            "list_tasks": self.list_tasks,
            "send_chat_message": self.send_chat_message,
            "request_approval": self.request_approval,
            "query_source_of_record": self.query_source_of_record,
            "update_source_of_record": self.update_source_of_record,
            "search_knowledge_base": self.search_knowledge_base,
            "remember": self.remember,
        }
        for name, media in MEDIA_KINDS.items():
            self._handlers[name] = partial(self.generate_media, media)
        if set(self._handlers) != BUILTIN_TOOL_NAMES:
            raise ToolRegistrationError(
                "Built-in handler table does not match the reserved tool names: "
                f"{sorted(set(self._handlers) ^ BUILTIN_TOOL_NAMES)}"
            )

    @staticmethod
    def definitions() -> list[dict[str, Any]]:
        return list(BUILTIN_TOOL_DEFINITIONS)

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def execute(self, name: str, args: dict[str, Any], ctx: ToolContext) -> str:
        return await self._handlers[name](args, ctx)

    # ------------------------------------------------------------------
    # Reasoning
    # ------------------------------------------------------------------

    async def think(self, args: dict[str, Any], ctx: ToolContext) -> str:
        return f"Thought: {args.get('thought', '')}"

    async def respond(self, args: dict[str, Any], ctx: ToolContext) -> str:
        return f"Response: {args.get('message', '')}"

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    async def read_workspace_file(self, args: dict[str, Any], ctx: ToolContext) -> str:
        path = _str_arg(args, "path")
        try:
            content = await asyncio.to_thread(self.workspace.read_file, ctx.team_id, path)
        except WorkspaceAccessError as exc:
            return f"Error: {exc}"
        if content is None:
            return f"File not found: {path}"
        return content

    async def write_workspace_file(self, args: dict[str, Any], ctx: ToolContext) -> str:
        path = _str_arg(args, "path")
        content = args.get("content")
        if not isinstance(content, str):
            raise ToolArgumentError("Missing required argument 'content'")
        if len(content) > MAX_AGENT_FILE_CHARS:
            return (
                f"Error: File content too large ({len(content)} chars). "
                "Maximum is 100,000 characters for agent writes."
            )
        try:
            await asyncio.to_thread(self.workspace.write_file, ctx.team_id, path, content)
        except WorkspaceAccessError as exc:
            return f"Error: {exc}"
        return f"File written: {path}"

    async def list_workspace_files(self, args: dict[str, Any], ctx: ToolContext) -> str:
        directory = str(args.get("directory") or "")
        try:
            files = await asyncio.to_thread(self.workspace.list_files, ctx.team_id, directory)
        except WorkspaceAccessError as exc:
            return f"Error: {exc}"
        if not files:
            return f'No files found in "{directory or "/"}".'
        return "\n".join(f"{'[dir] ' if f.is_directory else ''}{f.path} ({f.size} bytes)" for f in files)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, args: dict[str, Any], ctx: ToolContext) -> str:
        async with self.session_factory() as session:
            task = await TaskService(session).create_task(
                ctx.team_id,
                _str_arg(args, "title"),
                description=args.get("description"),
                priority=args.get("priority") or "medium",
                assigned_agent_id=ctx.agent_id,
            )
        return f'Task created: "{task.title}" (id: {task.id}, priority: {task.priority})'

    async def update_task(self, args: dict[str, Any], ctx: ToolContext) -> str:
        task_id = _str_arg(args, "task_id")
        async with self.session_factory() as session:
            service = TaskService(session)
            task = await service.get_task(task_id, team_id=ctx.team_id)
            if task is None:
                return f"Task not found or access denied: {task_id}"
            task = await service.update_task(
                task,
                status=args.get("status") or None,
                priority=args.get("priority") or None,
                description=args.get("description") or None,
            )
        return f'Task updated: "{task.title}" (status: {task.status}, priority: {task.priority})'

    async def list_tasks(self, args: dict[str, Any], ctx: ToolContext) -> str:
        async with self.session_factory() as session:
            tasks = await TaskService(session).list_tasks(
                ctx.team_id,
                status=args.get("status") or None,
                agent_id=args.get("agent_id") or None,
            )
        if not tasks:
            return "No tasks found."
        return "\n".join(f"- [{t.status}] {t.title} ({t.priority}, id: {t.id})" for t in tasks)

    # ------------------------------------------------------------------
    # Chat and approvals
    # ------------------------------------------------------------------

    async def send_chat_message(self, args: dict[str, Any], ctx: ToolContext) -> str:
        channel_id = _str_arg(args, "channel_id")
        content = _str_arg(args, "content")
        async with self.session_factory() as session:
            chat = ChatService(session)
            if channel_id == "dm":
                channel = await chat.get_dm_channel(ctx.agent_id, ctx.team_id)
            else:
                channel = await chat.get_channel(channel_id)
                if channel is None or channel.team_id != ctx.team_id:
                    return f"Channel not found or access denied: {channel_id}"
            message = await chat.send_message(channel.id, "agent", ctx.agent_id, content, ctx.team_id)
        return f"Message sent (id: {message.id})"

    async def request_approval(self, args: dict[str, Any], ctx: ToolContext) -> str:
        async with self.session_factory() as session:
            approval = await ApprovalGate(session).create(
                ctx.team_id,
                ctx.agent_id,
                _str_arg(args, "action_type"),
                _str_arg(args, "action_detail"),
                _str_arg(args, "risk_level"),
            )
        return f"Approval request created (id: {approval.id}, status: pending). A human will review it."

    # ------------------------------------------------------------------
    # Source of record
    # ------------------------------------------------------------------

    async def query_source_of_record(self, args: dict[str, Any], ctx: ToolContext) -> str:
        table_name = _str_arg(args, "table_name")
        async with self.session_factory() as session:
            sor = SorService(session)
            table = await sor.get_table_by_name(ctx.team_id, table_name)
            if table is None:
                return f'Table not found: "{table_name}"'
            permission = await sor.check_permission(ctx.agent_id, table.id)
            if permission is not None and not permission.can_read:
                return f'Access denied: you do not have read permission on table "{table.name}".'
            rows = await sor.list_rows(table.id)
        if not rows:
            return f'Table "{table.name}" has no rows.'
        return json.dumps([{"id": row.id, "data": row.data} for row in rows], indent=2, default=str)

    async def update_source_of_record(self, args: dict[str, Any], ctx: ToolContext) -> str:
        table_name = _str_arg(args, "table_name")
        row_id = _str_arg(args, "row_id")
        data = args.get("data")
        if not isinstance(data, dict):
            raise ToolArgumentError("Argument 'data' must be an object")
        async with self.session_factory() as session:
            sor = SorService(session)
            table = await sor.get_table_by_name(ctx.team_id, table_name)
            if table is None:
                return f'Table not found: "{table_name}"'
            permission = await sor.check_permission(ctx.agent_id, table.id)
            if permission is not None and not permission.can_write:
                return f'Access denied: you do not have write permission on table "{table.name}".'
            row = await sor.update_row(table.id, row_id, data)
        if row is None:
            return f"Row not found: {row_id}"
        return f"Row updated: {json.dumps(row.data, default=str)}"

    # ------------------------------------------------------------------
    # Knowledge base and memory
    # ------------------------------------------------------------------

    async def search_knowledge_base(self, args: dict[str, Any], ctx: ToolContext) -> str:
        query = _str_arg(args, "query")
        async with self.session_factory() as session:
            results = await KnowledgeBase(session).search(ctx.team_id, query, _clamp_top_k(args.get("top_k")))
        if not results:
            return "No relevant documents found in the knowledge base."
        return "\n\n---\n\n".join(
            f'[{i}] "{r.document_title}" (score: {r.score:.3f})\n'
            f"{r.content[:KB_PREVIEW_CHARS]}{'...' if len(r.content) > KB_PREVIEW_CHARS else ''}"
            for i, r in enumerate(results, start=1)
        )

    async def remember(self, args: dict[str, Any], ctx: ToolContext) -> str:
        content = _str_arg(args, "content")
        if len(content) > MAX_MEMORY_CHARS:
            return "Error: Memory content too long (max 5000 characters)."
        async with self.session_factory() as session:
            await KnowledgeBase(session).add_memory(ctx.team_id, ctx.agent_id, content, ctx.channel_id)
        return f'Memory saved: "{content[:100]}{"..." if len(content) > 100 else ""}"'

    # ------------------------------------------------------------------
    # Media generation
    # ------------------------------------------------------------------

    async def generate_media(self, media: MediaKind, args: dict[str, Any], ctx: ToolContext) -> str:
        """Generate, charge for, store and post one image, video or 3D model."""
        model_id = str(args.get("model_id") or DEFAULT_MEDIA_MODELS[media.kind])
        model = get_logical_model(model_id)
        if model is None or model.type != media.kind:
            return f"Unknown {media.noun} model: {model_id}"
        routes = sorted_routes(model)
        if not routes:
            return f"No backend configured for model: {model_id}"
        source = _str_arg(args, media.input_arg)

        if self.settings.metering_enabled:
            cost = await self.credit_meter.get_model_cost(model_id) or media.default_cost
            description = (
                f"{media.label} generation: {source[:80]}" if media.kind != "3d" else "3D model generation"
            )
            debit = await self.credit_meter.debit(ctx.team_id, cost, "media_debit", description)
            if not debit.success:
                return (
                    f"Insufficient credits. {media.label} generation costs {cost} credits "
                    f"but your team has {debit.balance}. Purchase more credits in Settings → Billing."
                )

        try:
            api_key = await resolve_fal_key(self.session_factory, self.settings.hosted_mode)
            result = await self.fal_client.generate(api_key, routes[0].provider_model_id, {media.input_arg: source})
            return await self._save_media(media, result, source, ctx)
        except Exception as exc:
            logger.warning("%s generation failed for agent '%s': %s", media.label, ctx.agent_id, exc)
            return f"{media.label} generation failed: {exc}"

    async def _save_media(self, media: MediaKind, result: dict[str, Any], source: str, ctx: ToolContext) -> str:
        if media.kind == "image":
            output = (result.get("images") or [None])[0]
        elif media.kind == "video":
            output = result.get("video")
        else:
            output = result.get("model_mesh")
        if not output or not output.get("url"):
            noun = "model" if media.kind == "3d" else media.kind
            return f"{media.label} generation completed but no {noun} was returned."

        if media.kind == "3d":
            filename = output.get("file_name") or "model.glb"
            summary = "Generated 3D model from image"
        else:
            default_ext = "png" if media.kind == "image" else "mp4"
            content_type = output.get("content_type") or ""
            ext = content_type.split("/")[1] if "/" in content_type else default_ext
            filename = f"{slugify(source)}.{ext}"
            summary = f"Generated {media.kind}: {source[:80]}"

        path = await self.media_store.download_and_save(ctx.team_id, media.kind, output["url"], filename)
        attachment: dict[str, Any] = {
            "type": media.kind,
            "url": path,
            "filename": filename,
            "mime_type": guess_mime_type(filename),
        }
        if media.kind == "image":
            attachment["width"] = output.get("width")
            attachment["height"] = output.get("height")

        async with self.session_factory() as session:
            chat = ChatService(session)
            dm = await chat.get_dm_channel(ctx.agent_id, ctx.team_id)
            await chat.send_message(dm.id, "agent", ctx.agent_id, summary, ctx.team_id, [attachment])
            await ActivityService(session).log_activity("media_generated", ctx.agent_id, summary, team_id=ctx.team_id)
            await session.commit()

        payload: dict[str, Any] = {"type": media.kind, "url": path}
        if media.kind == "image":
            payload.update(width=output.get("width"), height=output.get("height"))
        elif media.kind == "3d":
            payload["filename"] = filename
        return json.dumps(payload)
