"""Agent tools that fetch files into the workspace and upload them to IM."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol

from remicat.fetching import run_fetch_task
from remicat.filekeys import encode_agent_file_key
from remicat.models import FetchError, ImFileBridge, ImUploadRequest
from remicat.naming import guess_mime_type, relative_workspace_path, rooted_path
from remicat.sources import (
    fetch_source_label,
    has_fetch_start_arguments,
    known_total_bytes_for_source,
    parse_attachments,
    parse_documents,
    select_fetch_source,
    string_arg,
)
from remicat.tasks import (
    FetchProgressReporter,
    FetchTaskRegistry,
    TaskStatus,
    fetch_running_value,
    fetch_terminal_value,
    json_text,
)

FETCH_ASYNC_THRESHOLD = 1.5


@dataclass
class ToolContext:
    """Per-call context handed to a tool."""

    metadata: Any = None
    thread_id: str | None = None
    run_id: str = ""
    user_state: Any = None


class Tool(Protocol):
    name: str
    description: str

    def parameters_schema(self) -> dict[str, Any]: ...

    async def execute(self, arguments: Any, ctx: ToolContext) -> str: ...


class ToolRegistry:
    """Tools addressable by name."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Add a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool

    def contains(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def definitions(self) -> list[dict[str, Any]]:
        """Name, description and parameter schema of every tool."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema(),
            }
            for tool in self._tools.values()
        ]


def _get_bool(arguments: Any, key: str) -> bool:
    return isinstance(arguments, Mapping) and arguments.get(key) is True


def _get_str(mapping: Any, key: str) -> str | None:
    if not isinstance(mapping, Mapping):
        return None
    value = mapping.get(key)
    return value if isinstance(value, str) else None


class FetchTool:
    """Fetches IM files, Feishu documents or URLs into the workspace."""

    name = "fetch"
    description = (
        "Fetch a Feishu file_key, a Feishu document URL, or any generic URL into the "
        "workspace. Generic HTML pages are saved as Markdown by default; set raw=true to "
        "save the original response body."
    )

    def __init__(
        self,
        root: str | os.PathLike[str],
        bridge: ImFileBridge | None = None,
        tasks: FetchTaskRegistry | None = None,
    ) -> None:
        self.root = Path(root)
        self.bridge = bridge
        self.tasks = tasks if tasks is not None else FetchTaskRegistry()
        self._background: set[asyncio.Task] = set()

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task_id": {
                    "type": "string",
                    "description": "Existing fetch task id to poll. When provided, do not pass url or file_key.",
                },
                "file_key": {
                    "type": "string",
                    "description": "Self-contained Feishu file key returned by the system, encoded as message_id\\file_key. Optional if exactly one current-message attachment is available.",
                },
                "url": {
                    "type": "string",
                    "description": "URL to fetch. Feishu document URLs are detected automatically and downloaded through the Feishu export/download APIs.",
                },
                "file_type": {
                    "type": "string",
                    "description": "Optional Feishu file type override when fetching a file_key.",
                },
                "path": {
                    "type": "string",
                    "description": "Optional workspace-relative destination path. Defaults to fetch/downloads/<suggested_name>.",
                },
                "overwrite": {
                    "type": "boolean",
                    "description": "Overwrite the destination if it already exists. Defaults to false.",
                },
                "raw": {
                    "type": "boolean",
                    "description": "For generic HTML pages, save the original response body instead of Markdown. Defaults to false.",
                },
            },
            "additionalProperties": False,
        }

    async def _poll(self, task_id: str, arguments: Any) -> str:
        if has_fetch_start_arguments(arguments):
            return (
                "error: task_id cannot be combined with url, file_key, path, overwrite, "
                "raw, or file_type"
            )
        average = await self.tasks.average_speed_bps()
        snapshot = await self.tasks.snapshot(task_id)
        if snapshot is None:
            return f"error: unknown fetch task_id: {task_id}"
        if snapshot.status is TaskStatus.RUNNING:
            return json_text(fetch_running_value(task_id, snapshot, average))
        final = await self.tasks.take(task_id)
        if final is None:
            return f"error: unknown fetch task_id: {task_id}"
        return json_text(fetch_terminal_value(task_id, final))

    async def execute(self, arguments: Any, ctx: ToolContext) -> str:
        """Start a fetch (or poll one by ``task_id``) and return the tool output."""
        task_id = string_arg(arguments, "task_id")
        if task_id is not None:
            return await self._poll(task_id, arguments)

        metadata = ctx.metadata
        if isinstance(metadata, Mapping):
            attachments = parse_attachments(metadata.get("im_attachments"))
            documents = parse_documents(metadata.get("im_documents"))
        else:
            attachments, documents = [], []
        requested_path = string_arg(arguments, "path")
        explicit_file_type = string_arg(arguments, "file_type")
        raw = _get_bool(arguments, "raw")
        overwrite = _get_bool(arguments, "overwrite")

        try:
            source = select_fetch_source(
                string_arg(arguments, "file_key"),
                string_arg(arguments, "url"),
                attachments,
                documents,
            )
        except FetchError as exc:
            return f"error: {exc}"

        task_id = await self.tasks.create_task(
            fetch_source_label(source), known_total_bytes_for_source(source, attachments)
        )
        progress = FetchProgressReporter(task_id, self.tasks)
        background = asyncio.create_task(
            run_fetch_task(
                self.root,
                self.bridge,
                metadata,
                source,
                requested_path,
                overwrite,
                explicit_file_type,
                raw,
                progress,
            )
        )
        self._background.add(background)
        background.add_done_callback(self._background.discard)

        if await self.tasks.wait_for_terminal(task_id, FETCH_ASYNC_THRESHOLD) is not None:
            snapshot = await self.tasks.take(task_id)
            if snapshot is None:
                return f"error: fetch task disappeared: {task_id}"
            if snapshot.status is TaskStatus.COMPLETED:
                return json_text(fetch_terminal_value(None, snapshot))
            if snapshot.status is TaskStatus.FAILED:
                return f"error: {snapshot.error or ''}"
            return json_text(
                fetch_running_value(task_id, snapshot, await self.tasks.average_speed_bps())
            )

        snapshot = await self.tasks.snapshot(task_id)
        if snapshot is None:
            return f"error: fetch task disappeared: {task_id}"
        if snapshot.status is TaskStatus.RUNNING:
            return json_text(
                fetch_running_value(task_id, snapshot, await self.tasks.average_speed_bps())
            )
        final = await self.tasks.take(task_id)
        if final is None:
            return f"error: fetch task disappeared: {task_id}"
        return json_text(fetch_terminal_value(None, final))


class ImUploadTool:
    """Uploads a workspace file to the current IM conversation."""

    name = "im_upload"
    description = (
        "Upload a local workspace file to the current IM conversation and return the "
        "Feishu file identifiers and link."
    )

    def __init__(self, root: str | os.PathLike[str], bridge: ImFileBridge) -> None:
        self.root = Path(root)
        self.bridge = bridge

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Workspace-relative path of the local file to upload.",
                },
                "file_name": {
                    "type": "string",
                    "description": "Optional file name to present on IM. Defaults to the source file name.",
                },
                "mime_type": {
                    "type": "string",
                    "description": "Optional MIME type override. Defaults to a best-effort guess from the file extension.",
                },
            },
            "required": ["path"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: Any, ctx: ToolContext) -> str:
        """Upload the file named by ``path`` and return its IM identifiers as JSON."""
        metadata = ctx.metadata
        if metadata is None:
            return "error: im_upload requires request metadata"
        platform = _get_str(metadata, "platform") or ""
        message_id = _get_str(metadata, "message_id") or ""
        chat_id = _get_str(metadata, "thread_id") or ""
        if not platform or not chat_id:
            return "error: current IM platform context is incomplete"

        path_arg = _get_str(arguments, "path")
        if path_arg is None:
            return "error: path is required"
        source_path = rooted_path(self.root, path_arg)
        try:
            content = await asyncio.to_thread(source_path.read_bytes)
        except OSError as exc:
            return f"error: unable to read upload source: {exc}"

        file_name = _get_str(arguments, "file_name") or source_path.name or "upload.bin"
        mime_type = _get_str(arguments, "mime_type") or guess_mime_type(source_path)

        try:
            uploaded = await self.bridge.upload(
                ImUploadRequest(
                    platform=platform,
                    message_id=message_id,
                    chat_id=chat_id,
                    file_name=file_name,
                    mime_type=mime_type,
                    content=content,
                    file_type="",
                )
            )
        except Exception as exc:
            return f"error: {exc}"

        return json_text(
            {
                "workspace_path": relative_workspace_path(self.root, source_path),
                "file_name": uploaded.file_name,
                "mime_type": mime_type,
                "file_key": encode_agent_file_key(uploaded.message_id, uploaded.file_key),
                "resource_url": uploaded.resource_url,
            }
        )


def register_fetch_tool(
    registry: ToolRegistry, root: str | os.PathLike[str], bridge: ImFileBridge | None
) -> None:
    """Register the fetch tool rooted at ``root``."""
    registry.register(FetchTool(root, bridge))


def register_im_tools(
    registry: ToolRegistry, root: str | os.PathLike[str], bridge: ImFileBridge
) -> None:
    """Register the IM upload tool rooted at ``root``."""
    registry.register(ImUploadTool(root, bridge))