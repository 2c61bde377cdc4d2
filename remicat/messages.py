"""Turning incoming IM messages into model content, and agent-side replies."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Mapping, MutableMapping, Sequence

TEXT = "text"
IMAGE_URL = "image_url"

_KNOWN_COMMANDS_HELP = (
    "**Agent 支持的指令：**\n"
    "• `/compact` — 压缩短期记忆\n"
    "• `/cancel` — 取消正在运行的任务\n"
    "• `/tools` — 列出可用工具"
)


@dataclass(frozen=True)
class ContentPart:
    """One part of a multi-part message: text or an image URL."""

    kind: str
    value: str


@dataclass(frozen=True)
class MessageContent:
    """Content for the model: plain text, or a sequence of parts."""

    text: str = ""
    parts: tuple[ContentPart, ...] = ()

    @property
    def is_multipart(self) -> bool:
        return bool(self.parts)


def build_message_content(
    text: str,
    image_urls: Sequence[str],
    had_images: bool,
    attachment_count: int,
    document_count: int,
) -> MessageContent:
    """Build model content from message text and images, with a fallback for empty messages."""
    trimmed = text.strip()
    valid_images = [url.strip() for url in image_urls if url.strip()]

    if valid_images:
        parts: list[ContentPart] = []
        if trimmed:
            parts.append(ContentPart(TEXT, trimmed))
        parts.extend(ContentPart(IMAGE_URL, url) for url in valid_images)
        return MessageContent(parts=tuple(parts))

    if trimmed:
        return MessageContent(text=trimmed)

    return MessageContent(
        text=fallback_message_text(had_images, attachment_count, document_count)
    )


def fallback_message_text(had_images: bool, attachment_count: int, document_count: int) -> str:
    """Placeholder text describing a message that carried no usable text."""
    if had_images:
        return "[用户发送了图片]"
    has_attachments = attachment_count > 0
    has_documents = document_count > 0
    if has_attachments and has_documents:
        return "[用户发送了附件和文档链接]"
    if has_attachments:
        return "[用户发送了附件]"
    if has_documents:
        return "[用户发送了文档链接]"
    return "[用户发送了一条空白消息]"


def apply_secrets_sync(
    new_entries: Mapping[str, str],
    known_keys: Iterable[str],
    environ: MutableMapping[str, str] | None = None,
) -> set[str]:
    """Set ``new_entries`` in the environment, drop keys no longer present, return the new key set."""
    env = os.environ if environ is None else environ
    for key, value in new_entries.items():
        env[key] = value
    for old_key in known_keys:
        if old_key not in new_entries:
            env.pop(old_key, None)
    return set(new_entries)


def unknown_command_reply(text: str) -> str:
    """Reply explaining that a slash command is not recognised."""
    trimmed = text.strip()
    if not trimmed.startswith("/"):
        raise ValueError(f"not a slash command: {text!r}")
    rest = trimmed.lstrip("/")
    words = rest.split()
    cmd_name = words[0] if words else rest
    return f"❌ 未知指令: `/{cmd_name}`\n\n{_KNOWN_COMMANDS_HELP}"


def tools_list_text(tools: Iterable[tuple[str, str]]) -> str:
    """Markdown list of available tools from (name, description) pairs."""
    lines = "".join(f"• `{name}` — {desc}\n" for name, desc in tools)
    return "**可用工具列表：**\n\n" + lines