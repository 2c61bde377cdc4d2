"""Downloading fetch sources into the workspace."""

from __future__ import annotations

import asyncio
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import httpx

from remicat.filekeys import decode_agent_file_key
from remicat.htmlmd import html_to_markdown
from remicat.models import FetchError, ImDownloadRequest, ImFileBridge
from remicat.naming import (
    content_disposition_filename,
    is_html_content_type,
    markdown_file_name,
    raw_file_name,
    relative_workspace_path,
    rooted_path,
    sanitize_file_name,
)
from remicat.sources import FetchSource, FetchSourceKind, metadata_string
from remicat.tasks import CompletedFetchResult, FetchProgressReporter

FETCH_TIMEOUT_SECS = 30.0
FETCH_USER_AGENT = "remi-cat-fetch/0.1"
FETCH_MAX_REDIRECTS = 10

_SPECIAL_SCHEMES = frozenset({"http", "https", "ws", "wss", "ftp"})


@dataclass
class FetchedFile:
    """Bytes obtained from a fetch source, with naming information."""

    file_name: str
    mime_type: str
    content: bytes
    source_label: str
    mode: str
    resolved_url: str | None = None


@dataclass
class FetchCompletion:
    """A fetched file and the number of bytes transferred to get it."""

    fetched: FetchedFile
    downloaded_bytes: int


def _check_url(url: str) -> None:
    try:
        parts = urlsplit(url.strip())
    except ValueError as exc:
        raise FetchError(f"invalid url: {url}") from exc
    if not parts.scheme or (parts.scheme.lower() in _SPECIAL_SCHEMES and not parts.netloc):
        raise FetchError(f"invalid url: {url}")


def _parse_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


async def fetch_generic_url(url: str, raw: bool) -> FetchedFile:
    """Fetch a URL without progress reporting."""
    completion = await fetch_generic_url_with_progress(url, raw, None)
    return completion.fetched


async def fetch_generic_url_with_progress(
    url: str, raw: bool, progress: FetchProgressReporter | None
) -> FetchCompletion:
    """Download a URL; HTML pages become Markdown unless ``raw`` is set."""
    _check_url(url)
    async with httpx.AsyncClient(
        timeout=FETCH_TIMEOUT_SECS,
        follow_redirects=True,
        max_redirects=FETCH_MAX_REDIRECTS,
        headers={"User-Agent": FETCH_USER_AGENT},
    ) as client:
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchError(
                        f"fetch HTTP {response.status_code} {response.reason_phrase} for {url}"
                    )
                resolved_url = str(response.url)
                headers = response.headers
                total_bytes = _parse_length(headers.get("content-length"))
                if progress is not None:
                    await progress.set_total_bytes(total_bytes)
                content_type_header = headers.get("content-type")
                if content_type_header is None:
                    content_type = "application/octet-stream"
                else:
                    content_type = content_type_header.split(";", 1)[0].strip()
                disposition = headers.get("content-disposition")
                disposition_name = (
                    content_disposition_filename(disposition) if disposition is not None else None
                )
                body = bytearray()
                try:
                    async for chunk in response.aiter_bytes():
                        if progress is not None:
                            await progress.add_downloaded_bytes(len(chunk))
                        body.extend(chunk)
                except httpx.HTTPError as exc:
                    raise FetchError(f"read fetch response body: {exc}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"request url: {url}: {exc}") from exc

    content = bytes(body)
    downloaded_bytes = len(content)

    if is_html_content_type(content_type) and not raw:
        html = content.decode("utf-8", errors="replace")
        markdown = html_to_markdown(html)
        return FetchCompletion(
            fetched=FetchedFile(
                file_name=markdown_file_name(disposition_name, resolved_url, html),
                mime_type="text/markdown",
                content=markdown.encode("utf-8"),
                source_label=url,
                mode="url_markdown",
                resolved_url=resolved_url,
            ),
            downloaded_bytes=downloaded_bytes,
        )

    return FetchCompletion(
        fetched=FetchedFile(
            file_name=raw_file_name(disposition_name, resolved_url, content_type),
            mime_type=content_type,
            content=content,
            source_label=url,
            mode="url_raw" if raw else "url_file",
            resolved_url=resolved_url,
        ),
        downloaded_bytes=downloaded_bytes,
    )


async def _report_whole(progress: FetchProgressReporter | None, size: int) -> None:
    if progress is not None:
        await progress.set_total_bytes(size)
        await progress.set_downloaded_bytes(size)


async def execute_fetch_source(
    source: FetchSource,
    bridge: ImFileBridge | None,
    metadata: Any,
    explicit_file_type: str | None,
    raw: bool,
    progress: FetchProgressReporter | None,
) -> FetchCompletion:
    """Obtain the bytes of ``source`` through the IM bridge or over HTTP."""
    if source.kind is FetchSourceKind.FILE_KEY:
        if bridge is None:
            raise FetchError("fetching a Feishu file_key requires IM bridge support")
        fallback_message_id = metadata_string(metadata, "message_id") or ""
        chat_id = metadata_string(metadata, "thread_id") or ""
        decoded = decode_agent_file_key(source.file_key)
        message_id = (decoded.message_id if decoded is not None else "") or fallback_message_id
        if not message_id:
            raise FetchError(
                "file_key must include an embedded message_id or be used in current IM context"
            )
        if explicit_file_type and explicit_file_type.strip():
            file_type = explicit_file_type
        elif source.file_type.strip():
            file_type = source.file_type
        else:
            file_type = "file"
        downloaded = await bridge.download(
            ImDownloadRequest(
                platform="feishu",
                message_id=message_id,
                chat_id=chat_id,
                attachment_key=source.file_key,
                document_url=None,
                file_type=file_type,
            )
        )
        await _report_whole(progress, len(downloaded.content))
        return FetchCompletion(
            fetched=FetchedFile(
                file_name=downloaded.file_name,
                mime_type=downloaded.mime_type,
                content=downloaded.content,
                source_label=downloaded.source_label,
                mode="feishu_file",
            ),
            downloaded_bytes=len(downloaded.content),
        )

    if source.kind is FetchSourceKind.FEISHU_DOCUMENT_URL:
        if bridge is None:
            raise FetchError("fetching a Feishu document URL requires IM bridge support")
        downloaded = await bridge.download(
            ImDownloadRequest(
                platform="feishu",
                message_id=metadata_string(metadata, "message_id") or "",
                chat_id=metadata_string(metadata, "thread_id") or "",
                attachment_key=None,
                document_url=source.url,
                file_type="",
            )
        )
        await _report_whole(progress, len(downloaded.content))
        return FetchCompletion(
            fetched=FetchedFile(
                file_name=downloaded.file_name,
                mime_type=downloaded.mime_type,
                content=downloaded.content,
                source_label=downloaded.source_label,
                mode="feishu_document",
                resolved_url=source.url,
            ),
            downloaded_bytes=len(downloaded.content),
        )

    return await fetch_generic_url_with_progress(source.url, raw, progress)


async def choose_fetch_target(
    root: str | os.PathLike[str],
    requested_path: str | None,
    suggested_name: str,
    overwrite: bool,
) -> Path:
    """Destination path for a fetched file, avoiding existing files unless overwriting."""
    if requested_path is not None and requested_path.strip():
        desired = rooted_path(root, requested_path)
    else:
        desired = rooted_path(root, f"fetch/downloads/{sanitize_file_name(suggested_name)}")

    if overwrite or not desired.exists():
        return desired

    stem = desired.stem or "download"
    extension = desired.suffix[1:]
    suffix = uuid.uuid4().hex
    file_name = f"{stem}_{suffix}.{extension}" if extension else f"{stem}_{suffix}"
    return desired.with_name(file_name)


def _write_file(target: Path, content: bytes) -> None:
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FetchError("create parent directory") from exc
    try:
        target.write_bytes(content)
    except OSError as exc:
        raise FetchError("write fetched file") from exc


async def run_fetch_task(
    root: str | os.PathLike[str],
    bridge: ImFileBridge | None,
    metadata: Any,
    source: FetchSource,
    requested_path: str | None,
    overwrite: bool,
    explicit_file_type: str | None,
    raw: bool,
    progress: FetchProgressReporter,
) -> None:
    """Fetch ``source`` into the workspace and record the outcome on ``progress``."""
    started = time.monotonic()
    try:
        completion = await execute_fetch_source(
            source, bridge, metadata, explicit_file_type, raw, progress
        )
        fetched = completion.fetched
        target = await choose_fetch_target(root, requested_path, fetched.file_name, overwrite)
        await asyncio.to_thread(_write_file, target, fetched.content)
        result = CompletedFetchResult(
            workspace_path=relative_workspace_path(root, target),
            file_name=fetched.file_name,
            mime_type=fetched.mime_type,
            size_bytes=len(fetched.content),
            source=fetched.source_label,
            mode=fetched.mode,
            resolved_url=fetched.resolved_url,
        )
    except Exception as exc:
        await progress.fail(str(exc))
        return
    await progress.complete(result, completion.downloaded_bytes, time.monotonic() - started)