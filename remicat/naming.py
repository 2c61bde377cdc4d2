"""File-name, MIME-type and workspace-path helpers for fetched and uploaded files."""

from __future__ import annotations

import os
import string
from pathlib import Path, PurePath, PurePosixPath
from urllib.parse import SplitResult, urlsplit

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)
_SAFE_CHARS = frozenset(string.ascii_letters + string.digits + "._-")

_MIME_BY_EXTENSION = {
    "txt": "text/plain",
    "md": "text/plain",
    "json": "application/json",
    "csv": "text/csv",
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "zip": "application/zip",
}

_EXTENSION_BY_CONTENT_TYPE = {
    "text/plain": "txt",
    "text/html": "html",
    "application/xhtml+xml": "html",
    "text/markdown": "md",
    "application/json": "json",
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
}

_HTML_CONTENT_TYPES = frozenset({"text/html", "application/xhtml+xml"})


def _split_file_name(file_name: str) -> tuple[str, str | None]:
    """Split a bare file name into stem and extension, dot-files keeping no extension."""
    if file_name == "..":
        return file_name, None
    before, dot, after = file_name.rpartition(".")
    if not dot or not before:
        return file_name, None
    return before, after


def _file_stem(name: str) -> str | None:
    file_name = PurePosixPath(name).name if name else ""
    if not file_name or file_name == "..":
        return None
    return _split_file_name(file_name)[0]


def _parse_url(url: str) -> SplitResult | None:
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.scheme or not (parts.netloc or parts.path):
        return None
    return parts


def _path_segments(parts: SplitResult) -> list[str] | None:
    if not parts.netloc and not parts.path.startswith("/"):
        return None
    return [segment for segment in parts.path.split("/") if segment]


def _host(parts: SplitResult) -> str | None:
    try:
        host = parts.hostname
    except ValueError:
        return None
    return host or None


def sanitize_file_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with an underscore."""
    filtered = "".join(c if c in _SAFE_CHARS else "_" for c in name)
    return filtered or "file.bin"


def extract_html_title(html: str) -> str | None:
    """Return the sanitised contents of the first ``<title>`` element, if any."""
    lower = html.translate(_ASCII_LOWER)
    start = lower.find("<title")
    if start < 0:
        return None
    tag_end = lower.find(">", start)
    if tag_end < 0:
        return None
    title_open = tag_end + 1
    title_close = lower.find("</title>", title_open)
    if title_close < 0:
        return None
    title = html[title_open:title_close].strip()
    return sanitize_file_name(title) if title else None


def file_name_from_url(url: str) -> str | None:
    """Return the sanitised last non-empty path segment of ``url``."""
    parts = _parse_url(url)
    if parts is None:
        return None
    segments = _path_segments(parts)
    if not segments:
        return None
    return sanitize_file_name(segments[-1])


def with_extension(name: str, extension: str) -> str:
    """Replace the extension of ``name`` and sanitise the result."""
    stem = _file_stem(name) or name
    return f"{sanitize_file_name(stem)}.{extension}"


def content_disposition_filename(value: str) -> str | None:
    """Extract the file name from a Content-Disposition header value."""
    for part in value.split(";"):
        part = part.strip()
        if part.startswith("filename="):
            return part[len("filename="):].strip('"')
        if part.startswith("filename*=UTF-8''"):
            return part[len("filename*=UTF-8''"):]
    return None


def is_html_content_type(content_type: str) -> bool:
    """Whether the (parameter-free) content type denotes an HTML page."""
    return content_type in _HTML_CONTENT_TYPES


def markdown_file_name(disposition_name: str | None, resolved_url: str, html: str) -> str:
    """Choose a ``.md`` file name for a page converted to Markdown."""
    if disposition_name is not None:
        return with_extension(disposition_name, "md")
    title = extract_html_title(html)
    if title is not None:
        return with_extension(title, "md")
    parts = _parse_url(resolved_url)
    if parts is not None:
        name = file_name_from_url(resolved_url)
        if name is not None:
            return with_extension(name, "md")
        host = _host(parts)
        if host is not None:
            return with_extension(host, "md")
    return "page.md"


def raw_file_name(disposition_name: str | None, resolved_url: str, content_type: str) -> str:
    """Choose a file name for a response body saved as-is."""
    if disposition_name is not None:
        return sanitize_file_name(disposition_name)
    extension = extension_for_content_type(content_type)
    parts = _parse_url(resolved_url)
    if parts is not None:
        name = file_name_from_url(resolved_url)
        if name is not None:
            if "." in name or not extension:
                return name
            return f"{name}.{extension}"
        host = _host(parts)
        if host is not None:
            if not extension:
                return sanitize_file_name(host)
            return f"{sanitize_file_name(host)}.{extension}"
    return f"download.{extension}" if extension else "download"


def guess_mime_type(path: str | os.PathLike[str]) -> str:
    """Best-effort MIME type from a file extension."""
    _, extension = _split_file_name(PurePath(path).name)
    return _MIME_BY_EXTENSION.get((extension or "").translate(_ASCII_LOWER), "application/octet-stream")


def extension_for_content_type(content_type: str) -> str:
    """File extension for a content type, ``bin`` when unknown."""
    return _EXTENSION_BY_CONTENT_TYPE.get(content_type, "bin")


def rooted_path(root: str | os.PathLike[str], path: str) -> Path:
    """Join a workspace-relative path onto ``root``, ignoring leading slashes."""
    return Path(root) / path.lstrip("/")


def relative_workspace_path(root: str | os.PathLike[str], full: str | os.PathLike[str]) -> str:
    """Express ``full`` relative to ``root`` with forward slashes."""
    full_path = Path(full)
    try:
        text = "/".join(full_path.relative_to(root).parts)
    except ValueError:
        text = str(full_path)
    return text.replace("\\", "/")