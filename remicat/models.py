"""Data types shared by the IM file tools and the IM bridge."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping


class FetchError(Exception):
    """Raised when a fetch or IM bridge operation fails."""


def _require_str(data: Mapping[str, Any], key: str) -> str:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


def _require_uint(data: Mapping[str, Any], key: str) -> int:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field `{key}` must be a non-negative integer")
    return value


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected an object")
    return data


@dataclass
class ImAttachment:
    """A file attached to an IM message."""

    key: str = ""
    name: str = ""
    mime_type: str = ""
    size_bytes: int = 0
    file_type: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "ImAttachment":
        """Build from a decoded JSON object; `file_type` is optional."""
        data = _require_mapping(data)
        file_type = data.get("file_type", "")
        if file_type is None:
            file_type = ""
        if not isinstance(file_type, str):
            raise ValueError("field `file_type` must be a string")
        return cls(
            key=_require_str(data, "key"),
            name=_require_str(data, "name"),
            mime_type=_require_str(data, "mime_type"),
            size_bytes=_require_uint(data, "size_bytes"),
            file_type=file_type,
        )


@dataclass
class ImDocument:
    """A cloud document linked from an IM message."""

    url: str = ""
    title: str = ""
    doc_type: str = ""
    token: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "ImDocument":
        """Build from a decoded JSON object; every field is required."""
        data = _require_mapping(data)
        return cls(
            url=_require_str(data, "url"),
            title=_require_str(data, "title"),
            doc_type=_require_str(data, "doc_type"),
            token=_require_str(data, "token"),
        )


@dataclass
class ImDownloadRequest:
    """Request to download an attachment or document through the IM platform."""

    platform: str
    message_id: str
    chat_id: str
    attachment_key: str | None = None
    document_url: str | None = None
    file_type: str = ""


@dataclass
class DownloadedImFile:
    """A file downloaded through the IM platform."""

    file_name: str
    mime_type: str
    content: bytes
    source_label: str


@dataclass
class ImUploadRequest:
    """Request to upload a file to the current IM conversation."""

    platform: str
    message_id: str
    chat_id: str
    file_name: str
    mime_type: str
    content: bytes
    file_type: str = ""


@dataclass
class UploadedImFile:
    """Identifiers of a file uploaded to the IM platform."""

    file_name: str
    file_key: str
    message_id: str
    resource_url: str


class ImFileBridge(ABC):
    """Moves files between the workspace and the IM platform."""

    @abstractmethod
    async def download(self, request: ImDownloadRequest) -> DownloadedImFile:
        """Download a file described by `request`; raise FetchError on failure."""

    @abstractmethod
    async def upload(self, request: ImUploadRequest) -> UploadedImFile:
        """Upload a file described by `request`; raise FetchError on failure."""