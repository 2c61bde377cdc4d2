"""Selection and classification of what a fetch request should download."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Sequence, TypeVar
from urllib.parse import SplitResult, urlsplit

from remicat.filekeys import file_key_matches
from remicat.models import FetchError, ImAttachment, ImDocument

_T = TypeVar("_T")

_SPECIAL_SCHEMES = frozenset({"http", "https", "ws", "wss", "ftp"})
_DOCUMENT_SEGMENTS = frozenset(
    {"docx", "docs", "doc", "wiki", "sheet", "sheets", "base", "bitable"}
)
_FEISHU_HOSTS = ("feishu.cn", "larksuite.com")
_START_STRING_ARGUMENTS = ("file_key", "url", "file_type", "path")


class FetchSourceKind(Enum):
    """Where a fetch gets its bytes from."""

    FILE_KEY = "file_key"
    FEISHU_DOCUMENT_URL = "feishu_document_url"
    GENERIC_URL = "generic_url"


@dataclass(frozen=True)
class FetchSource:
    """A resolved fetch source: an IM file key or a URL."""

    kind: FetchSourceKind
    file_key: str = ""
    file_type: str = ""
    url: str = ""


def _parse_list(value: Any, factory: Callable[[Any], _T]) -> list[_T]:
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    try:
        return [factory(item) for item in value]
    except ValueError:
        return []


def parse_attachments(value: Any) -> list[ImAttachment]:
    """Decode attachments from metadata (a list or a JSON string); bad input gives []."""
    return _parse_list(value, ImAttachment.from_dict)


def parse_documents(value: Any) -> list[ImDocument]:
    """Decode documents from metadata (a list or a JSON string); bad input gives []."""
    return _parse_list(value, ImDocument.from_dict)


def _parse_absolute_url(url: str) -> SplitResult | None:
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.scheme:
        return None
    if parts.scheme.lower() in _SPECIAL_SCHEMES and not parts.netloc:
        return None
    return parts


def select_fetch_source(
    requested_file_key: str | None,
    requested_url: str | None,
    attachments: Sequence[ImAttachment],
    documents: Sequence[ImDocument],
) -> FetchSource:
    """Pick the fetch source from explicit arguments or the current message."""
    if requested_file_key is not None and requested_url is not None:
        raise FetchError("file_key and url are mutually exclusive")
    if requested_file_key is not None:
        file_type = next(
            (a.file_type for a in attachments if file_key_matches(a.key, requested_file_key)),
            "",
        )
        return FetchSource(
            FetchSourceKind.FILE_KEY, file_key=requested_file_key, file_type=file_type
        )
    if requested_url is not None:
        return classify_url_source(requested_url)

    candidates = len(attachments) + len(documents)
    if candidates == 0:
        raise FetchError(
            "fetch requires url or file_key, or an unambiguous current-message attachment/document"
        )
    if candidates > 1:
        raise FetchError(
            "multiple fetchable items are available; specify file_key or url explicitly"
        )
    if attachments:
        attachment = attachments[0]
        return FetchSource(
            FetchSourceKind.FILE_KEY,
            file_key=attachment.key,
            file_type=attachment.file_type,
        )
    return FetchSource(FetchSourceKind.FEISHU_DOCUMENT_URL, url=documents[0].url)


def classify_url_source(url: str) -> FetchSource:
    """Classify a URL as a Feishu document or a generic URL; raise on invalid URLs."""
    if _parse_absolute_url(url) is None:
        raise FetchError(f"invalid url: {url}")
    if is_feishu_document_url(url):
        return FetchSource(FetchSourceKind.FEISHU_DOCUMENT_URL, url=url)
    return FetchSource(FetchSourceKind.GENERIC_URL, url=url)


def is_feishu_document_url(url: str) -> bool:
    """Whether ``url`` points at a Feishu/Lark cloud document."""
    parts = _parse_absolute_url(url)
    if parts is None:
        return False
    try:
        host = parts.hostname
    except ValueError:
        return False
    if not host:
        return False
    host = host.lower()
    if not any(name in host for name in _FEISHU_HOSTS):
        return False
    if not parts.netloc and not parts.path.startswith("/"):
        return False

    segments = [segment for segment in parts.path.split("/") if segment]
    for index, segment in enumerate(segments):
        if segment in _DOCUMENT_SEGMENTS:
            return index + 1 < len(segments)
        if segment == "drive" and segments[index + 1 : index + 2] == ["file"]:
            return index + 2 < len(segments)
    return False


def fetch_source_label(source: FetchSource) -> str:
    """Human-readable label for a fetch source."""
    if source.kind is FetchSourceKind.FILE_KEY:
        return f"file_key:{source.file_key}"
    return source.url


def known_total_bytes_for_source(
    source: FetchSource, attachments: Sequence[ImAttachment]
) -> int | None:
    """Size announced by the matching attachment, when known and non-zero."""
    if source.kind is not FetchSourceKind.FILE_KEY:
        return None
    match = next(
        (a for a in attachments if file_key_matches(a.key, source.file_key)), None
    )
    if match is None or match.size_bytes <= 0:
        return None
    return match.size_bytes


def string_arg(arguments: Any, key: str) -> str | None:
    """A trimmed, non-empty string argument, or None."""
    if not isinstance(arguments, Mapping):
        return None
    value = arguments.get(key)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def metadata_string(metadata: Any, key: str) -> str | None:
    """A trimmed, non-empty string from request metadata, or None."""
    if metadata is None:
        return None
    return string_arg(metadata, key)


def has_fetch_start_arguments(arguments: Any) -> bool:
    """Whether any argument that starts a new fetch is present."""
    if any(string_arg(arguments, key) is not None for key in _START_STRING_ARGUMENTS):
        return True
    if not isinstance(arguments, Mapping):
        return False
    return arguments.get("overwrite") is True or arguments.get("raw") is True