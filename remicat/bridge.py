"""IM file bridge that exchanges requests and responses over a queue."""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from dataclasses import dataclass
from typing import Any, Union

from remicat.models import (
    DownloadedImFile,
    FetchError,
    ImDownloadRequest,
    ImFileBridge,
    ImUploadRequest,
    UploadedImFile,
)

BridgePayload = Union[ImDownloadRequest, ImUploadRequest]


@dataclass(frozen=True)
class BridgeRequest:
    """Outgoing request for the daemon to perform an IM file operation."""

    request_id: str
    reply_to_message_id: str
    payload: BridgePayload


@dataclass(frozen=True)
class BridgeResponse:
    """The daemon's answer to a BridgeRequest."""

    request_id: str
    error: str = ""
    payload: DownloadedImFile | UploadedImFile | None = None


class QueueImFileBridge(ImFileBridge):
    """Sends bridge requests to an outbox and awaits matching responses."""

    def __init__(self, outbox: Any) -> None:
        self._outbox = outbox
        self._pending: dict[str, asyncio.Future[BridgeResponse]] = {}

    def handle_response(self, response: BridgeResponse) -> None:
        """Deliver a response to the request waiting for it; unknown ids are ignored."""
        future = self._pending.pop(response.request_id, None)
        if future is not None and not future.done():
            future.set_result(response)

    async def _request(self, reply_to_message_id: str, payload: BridgePayload) -> BridgeResponse:
        request_id = str(uuid.uuid4())
        future: asyncio.Future[BridgeResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._outbox.put(
                BridgeRequest(
                    request_id=request_id,
                    reply_to_message_id=reply_to_message_id,
                    payload=payload,
                )
            )
        except Exception as exc:
            self._pending.pop(request_id, None)
            raise FetchError(f"send IM bridge request failed: {exc}") from exc
        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def download(self, request: ImDownloadRequest) -> DownloadedImFile:
        payload = dataclasses.replace(
            request,
            attachment_key=request.attachment_key or "",
            document_url=request.document_url or "",
        )
        response = await self._request(request.message_id, payload)
        if response.error:
            raise FetchError(response.error)
        if response.payload is None:
            raise FetchError("missing IM bridge download payload")
        if not isinstance(response.payload, DownloadedImFile):
            raise FetchError("unexpected IM bridge response payload for download")
        return response.payload

    async def upload(self, request: ImUploadRequest) -> UploadedImFile:
        response = await self._request(request.message_id, request)
        if response.error:
            raise FetchError(response.error)
        if response.payload is None:
            raise FetchError("missing IM bridge upload payload")
        if not isinstance(response.payload, UploadedImFile):
            raise FetchError("unexpected IM bridge response payload for upload")
        return response.payload