import asyncio
import json

import pytest

from remicat.models import DownloadedImFile, FetchError, ImFileBridge, UploadedImFile
from remicat.tasks import FetchTaskRegistry
from remicat.tools import (
    FetchTool,
    ImUploadTool,
    ToolContext,
    ToolRegistry,
    register_fetch_tool,
    register_im_tools,
)

_PROXY_VARS = (
    "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy",
)


@pytest.fixture(autouse=True)
def _no_proxy(monkeypatch):
    for name in _PROXY_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeBridge(ImFileBridge):
    def __init__(self, error=None):
        self.downloads = []
        self.uploads = []
        self.error = error

    async def download(self, request):
        self.downloads.append(request)
        if self.error:
            raise FetchError(self.error)
        return DownloadedImFile("report.pdf", "application/pdf", b"abc", "feishu:report")

    async def upload(self, request):
        self.uploads.append(request)
        if self.error:
            raise FetchError(self.error)
        return UploadedImFile(
            file_name=request.file_name,
            file_key="file_1",
            message_id="msg_1",
            resource_url="https://files.example.com/file_1",
        )


async def _serve_slow(body: bytes, content_type: str, path: str, chunk_count: int, delay: float):
    async def handle(reader, writer):
        try:
            await reader.readuntil(b"\r\n\r\n")
        except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
            pass
        head = (
            f"HTTP/1.1 200 OK\r\nContent-Type: {content_type}\r\n"
            f"Content-Length: {len(body)}\r\nConnection: close\r\n\r\n"
        )
        writer.write(head.encode())
        await writer.drain()
        size = max(len(body) // chunk_count, 1)
        for start in range(0, len(body), size):
            writer.write(body[start:start + size])
            await writer.drain()
            await asyncio.sleep(delay)
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return f"http://127.0.0.1:{port}{path}", server


def _attachment_metadata():
    return {
        "message_id": "msg_1",
        "thread_id": "chat_1",
        "platform": "feishu",
        "im_attachments": [
            {
                "key": "msg_1\\file_1",
                "name": "report.pdf",
                "mime_type": "application/pdf",
                "size_bytes": 3,
                "file_type": "file",
            }
        ],
    }


def test_fetch_schema_does_not_expose_legacy_download_aliases(tmp_path):
    properties = FetchTool(tmp_path).parameters_schema()["properties"]
    assert "task_id" in properties
    assert "file_key" in properties
    assert "url" in properties
    assert "attachment_key" not in properties
    assert "document_url" not in properties


@pytest.mark.asyncio
async def test_slow_fetch_returns_task_id_and_poll_completes(tmp_path):
    tool = FetchTool(tmp_path)
    url, server = await _serve_slow(b"a" * (256 * 1024), "text/plain", "/slow.txt", 8, 0.3)
    ctx = ToolContext(thread_id="test-thread", run_id="test-run")
    try:
        started = json.loads(await tool.execute({"url": url}, ctx))
        assert started["status"] == "running"
        assert isinstance(started["task_id"], str)
        assert isinstance(started["estimated_speed_bytes_per_sec"], (int, float))
        task_id = started["task_id"]

        completed = None
        for _ in range(30):
            await asyncio.sleep(0.15)
            polled = json.loads(await tool.execute({"task_id": task_id}, ctx))
            if polled["status"] == "running":
                continue
            assert polled["status"] == "completed"
            completed = polled
            break
    finally:
        server.close()

    assert completed is not None
    assert completed["task_id"] == task_id
    assert (tmp_path / completed["workspace_path"]).exists()
    assert completed["workspace_path"] == "fetch/downloads/slow.txt"


@pytest.mark.asyncio
async def test_fetch_file_key_from_current_message(tmp_path):
    bridge = FakeBridge()
    tool = FetchTool(tmp_path, bridge)
    output = json.loads(await tool.execute({}, ToolContext(metadata=_attachment_metadata())))
    assert output["status"] == "completed"
    assert output["workspace_path"] == "fetch/downloads/report.pdf"
    assert output["mode"] == "feishu_file"
    assert output["size_bytes"] == 3
    assert "task_id" not in output
    assert (tmp_path / "fetch" / "downloads" / "report.pdf").read_bytes() == b"abc"
    request = bridge.downloads[0]
    assert request.message_id == "msg_1"
    assert request.attachment_key == "msg_1\\file_1"
    assert request.file_type == "file"


@pytest.mark.asyncio
async def test_fetch_failure_is_reported_as_error(tmp_path):
    tool = FetchTool(tmp_path, FakeBridge(error="boom"))
    output = await tool.execute({}, ToolContext(metadata=_attachment_metadata()))
    assert output == "error: boom"


@pytest.mark.asyncio
async def test_fetch_without_any_source(tmp_path):
    output = await FetchTool(tmp_path).execute({}, ToolContext())
    assert output == (
        "error: fetch requires url or file_key, or an unambiguous "
        "current-message attachment/document"
    )


@pytest.mark.asyncio
async def test_fetch_rejects_file_key_with_url(tmp_path):
    output = await FetchTool(tmp_path).execute(
        {"file_key": "a\\b", "url": "https://example.com/"}, ToolContext()
    )
    assert output == "error: file_key and url are mutually exclusive"


@pytest.mark.asyncio
async def test_task_id_cannot_be_combined(tmp_path):
    output = await FetchTool(tmp_path).execute({"task_id": "x", "raw": True}, ToolContext())
    assert output.startswith("error: task_id cannot be combined")


@pytest.mark.asyncio
async def test_unknown_task_id(tmp_path):
    output = await FetchTool(tmp_path).execute({"task_id": "nope"}, ToolContext())
    assert output == "error: unknown fetch task_id: nope"


@pytest.mark.asyncio
async def test_poll_running_then_failed_task(tmp_path):
    tasks = FetchTaskRegistry()
    tool = FetchTool(tmp_path, tasks=tasks)
    task_id = await tasks.create_task("https://example.com/x", 100)

    running = json.loads(await tool.execute({"task_id": task_id}, ToolContext()))
    assert running["status"] == "running"
    assert running["task_id"] == task_id
    assert running["total_bytes"] == 100

    await tasks.fail(task_id, "broken")
    failed = json.loads(await tool.execute({"task_id": task_id}, ToolContext()))
    assert failed["status"] == "failed"
    assert failed["error"] == "broken"
    assert failed["task_id"] == task_id

    again = await tool.execute({"task_id": task_id}, ToolContext())
    assert again == f"error: unknown fetch task_id: {task_id}"


@pytest.mark.asyncio
async def test_upload_requires_metadata(tmp_path):
    tool = ImUploadTool(tmp_path, FakeBridge())
    assert await tool.execute({"path": "a.txt"}, ToolContext()) == (
        "error: im_upload requires request metadata"
    )


@pytest.mark.asyncio
async def test_upload_requires_complete_context(tmp_path):
    tool = ImUploadTool(tmp_path, FakeBridge())
    output = await tool.execute({"path": "a.txt"}, ToolContext(metadata={"platform": "feishu"}))
    assert output == "error: current IM platform context is incomplete"


@pytest.mark.asyncio
async def test_upload_requires_path(tmp_path):
    tool = ImUploadTool(tmp_path, FakeBridge())
    ctx = ToolContext(metadata={"platform": "feishu", "thread_id": "chat_1"})
    assert await tool.execute({}, ctx) == "error: path is required"


@pytest.mark.asyncio
async def test_upload_missing_file(tmp_path):
    tool = ImUploadTool(tmp_path, FakeBridge())
    ctx = ToolContext(metadata={"platform": "feishu", "thread_id": "chat_1"})
    output = await tool.execute({"path": "missing.txt"}, ctx)
    assert output.startswith("error: unable to read upload source:")


@pytest.mark.asyncio
async def test_upload_success(tmp_path):
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "chart.png").write_bytes(b"png-bytes")
    bridge = FakeBridge()
    tool = ImUploadTool(tmp_path, bridge)
    ctx = ToolContext(
        metadata={"platform": "feishu", "thread_id": "chat_1", "message_id": "msg_0"}
    )
    output = json.loads(await tool.execute({"path": "/out/chart.png"}, ctx))
    assert output == {
        "workspace_path": "out/chart.png",
        "file_name": "chart.png",
        "mime_type": "image/png",
        "file_key": "msg_1\\file_1",
        "resource_url": "https://files.example.com/file_1",
    }
    request = bridge.uploads[0]
    assert request.content == b"png-bytes"
    assert request.chat_id == "chat_1"
    assert request.message_id == "msg_0"


@pytest.mark.asyncio
async def test_upload_bridge_error(tmp_path):
    (tmp_path / "a.txt").write_text("hi")
    tool = ImUploadTool(tmp_path, FakeBridge(error="denied"))
    ctx = ToolContext(metadata={"platform": "feishu", "thread_id": "chat_1"})
    assert await tool.execute({"path": "a.txt"}, ctx) == "error: denied"


def test_registry_registration_and_definitions(tmp_path):
    registry = ToolRegistry()
    register_fetch_tool(registry, tmp_path, None)
    register_im_tools(registry, tmp_path, FakeBridge())
    assert registry.contains("fetch")
    assert registry.contains("im_upload")
    assert not registry.contains("bash")
    assert registry.get("missing") is None
    assert isinstance(registry.get("fetch"), FetchTool)
    names = [definition["name"] for definition in registry.definitions()]
    assert names == ["fetch", "im_upload"]
    upload_definition = registry.definitions()[1]
    assert upload_definition["parameters"]["required"] == ["path"]