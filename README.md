# remicat

Building blocks for a chat agent that works with instant-messaging platforms
such as Feishu. The package provides:

- **File keys** (`remicat.filekeys`): encode and decode self-contained
  `message_id\file_key` identifiers with `encode_agent_file_key`,
  `decode_agent_file_key` and `file_key_matches`.
- **Fetch sources** (`remicat.sources`): choose what to fetch from tool
  arguments and the current message's attachments and documents
  (`select_fetch_source`, `classify_url_source`, `is_feishu_document_url`).
- **Fetching** (`remicat.fetching`): download generic URLs with `httpx`, with
  HTML saved as Markdown by default (`fetch_generic_url`), or fetch IM files
  through an `ImFileBridge` (`execute_fetch_source`).
- **Fetch tasks** (`remicat.tasks`): track background downloads with progress,
  speed estimates and polling (`FetchTaskRegistry`, `FetchProgressReporter`).
- **Tools** (`remicat.tools`): the `fetch` and `im_upload` agent tools and a
  small `ToolRegistry`.
- **Bridge** (`remicat.bridge`): `QueueImFileBridge`, which sends bridge
  requests over an outgoing queue and matches responses by request id.
- **Daemon registry** (`remicat.registry`): a JSON-backed list of managed
  daemons (`Registry`, `DaemonEntry`).
- **Admin identity** (`remicat.identity`): an X25519 key stored in
  `identity.key` and SHA-256 fingerprints of public keys (`AdminIdentity`,
  `fingerprint_of`, `verify_fingerprint`, `normalize_ws_url`).
- **Agent replies** (`remicat.messages`, `remicat.replies`): build message
  content, handle slash-command replies, and turn agent events into outgoing
  messages (`build_message_content`, `forward_stream`, `event_to_payload`).

## Installation

```
pip install remicat
```

## Example

```python
import asyncio
from pathlib import Path

from remicat.tools import FetchTool, ToolContext

async def main():
    tool = FetchTool(root=Path("workspace"))
    output = await tool.execute({"url": "https://example.com/"}, ToolContext())
    print(output)

asyncio.run(main())
```

The result is a JSON document. When a download takes longer than about 1.5
seconds, it says `"status": "running"` and gives a `task_id`. Call the tool
again with `{"task_id": ...}` to poll until the status is `completed` or
`failed`.

## Running the tests

```
pip install "remicat[test]"
pytest
```