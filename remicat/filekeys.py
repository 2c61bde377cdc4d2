"""Self-contained IM file keys of the form ``message_id\\file_key``."""

from __future__ import annotations

from dataclasses import dataclass

AGENT_FILE_KEY_SEPARATOR = "\\"
LEGACY_AGENT_FILE_KEY_SEPARATOR = "\t"
_SEPARATORS = AGENT_FILE_KEY_SEPARATOR + LEGACY_AGENT_FILE_KEY_SEPARATOR


@dataclass(frozen=True)
class DecodedAgentFileKey:
    """A file key split into its message id and platform file key."""

    message_id: str
    file_key: str


def encode_agent_file_key(message_id: str, file_key: str) -> str:
    """Combine a message id and a file key, normalising already-encoded keys."""
    message_id = message_id.strip()
    file_key = file_key.strip()

    decoded = decode_agent_file_key(file_key)
    if decoded is not None:
        return f"{decoded.message_id}{AGENT_FILE_KEY_SEPARATOR}{decoded.file_key}"
    if not message_id or not file_key:
        return file_key
    return f"{message_id}{AGENT_FILE_KEY_SEPARATOR}{file_key}"


def decode_agent_file_key(value: str) -> DecodedAgentFileKey | None:
    """Split an encoded key; return None when it is not encoded."""
    value = value.strip()
    for separator in (AGENT_FILE_KEY_SEPARATOR, LEGACY_AGENT_FILE_KEY_SEPARATOR):
        message_id, found, file_key = value.partition(separator)
        if not found:
            continue
        message_id = message_id.strip()
        file_key = file_key.strip().lstrip(_SEPARATORS)
        if message_id and file_key:
            return DecodedAgentFileKey(message_id=message_id, file_key=file_key)
    return None


def file_key_matches(candidate: str, requested: str) -> bool:
    """Whether two file keys, encoded or bare, refer to the same file."""
    if candidate == requested:
        return True

    candidate_key = decode_agent_file_key(candidate)
    requested_key = decode_agent_file_key(requested)
    if candidate_key is not None and requested_key is not None:
        return candidate_key == requested_key
    if candidate_key is not None:
        return candidate_key.file_key == requested
    if requested_key is not None:
        return candidate == requested_key.file_key
    return False