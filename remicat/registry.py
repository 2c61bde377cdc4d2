"""Persistent list of daemons known to the admin tool."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

REGISTRY_FILE = "daemons.json"


@dataclass
class DaemonEntry:
    """A registered daemon instance."""

    id: str
    label: str
    addr: str
    fingerprint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-ready representation."""
        return {
            "id": self.id,
            "label": self.label,
            "addr": self.addr,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DaemonEntry":
        """Build from a decoded JSON object; `fingerprint` may be missing or null."""
        if not isinstance(data, Mapping):
            raise ValueError("daemon entry must be an object")
        values = {}
        for key in ("id", "label", "addr"):
            if key not in data:
                raise ValueError(f"missing field `{key}`")
            if not isinstance(data[key], str):
                raise ValueError(f"field `{key}` must be a string")
            values[key] = data[key]
        fingerprint = data.get("fingerprint")
        if fingerprint is not None and not isinstance(fingerprint, str):
            raise ValueError("field `fingerprint` must be a string or null")
        return cls(fingerprint=fingerprint, **values)


@dataclass
class Registry:
    """Daemon entries backed by ``daemons.json`` in the config directory."""

    path: Path
    daemons: list[DaemonEntry] = field(default_factory=list)

    @classmethod
    def load(cls, config_dir: str | os.PathLike[str]) -> "Registry":
        """Load the registry; an absent file yields an empty one."""
        path = Path(config_dir) / REGISTRY_FILE
        daemons: list[DaemonEntry] = []
        if path.exists():
            raw = path.read_text(encoding="utf-8")
            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise ValueError("expected a list of daemon entries")
                daemons = [DaemonEntry.from_dict(item) for item in data]
            except ValueError as exc:
                raise ValueError(f"parsing {path}: {exc}") from exc
        logger.info("daemon registry loaded (count=%d)", len(daemons))
        return cls(path=path, daemons=daemons)

    def save(self) -> None:
        """Write the registry atomically through a temporary file."""
        text = json.dumps([d.to_dict() for d in self.daemons], indent=2, ensure_ascii=False)
        tmp = self.path.with_name(self.path.stem + ".json.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, daemon_id: str) -> DaemonEntry | None:
        """Return the entry with ``daemon_id``, if registered."""
        return next((d for d in self.daemons if d.id == daemon_id), None)

    def add(self, entry: DaemonEntry) -> None:
        """Append an entry and persist."""
        self.daemons.append(entry)
        self.save()

    def remove(self, daemon_id: str) -> bool:
        """Remove every entry with ``daemon_id``; persist and return True if any went."""
        before = len(self.daemons)
        self.daemons = [d for d in self.daemons if d.id != daemon_id]
        removed = len(self.daemons) < before
        if removed:
            self.save()
        return removed

    def set_fingerprint(self, daemon_id: str, fingerprint: str) -> None:
        """Record the fingerprint of a known daemon; unknown ids are ignored."""
        entry = self.get(daemon_id)
        if entry is None:
            return
        entry.fingerprint = fingerprint
        self.save()