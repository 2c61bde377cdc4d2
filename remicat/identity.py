"""Admin Noise identity, daemon fingerprints and management URL helpers."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

NOISE_PATTERN = "Noise_XX_25519_AESGCM_SHA256"
MAX_NOISE_MSG = 65535
IDENTITY_FILE = "identity.key"


def fingerprint_of(public_key: bytes) -> str:
    """Hex SHA-256 fingerprint of a raw public key."""
    return hashlib.sha256(public_key).hexdigest()


@dataclass(frozen=True)
class AdminIdentity:
    """The admin tool's static X25519 private key."""

    private_key: bytes

    @classmethod
    def load_or_create(cls, config_dir: str | os.PathLike[str]) -> "AdminIdentity":
        """Load ``identity.key`` from ``config_dir``, creating a fresh key if absent."""
        directory = Path(config_dir)
        key_path = directory / IDENTITY_FILE
        if key_path.exists():
            return cls(key_path.read_bytes())
        private_key = X25519PrivateKey.generate().private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        directory.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(private_key)
        return cls(private_key)

    def own_fingerprint(self) -> str:
        """Fingerprint of the public key belonging to this identity."""
        if len(self.private_key) != 32:
            raise ValueError("privkey not 32 bytes")
        secret = X25519PrivateKey.from_private_bytes(self.private_key)
        public = secret.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return fingerprint_of(public)


def verify_fingerprint(expected: str | None, actual: str) -> str:
    """Check a daemon's fingerprint against the pinned one; return it when accepted."""
    if expected is not None and actual != expected:
        raise ValueError(
            "daemon fingerprint mismatch!\n"
            f"  expected: {expected}\n"
            f"  got:      {actual}\n"
            "This may indicate a MITM attack or the daemon key was rotated."
        )
    return actual


def normalize_ws_url(addr: str) -> str:
    """Prefix ``ws://`` unless the address already names a WebSocket scheme."""
    if addr.startswith(("ws://", "wss://")):
        return addr
    return f"ws://{addr}"