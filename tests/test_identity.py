import pytest

from remicat.identity import (
    IDENTITY_FILE,
    AdminIdentity,
    fingerprint_of,
    normalize_ws_url,
    verify_fingerprint,
)

# X25519 test vector (RFC 7748, section 6.1).
ALICE_PRIVATE = bytes.fromhex(
    "77076d0a7318a57d3c16c17251b26645df4c2f87ebc0992ab177fba51db92c2a"
)
ALICE_PUBLIC = bytes.fromhex(
    "8520f0098930a754748b7ddcb43ef75a0dbf3a0d26381af4eba4a98eaa9b4e6a"
)


def test_fingerprint_of_empty_input():
    assert fingerprint_of(b"") == (
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )


def test_own_fingerprint_matches_public_key():
    identity = AdminIdentity(ALICE_PRIVATE)
    assert identity.own_fingerprint() == fingerprint_of(ALICE_PUBLIC)


def test_own_fingerprint_rejects_wrong_length():
    with pytest.raises(ValueError, match="32 bytes"):
        AdminIdentity(b"\x01" * 31).own_fingerprint()


def test_load_or_create_creates_and_reloads(tmp_path):
    config_dir = tmp_path / "nested" / "admin"
    first = AdminIdentity.load_or_create(config_dir)
    key_file = config_dir / IDENTITY_FILE
    assert key_file.read_bytes() == first.private_key
    assert len(first.private_key) == 32

    second = AdminIdentity.load_or_create(config_dir)
    assert second.private_key == first.private_key
    assert second.own_fingerprint() == first.own_fingerprint()


def test_load_existing_key(tmp_path):
    (tmp_path / IDENTITY_FILE).write_bytes(ALICE_PRIVATE)
    identity = AdminIdentity.load_or_create(tmp_path)
    assert identity.own_fingerprint() == fingerprint_of(ALICE_PUBLIC)


def test_fresh_identities_differ(tmp_path):
    a = AdminIdentity.load_or_create(tmp_path / "a")
    b = AdminIdentity.load_or_create(tmp_path / "b")
    assert a.own_fingerprint() != b.own_fingerprint()
    assert len(a.own_fingerprint()) == 64


def test_verify_fingerprint_first_contact_accepts():
    assert verify_fingerprint(None, "abc") == "abc"


def test_verify_fingerprint_match_accepts():
    fp = fingerprint_of(ALICE_PUBLIC)
    assert verify_fingerprint(fp, fp) == fp


def test_verify_fingerprint_mismatch_raises():
    with pytest.raises(ValueError, match="fingerprint mismatch") as info:
        verify_fingerprint("aaaa", "bbbb")
    message = str(info.value)
    assert "expected: aaaa" in message
    assert "got:      bbbb" in message


@pytest.mark.parametrize(
    "addr, expected",
    [
        ("localhost:8771", "ws://localhost:8771"),
        ("ws://host:1", "ws://host:1"),
        ("wss://host:1", "wss://host:1"),
    ],
)
def test_normalize_ws_url(addr, expected):
    assert normalize_ws_url(addr) == expected