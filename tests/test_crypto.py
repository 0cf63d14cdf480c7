import pytest
from permavault_core.crypto import encrypt, decrypt, seal, open_sealed
from permavault_core.envelope import EncryptionEnvelope
from permavault_core.errors import DecryptionError, MalformedEnvelopeError


def test_encrypt_decrypt():
    plaintext = b"quarterly report\x00\xff" * 50
    ct, salt, iv = encrypt(plaintext, "hunter2")
    assert ct != plaintext
    assert len(salt) == 16 and len(iv) == 16
    assert decrypt(ct, "hunter2", salt, iv) == plaintext


def test_fresh_salt_and_iv_per_call():
    ct1, salt1, iv1 = encrypt(b"same bytes", "pw")
    ct2, salt2, iv2 = encrypt(b"same bytes", "pw")
    assert salt1 != salt2
    assert iv1 != iv2
    assert ct1 != ct2


def test_wrong_password_with_auth_tag_always_fails():
    ct, env = seal(b"secret", "right")
    for wrong in ("wrong", "Right", "right ", "x" * 40):
        with pytest.raises(DecryptionError):
            open_sealed(ct, wrong, env)


def test_wrong_password_detected_by_padding():
    # without an auth tag a wrong key yields valid padding ~1/256 of the time
    ct, salt, iv = encrypt(b"payload", "right")
    failures = 0
    for i in range(8):
        try:
            assert decrypt(ct, f"wrong-{i}", salt, iv) != b"payload"
        except DecryptionError:
            failures += 1
    assert failures >= 7


def test_truncated_ciphertext_is_decryption_error():
    ct, salt, iv = encrypt(b"0123456789abcdef-more", "pw")
    with pytest.raises(DecryptionError):
        decrypt(ct[:-3], "pw", salt, iv)
    with pytest.raises(DecryptionError):
        decrypt(b"", "pw", salt, iv)


def test_empty_file_envelope_metadata():
    ct, env = seal(b"", "pw")
    md = env.to_metadata()
    assert md["Encrypted"] == "true"
    assert md["Encryption-Method"] == "AES-256-CBC"
    assert len(md["Salt"]) == 32
    assert len(md["IV"]) == 32
    assert len(ct) == 16  # one padding block

    restored = EncryptionEnvelope.from_metadata(md)
    assert restored == env
    assert open_sealed(ct, "pw", restored) == b""


def test_tampered_ciphertext_rejected():
    ct, env = seal(b"a" * 64, "pw")
    tampered = bytes([ct[0] ^ 1]) + ct[1:]
    with pytest.raises(DecryptionError):
        open_sealed(tampered, "pw", env)


def test_envelope_without_auth_tag_still_decrypts():
    ct, salt, iv = encrypt(b"legacy upload", "pw")
    md = {"Encrypted": "true", "Encryption-Method": "AES-256-CBC", "Salt": salt.hex(), "IV": iv.hex()}
    env = EncryptionEnvelope.from_metadata(md)
    assert env.auth_tag is None
    assert open_sealed(ct, "pw", env) == b"legacy upload"


def test_envelope_from_unencrypted_metadata():
    assert EncryptionEnvelope.from_metadata({"Content-Type": "text/plain"}) is None
    assert EncryptionEnvelope.from_metadata({"Encrypted": "false"}) is None


@pytest.mark.parametrize("md", [
    {"Encrypted": "true", "IV": "00" * 16},
    {"Encrypted": "true", "Salt": "zz" * 16, "IV": "00" * 16},
    {"Encrypted": "true", "Salt": "00" * 8, "IV": "00" * 16},
    {"Encrypted": "true", "Encryption-Method": "AES-128-ECB", "Salt": "00" * 16, "IV": "00" * 16},
])
def test_malformed_envelope(md):
    with pytest.raises(MalformedEnvelopeError):
        EncryptionEnvelope.from_metadata(md)
