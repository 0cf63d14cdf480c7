"""
permavault_core.envelope
------------------------
Defines EncryptionEnvelope: the metadata that must travel with an encrypted
record so the key can be re-derived later from the caller's password.

Wire keys:
- Encrypted="true", Encryption-Method="AES-256-CBC"
- Salt, IV: 16 bytes each, lowercase hex
- Auth-Tag: optional HMAC-SHA256 over IV || ciphertext (hex)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from . import constants as C
from .errors import MalformedEnvelopeError
from .utils import hexe, hexd

ENVELOPE_KEYS = (C.ENCRYPTED, C.ENCRYPTION_METHOD, C.SALT, C.IV, C.AUTH_TAG)


@dataclass(frozen=True)
class EncryptionEnvelope:
    salt: bytes
    iv: bytes
    method: str = C.SUPPORTED_METHOD
    auth_tag: Optional[bytes] = None

    def to_metadata(self) -> Dict[str, str]:
        md = {
            C.ENCRYPTED: C.TRUE,
            C.ENCRYPTION_METHOD: self.method,
            C.SALT: hexe(self.salt),
            C.IV: hexe(self.iv),
        }
        if self.auth_tag is not None:
            md[C.AUTH_TAG] = hexe(self.auth_tag)
        return md

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, str]) -> Optional["EncryptionEnvelope"]:
        """Rebuild the envelope from record metadata; None if not encrypted."""
        if not is_encrypted(metadata):
            return None

        method = metadata.get(C.ENCRYPTION_METHOD, C.SUPPORTED_METHOD)
        if method != C.SUPPORTED_METHOD:
            raise MalformedEnvelopeError(
                f"unsupported encryption method: {method}", key=C.ENCRYPTION_METHOD
            )

        salt = _hex_field(metadata, C.SALT, C.SALT_BYTES)
        iv = _hex_field(metadata, C.IV, C.IV_BYTES)
        tag = None
        if C.AUTH_TAG in metadata:
            tag = _hex_field(metadata, C.AUTH_TAG, None)
        return cls(salt=salt, iv=iv, method=method, auth_tag=tag)


def is_encrypted(metadata: Mapping[str, str]) -> bool:
    return metadata.get(C.ENCRYPTED) == C.TRUE


def _hex_field(metadata: Mapping[str, str], key: str, size: Optional[int]) -> bytes:
    raw = metadata.get(key)
    if not raw:
        raise MalformedEnvelopeError(f"encryption metadata missing: {key}", key=key)
    try:
        value = hexd(raw)
    except ValueError:
        raise MalformedEnvelopeError(f"{key} is not valid hex", key=key) from None
    if size is not None and len(value) != size:
        raise MalformedEnvelopeError(
            f"{key} must be {size} bytes, got {len(value)}", key=key
        )
    return value
