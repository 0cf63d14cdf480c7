from __future__ import annotations
from typing import Tuple, Optional
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
import os
from . import constants as C
from .envelope import EncryptionEnvelope
from .errors import DecryptionError
"""
permavault_core.crypto
----------------------
Password-based encryption for stored payloads:

- scrypt (N=2^14, r=8, p=1): 32-byte key from password + 16-byte salt
- AES-256-CBC + PKCS7 with a fresh 16-byte IV per call
- HKDF-SHA256 + HMAC-SHA256: optional authentication tag over IV || ciphertext

Pure functions: no network, no disk. Password emptiness is checked by the
caller (ProtectedFileService), not here.
"""

_BLOCK_BITS = algorithms.AES.block_size  # 128


def derive_key(password: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=C.KEY_BYTES, n=C.SCRYPT_N, r=C.SCRYPT_R, p=C.SCRYPT_P)
    return kdf.derive(password.encode("utf-8"))

def derive_mac_key(key: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=C.MAC_INFO)
    return hkdf.derive(key)

# --------- AES-256-CBC (encrypt/decrypt) ----------
def _cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    padder = padding.PKCS7(_BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    enc = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return enc.update(padded) + enc.finalize()

def _cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    if not ciphertext or len(ciphertext) % (_BLOCK_BITS // 8):
        raise DecryptionError("ciphertext length is not a multiple of the block size")
    dec = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = dec.update(ciphertext) + dec.finalize()
    unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise DecryptionError("decryption failed: wrong password or corrupted data") from None

def encrypt(plaintext: bytes, password: str) -> Tuple[bytes, bytes, bytes]:
    """Returns (ciphertext, salt, iv). Salt and IV are fresh on every call."""
    salt = os.urandom(C.SALT_BYTES)
    iv = os.urandom(C.IV_BYTES)
    key = derive_key(password, salt)
    return _cbc_encrypt(key, iv, plaintext), salt, iv

def decrypt(
    ciphertext: bytes,
    password: str,
    salt: bytes,
    iv: bytes,
    auth_tag: Optional[bytes] = None,
) -> bytes:
    key = derive_key(password, salt)
    if auth_tag is not None:
        _verify_tag(key, iv, ciphertext, auth_tag)
    return _cbc_decrypt(key, iv, ciphertext)

# --------- tagged envelope helpers ----------
def compute_auth_tag(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    h = hmac.HMAC(derive_mac_key(key), hashes.SHA256())
    h.update(iv + ciphertext)
    return h.finalize()

def _verify_tag(key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> None:
    h = hmac.HMAC(derive_mac_key(key), hashes.SHA256())
    h.update(iv + ciphertext)
    try:
        h.verify(tag)
    except InvalidSignature:
        raise DecryptionError("authentication failed: wrong password or corrupted data") from None

def seal(plaintext: bytes, password: str) -> Tuple[bytes, EncryptionEnvelope]:
    """
    Encrypt and produce the envelope to persist as record metadata.

    Unlike encrypt(), the envelope carries an Auth-Tag so a wrong password is
    always detected instead of only when the padding happens to be invalid.
    """
    salt = os.urandom(C.SALT_BYTES)
    iv = os.urandom(C.IV_BYTES)
    key = derive_key(password, salt)
    ct = _cbc_encrypt(key, iv, plaintext)
    env = EncryptionEnvelope(salt=salt, iv=iv, auth_tag=compute_auth_tag(key, iv, ct))
    return ct, env

def open_sealed(ciphertext: bytes, password: str, envelope: EncryptionEnvelope) -> bytes:
    return decrypt(ciphertext, password, envelope.salt, envelope.iv, envelope.auth_tag)
