"""
Envelope encryption for custodial private keys.

Each key is sealed with its own 32-byte data-encryption key (AES-256-GCM,
package layout iv || ciphertext || tag); the DEK itself is wrapped by the
master key service. The vault performs no policy checks: callers decide
whether a user's key may be decrypted (e.g. the download latch on export).
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel

from familywallet.core.errors import (
    DecryptionFailed,
    InvalidKeyMaterial,
    KeyUnavailable,
    KeyVaultError,
)
from familywallet.core.interfaces.kms import IKeyManagementService

logger = logging.getLogger(__name__)

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
DEK_LENGTH_BYTES = 32


class EncryptedPackage(BaseModel):
    encrypted_data_b64: str
    encrypted_dek_b64: str


class SecretKey:
    """
    Decrypted key bytes held in a mutable buffer.

    Use as a context manager; the buffer is overwritten with zeros when the
    block exits, on errors too. Copies handed to signing libraries are
    outside our control, so keep the block as short as possible.
    """

    __slots__ = ("_buf",)

    def __init__(self, raw: bytes):
        self._buf = bytearray(raw)

    def __enter__(self) -> "SecretKey":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.wipe()
        return False

    def __del__(self):
        self.wipe()

    def __len__(self):
        return len(self._buf)

    def __repr__(self):
        return f"<SecretKey {'wiped' if self.wiped else 'held'}>"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("SecretKey cannot be serialized")

    @property
    def wiped(self) -> bool:
        return not any(self._buf)

    def reveal(self) -> bytes:
        if self.wiped:
            raise KeyUnavailable("Key material has already been wiped")
        return bytes(self._buf)

    def reveal_hex(self) -> str:
        return "0x" + self.reveal().hex()

    def wipe(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


def _seal(plaintext: bytes, dek: bytes) -> bytes:
    if len(dek) != DEK_LENGTH_BYTES:
        raise KeyVaultError(f"DEK must be {DEK_LENGTH_BYTES} bytes for AES-256.")
    iv = os.urandom(IV_LENGTH)
    return iv + AESGCM(dek).encrypt(iv, plaintext, None)


def _open(package: bytes, dek: bytes) -> bytes:
    if len(dek) != DEK_LENGTH_BYTES:
        raise DecryptionFailed(f"DEK must be {DEK_LENGTH_BYTES} bytes for AES-256.")
    if len(package) < IV_LENGTH + AUTH_TAG_LENGTH:
        raise DecryptionFailed(
            f"Ciphertext package is too short. Length: {len(package)}, "
            f"Required minimum: {IV_LENGTH + AUTH_TAG_LENGTH}"
        )
    try:
        return AESGCM(dek).decrypt(package[:IV_LENGTH], package[IV_LENGTH:], None)
    except InvalidTag:
        raise DecryptionFailed("Decryption failed: Authentication tag mismatch or invalid data.")


class KeyVault:
    def __init__(self, kms: IKeyManagementService):
        self.kms = kms

    async def encrypt(self, private_key_hex: str) -> EncryptedPackage:
        clean_hex = private_key_hex[2:] if private_key_hex and private_key_hex.startswith("0x") else private_key_hex
        if not clean_hex or len(clean_hex) % 2 != 0:
            raise InvalidKeyMaterial("Invalid or empty hex string provided for encryption.")
        try:
            data = bytes.fromhex(clean_hex)
        except ValueError:
            raise InvalidKeyMaterial("Invalid hex characters provided for encryption.")

        dek = bytearray(os.urandom(DEK_LENGTH_BYTES))
        try:
            sealed = _seal(data, bytes(dek))
            wrapped = await self.kms.wrap(bytes(dek))
        finally:
            _zero(dek)

        return EncryptedPackage(
            encrypted_data_b64=base64.b64encode(sealed).decode("ascii"),
            encrypted_dek_b64=base64.b64encode(wrapped).decode("ascii"),
        )

    async def decrypt(self, encrypted_data_b64, encrypted_dek_b64) -> SecretKey:
        """
        Returns the raw key as a SecretKey; wrap the call site in `with`.
        """
        if not encrypted_data_b64 or not encrypted_dek_b64:
            raise KeyUnavailable("Encrypted data and encrypted DEK cannot be empty.")

        try:
            package = base64.b64decode(encrypted_data_b64, validate=True)
            wrapped = base64.b64decode(encrypted_dek_b64, validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionFailed("Stored key material is not valid base64.")

        try:
            dek = bytearray(await self.kms.unwrap(wrapped))
        except DecryptionFailed:
            raise
        except Exception as e:
            logger.error(f"KMS DEK unwrap failed: {type(e).__name__}")
            raise DecryptionFailed("KMS DEK decryption failed") from e

        try:
            return SecretKey(_open(package, bytes(dek)))
        finally:
            _zero(dek)
