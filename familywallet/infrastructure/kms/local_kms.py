import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from familywallet.core.errors import ConfigurationMissing, DecryptionFailed
from familywallet.core.interfaces.kms import IKeyManagementService

_NONCE_LENGTH = 12


class LocalKms(IKeyManagementService):
    """
    In-process master key (AES-256-GCM) for development and tests.
    Production deployments use GcpKms.
    """

    def __init__(self, master_key: bytes):
        if len(master_key) != 32:
            raise ConfigurationMissing("Local KMS master key must be 32 bytes")
        self._aead = AESGCM(master_key)

    @classmethod
    def from_b64(cls, master_key_b64: str) -> "LocalKms":
        if not master_key_b64:
            raise ConfigurationMissing("LOCAL_KMS_MASTER_KEY not set")
        try:
            return cls(base64.b64decode(master_key_b64, validate=True))
        except binascii.Error:
            raise ConfigurationMissing("LOCAL_KMS_MASTER_KEY is not valid base64")

    async def wrap(self, dek: bytes) -> bytes:
        nonce = os.urandom(_NONCE_LENGTH)
        return nonce + self._aead.encrypt(nonce, dek, None)

    async def unwrap(self, wrapped_dek: bytes) -> bytes:
        if len(wrapped_dek) <= _NONCE_LENGTH:
            raise DecryptionFailed("Wrapped DEK is too short")
        try:
            return self._aead.decrypt(wrapped_dek[:_NONCE_LENGTH], wrapped_dek[_NONCE_LENGTH:], None)
        except InvalidTag:
            raise DecryptionFailed("Wrapped DEK failed authentication")
