import asyncio
import json
import logging

from google.cloud import kms
from google.oauth2 import service_account

from familywallet.core.errors import ConfigurationMissing, DecryptionFailed, KeyVaultError
from familywallet.core.interfaces.kms import IKeyManagementService

logger = logging.getLogger(__name__)


class GcpKms(IKeyManagementService):
    """
    Google Cloud KMS key-encryption key.
    The SDK is synchronous, so calls run in a worker thread.
    """

    def __init__(
        self,
        project_id: str,
        location: str,
        keyring: str,
        key_name: str,
        credentials_json: str = None,
    ):
        if not all([project_id, location, keyring, key_name]):
            raise ConfigurationMissing(
                "Missing Google Cloud KMS configuration "
                "(GCLOUD_PROJECT_ID, KMS_LOCATION, KMS_KEYRING_NAME, KMS_KEK_NAME)."
            )
        self.key_name = f"projects/{project_id}/locations/{location}/keyRings/{keyring}/cryptoKeys/{key_name}"
        self._credentials_json = credentials_json
        self._client = None

    def _get_client(self) -> kms.KeyManagementServiceClient:
        if self._client is None:
            credentials = None
            if self._credentials_json and self._credentials_json.strip().startswith("{"):
                try:
                    info = json.loads(self._credentials_json)
                    credentials = service_account.Credentials.from_service_account_info(info)
                except ValueError as e:
                    # Fall back to application default credentials.
                    logger.warning(f"Could not parse GCP_SERVICE_ACCOUNT_KEY_JSON: {type(e).__name__}")
            self._client = kms.KeyManagementServiceClient(credentials=credentials)
        return self._client

    async def wrap(self, dek: bytes) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._get_client().encrypt,
                request={"name": self.key_name, "plaintext": dek},
            )
        except Exception as e:
            logger.error(f"KMS DEK encryption failed: {type(e).__name__}")
            raise KeyVaultError("KMS DEK encryption failed") from e
        if not response.ciphertext:
            raise KeyVaultError("KMS encryption failed to return ciphertext.")
        return bytes(response.ciphertext)

    async def unwrap(self, wrapped_dek: bytes) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._get_client().decrypt,
                request={"name": self.key_name, "ciphertext": wrapped_dek},
            )
        except Exception as e:
            logger.error(f"KMS DEK decryption failed: {type(e).__name__}")
            raise DecryptionFailed("KMS DEK decryption failed") from e
        if not response.plaintext:
            raise DecryptionFailed("KMS decryption failed to return plaintext.")
        return bytes(response.plaintext)
