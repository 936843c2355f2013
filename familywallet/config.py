import os
from dataclasses import dataclass
from typing import Optional


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


@dataclass
class Settings:
    """Deployment settings, read from the environment."""
    rpc_url: Optional[str] = None
    database_url: Optional[str] = None
    redis_url: Optional[str] = None

    gcloud_project_id: Optional[str] = None
    kms_location: Optional[str] = None
    kms_keyring_name: Optional[str] = None
    kms_kek_name: Optional[str] = None
    gcp_service_account_key_json: Optional[str] = None
    local_kms_master_key: Optional[str] = None

    balance_concurrency: int = 8
    tx_confirmation_timeout: float = 120.0
    price_source_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rpc_url=os.getenv("RPC_URL"),
            database_url=os.getenv("DATABASE_URL"),
            redis_url=os.getenv("REDIS_URL"),
            gcloud_project_id=os.getenv("GCLOUD_PROJECT_ID"),
            kms_location=os.getenv("KMS_LOCATION"),
            kms_keyring_name=os.getenv("KMS_KEYRING_NAME"),
            kms_kek_name=os.getenv("KMS_KEK_NAME"),
            gcp_service_account_key_json=os.getenv("GCP_SERVICE_ACCOUNT_KEY_JSON"),
            local_kms_master_key=os.getenv("LOCAL_KMS_MASTER_KEY"),
            balance_concurrency=_int_env("BALANCE_CONCURRENCY", 8),
            tx_confirmation_timeout=_float_env("TX_CONFIRMATION_TIMEOUT", 120.0),
            price_source_timeout=_float_env("PRICE_SOURCE_TIMEOUT", 10.0),
        )

    @property
    def gcp_kms_configured(self) -> bool:
        return all([self.gcloud_project_id, self.kms_location, self.kms_keyring_name, self.kms_kek_name])

    def __repr__(self):
        # Endpoint URLs may embed provider API keys.
        return (
            f"Settings(rpc_url={'set' if self.rpc_url else None}, "
            f"database_url={'set' if self.database_url else None}, "
            f"redis_url={'set' if self.redis_url else None}, "
            f"balance_concurrency={self.balance_concurrency})"
        )
