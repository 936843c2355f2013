from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FamilyCurrency(str, Enum):
    """Settlement currency a family pays allowances in."""
    ETH = "ETH"
    USDC = "USDC"
    EURC = "EURC"
    CADC = "CADC"
    BRZ = "BRZ"
    IDRX = "IDRX"


class Family(BaseModel):
    id: str
    currency: FamilyCurrency = FamilyCurrency.USDC
    currency_address: Optional[str] = None


class User(BaseModel):
    """
    Wallet-relevant projection of a household member.

    encrypted_private_key and dek are written together by provisioning;
    a record carrying only one of them is treated as having no key.
    """
    id: str
    address: Optional[str] = None
    encrypted_private_key: Optional[str] = None
    dek: Optional[str] = None
    private_key_downloaded: bool = False
    family_id: Optional[str] = None
    family: Optional[Family] = None

    @property
    def has_key_material(self) -> bool:
        return bool(self.encrypted_private_key) and bool(self.dek)

    def __repr_args__(self):
        # Keep ciphertext and wrapped DEK out of logs.
        for name, value in super().__repr_args__():
            if name in ("encrypted_private_key", "dek"):
                yield name, "***" if value else None
            else:
                yield name, value
