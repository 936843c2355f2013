from pydantic import BaseModel, ConfigDict

NATIVE_ASSET_ADDRESS = "0x0000000000000000000000000000000000000000"


class TokenDescriptor(BaseModel):
    """
    Static description of a token the family wallet can hold.
    Decimals here are authoritative for every unit conversion.
    """
    model_config = ConfigDict(frozen=True)

    contract_address: str
    symbol: str
    name: str
    decimals: int
    image_url: str = ""

    @property
    def is_native(self) -> bool:
        return self.contract_address.lower() == NATIVE_ASSET_ADDRESS

    def __eq__(self, other):
        if not isinstance(other, TokenDescriptor):
            return NotImplemented
        return self.contract_address.lower() == other.contract_address.lower()

    def __hash__(self):
        return hash(self.contract_address.lower())
