from typing import Dict, Iterator, List, Optional

from familywallet.core.entities.token import NATIVE_ASSET_ADDRESS, TokenDescriptor
from familywallet.core.errors import UnknownToken


class TokenRegistry:
    """Ordered, read-only set of tokens the wallet knows about."""

    def __init__(self, tokens: List[TokenDescriptor]):
        self._tokens = list(tokens)
        self._by_contract: Dict[str, TokenDescriptor] = {t.contract_address.lower(): t for t in self._tokens}
        self._by_symbol: Dict[str, TokenDescriptor] = {t.symbol.upper(): t for t in self._tokens}

    def __iter__(self) -> Iterator[TokenDescriptor]:
        return iter(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def all(self) -> List[TokenDescriptor]:
        return list(self._tokens)

    def find(self, contract: str) -> Optional[TokenDescriptor]:
        return self._by_contract.get((contract or "").lower())

    def get(self, contract: str) -> TokenDescriptor:
        token = self.find(contract)
        if token is None:
            raise UnknownToken(f"Unknown token contract: {contract}")
        return token

    def by_symbol(self, symbol: str) -> Optional[TokenDescriptor]:
        return self._by_symbol.get((symbol or "").upper())


def _cg(path: str) -> str:
    return f"https://assets.coingecko.com/coins/images/{path}"


# Base mainnet
AVAILABLE_TOKENS = TokenRegistry([
    TokenDescriptor(contract_address="0x833589fcd6edb6e08f4c7c32d4f71b54bda02913", symbol="USDC", name="USDC",
                    decimals=6, image_url=_cg("6319/standard/usdc.png")),
    TokenDescriptor(contract_address="0x043eb4b75d0805c43d7c834902e335621983cf03", symbol="CADC", name="CADC",
                    decimals=18, image_url=_cg("14149/standard/cadc_2.png")),
    TokenDescriptor(contract_address="0x60a3E35Cc302bFA44Cb288Bc5a4F316Fdb1adb42", symbol="EURC", name="EURC",
                    decimals=6, image_url=_cg("26045/standard/euro.png")),
    TokenDescriptor(contract_address="0xE9185Ee218cae427aF7B9764A011bb89FeA761B4", symbol="BRZ", name="BRZ",
                    decimals=18, image_url=_cg("8472/standard/MicrosoftTeams-image_%286%29.png")),
    TokenDescriptor(contract_address="0x18Bc5bcC660cf2B9cE3cd51a404aFe1a0cBD3C22", symbol="IDRX", name="IDRX",
                    decimals=2, image_url=_cg("34883/standard/IDRX_BLUE_COIN_200x200.png")),
    TokenDescriptor(contract_address=NATIVE_ASSET_ADDRESS, symbol="ETH", name="ETH",
                    decimals=18, image_url=_cg("279/standard/ethereum.png")),
    TokenDescriptor(contract_address="0x4200000000000000000000000000000000000006", symbol="WETH", name="WETH",
                    decimals=18, image_url=_cg("2518/standard/weth.png")),
    TokenDescriptor(contract_address="0x532f27101965dd16442e59d40670faf5ebb142e4", symbol="BRETT", name="Brett",
                    decimals=18, image_url=_cg("35529/standard/1000050750.png")),
    TokenDescriptor(contract_address="0xac1bd2486aaf3b5c0fc3fd868558b082a531b2b4", symbol="TOSHI", name="Toshi",
                    decimals=18, image_url=_cg("31126/standard/Toshi_Logo_-_Circular.png")),
    TokenDescriptor(contract_address="0x88Fb150BDc53A65fe94Dea0c9BA0a6dAf8C6e196", symbol="LINK", name="Chainlink",
                    decimals=18, image_url=_cg("877/standard/chainlink-new-logo.png")),
    TokenDescriptor(contract_address="0x940181a94a35a4569e4529a3cdfb74e38fd98631", symbol="AERO", name="Aerodrome",
                    decimals=18, image_url=_cg("31745/standard/token.png")),
    TokenDescriptor(contract_address="0x50da645f148798f68ef2d7db7c1cb22a6819bb2c", symbol="SPX6900", name="SPX6900",
                    decimals=8, image_url=_cg("31401/standard/centeredcoin_%281%29.png")),
    TokenDescriptor(contract_address="0x09be1692ca16e06f536f0038ff11d1da8524adb1", symbol="TEL", name="Telcoin",
                    decimals=2, image_url=_cg("1899/standard/tel.png")),
    TokenDescriptor(contract_address="0x768be13e1680b5ebe0024c42c896e3db59ec0149", symbol="SKI", name="Ski Mask Dog",
                    decimals=9, image_url=_cg("37195/standard/32992128-F52F-4346-84CA-8E0C48F43606.jpeg")),
    TokenDescriptor(contract_address="0x4ed4e862860bed51a9570b96d89af5e1b0efefed", symbol="DEGEN", name="Degen",
                    decimals=18, image_url=_cg("34515/standard/android-chrome-512x512.png")),
])
