from abc import ABC, abstractmethod
from typing import Optional


class IPriceSource(ABC):
    @abstractmethod
    async def fetch_usd_price(self, contract: str) -> Optional[float]:
        """USD price for a token contract, or None when the source has none."""
        pass
