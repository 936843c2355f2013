import logging
from typing import Optional

import httpx

from familywallet.core.interfaces.price_source import IPriceSource

logger = logging.getLogger(__name__)

DEXSCREENER_URL = "https://api.dexscreener.com/latest/dex/tokens/{contract}"


class DexscreenerPriceSource(IPriceSource):
    """
    USD prices from the public Dexscreener API.
    Pass a client to share a connection pool (or a mock transport in tests).
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client
        self.timeout = timeout

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url)

    async def fetch_usd_price(self, contract: str) -> Optional[float]:
        try:
            response = await self._get(DEXSCREENER_URL.format(contract=contract))
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching token price for {contract}: {type(e).__name__}: {e}")
            return None
        if not isinstance(data, dict):
            return None

        # Several pairs may be listed; take the first with a usable USD price.
        for pair in data.get("pairs") or []:
            raw = pair.get("priceUsd")
            if raw is None:
                continue
            try:
                return float(raw)
            except (TypeError, ValueError):
                logger.warning(f"Could not parse USD price {raw!r} for {contract}")
                continue

        logger.warning(f"No USD price pair found on Dexscreener for {contract}")
        return None
