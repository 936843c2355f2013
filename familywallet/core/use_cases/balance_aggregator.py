import asyncio
import logging
from typing import Dict, List, Tuple

from familywallet.core.entities.token import TokenDescriptor
from familywallet.core.interfaces.chain import IChainClient
from familywallet.core.use_cases.units import format_units

logger = logging.getLogger(__name__)


class BalanceAggregator:
    def __init__(self, chain: IChainClient, max_concurrency: int = 8):
        self.chain = chain
        self.max_concurrency = max(1, max_concurrency)

    async def get_balances(self, tokens: List[TokenDescriptor], owner: str) -> Dict[str, str]:
        """
        One balance per token symbol, as a decimal string.

        A token whose lookup fails reports "0" so one broken integration
        does not hide the rest of the portfolio.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch(token: TokenDescriptor) -> Tuple[str, str]:
            async with semaphore:
                try:
                    raw = await self.chain.get_balance(token.contract_address, owner)
                    return token.symbol, format_units(raw, token.decimals)
                except Exception as e:
                    logger.warning(f"Balance lookup failed for {token.symbol}: {type(e).__name__}: {e}")
                    return token.symbol, "0"

        results = await asyncio.gather(*(fetch(t) for t in tokens))
        return dict(results)
