import asyncio
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from familywallet.core.entities.token import TokenDescriptor
from familywallet.core.entities.token_rate import (
    IngestionOutcome,
    IngestionResult,
    TokenPriceResult,
    TokenRate,
)
from familywallet.core.interfaces.price_source import IPriceSource
from familywallet.core.interfaces.repository import ITokenRateRepository
from familywallet.core.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

DEDUPE_WINDOW = timedelta(minutes=1)
RETENTION = timedelta(hours=24)


class RateIngestionJob:
    """Fetches a USD price per registry token and stores at most one sample per hour."""

    def __init__(self, registry: TokenRegistry, source: IPriceSource, repo: ITokenRateRepository, clock=None):
        self.registry = registry
        self.source = source
        self.repo = repo
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _fetch(self, token: TokenDescriptor) -> Optional[float]:
        try:
            return await self.source.fetch_usd_price(token.contract_address)
        except Exception as e:
            logger.error(f"Error fetching token price for {token.symbol}: {type(e).__name__}: {e}")
            return None

    async def store_token_price(self, contract: str, usd_price: float, now: Optional[datetime] = None) -> bool:
        """
        Inserts a sample unless one already exists within a minute of the
        current hour start. Returns whether a row was written.
        """
        now = now or self.clock()
        hour_start = now.replace(minute=0, second=0, microsecond=0)
        contract = contract.lower()
        try:
            existing = await self.repo.find_rate_between(contract, hour_start - DEDUPE_WINDOW, hour_start + DEDUPE_WINDOW)
            if existing:
                return False
            await self.repo.insert_rate(TokenRate(contract=contract, usd_price=usd_price, timestamp=now))
            return True
        except Exception as e:
            logger.error(f"Error storing token price for {contract}: {type(e).__name__}: {e}")
            return False

    async def cleanup_old_rates(self, now: Optional[datetime] = None) -> bool:
        cutoff = (now or self.clock()) - RETENTION
        try:
            deleted = await self.repo.delete_rates_older_than(cutoff)
            if deleted:
                logger.info(f"Deleted {deleted} token rates older than {cutoff.isoformat()}")
            return True
        except Exception as e:
            logger.error(f"Error cleaning up old token rates: {type(e).__name__}: {e}")
            return False

    async def store_all_token_prices(self) -> IngestionResult:
        tokens = self.registry.all()
        # One timestamp per run; history pairs tokens by identical timestamps.
        now = self.clock()
        prices = await asyncio.gather(*(self._fetch(t) for t in tokens))

        async def store(token: TokenDescriptor, price: Optional[float]) -> TokenPriceResult:
            if price is None:
                return TokenPriceResult(token=token.symbol, price=None, stored=False)
            stored = await self.store_token_price(token.contract_address, price, now)
            return TokenPriceResult(token=token.symbol, price=price, stored=stored)

        results: List[TokenPriceResult] = list(
            await asyncio.gather(*(store(t, p) for t, p in zip(tokens, prices)))
        )

        await self.cleanup_old_rates(now)

        if tokens and all(p is None for p in prices):
            return IngestionResult(
                outcome=IngestionOutcome.SOURCE_FAILURE,
                results=results,
                message="Failed to fetch token prices",
            )
        return IngestionResult(outcome=IngestionOutcome.SUCCESS, results=results)


class RateIngestionSingleton:
    """
    Process-wide single-flight guard around the ingestion job.

    Overlapping triggers are rejected, not queued. The guard is local to
    this process; several workers each get their own.
    """

    def __init__(self, job: RateIngestionJob):
        self.job = job
        self._guard = threading.Lock()

    @property
    def fetch_in_progress(self) -> bool:
        return self._guard.locked()

    @contextmanager
    def _claim(self):
        # Held across awaits: fine because acquire never blocks and all callers
        # share one event loop, so a second caller just sees it taken.
        acquired = self._guard.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._guard.release()

    async def trigger_ingestion(self) -> IngestionResult:
        with self._claim() as acquired:
            if not acquired:
                return IngestionResult(
                    outcome=IngestionOutcome.ALREADY_IN_PROGRESS,
                    message="A token rate fetch is already in progress",
                )
            try:
                return await self.job.store_all_token_prices()
            except Exception as e:
                logger.exception(f"Error in token rate ingestion: {type(e).__name__}")
                return IngestionResult(
                    outcome=IngestionOutcome.INTERNAL_ERROR,
                    message="An error occurred while fetching token rates",
                )
