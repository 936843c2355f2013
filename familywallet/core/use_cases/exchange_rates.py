import logging
from datetime import datetime, timezone
from typing import Dict, List

from familywallet.core.entities.token_rate import ExchangeRatePoint
from familywallet.core.interfaces.repository import ITokenRateRepository

logger = logging.getLogger(__name__)


async def get_exchange_rate_history(
    repo: ITokenRateRepository,
    from_contract: str,
    to_contract: str,
    limit: int = 24,
    now: datetime = None,
) -> List[ExchangeRatePoint]:
    """
    Pairs stored samples of both tokens that share a timestamp and returns
    how many to-tokens one from-token bought at each point.
    """
    now = now or datetime.now(timezone.utc)
    try:
        from_rates = await repo.get_rate_history(from_contract.lower(), limit)
        to_rates = await repo.get_rate_history(to_contract.lower(), limit)
        if not from_rates or not to_rates:
            return []

        to_by_time: Dict[datetime, float] = {r.timestamp: r.usd_price for r in to_rates}

        points = []
        for rate in from_rates:
            if rate.timestamp not in to_by_time:
                continue
            to_price = to_by_time[rate.timestamp]
            hours_ago = int((now - rate.timestamp).total_seconds() // 3600)
            points.append(ExchangeRatePoint(
                time=f"{hours_ago}h",
                timestamp=rate.timestamp,
                price=rate.usd_price / (to_price or 1),
            ))
        return points
    except Exception as e:
        logger.error(f"Error calculating exchange rate history: {type(e).__name__}: {e}")
        return []
