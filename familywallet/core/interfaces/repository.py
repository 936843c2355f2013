from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from familywallet.core.entities.trade import TradeResponse
from familywallet.core.entities.token_rate import TokenRate
from familywallet.core.entities.user import User


class IWalletRepository(ABC):
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """User with its family attached, or None."""
        pass

    @abstractmethod
    async def mark_private_key_downloaded(self, user_id: str) -> bool:
        """
        Sets the one-way download latch. Returns False when the user does not exist.
        """
        pass

    @abstractmethod
    async def get_trades(self, user_id: str, limit: int = 10) -> List[TradeResponse]:
        """Most recent trades first."""
        pass


class ITokenRateRepository(ABC):
    @abstractmethod
    async def find_rate_between(self, contract: str, start: datetime, end: datetime) -> Optional[TokenRate]:
        pass

    @abstractmethod
    async def insert_rate(self, rate: TokenRate) -> None:
        pass

    @abstractmethod
    async def get_rate_history(self, contract: str, limit: int = 24) -> List[TokenRate]:
        """Oldest first."""
        pass

    @abstractmethod
    async def delete_rates_older_than(self, cutoff: datetime) -> int:
        pass
