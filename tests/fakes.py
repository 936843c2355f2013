"""
In-memory stand-ins for the chain, repositories and price source.
"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from familywallet.core.entities.token_rate import TokenRate
from familywallet.core.entities.trade import TradeResponse
from familywallet.core.entities.user import User
from familywallet.core.errors import ContractCallError, RpcConfigurationError, TransactionReverted
from familywallet.core.interfaces.chain import IChainClient, PendingTransaction, TransactionReceipt
from familywallet.core.interfaces.price_source import IPriceSource
from familywallet.core.interfaces.repository import ITokenRateRepository, IWalletRepository

USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
FAMILY_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CHILD_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


class FakeSigner:
    def __init__(self, key: bytes):
        self.key = key


class FakeChain(IChainClient):
    def __init__(self, decimals: int = 6, rpc_configured: bool = True):
        self.decimals = decimals
        self.rpc_configured = rpc_configured
        self.balances: Dict[str, int] = {}
        self.failing: Dict[str, Exception] = {}
        self.decimals_error: Optional[Exception] = None
        self.transfer_error: Optional[Exception] = None
        self.confirm_error: Optional[Exception] = None
        self.reverted = False
        self.calls: List[str] = []
        self.transfers: List[tuple] = []
        self.secrets_seen = []

    async def get_balance(self, contract: str, owner: str) -> int:
        self.calls.append(f"balanceOf:{contract}")
        if contract in self.failing:
            raise self.failing[contract]
        await asyncio.sleep(0)
        return self.balances.get(contract, 0)

    async def get_decimals(self, contract: str) -> int:
        self.calls.append("decimals")
        if self.decimals_error:
            raise self.decimals_error
        return self.decimals

    def build_signer(self, secret) -> FakeSigner:
        self.calls.append("build_signer")
        self.secrets_seen.append(secret)
        if not self.rpc_configured:
            raise RpcConfigurationError("RPC_URL not set in env")
        return FakeSigner(secret.reveal())

    async def transfer(self, signer, contract: str, recipient: str, amount: int) -> PendingTransaction:
        self.calls.append("transfer")
        self.transfers.append((signer, contract, recipient, amount))
        if self.transfer_error:
            raise self.transfer_error
        return PendingTransaction(tx_hash="0x" + "ab" * 32)

    async def confirm(self, pending: PendingTransaction) -> TransactionReceipt:
        self.calls.append("confirm")
        if self.confirm_error:
            raise self.confirm_error
        receipt = TransactionReceipt(tx_hash=pending.tx_hash, block_number=1234, success=not self.reverted)
        if self.reverted:
            raise TransactionReverted(receipt)
        return receipt


def reverting(contract: str) -> ContractCallError:
    return ContractCallError(f"balanceOf reverted on {contract}")


class InMemoryWalletRepo(IWalletRepository):
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.trades: List[TradeResponse] = []
        self.get_user_calls = 0

    def add_user(self, user: User) -> None:
        self.users[user.id] = user

    async def get_user(self, user_id: str) -> Optional[User]:
        self.get_user_calls += 1
        return self.users.get(user_id)

    async def mark_private_key_downloaded(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        user.private_key_downloaded = True
        return True

    async def get_trades(self, user_id: str, limit: int = 10) -> List[TradeResponse]:
        mine = [t for t in self.trades if t.userId == user_id]
        mine.sort(key=lambda t: t.createdAt, reverse=True)
        return mine[:limit]


class InMemoryRateRepo(ITokenRateRepository):
    def __init__(self):
        self.rates: List[TokenRate] = []

    async def find_rate_between(self, contract: str, start: datetime, end: datetime) -> Optional[TokenRate]:
        for rate in self.rates:
            if rate.contract == contract.lower() and start <= rate.timestamp <= end:
                return rate
        return None

    async def insert_rate(self, rate: TokenRate) -> None:
        self.rates.append(rate)

    async def get_rate_history(self, contract: str, limit: int = 24) -> List[TokenRate]:
        mine = sorted((r for r in self.rates if r.contract == contract.lower()), key=lambda r: r.timestamp)
        return mine[:limit]

    async def delete_rates_older_than(self, cutoff: datetime) -> int:
        before = len(self.rates)
        self.rates = [r for r in self.rates if r.timestamp >= cutoff]
        return before - len(self.rates)


class FakePriceSource(IPriceSource):
    def __init__(self, prices: Optional[Dict[str, float]] = None, delay: float = 0.0):
        self.prices = {k.lower(): v for k, v in (prices or {}).items()}
        self.delay = delay
        self.calls: List[str] = []
        self.error: Optional[Exception] = None

    async def fetch_usd_price(self, contract: str) -> Optional[float]:
        self.calls.append(contract)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.prices.get(contract.lower())
