import asyncio
import logging
import weakref
from typing import List, Optional

from eth_account import Account
from pydantic import BaseModel

from familywallet.core.entities.trade import TradeResponse
from familywallet.core.entities.withdrawal import WithdrawalOutcome, WithdrawalResult
from familywallet.core.errors import KeyVaultError
from familywallet.core.interfaces.price_source import IPriceSource
from familywallet.core.interfaces.repository import IWalletRepository
from familywallet.core.token_registry import TokenRegistry
from familywallet.core.use_cases.key_vault import EncryptedPackage, KeyVault
from familywallet.core.use_cases.withdrawal import WithdrawalOrchestrator

logger = logging.getLogger(__name__)

# --- Output Models ---
class KeyExportResponse(BaseModel):
    status: int
    message: Optional[str] = None
    privateKey: Optional[str] = None

class ProvisionedWallet(BaseModel):
    address: str
    encrypted: EncryptedPackage

# --- Business Logic Services ---

class TradeLedgerService:
    def __init__(self, repo: IWalletRepository):
        self.repo = repo

    async def get_trade_history(self, user_id: str, limit: int = 10) -> List[TradeResponse]:
        try:
            return await self.repo.get_trades(user_id, limit)
        except Exception as e:
            logger.error(f"Error fetching trade history for {user_id}: {type(e).__name__}: {e}")
            return []


class FamilyLockRegistry:
    """
    One asyncio.Lock per family, so withdrawals sharing a signer never
    overlap inside this process. A lock is dropped once no caller holds or
    waits on it.
    """
    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, family_id: str) -> asyncio.Lock:
        lock = self._locks.get(family_id)
        if lock is None:
            lock = self._locks[family_id] = asyncio.Lock()
        return lock


class WithdrawalService:
    """Entry point for withdrawals: holds the family lock around the orchestrator."""

    def __init__(self, repo: IWalletRepository, orchestrator: WithdrawalOrchestrator, locks: FamilyLockRegistry):
        self.repo = repo
        self.orchestrator = orchestrator
        self.locks = locks

    async def withdraw(self, user_id: str, amount: str) -> WithdrawalResult:
        if not user_id or not amount:
            return await self.orchestrator.withdraw(user_id, amount)

        try:
            user = await self.repo.get_user(user_id)
        except Exception as e:
            logger.exception(f"Could not load user {user_id}: {type(e).__name__}")
            return WithdrawalResult(
                outcome=WithdrawalOutcome.INTERNAL_ERROR, status=500,
                message="Unknown error during withdrawal",
            )

        family_id = user.family_id if user else None
        if not family_id:
            # Nothing shared to protect; the orchestrator reports the precondition failure.
            return await self.orchestrator.withdraw(user_id, amount)

        async with self.locks.lock_for(family_id):
            return await self.orchestrator.withdraw(user_id, amount)


class KeyExportService:
    """
    One-time export of a custodial key. The download latch is checked before
    any decryption and, once set, is never cleared.
    """
    def __init__(self, repo: IWalletRepository, vault: KeyVault):
        self.repo = repo
        self.vault = vault

    async def export_private_key(self, user_id: str) -> KeyExportResponse:
        if not user_id:
            return KeyExportResponse(status=403, message="User ID is required")

        user = await self.repo.get_user(user_id)
        if user is None:
            return KeyExportResponse(status=404, message="User not found")
        if user.private_key_downloaded:
            return KeyExportResponse(status=403, message="Private key already downloaded")
        if not user.has_key_material:
            return KeyExportResponse(status=400, message="No custodial key for this user")

        try:
            with await self.vault.decrypt(user.encrypted_private_key, user.dek) as secret:
                key_hex = secret.reveal_hex()
        except KeyVaultError as e:
            logger.error(f"Key export failed for {user_id}: {type(e).__name__}")
            return KeyExportResponse(status=500, message="Failed to fetch private key")

        return KeyExportResponse(status=200, privateKey=key_hex)

    async def mark_private_key_downloaded(self, user_id: str) -> KeyExportResponse:
        if not user_id:
            return KeyExportResponse(status=400, message="User ID is required")
        if not await self.repo.mark_private_key_downloaded(user_id):
            return KeyExportResponse(status=404, message="User not found")
        return KeyExportResponse(status=200, message="Private key marked as downloaded")


class WalletProvisioningService:
    def __init__(self, vault: KeyVault):
        self.vault = vault

    async def provision(self) -> ProvisionedWallet:
        """
        Creates a fresh custodial account and seals its key. The caller
        stores address, ciphertext and wrapped DEK together.
        """
        account = Account.create()
        encrypted = await self.vault.encrypt(account.key.hex())
        logger.info(f"Provisioned custodial wallet {account.address}")
        return ProvisionedWallet(address=account.address, encrypted=encrypted)


class ExchangeRateService:
    CACHE_TTL_SECONDS = 300

    def __init__(self, registry: TokenRegistry, source: IPriceSource, cache=None):
        self.registry = registry
        self.source = source
        self.cache = cache

    async def get_exchange_rate(self, from_contract: str, to_contract: str) -> float:
        """How many to-tokens one from-token buys; 0.0 when a price is unavailable."""
        from_token = self.registry.get(from_contract)
        to_token = self.registry.get(to_contract)

        key = f"rate:{from_token.contract_address.lower()}:{to_token.contract_address.lower()}"
        if self.cache is not None:
            cached = self.cache.get_rate(key)
            if cached is not None:
                return cached

        from_price, to_price = await asyncio.gather(
            self.source.fetch_usd_price(from_token.contract_address),
            self.source.fetch_usd_price(to_token.contract_address),
        )
        if not from_price or not to_price:
            logger.warning(f"No price for {from_token.symbol}/{to_token.symbol}, returning 0")
            return 0.0

        rate = from_price / to_price
        if self.cache is not None:
            self.cache.set_rate(key, rate, self.CACHE_TTL_SECONDS)
        return rate
