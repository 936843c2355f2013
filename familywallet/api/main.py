import logging
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# --- Imports ---
from familywallet.config import Settings
from familywallet.core.entities.token import TokenDescriptor
from familywallet.core.entities.token_rate import ExchangeRatePoint, IngestionOutcome
from familywallet.core.entities.trade import TradeResponse
from familywallet.core.entities.withdrawal import WithdrawalRequest
from familywallet.core.errors import UnknownToken
from familywallet.core.interfaces.chain import IChainClient
from familywallet.core.interfaces.kms import IKeyManagementService
from familywallet.core.interfaces.price_source import IPriceSource
from familywallet.core.services import (
    ExchangeRateService,
    FamilyLockRegistry,
    KeyExportService,
    ProvisionedWallet,
    TradeLedgerService,
    WalletProvisioningService,
    WithdrawalService,
)
from familywallet.core.token_registry import AVAILABLE_TOKENS, TokenRegistry
from familywallet.core.use_cases.balance_aggregator import BalanceAggregator
from familywallet.core.use_cases.exchange_rates import get_exchange_rate_history
from familywallet.core.use_cases.key_vault import KeyVault
from familywallet.core.use_cases.rate_ingestion import RateIngestionJob, RateIngestionSingleton
from familywallet.core.use_cases.withdrawal import WithdrawalOrchestrator
from familywallet.infrastructure.cache.redis_service import RedisService
from familywallet.infrastructure.gateways.dexscreener_api import DexscreenerPriceSource
from familywallet.infrastructure.gateways.evm_chain import EvmChainGateway
from familywallet.infrastructure.kms.gcp_kms import GcpKms
from familywallet.infrastructure.kms.local_kms import LocalKms
from familywallet.infrastructure.persistence.postgres_repo import PostgresRepo

# Setup Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("FamilyWallet")

app = FastAPI(title="FamilyWallet API", version="1.0.0", description="Custodial family wallet: balances, withdrawals & token rates")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Dependency Injection ---
# Cached providers are process-wide singletons; tests swap them via dependency_overrides.

@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()

def get_registry() -> TokenRegistry:
    return AVAILABLE_TOKENS

@lru_cache
def get_chain() -> IChainClient:
    settings = get_settings()
    return EvmChainGateway(settings.rpc_url, confirmation_timeout=settings.tx_confirmation_timeout)

@lru_cache
def get_price_source() -> IPriceSource:
    return DexscreenerPriceSource(timeout=get_settings().price_source_timeout)

@lru_cache
def get_cache() -> RedisService:
    return RedisService(get_settings().redis_url)

@lru_cache
def _connect_repo(db_url: str) -> PostgresRepo:
    return PostgresRepo(db_url)

def get_repo() -> Optional[PostgresRepo]:
    db_url = get_settings().database_url
    if not db_url:
        return None
    try:
        return _connect_repo(db_url)
    except Exception as e:
        logger.error(f"Failed to connect to DB: {type(e).__name__}")
        return None

def require_repo(repo: Optional[PostgresRepo] = Depends(get_repo)) -> PostgresRepo:
    if not repo:
        raise HTTPException(status_code=503, detail="Database not configured or unavailable")
    return repo

@lru_cache
def get_kms() -> Optional[IKeyManagementService]:
    settings = get_settings()
    if settings.gcp_kms_configured:
        return GcpKms(
            settings.gcloud_project_id,
            settings.kms_location,
            settings.kms_keyring_name,
            settings.kms_kek_name,
            credentials_json=settings.gcp_service_account_key_json,
        )
    if settings.local_kms_master_key:
        return LocalKms.from_b64(settings.local_kms_master_key)
    return None

def get_vault(kms: Optional[IKeyManagementService] = Depends(get_kms)) -> KeyVault:
    if kms is None:
        raise HTTPException(status_code=503, detail="Key management not configured")
    return KeyVault(kms)

@lru_cache
def get_family_locks() -> FamilyLockRegistry:
    return FamilyLockRegistry()

_rate_ingestion: Optional[RateIngestionSingleton] = None

def get_rate_ingestion(
    repo: Optional[PostgresRepo] = Depends(get_repo),
    source: IPriceSource = Depends(get_price_source),
    registry: TokenRegistry = Depends(get_registry),
) -> Optional[RateIngestionSingleton]:
    global _rate_ingestion
    if repo is None:
        return None
    if _rate_ingestion is None:
        _rate_ingestion = RateIngestionSingleton(RateIngestionJob(registry, source, repo))
    return _rate_ingestion

# --- Endpoints ---

@app.get("/health")
async def health():
    return {"status": "healthy"}

@app.get("/tokenrate")
async def token_rate(ingestion: Optional[RateIngestionSingleton] = Depends(get_rate_ingestion)):
    """
    Fetches and stores current token prices. Overlapping calls are
    rejected with 429 rather than queued.
    """
    if ingestion is None:
        return JSONResponse(status_code=500, content={"success": False, "message": "Database not configured"})

    result = await ingestion.trigger_ingestion()

    if result.outcome is IngestionOutcome.SUCCESS:
        return JSONResponse(
            status_code=200,
            content={"success": True, "results": [r.model_dump() for r in result.results]},
        )
    if result.outcome in (IngestionOutcome.ALREADY_IN_PROGRESS, IngestionOutcome.SOURCE_FAILURE):
        return JSONResponse(status_code=429, content={"success": False, "message": result.message})
    return JSONResponse(status_code=500, content={"success": False, "message": result.message})

@app.get("/v1/tokens", response_model=List[TokenDescriptor])
async def list_tokens(registry: TokenRegistry = Depends(get_registry)):
    return registry.all()

@app.get("/v1/balances")
async def get_balances(
    user: str = Query(..., description="Wallet address"),
    chain: IChainClient = Depends(get_chain),
    registry: TokenRegistry = Depends(get_registry),
):
    aggregator = BalanceAggregator(chain, max_concurrency=get_settings().balance_concurrency)
    balances: Dict[str, str] = await aggregator.get_balances(registry.all(), user)
    return {"user": user, "balances": balances}

@app.post("/v1/withdrawals")
async def create_withdrawal(
    request: WithdrawalRequest,
    repo: PostgresRepo = Depends(require_repo),
    vault: KeyVault = Depends(get_vault),
    chain: IChainClient = Depends(get_chain),
    locks: FamilyLockRegistry = Depends(get_family_locks),
    registry: TokenRegistry = Depends(get_registry),
):
    """
    Pays out from the family wallet to the member's address in the
    family's settlement token. Never retried server-side.
    """
    service = WithdrawalService(repo, WithdrawalOrchestrator(repo, vault, chain, registry), locks)
    result = await service.withdraw(request.userId, request.amount)
    return JSONResponse(status_code=result.status, content=result.model_dump(mode="json"))

@app.get("/v1/trades", response_model=List[TradeResponse])
async def get_trades(
    userId: str = Query(..., description="User ID"),
    repo: PostgresRepo = Depends(require_repo),
):
    return await TradeLedgerService(repo).get_trade_history(userId)

@app.get("/v1/rates/history", response_model=List[ExchangeRatePoint])
async def get_rate_history(
    from_contract: str = Query(..., alias="from"),
    to_contract: str = Query(..., alias="to"),
    limit: int = Query(24, ge=1, le=500),
    repo: PostgresRepo = Depends(require_repo),
):
    return await get_exchange_rate_history(repo, from_contract, to_contract, limit)

@app.get("/v1/rates/exchange")
async def get_exchange_rate(
    from_contract: str = Query(..., alias="from"),
    to_contract: str = Query(..., alias="to"),
    registry: TokenRegistry = Depends(get_registry),
    source: IPriceSource = Depends(get_price_source),
    cache: RedisService = Depends(get_cache),
):
    try:
        rate = await ExchangeRateService(registry, source, cache).get_exchange_rate(from_contract, to_contract)
    except UnknownToken as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"from": from_contract, "to": to_contract, "rate": rate}

@app.get("/v1/users/{user_id}/private-key")
async def export_private_key(
    user_id: str,
    repo: PostgresRepo = Depends(require_repo),
    vault: KeyVault = Depends(get_vault),
):
    result = await KeyExportService(repo, vault).export_private_key(user_id)
    return JSONResponse(status_code=result.status, content=result.model_dump(exclude_none=True))

@app.post("/v1/users/{user_id}/private-key/downloaded")
async def mark_private_key_downloaded(
    user_id: str,
    repo: PostgresRepo = Depends(require_repo),
    vault: KeyVault = Depends(get_vault),
):
    result = await KeyExportService(repo, vault).mark_private_key_downloaded(user_id)
    return JSONResponse(status_code=result.status, content=result.model_dump(exclude_none=True))

@app.post("/v1/wallets", response_model=ProvisionedWallet)
async def provision_wallet(vault: KeyVault = Depends(get_vault)):
    """
    Creates a custodial wallet for onboarding. The caller persists the
    address, ciphertext and wrapped DEK on the new user record.
    """
    return await WalletProvisioningService(vault).provision()
