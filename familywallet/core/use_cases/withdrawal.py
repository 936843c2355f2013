import logging

from familywallet.core.entities.withdrawal import WithdrawalOutcome, WithdrawalResult
from familywallet.core.errors import (
    ContractCallError,
    DecryptionFailed,
    InvalidAmount,
    KeyUnavailable,
    RpcConfigurationError,
    RpcError,
    TransactionReverted,
    TransactionTimeout,
)
from familywallet.core.interfaces.chain import IChainClient
from familywallet.core.interfaces.repository import IWalletRepository
from familywallet.core.token_registry import AVAILABLE_TOKENS, TokenRegistry
from familywallet.core.use_cases.key_vault import KeyVault
from familywallet.core.use_cases.units import parse_units, validate_amount

logger = logging.getLogger(__name__)


def _fail(outcome: WithdrawalOutcome, status: int, message: str, **extra) -> WithdrawalResult:
    return WithdrawalResult(outcome=outcome, status=status, message=message, **extra)


class WithdrawalOrchestrator:
    """
    Pays a member out of the family wallet in the family's settlement token.

    Makes at most one transfer attempt per call and never retries: a retry
    after a partially submitted transfer could pay twice. Callers must
    serialize calls per family, since concurrent withdrawals from the same
    signer race on nonces.
    """

    def __init__(self, repo: IWalletRepository, vault: KeyVault, chain: IChainClient, registry: TokenRegistry = None):
        self.repo = repo
        self.vault = vault
        self.chain = chain
        self.registry = registry if registry is not None else AVAILABLE_TOKENS

    async def withdraw(self, user_id: str, amount: str) -> WithdrawalResult:
        try:
            return await self._withdraw(user_id, amount)
        except Exception as e:
            logger.exception(f"Unexpected withdrawal failure for user {user_id}: {type(e).__name__}")
            return _fail(WithdrawalOutcome.INTERNAL_ERROR, 500, "Unknown error during withdrawal")

    async def _withdraw(self, user_id: str, amount: str) -> WithdrawalResult:
        # 1-4. Preconditions
        if not user_id or not amount:
            return _fail(WithdrawalOutcome.INVALID_REQUEST, 400, "Missing userId or amount")

        user = await self.repo.get_user(user_id)
        if user is None:
            return _fail(WithdrawalOutcome.USER_NOT_FOUND, 404, "User not found")

        family = user.family
        if family is None or not family.currency_address or not user.has_key_material:
            return _fail(WithdrawalOutcome.FAMILY_NOT_CONFIGURED, 400, "Family wallet not configured")

        if not user.address:
            return _fail(WithdrawalOutcome.RECIPIENT_ADDRESS_MISSING, 400, "User on-chain address missing")

        currency = family.currency_address

        # Reject bad amounts before touching the KMS or the RPC. Listed tokens
        # are also checked for precision here; step 8 rechecks against the contract.
        try:
            validate_amount(amount)
            listed = self.registry.find(currency)
            if listed is not None:
                parse_units(amount, listed.decimals)
        except InvalidAmount as e:
            return _fail(WithdrawalOutcome.INVALID_AMOUNT, 400, str(e))

        # 5-6. Signer; the decrypted key is wiped when the block exits.
        try:
            with await self.vault.decrypt(user.encrypted_private_key, user.dek) as secret:
                signer = self.chain.build_signer(secret)
        except KeyUnavailable:
            return _fail(WithdrawalOutcome.KEY_UNAVAILABLE, 500, "Family signing key unavailable")
        except DecryptionFailed:
            return _fail(WithdrawalOutcome.DECRYPTION_FAILED, 500, "Could not decrypt family signing key")
        except RpcConfigurationError:
            return _fail(WithdrawalOutcome.RPC_CONFIGURATION_ERROR, 500, "RPC endpoint not configured")

        # 7. Currency can be reconfigured, so decimals come from the contract every time.
        try:
            decimals = await self.chain.get_decimals(currency)
        except ContractCallError:
            return _fail(WithdrawalOutcome.CONTRACT_CALL_ERROR, 502, "Could not read settlement token decimals")
        except RpcError:
            return _fail(WithdrawalOutcome.RPC_ERROR, 502, "RPC error while reading token decimals")

        # 8.
        try:
            base_units = parse_units(amount, decimals)
        except InvalidAmount as e:
            return _fail(WithdrawalOutcome.INVALID_AMOUNT, 400, str(e))

        # 9. Single submission.
        try:
            pending = await self.chain.transfer(signer, currency, user.address, base_units)
        except ContractCallError:
            return _fail(WithdrawalOutcome.CONTRACT_CALL_ERROR, 502, "Transfer rejected by token contract")
        except RpcError:
            return _fail(WithdrawalOutcome.RPC_ERROR, 502, "RPC error while submitting transfer")

        # 10. From here the transfer is irrevocable; only the wait can fail.
        try:
            receipt = await self.chain.confirm(pending)
        except TransactionReverted as e:
            logger.warning(f"Withdrawal {e.receipt.tx_hash} reverted for user {user_id}")
            return _fail(
                WithdrawalOutcome.ON_CHAIN_FAILURE, 500, "Transaction failed on-chain",
                txHash=e.receipt.tx_hash, blockNumber=e.receipt.block_number,
            )
        except TransactionTimeout:
            return _fail(
                WithdrawalOutcome.TRANSACTION_TIMEOUT, 504,
                "Transaction submitted but not confirmed in time", txHash=pending.tx_hash,
            )
        except RpcError:
            return _fail(
                WithdrawalOutcome.RPC_ERROR, 502,
                "Transaction submitted but confirmation lookup failed", txHash=pending.tx_hash,
            )

        # 11.
        logger.info(f"Withdrawal {receipt.tx_hash} confirmed in block {receipt.block_number} for user {user_id}")
        return WithdrawalResult(
            outcome=WithdrawalOutcome.SUCCESS,
            status=200,
            txHash=receipt.tx_hash,
            blockNumber=receipt.block_number,
        )
