import logging
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TimeExhausted

from familywallet.core.entities.token import NATIVE_ASSET_ADDRESS
from familywallet.core.errors import (
    ContractCallError,
    RpcConfigurationError,
    RpcError,
    TransactionReverted,
    TransactionTimeout,
)
from familywallet.core.interfaces.chain import IChainClient, PendingTransaction, TransactionReceipt

logger = logging.getLogger(__name__)

# Minimal ERC-20 ABI: balanceOf, decimals, transfer
ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

NATIVE_DECIMALS = 18


class EvmChainGateway(IChainClient):
    """
    IChainClient over an EVM JSON-RPC endpoint using web3's async provider.

    Provider error text is never propagated: it can contain the endpoint URL,
    which for hosted RPC providers embeds an API key.
    """

    def __init__(self, rpc_url: Optional[str], confirmation_timeout: float = 120.0, poll_latency: float = 2.0):
        self._rpc_url = rpc_url
        self._w3: Optional[AsyncWeb3] = None
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency

    @property
    def w3(self) -> AsyncWeb3:
        if not self._rpc_url:
            raise RpcConfigurationError("RPC_URL not set in env")
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self._rpc_url))
        return self._w3

    def _token(self, contract: str):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(contract), abi=ERC20_ABI)

    @staticmethod
    def _is_native(contract: str) -> bool:
        return contract.lower() == NATIVE_ASSET_ADDRESS

    async def get_balance(self, contract: str, owner: str) -> int:
        owner = AsyncWeb3.to_checksum_address(owner)
        try:
            if self._is_native(contract):
                return int(await self.w3.eth.get_balance(owner))
            return int(await self._token(contract).functions.balanceOf(owner).call())
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise ContractCallError(f"balanceOf reverted on {contract}") from e
        except RpcConfigurationError:
            raise
        except Exception as e:
            logger.warning(f"balanceOf failed for {contract}: {type(e).__name__}")
            raise RpcError(f"RPC call balanceOf failed for {contract}") from e

    async def get_decimals(self, contract: str) -> int:
        if self._is_native(contract):
            return NATIVE_DECIMALS
        try:
            return int(await self._token(contract).functions.decimals().call())
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise ContractCallError(f"decimals reverted on {contract}") from e
        except RpcConfigurationError:
            raise
        except Exception as e:
            logger.warning(f"decimals failed for {contract}: {type(e).__name__}")
            raise RpcError(f"RPC call decimals failed for {contract}") from e

    def build_signer(self, secret) -> LocalAccount:
        # Touch the provider first so a missing endpoint fails before key use.
        _ = self.w3
        return Account.from_key(secret.reveal())

    async def transfer(self, signer: LocalAccount, contract: str, recipient: str, amount: int) -> PendingTransaction:
        recipient = AsyncWeb3.to_checksum_address(recipient)
        try:
            nonce = await self.w3.eth.get_transaction_count(signer.address, "pending")
            chain_id = await self.w3.eth.chain_id
            base_tx = {"from": signer.address, "nonce": nonce, "chainId": chain_id}

            if self._is_native(contract):
                tx = dict(base_tx, to=recipient, value=amount)
                tx["gas"] = await self.w3.eth.estimate_gas(tx)
                tx["gasPrice"] = await self.w3.eth.gas_price
            else:
                tx = await self._token(contract).functions.transfer(recipient, amount).build_transaction(base_tx)

            signed = signer.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise ContractCallError(f"transfer rejected by {contract}") from e
        except RpcConfigurationError:
            raise
        except Exception as e:
            logger.error(f"transfer submission failed on {contract}: {type(e).__name__}")
            raise RpcError(f"Transfer submission failed on {contract}") from e

        pending = PendingTransaction(tx_hash=AsyncWeb3.to_hex(tx_hash))
        logger.info(f"Submitted transfer {pending.tx_hash} on {contract}")
        return pending

    async def confirm(self, pending: PendingTransaction) -> TransactionReceipt:
        """
        Waits for the receipt. A timeout abandons the wait only; the
        transaction stays submitted.
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            raise TransactionTimeout(pending.tx_hash, self.confirmation_timeout) from e
        except RpcConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Receipt lookup failed for {pending.tx_hash}: {type(e).__name__}")
            raise RpcError(f"Receipt lookup failed for {pending.tx_hash}") from e

        result = TransactionReceipt(
            tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
            success=receipt["status"] == 1,
        )
        if not result.success:
            raise TransactionReverted(result)
        return result
