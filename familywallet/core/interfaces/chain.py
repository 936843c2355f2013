from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class PendingTransaction(BaseModel):
    """Handle for a submitted, not yet mined transaction."""
    tx_hash: str


class TransactionReceipt(BaseModel):
    tx_hash: str
    block_number: int
    success: bool


class IChainClient(ABC):
    """
    Narrow contract over an EVM JSON-RPC provider.

    Raises RpcError / ContractCallError on read and submit failures,
    TransactionTimeout / TransactionReverted from confirm().
    """

    @abstractmethod
    async def get_balance(self, contract: str, owner: str) -> int:
        pass

    @abstractmethod
    async def get_decimals(self, contract: str) -> int:
        pass

    @abstractmethod
    def build_signer(self, secret) -> Any:
        """
        Returns a signer for the given SecretKey bound to the configured
        endpoint. Raises RpcConfigurationError when no endpoint is set.
        """
        pass

    @abstractmethod
    async def transfer(self, signer: Any, contract: str, recipient: str, amount: int) -> PendingTransaction:
        pass

    @abstractmethod
    async def confirm(self, pending: PendingTransaction) -> TransactionReceipt:
        pass
