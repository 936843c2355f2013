"""
Error taxonomy for the wallet core.

Adapters raise these; public use cases turn them into result values so
callers can render each failure kind distinctly. Messages must never carry
key material or the RPC endpoint.
"""


class WalletError(Exception):
    """Base wallet error."""
    pass


class InvalidRequest(WalletError):
    pass


class NotFound(WalletError):
    pass


class UnknownToken(NotFound):
    """Contract is not part of the token registry."""
    pass


class ConfigurationMissing(WalletError):
    pass


class RpcConfigurationError(ConfigurationMissing):
    """No RPC endpoint configured for this deployment."""
    pass


class KeyVaultError(WalletError):
    pass


class KeyUnavailable(KeyVaultError):
    """Encrypted key or wrapped DEK is absent."""
    pass


class DecryptionFailed(KeyVaultError):
    """KMS unwrap or local decrypt failed."""
    pass


class InvalidKeyMaterial(KeyVaultError):
    pass


class InvalidAmount(WalletError):
    pass


class ChainError(WalletError):
    pass


class RpcError(ChainError):
    """Network or provider failure."""
    pass


class ContractCallError(ChainError):
    """Contract reverted or returned data that does not match the ABI."""
    pass


class TransactionTimeout(ChainError):
    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"Transaction {tx_hash} not mined within {timeout}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class TransactionReverted(ChainError):
    def __init__(self, receipt):
        super().__init__(f"Transaction {receipt.tx_hash} reverted in block {receipt.block_number}")
        self.receipt = receipt
