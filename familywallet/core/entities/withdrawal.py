"""
Withdrawal Entity for FamilyWallet

Outcome of one withdrawal attempt from the family wallet to a member.
Never persisted here; recording a ledger entry is the caller's job.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class WithdrawalOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_REQUEST = "invalid_request"
    USER_NOT_FOUND = "user_not_found"
    FAMILY_NOT_CONFIGURED = "family_not_configured"
    RECIPIENT_ADDRESS_MISSING = "recipient_address_missing"
    KEY_UNAVAILABLE = "key_unavailable"
    DECRYPTION_FAILED = "decryption_failed"
    RPC_CONFIGURATION_ERROR = "rpc_configuration_error"
    RPC_ERROR = "rpc_error"
    CONTRACT_CALL_ERROR = "contract_call_error"
    INVALID_AMOUNT = "invalid_amount"
    TRANSACTION_TIMEOUT = "transaction_timeout"
    ON_CHAIN_FAILURE = "on_chain_failure"
    INTERNAL_ERROR = "internal_error"


class WithdrawalRequest(BaseModel):
    userId: str = ""
    amount: str = ""


class WithdrawalResult(BaseModel):
    """
    Discriminated result: exactly one outcome, plus the HTTP-style status
    the API layer answers with.
    """
    outcome: WithdrawalOutcome
    status: int
    txHash: Optional[str] = None
    blockNumber: Optional[int] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is WithdrawalOutcome.SUCCESS

    class Config:
        json_schema_extra = {
            "example": {
                "outcome": "success",
                "status": 200,
                "txHash": "0xabc123...",
                "blockNumber": 21000000,
                "message": None
            }
        }
