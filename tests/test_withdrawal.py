import asyncio
import gc

import pytest

from familywallet.core.entities.user import Family, User
from familywallet.core.entities.withdrawal import WithdrawalOutcome
from familywallet.core.errors import ContractCallError, RpcError, TransactionTimeout
from familywallet.core.services import FamilyLockRegistry, WithdrawalService
from familywallet.core.token_registry import TokenRegistry
from familywallet.core.use_cases.key_vault import KeyVault
from familywallet.core.use_cases.withdrawal import WithdrawalOrchestrator
from tests.fakes import CHILD_ADDRESS, FAMILY_KEY, USDC, FakeChain


class CountingKms:
    def __init__(self, inner):
        self.inner = inner
        self.unwrap_calls = 0

    async def wrap(self, dek):
        return await self.inner.wrap(dek)

    async def unwrap(self, wrapped):
        self.unwrap_calls += 1
        return await self.inner.unwrap(wrapped)


@pytest.fixture
def orchestrator(repo, vault, chain):
    return WithdrawalOrchestrator(repo, vault, chain)


async def test_successful_withdrawal_uses_token_decimals(orchestrator, chain, family_user):
    result = await orchestrator.withdraw("u2", "1.5")

    assert result.outcome is WithdrawalOutcome.SUCCESS
    assert result.success
    assert result.status == 200
    assert result.blockNumber == 1234
    assert result.txHash.startswith("0x")

    assert len(chain.transfers) == 1
    signer, contract, recipient, amount = chain.transfers[0]
    assert contract == USDC
    assert recipient == CHILD_ADDRESS
    assert amount == 1_500_000
    assert signer.key == bytes.fromhex(FAMILY_KEY[2:])
    assert chain.calls == ["build_signer", "decimals", "transfer", "confirm"]


async def test_key_material_is_wiped_after_signer_construction(orchestrator, chain, family_user):
    await orchestrator.withdraw("u2", "1")

    assert len(chain.secrets_seen) == 1
    assert chain.secrets_seen[0].wiped


@pytest.mark.parametrize("user_id,amount", [("", "5"), ("u2", ""), (None, "5"), ("u2", None)])
async def test_missing_arguments(orchestrator, chain, user_id, amount):
    result = await orchestrator.withdraw(user_id, amount)

    assert result.outcome is WithdrawalOutcome.INVALID_REQUEST
    assert result.status == 400
    assert chain.calls == []


async def test_unknown_user(orchestrator, chain):
    result = await orchestrator.withdraw("nobody", "5")

    assert result.outcome is WithdrawalOutcome.USER_NOT_FOUND
    assert result.status == 404
    assert chain.calls == []


async def test_user_without_key_is_not_configured_and_nothing_is_decrypted(repo, chain, kms):
    counting = CountingKms(kms)
    repo.add_user(User(
        id="u1", address=CHILD_ADDRESS, family_id="f1",
        family=Family(id="f1", currency_address=USDC),
    ))
    result = await WithdrawalOrchestrator(repo, KeyVault(counting), chain).withdraw("u1", "5")

    assert result.outcome is WithdrawalOutcome.FAMILY_NOT_CONFIGURED
    assert counting.unwrap_calls == 0
    assert chain.calls == []


async def test_only_one_half_of_key_material_counts_as_missing(orchestrator, repo, chain, family_user):
    repo.add_user(family_user.model_copy(update={"id": "u3", "dek": None}))

    result = await orchestrator.withdraw("u3", "5")

    assert result.outcome is WithdrawalOutcome.FAMILY_NOT_CONFIGURED
    assert chain.calls == []


async def test_family_without_currency_address(orchestrator, repo, chain, family_user):
    family = family_user.family.model_copy(update={"currency_address": None})
    repo.add_user(family_user.model_copy(update={"id": "u4", "family": family}))

    result = await orchestrator.withdraw("u4", "5")

    assert result.outcome is WithdrawalOutcome.FAMILY_NOT_CONFIGURED
    assert result.status == 400


async def test_missing_recipient_address(orchestrator, repo, chain, family_user):
    repo.add_user(family_user.model_copy(update={"id": "u5", "address": None}))

    result = await orchestrator.withdraw("u5", "5")

    assert result.outcome is WithdrawalOutcome.RECIPIENT_ADDRESS_MISSING
    assert chain.calls == []


async def test_corrupt_ciphertext_is_decryption_failure(orchestrator, repo, chain, family_user):
    repo.add_user(family_user.model_copy(update={"id": "u6", "encrypted_private_key": "AAAA" * 12}))

    result = await orchestrator.withdraw("u6", "5")

    assert result.outcome is WithdrawalOutcome.DECRYPTION_FAILED
    assert result.status == 500
    assert chain.calls == []


async def test_missing_rpc_endpoint(orchestrator, chain, family_user):
    chain.rpc_configured = False

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is WithdrawalOutcome.RPC_CONFIGURATION_ERROR
    assert "transfer" not in chain.calls
    assert chain.secrets_seen[0].wiped


async def test_excess_precision_fails_before_any_network_call(repo, chain, kms, family_user):
    counting = CountingKms(kms)
    result = await WithdrawalOrchestrator(repo, KeyVault(counting), chain).withdraw("u2", "1.0000001")

    assert result.outcome is WithdrawalOutcome.INVALID_AMOUNT
    assert result.status == 400
    assert chain.calls == []
    assert counting.unwrap_calls == 0


@pytest.mark.parametrize("amount", ["-1", "abc", "1e6", "."])
async def test_malformed_amount_fails_before_any_network_call(repo, chain, kms, family_user, amount):
    counting = CountingKms(kms)
    result = await WithdrawalOrchestrator(repo, KeyVault(counting), chain).withdraw("u2", amount)

    assert result.outcome is WithdrawalOutcome.INVALID_AMOUNT
    assert chain.calls == []
    assert counting.unwrap_calls == 0


async def test_unlisted_currency_precision_comes_from_the_contract(repo, vault, chain, family_user):
    registry = TokenRegistry([])
    chain.decimals = 2

    result = await WithdrawalOrchestrator(repo, vault, chain, registry).withdraw("u2", "1.005")

    assert result.outcome is WithdrawalOutcome.INVALID_AMOUNT
    assert "decimals" in chain.calls
    assert chain.transfers == []


@pytest.mark.parametrize("error,outcome", [
    (RpcError("timeout"), WithdrawalOutcome.RPC_ERROR),
    (ContractCallError("no decimals()"), WithdrawalOutcome.CONTRACT_CALL_ERROR),
])
async def test_decimals_failure_short_circuits_before_transfer(orchestrator, chain, family_user, error, outcome):
    chain.decimals_error = error

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is outcome
    assert chain.transfers == []


async def test_submission_failure_is_not_retried(orchestrator, chain, family_user):
    chain.transfer_error = RpcError("connection reset")

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is WithdrawalOutcome.RPC_ERROR
    assert len(chain.transfers) == 1
    assert "confirm" not in chain.calls


async def test_reverted_transfer_is_reported_not_raised(orchestrator, chain, family_user):
    chain.reverted = True

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is WithdrawalOutcome.ON_CHAIN_FAILURE
    assert result.status == 500
    assert result.txHash is not None
    assert len(chain.transfers) == 1


async def test_confirmation_timeout_keeps_tx_hash(orchestrator, chain, family_user):
    chain.confirm_error = TransactionTimeout("0x" + "ab" * 32, 120)

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is WithdrawalOutcome.TRANSACTION_TIMEOUT
    assert result.txHash == "0x" + "ab" * 32
    assert len(chain.transfers) == 1


async def test_unexpected_error_becomes_internal_error(orchestrator, chain, family_user):
    chain.transfer_error = KeyError("surprise")

    result = await orchestrator.withdraw("u2", "5")

    assert result.outcome is WithdrawalOutcome.INTERNAL_ERROR
    assert result.status == 500
    assert "surprise" not in (result.message or "")


async def test_withdrawals_for_one_family_are_serialized(repo, vault, family_user):
    repo.add_user(family_user.model_copy(update={"id": "u7"}))
    active = 0
    peak = 0

    class SlowConfirmChain(FakeChain):
        async def confirm(self, pending):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().confirm(pending)

    slow = SlowConfirmChain(decimals=6)
    service = WithdrawalService(repo, WithdrawalOrchestrator(repo, vault, slow), FamilyLockRegistry())

    results = await asyncio.gather(service.withdraw("u2", "1"), service.withdraw("u7", "2"))

    assert all(r.success for r in results)
    assert peak == 1
    assert [t[3] for t in slow.transfers] == [1_000_000, 2_000_000]


async def test_family_locks_are_shared_while_held_and_dropped_after():
    locks = FamilyLockRegistry()

    held = locks.lock_for("f1")
    async with held:
        assert locks.lock_for("f1") is held
        assert locks.lock_for("f2") is not held
        assert len(locks) == 1

    del held
    gc.collect()
    assert len(locks) == 0


async def test_lock_registry_does_not_grow_with_finished_withdrawals(repo, vault, chain, family_user):
    locks = FamilyLockRegistry()
    service = WithdrawalService(repo, WithdrawalOrchestrator(repo, vault, chain), locks)

    for n in range(3):
        family = family_user.family.model_copy(update={"id": f"fam{n}"})
        repo.add_user(family_user.model_copy(update={"id": f"member{n}", "family_id": f"fam{n}", "family": family}))
        assert (await service.withdraw(f"member{n}", "1")).success

    gc.collect()
    assert len(locks) == 0
