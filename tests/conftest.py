"""
Pytest configuration and shared fixtures.
"""
import os

import pytest
from httpx import AsyncClient, ASGITransport

from familywallet.api.main import app
from familywallet.core.entities.user import Family, FamilyCurrency, User
from familywallet.core.use_cases.key_vault import KeyVault
from familywallet.infrastructure.kms.local_kms import LocalKms
from tests.fakes import CHILD_ADDRESS, FAMILY_KEY, USDC, FakeChain, InMemoryWalletRepo


@pytest.fixture
def kms():
    return LocalKms(os.urandom(32))


@pytest.fixture
def vault(kms):
    return KeyVault(kms)


@pytest.fixture
def chain():
    return FakeChain(decimals=6)


@pytest.fixture
def repo():
    return InMemoryWalletRepo()


@pytest.fixture
async def family_user(vault, repo):
    """Member of a USDC family whose custodial key is sealed under the test KMS."""
    sealed = await vault.encrypt(FAMILY_KEY)
    user = User(
        id="u2",
        address=CHILD_ADDRESS,
        encrypted_private_key=sealed.encrypted_data_b64,
        dek=sealed.encrypted_dek_b64,
        family_id="f1",
        family=Family(id="f1", currency=FamilyCurrency.USDC, currency_address=USDC),
    )
    repo.add_user(user)
    return user


@pytest.fixture
async def client():
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
