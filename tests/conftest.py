"""Pytest configuration and fixtures."""

from collections.abc import Callable, Iterator
from typing import Any

import pytest

from governance_voter.config import clear_settings_cache
from governance_voter.proposals.models import Proposal, ProposalState, ProposalType

NOW = 1_760_000_000

ASSET_ADDRESS = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
PROPOSER_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2"
CONTRACT_ADDRESS = "0xa87e662061237a121Ca2E83E77dA8251bc4B3529"

# Well-known development keys (Hardhat/Anvil default accounts).
DEV_PRIVATE_KEYS = [
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
    "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6",
    "0x47e179ec197488593b187f80a00eb0da91f1b9d0b13f8733639f19c30a34926a",
]
DEV_ADDRESSES = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
    "0x90F79bf6EB2c4f870365E785982E1f101E93b906",
    "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65",
]

WEI = 10**18


def build_proposal(**overrides: Any) -> Proposal:
    """Create an active USDC investment proposal, one hour from closing."""
    fields: dict[str, Any] = {
        "id": 1,
        "proposer": PROPOSER_ADDRESS,
        "proposal_type": ProposalType.INVEST,
        "asset_address": ASSET_ADDRESS,
        "amount": "500",
        "description": "Invest in USDC stable reserve",
        "votes_for": "0",
        "votes_against": "0",
        "start_time": NOW - 600,
        "end_time": NOW + 3600,
        "state": ProposalState.ACTIVE,
        "executed": False,
        "cancelled": False,
    }
    fields.update(overrides)
    return Proposal(**fields)


def build_raw_v1(
    proposal_id: int = 1,
    *,
    proposal_type: int = 0,
    amount_wei: int = 500 * WEI,
    description: str = "Invest in USDC stable reserve",
    start_time: int = NOW - 600,
    end_time: int = NOW + 3600,
    votes_for_wei: int = 0,
    votes_against_wei: int = 0,
    state: int = 1,
    executed: bool = False,
) -> tuple[Any, ...]:
    """Build a ``getProposal`` tuple in the v1 (asset at index 2) layout."""
    return (
        proposal_id,
        proposal_type,
        ASSET_ADDRESS,
        amount_wei,
        description,
        PROPOSER_ADDRESS,
        start_time,
        end_time,
        votes_for_wei,
        votes_against_wei,
        state,
        executed,
    )


@pytest.fixture
def now() -> int:
    """Fixed wall-clock time used by strategies and the reader."""
    return NOW


@pytest.fixture
def clock() -> Callable[[], float]:
    return lambda: float(NOW)


@pytest.fixture
def make_proposal() -> Callable[..., Proposal]:
    return build_proposal


@pytest.fixture
def make_raw() -> Callable[..., tuple[Any, ...]]:
    return build_raw_v1


@pytest.fixture
def governance_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Minimal valid environment for Settings()."""
    for name in (
        "ETHEREUM_FALLBACK_RPC_URL",
        "CHAIN_ID",
        "PROPOSAL_FIELD_MAP",
        "WALLET_COUNT",
        "VOTING_STRATEGY",
        "DRY_RUN",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ASSET_DAO_CONTRACT_ADDRESS", CONTRACT_ADDRESS)
    monkeypatch.setenv("ETHEREUM_RPC_URL", "https://sepolia.infura.io/v3/abcdef0123456789abcdef0123456789")
    for index, key in enumerate(DEV_PRIVATE_KEYS, start=1):
        monkeypatch.setenv(f"AI_NODE_{index}_PRIVATE_KEY", key)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def dev_private_keys() -> list[str]:
    return list(DEV_PRIVATE_KEYS)


@pytest.fixture
def dev_addresses() -> list[str]:
    return list(DEV_ADDRESSES)


@pytest.fixture
def contract_address() -> str:
    return CONTRACT_ADDRESS
