"""Tests for the voting round orchestrator."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from governance_voter.chain.client import VoteReceipt
from governance_voter.errors import RPCError
from governance_voter.executor import VoteExecutor
from governance_voter.proposals.models import ProposalState, ProposalType
from governance_voter.round import (
    RoundState,
    VotingRound,
    build_round,
    prioritize_proposals,
)
from governance_voter.strategy.models import VoteDecision
from governance_voter.strategy.strategies import ConservativeStrategy, StrategyKind


@pytest.fixture
def mock_client() -> AsyncMock:
    client = AsyncMock()
    client.get_proposal_count = AsyncMock(return_value=3)
    client.has_voted = AsyncMock(return_value=False)
    client.vote = AsyncMock(return_value=VoteReceipt(tx_hash="0xabc", status=1))
    return client


@pytest.fixture
def mock_reader() -> AsyncMock:
    reader = AsyncMock()
    reader.list_active = AsyncMock(return_value=[])
    return reader


def make_round(client, reader, strategy_clock, strategy=None, **kwargs) -> VotingRound:
    executor = VoteExecutor(client, 2, wallet_delay_seconds=0.0)
    options = {"proposal_delay_seconds": 0.0}
    options.update(kwargs)
    return VotingRound(
        client,
        reader,
        strategy or ConservativeStrategy(clock=strategy_clock),
        executor,
        **options,
    )


def stepping_clock(*values: float):
    """Clock returning the given readings, then repeating the last one."""
    readings = list(values)

    def clock() -> float:
        if len(readings) > 1:
            return readings.pop(0)
        return readings[0]

    return clock


class TestPrioritizeProposals:
    def test_stable_then_high_value_then_rest(self, make_proposal) -> None:
        proposals = [
            make_proposal(id=1, description="Invest in WBTC growth position", amount="500"),
            make_proposal(id=2, description="Invest in PAXG gold position", amount="2000"),
            make_proposal(id=3, description="Invest in USDC stable reserve", amount="50"),
            make_proposal(id=4, description="Invest in WBTC growth position", amount="700"),
        ]

        ordered = prioritize_proposals(proposals, high_value_amount=Decimal("1000"))

        assert [p.id for p in ordered] == [3, 2, 1, 4]

    def test_empty(self) -> None:
        assert prioritize_proposals([]) == []


class TestVotingRound:
    @pytest.mark.asyncio
    async def test_no_active_proposals(self, mock_client, mock_reader, clock) -> None:
        voting_round = make_round(mock_client, mock_reader, clock)

        summary = await voting_round.run()

        assert summary.state is RoundState.DONE
        assert summary.proposals_found == 0
        assert summary.proposals_processed == 0
        assert voting_round.state is RoundState.DONE
        mock_client.has_voted.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_failure(self, mock_client, mock_reader, clock) -> None:
        mock_client.get_proposal_count.side_effect = RPCError("down")
        voting_round = make_round(mock_client, mock_reader, clock)

        summary = await voting_round.run()

        assert summary.state is RoundState.FAILED
        assert summary.error == "health check failed: RPCError: down"
        mock_reader.list_active.assert_not_called()

    @pytest.mark.asyncio
    async def test_processes_and_counts(self, mock_client, mock_reader, clock, make_proposal) -> None:
        mock_reader.list_active.return_value = [
            make_proposal(
                id=1, amount="5", proposal_type=ProposalType.DIVEST, votes_for="60", votes_against="40"
            ),
            make_proposal(id=2, amount="3000"),
            make_proposal(id=3, state=ProposalState.DEFEATED),
        ]
        mock_client.has_voted.side_effect = lambda proposal_id, index: proposal_id == 2 and index == 0
        voting_round = make_round(mock_client, mock_reader, clock, window_size=10)

        summary = await voting_round.run()

        assert summary.state is RoundState.DONE
        assert summary.proposals_found == 3
        assert summary.proposals_processed == 3
        assert summary.votes_cast == 3
        assert summary.already_voted == 1
        assert summary.skipped == 2
        assert summary.errors == 0
        mock_reader.list_active.assert_awaited_once_with(10)
        mock_client.vote.assert_any_await(0, 1, True)
        mock_client.vote.assert_any_await(1, 2, False)

    @pytest.mark.asyncio
    async def test_truncates_after_prioritizing(self, mock_client, mock_reader, clock, make_proposal) -> None:
        mock_reader.list_active.return_value = [
            make_proposal(id=1, description="Invest in WBTC growth position"),
            make_proposal(id=2, description="Invest in WBTC growth position", amount="2000"),
            make_proposal(id=3),
        ]
        voting_round = make_round(mock_client, mock_reader, clock, max_proposals=2)

        summary = await voting_round.run()

        assert summary.proposals_found == 3
        assert [r.proposal_id for r in summary.results] == [3, 2]

    @pytest.mark.asyncio
    async def test_decides_every_fetched_proposal(
        self, mock_client, mock_reader, clock, make_proposal
    ) -> None:
        mock_reader.list_active.return_value = [make_proposal(id=i) for i in range(1, 5)]
        strategy = MagicMock()
        strategy.kind = StrategyKind.CONSERVATIVE
        strategy.decide.return_value = VoteDecision.abstain("no", strategy="conservative")
        voting_round = make_round(mock_client, mock_reader, clock, strategy=strategy, max_proposals=2)

        summary = await voting_round.run()

        assert strategy.decide.call_count == 4
        assert summary.proposals_processed == 2

    @pytest.mark.asyncio
    async def test_budget_exhausted_between_wallets(
        self, mock_client, mock_reader, clock, make_proposal
    ) -> None:
        mock_reader.list_active.return_value = [make_proposal(id=1), make_proposal(id=2)]
        round_clock = stepping_clock(0.0, 10.0, 30.0, 61.0)
        voting_round = VotingRound(
            mock_client,
            mock_reader,
            ConservativeStrategy(clock=clock),
            VoteExecutor(mock_client, 5, wallet_delay_seconds=0.0),
            round_budget_seconds=60,
            proposal_delay_seconds=0.0,
            clock=round_clock,
        )

        summary = await voting_round.run()

        assert summary.braked is True
        assert summary.proposals_processed == 1
        assert summary.votes_cast == 2
        assert summary.timeouts == 3
        records = summary.results[0].records
        assert [r.error for r in records[2:]] == ["round budget exhausted"] * 3
        assert mock_client.vote.await_count == 2

    @pytest.mark.asyncio
    async def test_emergency_brake(self, mock_client, mock_reader, clock, make_proposal) -> None:
        mock_reader.list_active.return_value = [make_proposal(id=1), make_proposal(id=2), make_proposal(id=3)]
        voting_round = make_round(
            mock_client,
            mock_reader,
            clock,
            round_budget_seconds=60,
            clock=stepping_clock(0.0, 10.0, 20.0, 61.0),
        )

        summary = await voting_round.run()

        assert summary.state is RoundState.DONE
        assert summary.braked is True
        assert summary.proposals_processed == 1
        assert summary.elapsed_seconds == 61.0

    @pytest.mark.asyncio
    async def test_reader_exception_fails_round(self, mock_client, mock_reader, clock) -> None:
        mock_reader.list_active.side_effect = RuntimeError("boom")
        voting_round = make_round(mock_client, mock_reader, clock)

        summary = await voting_round.run()

        assert summary.state is RoundState.FAILED
        assert summary.error == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_market_failure_decides_without_market(
        self, mock_client, mock_reader, clock, make_proposal
    ) -> None:
        proposal = make_proposal(id=5)
        mock_reader.list_active.return_value = [proposal]
        provider = AsyncMock()
        provider.get_snapshot.side_effect = RuntimeError("feed down")
        strategy = MagicMock()
        strategy.kind = StrategyKind.BALANCED
        strategy.decide.return_value = VoteDecision.abstain("no", strategy="balanced")
        voting_round = make_round(mock_client, mock_reader, clock, strategy=strategy, market_provider=provider)

        summary = await voting_round.run()

        assert summary.state is RoundState.DONE
        strategy.decide.assert_called_once_with(proposal, None)
        assert summary.skipped == 2

    @pytest.mark.asyncio
    async def test_summary_is_json_serializable(self, mock_client, mock_reader, clock, make_proposal) -> None:
        mock_reader.list_active.return_value = [make_proposal(id=1, amount="3000")]
        voting_round = make_round(mock_client, mock_reader, clock)

        summary = await voting_round.run()
        data = json.loads(json.dumps(summary.to_dict()))

        assert data["state"] == "done"
        assert data["results"][0]["decision"]["support"] is False
        assert data["results"][0]["records"][0]["outcome"] == "success"

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, mock_client, mock_reader, clock) -> None:
        voting_round = make_round(mock_client, mock_reader, clock)
        await voting_round.aclose()
        mock_client.aclose.assert_awaited_once()

    def test_rejects_zero_max_proposals(self, mock_client, mock_reader, clock) -> None:
        with pytest.raises(ValueError):
            make_round(mock_client, mock_reader, clock, max_proposals=0)


class TestBuildRound:
    def test_wires_from_settings(self, governance_env, monkeypatch: pytest.MonkeyPatch) -> None:
        from governance_voter.config import get_settings

        monkeypatch.setenv("VOTING_STRATEGY", "aggressive")
        settings = get_settings()

        voting_round = build_round(settings)

        assert voting_round.strategy.kind is StrategyKind.AGGRESSIVE
        assert voting_round.state is RoundState.IDLE
