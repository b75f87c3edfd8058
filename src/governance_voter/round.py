"""Voting round orchestrator.

This module provides the VotingRound class that ties the reader, strategy
and executor together under a wall-clock budget:

    health check -> fetch active proposals -> decide -> execute -> summary

A round always ends in DONE or FAILED and never raises to its caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from governance_voter.chain.client import AssetDaoClient, ChainClient
from governance_voter.chain.timeouts import call_with_timeout
from governance_voter.chain.wallets import WalletSet
from governance_voter.config import Settings
from governance_voter.executor import (
    BUDGET_EXHAUSTED,
    VoteExecutor,
    VoteOutcome,
    WalletVoteRecord,
)
from governance_voter.market import MarketDataProvider
from governance_voter.proposals.models import Proposal
from governance_voter.proposals.reader import ProposalReader
from governance_voter.strategy.models import MarketSnapshot, VoteDecision
from governance_voter.strategy.rules import is_stable_asset, parse_amount
from governance_voter.strategy.strategies import VotingStrategy, build_strategy

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MAX_PROPOSALS = 10
DEFAULT_ROUND_BUDGET_SECONDS = 60.0
DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS = 10.0
DEFAULT_PROPOSAL_DELAY_SECONDS = 3.0
DEFAULT_HIGH_VALUE_AMOUNT = Decimal("1000")


class RoundState(str, Enum):
    """Voting round lifecycle states."""

    IDLE = "idle"
    HEALTH_CHECK = "health_check"
    FETCHING = "fetching"
    DECIDING = "deciding"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProposalResult:
    """Decision and per-wallet records for one processed proposal."""

    proposal_id: int
    description: str
    amount: str
    decision: VoteDecision
    records: tuple[WalletVoteRecord, ...]

    def count(self, outcome: VoteOutcome) -> int:
        return sum(1 for record in self.records if record.outcome is outcome)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "description": self.description,
            "amount": self.amount,
            "decision": self.decision.to_dict(),
            "records": [record.to_dict() for record in self.records],
        }


@dataclass
class RoundSummary:
    """Statistics for one voting round."""

    state: RoundState = RoundState.IDLE
    proposals_found: int = 0
    proposals_processed: int = 0
    votes_cast: int = 0
    already_voted: int = 0
    skipped: int = 0
    dry_run_votes: int = 0
    errors: int = 0
    timeouts: int = 0
    elapsed_seconds: float = 0.0
    braked: bool = False
    error: str | None = None
    results: list[ProposalResult] = field(default_factory=list)

    def add_result(self, result: ProposalResult) -> None:
        self.results.append(result)
        self.proposals_processed += 1
        self.votes_cast += result.count(VoteOutcome.SUCCESS)
        self.already_voted += result.count(VoteOutcome.ALREADY_VOTED)
        self.skipped += result.count(VoteOutcome.SKIPPED_BY_STRATEGY)
        self.dry_run_votes += result.count(VoteOutcome.DRY_RUN)
        self.errors += result.count(VoteOutcome.ERROR)
        self.timeouts += result.count(VoteOutcome.TIMEOUT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "proposals_found": self.proposals_found,
            "proposals_processed": self.proposals_processed,
            "votes_cast": self.votes_cast,
            "already_voted": self.already_voted,
            "skipped": self.skipped,
            "dry_run_votes": self.dry_run_votes,
            "errors": self.errors,
            "timeouts": self.timeouts,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "braked": self.braked,
            "error": self.error,
            "results": [result.to_dict() for result in self.results],
        }


def prioritize_proposals(
    proposals: Sequence[Proposal],
    *,
    high_value_amount: Decimal = DEFAULT_HIGH_VALUE_AMOUNT,
) -> list[Proposal]:
    """Order proposals stable-asset first, then high-value, then the rest.

    The sort is stable, so reader order is kept within each group.
    """

    def rank(proposal: Proposal) -> int:
        if is_stable_asset(proposal):
            return 0
        amount = parse_amount(proposal.amount)
        if amount is not None and amount > high_value_amount:
            return 1
        return 2

    return sorted(proposals, key=rank)


class VotingRound:
    """One bounded-time pass over the active proposals.

    Example:
        ```python
        voting_round = build_round(get_settings())
        try:
            summary = await voting_round.run()
            print(summary.to_dict())
        finally:
            await voting_round.aclose()
        ```
    """

    def __init__(
        self,
        client: ChainClient,
        reader: ProposalReader,
        strategy: VotingStrategy,
        executor: VoteExecutor,
        *,
        market_provider: MarketDataProvider | None = None,
        window_size: int | None = None,
        max_proposals: int = DEFAULT_MAX_PROPOSALS,
        round_budget_seconds: float = DEFAULT_ROUND_BUDGET_SECONDS,
        health_check_timeout_seconds: float = DEFAULT_HEALTH_CHECK_TIMEOUT_SECONDS,
        proposal_delay_seconds: float = DEFAULT_PROPOSAL_DELAY_SECONDS,
        high_value_amount: Decimal = DEFAULT_HIGH_VALUE_AMOUNT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the round.

        Args:
            client: Chain client, shared with reader and executor.
            reader: Active proposal reader.
            strategy: Strategy that decides each proposal.
            executor: Per-wallet vote executor.
            market_provider: Optional source of market snapshots.
            window_size: Proposal window override for the reader.
            max_proposals: Cap on proposals executed per round.
            round_budget_seconds: Wall-clock budget for the round.
            health_check_timeout_seconds: Timeout for the health check read.
            proposal_delay_seconds: Pause between executed proposals.
            high_value_amount: Amount above which a proposal is high-value.
            clock: Monotonic clock used for the budget.
        """
        if max_proposals < 1:
            raise ValueError("max_proposals must be >= 1")
        self._client = client
        self._reader = reader
        self._strategy = strategy
        self._executor = executor
        self._market_provider = market_provider
        self._window_size = window_size
        self._max_proposals = max_proposals
        self._round_budget = round_budget_seconds
        self._health_timeout = health_check_timeout_seconds
        self._proposal_delay = proposal_delay_seconds
        self._high_value_amount = high_value_amount
        self._clock = clock
        self._state = RoundState.IDLE

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def strategy(self) -> VotingStrategy:
        return self._strategy

    def _transition(self, state: RoundState, summary: RoundSummary) -> None:
        logger.debug("Round state %s -> %s", self._state.value, state.value)
        self._state = state
        summary.state = state

    async def run(self) -> RoundSummary:
        """Run one round and return its summary. Never raises."""
        started = self._clock()
        summary = RoundSummary()
        self._state = RoundState.IDLE
        logger.info(
            "Starting voting round (strategy=%s, dry_run=%s)",
            self._strategy.kind.value,
            self._executor.dry_run,
        )

        try:
            await self._run(summary, started)
        except Exception as e:
            logger.exception("Voting round failed")
            summary.error = f"{type(e).__name__}: {e}"
            self._transition(RoundState.FAILED, summary)

        summary.elapsed_seconds = self._clock() - started
        logger.info(
            "Voting round %s in %.1fs: found=%d processed=%d votes=%d already=%d "
            "skipped=%d errors=%d timeouts=%d braked=%s",
            summary.state.value,
            summary.elapsed_seconds,
            summary.proposals_found,
            summary.proposals_processed,
            summary.votes_cast,
            summary.already_voted,
            summary.skipped,
            summary.errors,
            summary.timeouts,
            summary.braked,
        )
        return summary

    async def _run(self, summary: RoundSummary, started: float) -> None:
        self._transition(RoundState.HEALTH_CHECK, summary)
        health = await call_with_timeout(
            self._client.get_proposal_count(),
            self._health_timeout,
            label="health check",
        )
        if not health.ok:
            summary.error = f"health check failed: {health.describe()}"
            self._transition(RoundState.FAILED, summary)
            return

        self._transition(RoundState.FETCHING, summary)
        proposals = await self._reader.list_active(self._window_size)
        summary.proposals_found = len(proposals)
        if not proposals:
            logger.info("No active proposals")
            self._transition(RoundState.DONE, summary)
            return

        self._transition(RoundState.DECIDING, summary)
        market = await self._market_snapshot()
        ordered = prioritize_proposals(proposals, high_value_amount=self._high_value_amount)
        decisions = [(proposal, self._strategy.decide(proposal, market)) for proposal in ordered]
        if len(decisions) > self._max_proposals:
            logger.info(
                "Limiting round to %d of %d active proposals", self._max_proposals, len(decisions)
            )
            decisions = decisions[: self._max_proposals]

        self._transition(RoundState.EXECUTING, summary)
        deadline = started + self._round_budget
        for position, (proposal, decision) in enumerate(decisions):
            elapsed = self._clock() - started
            if elapsed > self._round_budget:
                logger.warning(
                    "Emergency brake: %.1fs elapsed exceeds %.1fs budget, %d proposals left",
                    elapsed,
                    self._round_budget,
                    len(decisions) - position,
                )
                summary.braked = True
                break

            records = await self._executor.execute_votes(
                proposal, decision, deadline=deadline, clock=self._clock
            )
            summary.add_result(
                ProposalResult(
                    proposal_id=proposal.id,
                    description=proposal.description,
                    amount=proposal.amount,
                    decision=decision,
                    records=tuple(records),
                )
            )
            if any(record.error == BUDGET_EXHAUSTED for record in records):
                summary.braked = True
                break

            if position < len(decisions) - 1 and self._proposal_delay > 0:
                await asyncio.sleep(self._proposal_delay)

        self._transition(RoundState.DONE, summary)

    async def _market_snapshot(self) -> MarketSnapshot | None:
        if self._market_provider is None:
            return None
        result = await call_with_timeout(
            self._market_provider.get_snapshot(),
            self._health_timeout,
            label="market snapshot",
        )
        if not result.ok:
            logger.warning("Proceeding without market data: %s", result.describe())
            return None
        return result.value

    async def aclose(self) -> None:
        """Release the chain client's connections, if it holds any."""
        aclose = getattr(self._client, "aclose", None)
        if callable(aclose):
            await aclose()


def build_round(
    settings: Settings,
    *,
    market_provider: MarketDataProvider | None = None,
) -> VotingRound:
    """Wire a VotingRound from settings.

    Raises:
        ConfigurationError: If node wallets cannot be built.
    """
    wallets = WalletSet.from_settings(settings.wallets)
    client = AssetDaoClient.from_settings(settings, wallets)
    voting = settings.voting
    return VotingRound(
        client,
        ProposalReader.from_settings(settings, client),
        build_strategy(voting.strategy),
        VoteExecutor.from_settings(settings, client, wallets),
        market_provider=market_provider,
        window_size=voting.window_size,
        max_proposals=voting.max_proposals,
        round_budget_seconds=voting.round_budget_seconds,
        health_check_timeout_seconds=voting.health_check_timeout_seconds,
        proposal_delay_seconds=voting.proposal_delay_seconds,
        high_value_amount=voting.high_value_amount,
    )
